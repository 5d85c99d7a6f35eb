# src/musicxml2tab/process.py
from __future__ import annotations
from fractions import Fraction
from typing import Dict, List, Optional
import logging

from .analyze import analyze_parts, midi_from_pitch, part_id_of, read_document
from .articulations import (
    LABEL_PREFIX, ResolvedEvent, format_number, resolve_articulations, resolve_slide, slide_elements,
)
from .config import ImportConfig
from .errors import ParseError
from .parser import Node, parse_xml
from .repeats import expand_repeats
from .slides import SlideTracker
from .timeline import (
    ImportResult, Instrument, NoteEvent, PartInfo, Region, StaffTimeline, TempoMarker, TextEvent, TextKind,
)
from .util.time import div_to_ticks, ticks_to_seconds
from .util.xml import F, FA, T, attr, child_num, child_text, to_number

logger = logging.getLogger(__name__)

SECTION_EPSILON = 0.01
MIN_REGION_LENGTH = 0.01
MIN_TIMELINE_SECONDS = 0.001

# --- Namensheuristiken ---

def is_bass_name(name: str) -> bool:
    return "bass" in (name or "").lower()

def is_five_string_bass_name(name: str) -> bool:
    n = (name or "").lower()
    return "bass" in n and ("5" in n or "five" in n)

def is_drum_name(name: str) -> bool:
    n = (name or "").lower()
    return "drum" in n or "percussion" in n or "kit" in n

def _tick(v: Fraction) -> int:
    return max(0, int(round(v)))

def string_to_channel(string: int, bass: bool) -> int:
    """Saite 1 (hoch) → Kanal 6 … Saite 6 → Kanal 1; Bass eine Stufe tiefer."""
    ch = 7 - int(string)
    if ch < 1 or ch > 16:
        ch = 1
    if bass:
        ch = max(1, ch - 1)
    return ch

def parse_tuning(staff_details: Node) -> Optional[List[int]]:
    # line 1 = tiefste/dickste Saite
    tunings = sorted(FA(staff_details, "staff-tuning"), key=lambda st: to_number(attr(st, "line")) or 0)
    out: List[int] = []
    for st in tunings:
        alter = child_num(st, "tuning-alter") or 0
        octave = child_num(st, "tuning-octave")
        midi = midi_from_pitch(child_text(st, "tuning-step"), alter, octave if octave is not None else 2)
        if midi is not None:
            out.append(midi)
    return out or None

def default_tuning(name: str, cfg: ImportConfig) -> Optional[List[int]]:
    if is_five_string_bass_name(name):
        key = "bass5"
    elif is_bass_name(name):
        key = "bass"
    else:
        key = "guitar"
    t = cfg.default_tunings.get(key)
    return list(t) if t else None

# --- global: Tempo-/Taktartmarker und Abschnitte (nur vom ersten Part geschrieben) ---

class _Conductor:
    def __init__(self, cfg: ImportConfig):
        self.cfg = cfg
        self._markers: Dict[Fraction, TempoMarker] = {}
        self._sections: List[tuple] = []   # (name, start_seconds)

    def _marker(self, seconds: Fraction) -> TempoMarker:
        m = self._markers.get(seconds)
        if m is None:
            m = self._markers[seconds] = TempoMarker(float(seconds))
        return m

    def tempo(self, seconds: Fraction, bpm: float):
        self._marker(seconds).tempo = float(bpm)

    def time_signature(self, seconds: Fraction, beats: int, beat_type: int):
        m = self._marker(seconds)
        m.beats = beats
        m.beat_type = beat_type

    def section(self, name: str, seconds: Fraction):
        start = float(seconds)
        for n, s in self._sections:
            if n == name and abs(s - start) < SECTION_EPSILON:
                return
        self._sections.append((name, start))

    def markers(self) -> List[TempoMarker]:
        return [self._markers[k] for k in sorted(self._markers)]

    def regions(self, total_seconds: float) -> List[Region]:
        secs = sorted(self._sections, key=lambda x: x[1])
        out: List[Region] = []
        for i, (name, start) in enumerate(secs):
            end = secs[i + 1][1] if i + 1 < len(secs) else total_seconds
            if end <= start:
                end = start + MIN_REGION_LENGTH
            out.append(Region(name=name, start=start, end=end, color=self.cfg.region_color(name)))
        return out

# --- pro Part ---

class _PartWalk:
    def __init__(self, part: PartInfo, cfg: ImportConfig, conductor: _Conductor, primary: bool):
        self.part = part
        self.cfg = cfg
        self.conductor = conductor
        self.primary = primary
        self.is_bass = is_bass_name(part.name)

        self.tick = Fraction(0)
        self.seconds = Fraction(0)
        self.tempo = cfg.default_tempo
        self.divisions = None
        self.tuning_parsed = False

        # Akkord-Tracking pro Staff
        self.last_start: Dict[int, Fraction] = {}
        self.chord_count: Dict[int, int] = {}
        self.slides = SlideTracker()

        self.staves: Dict[int, StaffTimeline] = {}
        self.tunings: Dict[int, List[int]] = {}

    # --- Zeit ---

    def advance(self, ticks: Fraction):
        if ticks > 0:
            self.tick += ticks
            self.seconds += ticks_to_seconds(ticks, self.cfg.ticks_per_quarter, self.tempo)

    def rewind(self, ticks: Fraction):
        self.tick = max(Fraction(0), self.tick - ticks)
        self.seconds = max(Fraction(0), self.seconds - ticks_to_seconds(ticks, self.cfg.ticks_per_quarter, self.tempo))

    def duration_ticks(self, el: Node) -> Optional[Fraction]:
        if not self.divisions:
            return None
        dur = child_num(el, "duration")
        if dur is None or dur < 0:
            return None
        return div_to_ticks(dur, self.divisions, self.cfg.ticks_per_quarter)

    # --- Walk ---

    def run(self, measures: List[Node]):
        for meas in measures:
            for el in meas.children:
                handler = self._HANDLERS.get(el.name)
                if handler is not None:
                    handler(self, el)

    def _attributes(self, el: Node):
        d = child_num(el, "divisions")
        if d is not None and d > 0:
            self.divisions = d

        if not self.tuning_parsed:
            self.tuning_parsed = True
            if not self.part.is_percussion:
                for sd in FA(el, "staff-details"):
                    staff = to_number(attr(sd, "number")) or 1
                    tuning = parse_tuning(sd)
                    if tuning:
                        self.tunings[int(staff)] = tuning

        time_el = F(el, "time")
        if time_el is not None and self.primary and self.cfg.import_markers:
            beats = child_num(time_el, "beats")
            beat_type = child_num(time_el, "beat-type")
            if isinstance(beats, int) and isinstance(beat_type, int):
                self.conductor.time_signature(self.seconds, beats, beat_type)

    def _backup(self, el: Node):
        ticks = self.duration_ticks(el)
        if ticks is not None:
            self.rewind(ticks)

    def _forward(self, el: Node):
        ticks = self.duration_ticks(el)
        if ticks is not None:
            self.advance(ticks)

    def _set_tempo(self, bpm):
        if bpm is None or bpm <= 0:
            return
        # laufendes Tempo nur im Primär-Part bei aktivem Marker-Import
        if self.primary and self.cfg.import_markers:
            self.tempo = bpm
            self.conductor.tempo(self.seconds, bpm)

    def _sound(self, el: Node):
        self._set_tempo(to_number(attr(el, "tempo")))

    def _direction(self, el: Node):
        bpm = to_number(attr(F(el, "sound"), "tempo"))
        if bpm is None:
            for dt in FA(el, "direction-type"):
                bpm = child_num(F(dt, "metronome"), "per-minute")
                if bpm is not None:
                    break
        self._set_tempo(bpm)

        if self.primary and self.cfg.import_regions:
            for dt in FA(el, "direction-type"):
                for reh in FA(dt, "rehearsal"):
                    name = T(reh).strip()
                    if name:
                        self.conductor.section(name, self.seconds)

    def _note(self, el: Node):
        ticks = self.duration_ticks(el)
        if ticks is None:
            logger.debug("%s: note without duration/divisions skipped", self.part.part_id)
            return
        staff = int(child_num(el, "staff") or 1)
        chord = F(el, "chord") is not None

        if F(el, "rest") is not None:
            self.last_start.pop(staff, None)
            self.chord_count.pop(staff, None)
            self.advance(ticks)
            return

        onset = self._onset(staff, chord)
        inst_id = attr(F(el, "instrument"), "id")
        drum = self.part.unpitched.get(inst_id) if inst_id else None
        if drum is not None:
            self._drum_note(el, drum, staff, onset, ticks)
        else:
            self._pitched_note(el, staff, onset, ticks)

        # Akkord-Folgenoten rücken die Position nicht weiter
        if not chord:
            self.advance(ticks)

    _HANDLERS = {
        "attributes": _attributes,
        "note": _note,
        "backup": _backup,
        "forward": _forward,
        "direction": _direction,
        "sound": _sound,
    }

    # --- Noten ---

    def _onset(self, staff: int, chord: bool) -> Fraction:
        if not chord:
            self.last_start[staff] = self.tick
            self.chord_count[staff] = 1
            return self.tick
        base = self.last_start.get(staff)
        if base is None:
            base = self.last_start[staff] = self.tick
            self.chord_count[staff] = 1
        count = self.chord_count.get(staff, 0) + 1
        self.chord_count[staff] = count
        return base + (count - 1) * self.cfg.chord_offset_ticks

    def _staff(self, staff: int) -> StaffTimeline:
        st = self.staves.get(staff)
        if st is None:
            st = self.staves[staff] = StaffTimeline(part_id=self.part.part_id, name=self.part.name, staff=staff)
        return st

    def _emit(self, staff: int, onset: Fraction, ticks: Fraction, channel: int, pitch: int,
              base_label: str, events: List[ResolvedEvent]):
        st = self._staff(staff)
        start = _tick(onset)
        st.notes.append(NoteEvent(
            start_tick=start,
            end_tick=max(start, _tick(onset + ticks)),
            channel=channel,
            pitch=max(0, min(127, int(pitch))),
            velocity=self.cfg.velocity,
        ))
        replacing = next((ev for ev in events if ev.replaces_label), None)
        if replacing is not None:
            st.texts.append(TextEvent(start, replacing.kind, replacing.label))
        else:
            st.texts.append(TextEvent(start, TextKind.TEXT, base_label))
        for ev in events:
            if ev is not replacing:
                st.texts.append(TextEvent(start, ev.kind, ev.label))

    def _drum_note(self, el: Node, drum: Instrument, staff: int, onset: Fraction, ticks: Fraction):
        if drum.name not in self.cfg.drums:
            logger.debug("%s: unknown drum %r, using document channel/pitch", self.part.part_id, drum.name)
        pitch = self.cfg.drum_pitch(drum.name, drum.pitch)
        channel = self.cfg.drum_channel(drum.name, drum.channel)
        events = resolve_articulations(el, self.cfg.articulations, 0)
        # keine Slides bei Drums
        self._emit(staff, onset, ticks, channel, pitch, LABEL_PREFIX + self.cfg.drum_label(drum.name), events)

    def _pitched_note(self, el: Node, staff: int, onset: Fraction, ticks: Fraction):
        pitch_el = F(el, "pitch")
        if pitch_el is None:
            return
        octave = child_num(pitch_el, "octave")
        midi = midi_from_pitch(child_text(pitch_el, "step"), child_num(pitch_el, "alter") or 0,
                               octave if octave is not None else 4)
        if midi is None:
            return

        string = fret = None
        for tech in (t for n in FA(el, "notations") for t in FA(n, "technical")):
            string, fret = child_num(tech, "string"), child_num(tech, "fret")
            if string is not None and fret is not None:
                break
        if string is None or fret is None:
            logger.debug("%s: note without string/fret skipped", self.part.part_id)
            return
        string = int(string)

        events = resolve_articulations(el, self.cfg.articulations, fret)
        self._emit(staff, onset, ticks, string_to_channel(string, self.is_bass), midi,
                   LABEL_PREFIX + format_number(fret), events)

        st = self._staff(staff)
        for sl in slide_elements(el):
            ev = resolve_slide(sl, self.cfg.articulations, fret)
            if ev is None:
                continue
            te = self.slides.feed(staff, string, attr(sl, "type"), ev, _tick(onset))
            if te is not None:
                st.texts.append(te)

    # --- Ergebnis ---

    def timelines(self) -> List[StaffTimeline]:
        out: List[StaffTimeline] = []
        percussion = self.part.is_percussion or is_drum_name(self.part.name)
        for staff in sorted(self.staves):
            st = self.staves[staff]
            if not st.notes:
                continue
            st.notes.sort(key=lambda n: n.start_tick)
            st.texts.sort(key=lambda t: t.tick)      # stabil: gleiche Ticks in Einfügereihenfolge
            st.tuning = self.tunings.get(staff)
            st.is_percussion = percussion
            if percussion:
                st.effective_tuning = st.tuning or list(self.cfg.drum_profile) or None
            else:
                st.effective_tuning = st.tuning or default_tuning(self.part.name, self.cfg)
            out.append(st)
        return out

# --- öffentliche API ---

def build_timelines(root: Node, cfg: ImportConfig) -> ImportResult:
    score = analyze_parts(root)
    conductor = _Conductor(cfg)
    walks: Dict[str, _PartWalk] = {}

    for idx, part in enumerate(FA(root, "part"), start=1):
        pid = part_id_of(part, idx)
        measures = expand_repeats(FA(part, "measure"))
        walk = _PartWalk(score.parts[pid], cfg, conductor, primary=(idx == 1))
        walk.run(measures)
        walks[pid] = walk
        logger.debug("part %s: %d measures after repeats, %.3f s", pid, len(measures), float(walk.seconds))

    total = max((float(w.seconds) for w in walks.values()), default=0.0)
    if total < MIN_TIMELINE_SECONDS:
        total = 1.0

    staves: List[StaffTimeline] = []
    for pid in score.order:
        if pid in walks:
            staves.extend(walks[pid].timelines())

    return ImportResult(
        staves=staves,
        tempo_markers=conductor.markers(),
        regions=conductor.regions(total),
        total_seconds=total,
        ticks_per_quarter=cfg.ticks_per_quarter,
    )

def import_text(text: str, cfg: Optional[ImportConfig] = None) -> ImportResult:
    return build_timelines(parse_xml(text), cfg or ImportConfig.defaults())

def import_musicxml(path, cfg: Optional[ImportConfig] = None) -> ImportResult:
    """Datei lesen, parsen, synthetisieren. ReadError / ParseError sind die einzigen Fehler nach außen."""
    text = read_document(path)
    try:
        root = parse_xml(text)
    except ParseError as e:
        raise ParseError(e.args[0], str(path)) from e
    return build_timelines(root, cfg or ImportConfig.defaults())
