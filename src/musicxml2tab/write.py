from __future__ import annotations
import os
import re
import mido
from typing import Iterable, List, Tuple
from .timeline import ImportResult, StaffTimeline, NoteEvent, TextEvent, TextKind, TempoMarker, Region, DEFAULT_BPM

MIDI_CHARSET = "utf-8"   # Tab-Symbole wie "˄" sind nicht latin1
TEXT_META = {TextKind.TEXT: "text", TextKind.MARKER: "marker", TextKind.CUE: "cue_marker"}

# ---------- interne Helfer ----------

def _bpm_to_micro(bpm: float) -> int:
    return int(round(60_000_000 / max(1e-6, float(bpm))))

def seconds_to_ticks(seconds: float, markers: List[TempoMarker], tpq: int, default_bpm: float = DEFAULT_BPM) -> int:
    """Sekunden → Ticks über die Tempo-Karte (Marker ohne Tempo zählen nicht)."""
    bpm = default_bpm
    last_sec = 0.0
    ticks = 0.0
    for m in markers:
        if m.tempo is None:
            continue
        if m.seconds >= seconds:
            break
        ticks += (m.seconds - last_sec) * bpm / 60.0 * tpq
        last_sec = m.seconds
        bpm = m.tempo
    ticks += (seconds - last_sec) * bpm / 60.0 * tpq
    return max(0, int(round(ticks)))

def _is_pow2(n: int) -> bool:
    return n > 0 and (n & (n - 1)) == 0

def _emit_conductor(track: mido.MidiTrack, markers: List[TempoMarker], regions: List[Region], tpq: int):
    """Tempo, Taktart und Abschnitts-Marker in einen Track (sortiert & delta-times)."""
    events: List[Tuple[int, int, mido.MetaMessage]] = []
    for m in markers:
        tick = seconds_to_ticks(m.seconds, markers, tpq)
        # Reihenfolge: TimeSig vor Tempo bei gleichem Tick
        if m.beats and 0 < m.beats < 256 and m.beat_type and _is_pow2(m.beat_type):
            events.append((tick, 0, mido.MetaMessage("time_signature", numerator=m.beats, denominator=m.beat_type)))
        if m.tempo:
            events.append((tick, 1, mido.MetaMessage("set_tempo", tempo=_bpm_to_micro(m.tempo))))
    for r in regions:
        events.append((seconds_to_ticks(r.start, markers, tpq), 2, mido.MetaMessage("marker", text=r.name)))
    events.sort(key=lambda x: (x[0], x[1]))

    last = 0
    for tick, _, msg in events:
        track.append(msg.copy(time=tick - last))
        last = tick

def _emit_track_events(mt: mido.MidiTrack, notes: Iterable[NoteEvent], texts: Iterable[TextEvent]):
    """Noten und Textevents als delta-times in einen Track."""
    evs = []
    for t in texts:
        evs.append((t.tick, 0, ("text", t)))
    for n in notes:
        evs.append((n.start_tick, 2, ("on", n)))
        evs.append((n.end_tick,   1, ("off", n)))  # Off zuerst bei gleichem Tick
    evs.sort(key=lambda x: (x[0], x[1]))

    last = 0
    for tick, _, payload in evs:
        delta = tick - last
        last = tick
        kind = payload[0]
        if kind == "text":
            t = payload[1]
            mt.append(mido.MetaMessage(TEXT_META.get(t.kind, "text"), text=t.text, time=delta))
            continue
        n = payload[1]
        ch = max(0, min(15, n.channel - 1))   # mido: 0-basiert
        if kind == "on":
            mt.append(mido.Message("note_on", note=n.pitch, velocity=n.velocity, channel=ch, time=delta))
        else:
            mt.append(mido.Message("note_off", note=n.pitch, velocity=0, channel=ch, time=delta))

def _staff_track(st: StaffTimeline, omit_track_meta: bool = False) -> mido.MidiTrack:
    mt = mido.MidiTrack()
    if not omit_track_meta:
        mt.append(mido.MetaMessage("track_name", name=st.name, time=0))
    _emit_track_events(mt, st.notes, st.texts)
    return mt

def _sanitize_filename(name: str) -> str:
    name = re.sub(r"[^\w\s\-\.\(\)\[\]]+", "_", name.strip())
    name = re.sub(r"\s+", " ", name)
    return name or "Part"

# ---------- öffentliche Writer-APIs ----------

def write_midi(result: ImportResult, out_path: str):
    """
    Eine Datei: Conductor-Track (Tempo/Taktart/Abschnitte) + ein Track pro Staff.
    """
    mid = mido.MidiFile(ticks_per_beat=result.ticks_per_quarter, charset=MIDI_CHARSET)

    t_con = mido.MidiTrack()
    t_con.append(mido.MetaMessage("track_name", name="Conductor", time=0))
    _emit_conductor(t_con, result.tempo_markers, result.regions, result.ticks_per_quarter)
    mid.tracks.append(t_con)

    for st in result.staves:
        mid.tracks.append(_staff_track(st))

    mid.save(out_path)

def write_staves_separately(
    result: ImportResult,
    out_dir: str,
    template: str = "{index:02d}-{name}.mid",
    omit_track_meta: bool = False,
) -> List[str]:
    """
    Schreibt pro Staff eine eigene MIDI **ohne** Tempo/Taktart.
    - template: Dateinamen-Template; Platzhalter: {index}, {name}, {staff}
    """
    os.makedirs(out_dir, exist_ok=True)
    paths = []
    for idx, st in enumerate(result.staves, start=1):
        fname = template.format(index=idx, name=_sanitize_filename(st.name), staff=st.staff)
        path = os.path.join(out_dir, fname)
        mid = mido.MidiFile(ticks_per_beat=result.ticks_per_quarter, charset=MIDI_CHARSET)
        mid.tracks.append(_staff_track(st, omit_track_meta))
        mid.save(path)
        paths.append(path)
    return paths
