"""Tests for the MIDI writer (read back with mido)."""

import mido
import pytest

from musicxml2tab.process import import_text
from musicxml2tab.timeline import TempoMarker
from musicxml2tab.write import seconds_to_ticks, write_midi, write_staves_separately

from xmlbuild import attributes, measure, rehearsal, single_part, tab, tempo


@pytest.fixture
def result(cfg):
    xml = single_part(measure(
        attributes(time=(3, 4)), rehearsal("Intro"), tempo(60),
        tab(12, string=3, technical="<harmonic/>"), tab(5, string=1, play="<mute>palm</mute>"),
    ), name="Lead / Guitar")
    return import_text(xml, cfg)


class TestSecondsToTicks:

    def test_default_tempo(self):
        assert seconds_to_ticks(1.0, [], 960) == 1920

    def test_tempo_map(self):
        markers = [TempoMarker(0.0, 120.0), TempoMarker(1.0, 60.0)]
        assert seconds_to_ticks(2.0, markers, 960) == 2880

    def test_markers_without_tempo_are_skipped(self):
        markers = [TempoMarker(0.0, None, 4, 4), TempoMarker(0.5, 60.0)]
        assert seconds_to_ticks(0.5, markers, 960) == 960
        assert seconds_to_ticks(1.5, markers, 960) == 1920


class TestWriteMidi:

    def test_conductor_and_staff_tracks(self, result, tmp_path):
        out = tmp_path / "out.mid"
        write_midi(result, str(out))
        mid = mido.MidiFile(str(out), charset="utf-8")
        assert mid.ticks_per_beat == 960
        assert len(mid.tracks) == 2

        conductor = [m for m in mid.tracks[0] if m.is_meta and m.type != "end_of_track"]
        types = [m.type for m in conductor]
        assert types == ["track_name", "time_signature", "set_tempo", "marker"]
        assert conductor[1].numerator == 3
        assert mido.tempo2bpm(conductor[2].tempo) == pytest.approx(60)
        assert conductor[3].text == "Intro"

        staff = mid.tracks[1]
        assert staff[0].name == "Lead / Guitar"
        texts = [(m.type, m.text) for m in staff if m.type in ("text", "marker", "cue_marker")]
        assert texts == [("text", "_<12>"), ("text", "_5"), ("marker", "P.M___")]
        ons = [m for m in staff if m.type == "note_on"]
        assert [m.channel for m in ons] == [3, 5]

    def test_absolute_note_times(self, result, tmp_path):
        out = tmp_path / "out.mid"
        write_midi(result, str(out))
        now, starts = 0, []
        for msg in mido.MidiFile(str(out), charset="utf-8").tracks[1]:
            now += msg.time
            if msg.type == "note_on":
                starts.append(now)
        assert starts == [0, 960]

    def test_separate_staves(self, result, tmp_path):
        paths = write_staves_separately(result, str(tmp_path / "staves"))
        assert len(paths) == 1
        assert paths[0].endswith("01-Lead _ Guitar.mid")
        mid = mido.MidiFile(paths[0], charset="utf-8")
        assert len(mid.tracks) == 1
        assert not any(m.type in ("set_tempo", "time_signature") for m in mid.tracks[0])
