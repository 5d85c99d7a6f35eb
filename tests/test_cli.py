"""Tests for document reading, the file-level import and the command line."""

import codecs

import mido
import pytest

from musicxml2tab import cli
from musicxml2tab.analyze import analyze_parts, decode_document, midi_from_pitch, read_document
from musicxml2tab.errors import ParseError, ReadError
from musicxml2tab.parser import parse_xml
from musicxml2tab.process import import_musicxml

from xmlbuild import attributes, measure, score_part, single_part, tab

DOC = single_part(measure(attributes(), tab(0), tab(3, string=2)))


class TestDecoding:

    def test_utf8_bom(self):
        assert decode_document(codecs.BOM_UTF8 + "<a>ä</a>".encode("utf-8")) == "<a>ä</a>"

    def test_utf16_bom(self):
        data = "<a>ö</a>".encode("utf-16")
        assert decode_document(data) == "<a>ö</a>"

    def test_declared_encoding(self):
        data = '<?xml version="1.0" encoding="ISO-8859-1"?><a>ü</a>'.encode("latin-1")
        assert decode_document(data).endswith("<a>ü</a>")

    def test_unknown_declared_encoding_falls_back_to_utf8(self):
        data = '<?xml version="1.0" encoding="x-nonsense"?><a/>'.encode("utf-8")
        assert decode_document(data).endswith("<a/>")

    def test_compressed_musicxml_is_rejected(self):
        with pytest.raises(ReadError) as exc:
            decode_document(b"PK\x03\x04rest-of-zip", "song.mxl")
        assert exc.value.stage == "read"
        assert exc.value.path == "song.mxl"

    def test_undecodable_bytes(self):
        with pytest.raises(ReadError):
            decode_document(b"<a>\xff\xfe\xfa</a>")

    def test_missing_file(self, tmp_path):
        with pytest.raises(ReadError) as exc:
            read_document(tmp_path / "missing.musicxml")
        assert "read failed" in str(exc.value)


class TestAnalyze:

    def test_midi_from_pitch(self):
        assert midi_from_pitch("C", 0, 4) == 60
        assert midi_from_pitch("b", -1, 3) == 58
        assert midi_from_pitch("H", 0, 4) is None

    def test_part_list_and_instruments(self):
        xml = ("<score-partwise><part-list>"
               + score_part("P1", "Drums", [("P1-I36", "Kick (hit)", 10, 36), ("P1-I2", "Snare (hit)", 3, 38)])
               + '<score-part id="P2"><part-name> </part-name>'
               '<score-instrument id="P2-I1"><instrument-name>Guitar</instrument-name></score-instrument>'
               '<midi-instrument id="P2-I1"><midi-channel>1</midi-channel><midi-program>30</midi-program>'
               "</midi-instrument></score-part>"
               "</part-list></score-partwise>")
        info = analyze_parts(parse_xml(xml))
        assert info.order == ["P1", "P2"]
        drums = info.parts["P1"]
        assert drums.is_percussion
        assert drums.unpitched["P1-I2"].channel == 3
        assert drums.unpitched["P1-I36"].pitch == 36
        assert drums.unpitched["P1-I36"].name == "Kick (hit)"
        guitar = info.parts["P2"]
        assert guitar.name == "Part P2"
        assert not guitar.is_percussion


class TestImportFile:

    def test_import_from_file(self, cfg, tmp_path):
        src = tmp_path / "song.musicxml"
        src.write_text(DOC, encoding="utf-8")
        res = import_musicxml(src, cfg)
        assert len(res.staves[0].notes) == 2

    def test_parse_error_carries_path(self, cfg, tmp_path):
        src = tmp_path / "empty.xml"
        src.write_text("no markup here", encoding="utf-8")
        with pytest.raises(ParseError) as exc:
            import_musicxml(src, cfg)
        assert exc.value.path == str(src)
        assert exc.value.stage == "parse"


class TestCli:

    @pytest.fixture
    def config(self, tmp_path):
        path = tmp_path / "cfg.yaml"
        path.write_text("velocity: 80\n", encoding="utf-8")
        return str(path)

    def test_missing_input(self, tmp_path, config, capsys):
        assert cli.main(["--in", str(tmp_path / "nope.xml"), "--config", config]) == 1
        assert "Input not found" in capsys.readouterr().err

    def test_success_writes_midi(self, tmp_path, config, capsys):
        src = tmp_path / "song.musicxml"
        src.write_text(DOC, encoding="utf-8")
        out = tmp_path / "out.mid"
        rc = cli.main(["--in", str(src), "--out", str(out), "--config", config,
                       "--staves-out-dir", str(tmp_path / "staves"), "--chord-offset", "0"])
        assert rc == 0
        assert "[cli] Done. staves=1 notes=2" in capsys.readouterr().out
        ons = [m for m in mido.MidiFile(str(out), charset="utf-8").tracks[1] if m.type == "note_on"]
        assert [m.velocity for m in ons] == [80, 80]
        assert len(list((tmp_path / "staves").iterdir())) == 1

    def test_default_output_name(self, tmp_path, config):
        src = tmp_path / "song.musicxml"
        src.write_text(DOC, encoding="utf-8")
        assert cli.main(["--in", str(src), "--config", config, "--no-markers", "--no-regions"]) == 0
        assert (tmp_path / "song.mid").exists()

    def test_read_error(self, tmp_path, config):
        src = tmp_path / "song.mxl"
        src.write_bytes(b"PK\x03\x04zipdata")
        assert cli.main(["--in", str(src), "--config", config]) == 2

    def test_parse_error(self, tmp_path, config, capsys):
        src = tmp_path / "song.xml"
        src.write_text("<!-- nothing -->", encoding="utf-8")
        assert cli.main(["--in", str(src), "--config", config]) == 3
        assert "parse failed" in capsys.readouterr().err
