# src/musicxml2tab/analyze.py
from __future__ import annotations
from pathlib import Path
from typing import Dict, Optional
import codecs
import logging
import re

from .errors import ReadError
from .parser import Node
from .timeline import ScoreInfo, PartInfo, Instrument
from .util.xml import F, FA, T, attr, child_text, child_num

logger = logging.getLogger(__name__)

STEP_TO_SEMITONE = {"C":0,"D":2,"E":4,"F":5,"G":7,"A":9,"B":11}
def midi_from_pitch(step: str, alter, octave) -> Optional[int]:
    off = STEP_TO_SEMITONE.get((step or "").strip().upper())
    if off is None:
        return None
    return int(round((octave + 1) * 12 + off + alter))

_ZIP_MAGIC = b"PK\x03\x04"
_ENCODING_RE = re.compile(rb"""<\?xml[^>]*encoding\s*=\s*["']([A-Za-z0-9._\-]+)["']""")

def decode_document(data: bytes, path: str = None) -> str:
    """Bytes → Text. BOM hat Vorrang, dann die encoding-Angabe der XML-Deklaration, sonst UTF-8."""
    if data.startswith(_ZIP_MAGIC):
        raise ReadError("compressed MusicXML (.mxl) is not supported, extract the .xml first", path)
    if data.startswith(codecs.BOM_UTF8):
        enc = "utf-8-sig"
    elif data.startswith(codecs.BOM_UTF16_LE) or data.startswith(codecs.BOM_UTF16_BE):
        enc = "utf-16"
    else:
        enc = "utf-8"
        m = _ENCODING_RE.match(data.lstrip()[:200])
        if m:
            declared = m.group(1).decode("ascii")
            try:
                codecs.lookup(declared)
                enc = declared
            except LookupError:
                logger.debug("unknown declared encoding %r, using utf-8", declared)
    try:
        return data.decode(enc)
    except UnicodeDecodeError as e:
        raise ReadError(f"cannot decode document as {enc}: {e}", path) from e

def read_document(path) -> str:
    p = Path(path)
    try:
        data = p.read_bytes()
    except OSError as e:
        raise ReadError(str(e), str(p)) from e
    return decode_document(data, str(p))

def _instrument_map(score_part: Node) -> Dict[str, Instrument]:
    """instrument-id -> Instrument, nur Instrumente mit <midi-unpitched> (Schlagwerk)."""
    out: Dict[str, Instrument] = {}
    midi_instr = {attr(mi, "id"): mi for mi in reversed(FA(score_part, "midi-instrument"))}
    for si in FA(score_part, "score-instrument"):
        iid = attr(si, "id")
        mi = midi_instr.get(iid)
        if iid is None or mi is None:
            continue
        unpitched = child_num(mi, "midi-unpitched")
        if unpitched is None:
            continue
        channel = child_num(mi, "midi-channel")
        out[iid] = Instrument(
            instrument_id=iid,
            name=child_text(si, "instrument-name").strip(),
            pitch=int(unpitched),
            channel=int(channel) if channel is not None else 10,
        )
    return out

def part_id_of(part: Node, index: int) -> str:
    return attr(part, "id") or f"P{index}"

def analyze_parts(root: Node) -> ScoreInfo:
    info = ScoreInfo()

    # --- Part-Namen + Drum-Instrumente sammeln ---
    pl = F(root, "part-list")
    for sp in FA(pl, "score-part"):
        pid = attr(sp, "id")
        if pid is None:
            continue
        name = T(F(sp, "part-name")).strip() or f"Part {pid}"
        info.parts[pid] = PartInfo(part_id=pid, name=name, unpitched=_instrument_map(sp))
        info.order.append(pid)

    # <part> ohne Eintrag in der part-list trotzdem aufnehmen
    for i, part in enumerate(FA(root, "part"), start=1):
        pid = part_id_of(part, i)
        if pid not in info.parts:
            info.parts[pid] = PartInfo(part_id=pid, name=f"Part {pid}")
            info.order.append(pid)
    return info
