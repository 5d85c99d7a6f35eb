from __future__ import annotations
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Optional, List, Dict, Tuple

DEFAULT_TPQ = 960
DEFAULT_BPM = 120.0

RGB = Tuple[int, int, int]

# --- Teil-Infos aus der part-list ---

@dataclass(frozen=True)
class Instrument:
    instrument_id: str
    name: str
    pitch: int          # <midi-unpitched>
    channel: int        # <midi-channel>, 1-basiert

@dataclass
class PartInfo:
    part_id: str
    name: str
    unpitched: Dict[str, Instrument] = field(default_factory=dict)   # instrument-id -> Instrument

    @property
    def is_percussion(self) -> bool:
        return bool(self.unpitched)

@dataclass
class ScoreInfo:
    parts: Dict[str, PartInfo] = field(default_factory=dict)
    order: List[str] = field(default_factory=list)     # part-list Reihenfolge

# --- Ergebnis der Synthese ---

class TextKind(IntEnum):
    # Werte = Typ-Codes der Host-Textevents
    TEXT = 1
    MARKER = 6
    CUE = 7

@dataclass
class NoteEvent:
    start_tick: int
    end_tick: int
    channel: int        # 1-basiert
    pitch: int
    velocity: int

@dataclass
class TextEvent:
    tick: int
    kind: TextKind
    text: str

@dataclass
class TempoMarker:
    seconds: float
    tempo: Optional[float] = None
    beats: Optional[int] = None
    beat_type: Optional[int] = None

@dataclass
class Region:
    name: str
    start: float
    end: float
    color: RGB

@dataclass
class StaffTimeline:
    part_id: str
    name: str
    staff: int
    notes: List[NoteEvent] = field(default_factory=list)
    texts: List[TextEvent] = field(default_factory=list)
    tuning: Optional[List[int]] = None      # aus dem Dokument, tiefste Saite zuerst
    is_percussion: bool = False
    effective_tuning: Optional[List[int]] = None   # inkl. Default-/Drum-Profil

@dataclass
class ImportResult:
    staves: List[StaffTimeline] = field(default_factory=list)
    tempo_markers: List[TempoMarker] = field(default_factory=list)
    regions: List[Region] = field(default_factory=list)
    total_seconds: float = 0.0
    ticks_per_quarter: int = DEFAULT_TPQ
