# src/musicxml2tab/config.py
from __future__ import annotations
from dataclasses import dataclass, field, replace
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple
import copy
import logging
import re
import yaml

from .articulations import COMPUTED_RULES, ConstRule, Rule
from .timeline import DEFAULT_BPM, DEFAULT_TPQ, RGB, TextKind

logger = logging.getLogger(__name__)

# Paket-Root: .../src/musicxml2tab
PKG_ROOT = Path(__file__).resolve().parent
DEFAULT_CFG_PATH = PKG_ROOT / "config.default.yaml"
USER_CFG_PATH = Path.home() / ".config" / "musicxml2tab" / "config.yaml"

def _safe_load(path: Path) -> Dict[str, Any]:
    try:
        if path.exists():
            data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
            if isinstance(data, dict):
                return data
            logger.warning("config %s is not a mapping, ignored", path)
    except (OSError, UnicodeDecodeError, yaml.YAMLError) as e:
        # lieber leer zurückgeben als den Core zu crashen
        logger.warning("config %s unreadable, ignored: %s", path, e)
    return {}

def _deep_merge(a: Dict[str, Any], b: Dict[str, Any]) -> Dict[str, Any]:
    out = copy.deepcopy(a)
    for k, v in (b or {}).items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = _deep_merge(out[k], v)
        else:
            out[k] = copy.deepcopy(v)
    return out

def load_config(
    user_path: Optional[Path] = None,
    default_path: Optional[Path] = None,
    use_user: bool = True,
) -> Dict[str, Any]:
    """
    Lädt die Konfiguration (Default + User-Overrides) und liefert ein gemergtes Dict.
    Mit use_user=False nur die Paket-Defaults (Tests, reproduzierbare Läufe).
    """
    dpath = Path(default_path) if default_path else DEFAULT_CFG_PATH
    upath = Path(user_path) if user_path else USER_CFG_PATH

    cfg = _safe_load(dpath)
    if use_user:
        cfg = _deep_merge(cfg, _safe_load(upath))

    # Minimal-Defaults sicherstellen
    cfg.setdefault("ticks_per_quarter", DEFAULT_TPQ)
    return cfg

# --- unveränderliche Tabellen für den Import ---

def _int(v, default: int) -> int:
    try:
        return int(v)
    except (TypeError, ValueError):
        return default

def _float(v, default: float) -> float:
    try:
        f = float(v)
    except (TypeError, ValueError):
        return default
    return f if f > 0 else default

def _rgb(v, default: RGB) -> RGB:
    try:
        r, g, b = (max(0, min(255, int(x))) for x in v)
    except (TypeError, ValueError):
        return default
    return (r, g, b)

def _pitches(v) -> Tuple[int, ...]:
    try:
        return tuple(int(x) for x in v)
    except (TypeError, ValueError):
        return ()

_KINDS = {"text": TextKind.TEXT, "marker": TextKind.MARKER, "cue": TextKind.CUE}

def _kind(v) -> TextKind:
    if isinstance(v, int) and not isinstance(v, bool):
        try:
            return TextKind(v)
        except ValueError:
            return TextKind.TEXT
    return _KINDS.get(str(v or "text").strip().lower(), TextKind.TEXT)

@dataclass(frozen=True)
class DrumEntry:
    label: Optional[str] = None
    channel: Optional[int] = None     # 1..9
    pitch: Optional[int] = None

def drum_fallback_label(name: str) -> str:
    # erstes Wort, klein, ohne Klammern
    simple = re.sub(r"[()]", "", (name or "").lower()).split()
    return simple[0] if simple else (name or "").lower()

def _build_rules(raw: Mapping[str, Any]) -> Dict[str, Rule]:
    rules: Dict[str, Rule] = dict(COMPUTED_RULES)
    for name, spec in (raw or {}).items():
        if not isinstance(spec, dict):
            logger.warning("articulation rule %r ignored (not a mapping)", name)
            continue
        rules[str(name)] = ConstRule(
            kind_value=_kind(spec.get("kind")),
            symbol_value=str(spec.get("symbol", "")),
            replaces=bool(spec.get("replaces_label", False)),
            no_prefix_value=bool(spec.get("no_prefix", False)),
        )
    return rules

def _build_drums(raw: Mapping[str, Any]) -> Dict[str, DrumEntry]:
    out: Dict[str, DrumEntry] = {}
    for name, spec in (raw or {}).items():
        if not isinstance(spec, dict):
            continue
        pitch = _int(spec.get("pitch"), -1)
        out[str(name)] = DrumEntry(
            label=str(spec["label"]) if spec.get("label") is not None else None,
            channel=_int(spec.get("channel"), 0) or None,
            pitch=pitch if 0 <= pitch <= 127 else None,
        )
    return out

def _frozen(d) -> Mapping:
    return MappingProxyType(dict(d))

@dataclass(frozen=True)
class ImportConfig:
    ticks_per_quarter: int = DEFAULT_TPQ
    default_tempo: float = DEFAULT_BPM
    velocity: int = 100
    chord_offset_ticks: int = 1
    import_markers: bool = True
    import_regions: bool = True
    drums: Mapping[str, DrumEntry] = field(default_factory=lambda: _frozen({}))
    drum_profile: Tuple[int, ...] = ()
    default_tunings: Mapping[str, Tuple[int, ...]] = field(default_factory=lambda: _frozen({}))
    region_colors: Mapping[str, RGB] = field(default_factory=lambda: _frozen({}))
    default_region_color: RGB = (76, 78, 151)
    articulations: Mapping[str, Rule] = field(default_factory=lambda: _frozen(COMPUTED_RULES))

    @classmethod
    def from_dict(cls, cfg: Mapping[str, Any]) -> "ImportConfig":
        tpq = _int(cfg.get("ticks_per_quarter"), DEFAULT_TPQ)
        default_color = _rgb(cfg.get("default_region_color"), (76, 78, 151))
        return cls(
            ticks_per_quarter=tpq if tpq > 0 else DEFAULT_TPQ,
            default_tempo=_float(cfg.get("default_tempo"), DEFAULT_BPM),
            velocity=max(1, min(127, _int(cfg.get("velocity"), 100))),
            chord_offset_ticks=max(0, _int(cfg.get("chord_offset_ticks"), 1)),
            import_markers=bool(cfg.get("import_markers", True)),
            import_regions=bool(cfg.get("import_regions", True)),
            drums=_frozen(_build_drums(cfg.get("drums") or {})),
            drum_profile=_pitches(cfg.get("drum_profile") or ()),
            default_tunings=_frozen({str(k): _pitches(v) for k, v in (cfg.get("default_tunings") or {}).items()}),
            region_colors=_frozen({str(k).lower(): _rgb(v, default_color)
                                   for k, v in (cfg.get("region_colors") or {}).items()}),
            default_region_color=default_color,
            articulations=_frozen(_build_rules(cfg.get("articulations") or {})),
        )

    @classmethod
    def defaults(cls) -> "ImportConfig":
        return cls.from_dict(load_config(use_user=False))

    @classmethod
    def load(cls, user_path: Optional[Path] = None) -> "ImportConfig":
        return cls.from_dict(load_config(user_path))

    def with_options(self, **kw) -> "ImportConfig":
        return replace(self, **kw)

    # --- Drum-Lookups, Fallback auf die Werte aus dem Dokument ---

    def drum_label(self, name: str) -> str:
        e = self.drums.get(name)
        if e is not None and e.label:
            return e.label
        return drum_fallback_label(name)

    def drum_channel(self, name: str, default: int) -> int:
        e = self.drums.get(name)
        return e.channel if e is not None and e.channel else default

    def drum_pitch(self, name: str, default: int) -> int:
        e = self.drums.get(name)
        return e.pitch if e is not None and e.pitch is not None else default

    def region_color(self, name: str) -> RGB:
        return self.region_colors.get((name or "").strip().lower(), self.default_region_color)
