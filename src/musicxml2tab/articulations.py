# src/musicxml2tab/articulations.py
from __future__ import annotations
from dataclasses import dataclass, replace
from typing import Callable, List, Mapping, Optional
from .parser import Node
from .timeline import TextKind
from .util.xml import F, FA, T, to_number

SLIDE_NAMES = frozenset({"slide", "slide-up", "slide-down"})
LABEL_PREFIX = "_"

# --- Regeln: jede Facette ist entweder konstant oder eine Funktion des auslösenden Elements ---

class Rule:
    def kind(self, node: Node) -> TextKind: raise NotImplementedError
    def symbol(self, node: Node) -> str: raise NotImplementedError
    def replaces_label(self, node: Node) -> bool: raise NotImplementedError
    def no_prefix(self, node: Node) -> bool: raise NotImplementedError

@dataclass(frozen=True)
class ConstRule(Rule):
    kind_value: TextKind
    symbol_value: str
    replaces: bool = False
    no_prefix_value: bool = False

    def kind(self, node): return self.kind_value
    def symbol(self, node): return self.symbol_value
    def replaces_label(self, node): return self.replaces
    def no_prefix(self, node): return self.no_prefix_value

@dataclass(frozen=True)
class ComputedRule(Rule):
    kind_fn: Callable[[Node], TextKind]
    symbol_fn: Callable[[Node], str]
    replaces_fn: Callable[[Node], bool] = lambda node: False
    no_prefix_fn: Callable[[Node], bool] = lambda node: False

    def kind(self, node): return self.kind_fn(node)
    def symbol(self, node): return self.symbol_fn(node)
    def replaces_label(self, node): return self.replaces_fn(node)
    def no_prefix(self, node): return self.no_prefix_fn(node)

def _variant(node: Node) -> str:
    return T(node).strip().lower()

def _mute_symbol(node: Node) -> str:
    v = _variant(node)
    if v == "palm":
        return "P.M___"
    if v == "straight":
        return "_x"
    return "Mute"

# <play><mute>palm|straight|...</mute></play>
MUTE_RULE = ComputedRule(
    kind_fn=lambda node: TextKind.TEXT if _variant(node) == "straight" else TextKind.MARKER,
    symbol_fn=_mute_symbol,
    replaces_fn=lambda node: _variant(node) == "straight",
    no_prefix_fn=lambda node: True,
)

COMPUTED_RULES = {"mute": MUTE_RULE}

# --- Auflösung ---

@dataclass(frozen=True)
class ResolvedEvent:
    kind: TextKind
    symbol: str
    replaces_label: bool = False
    no_prefix: bool = False

    @property
    def label(self) -> str:
        return self.symbol if self.no_prefix else LABEL_PREFIX + self.symbol

def format_number(v) -> str:
    if isinstance(v, float) and v.is_integer():
        v = int(v)
    return str(v)

def _harmonic_fret(node: Node):
    if "harmonic" not in node.name:
        return None
    return to_number(T(F(node, "fret")))

def resolve_rule(rule: Rule, node: Node, fret) -> ResolvedEvent:
    sym = rule.symbol(node) or ""
    if "%d" in sym:
        override = _harmonic_fret(node)
        sym = sym.replace("%d", format_number(override if override is not None else fret))
    return ResolvedEvent(
        kind=TextKind(rule.kind(node)),
        symbol=sym,
        replaces_label=bool(rule.replaces_label(node)),
        no_prefix=bool(rule.no_prefix(node)),
    )

def _elements(nodes: List[Node]) -> List[Node]:
    return [c for n in nodes for c in n.children if not c.is_text]

def resolve_articulations(note: Node, rules: Mapping[str, Rule], fret) -> List[ResolvedEvent]:
    """
    Alle Label-/Marker-Events einer Note in Traversierungsreihenfolge:
    <articulations>, <technical>, übrige <notations>-Kinder (ohne Slides), <play><mute>.
    Höchstens ein Event ersetzt das Grund-Label; spätere Kandidaten werden normale Events.
    """
    notations = FA(note, "notations")
    candidates: List[Node] = []
    candidates += _elements([a for n in notations for a in FA(n, "articulations")])
    candidates += _elements([t for n in notations for t in FA(n, "technical")])
    candidates += [c for c in _elements(notations)
                   if c.name not in ("articulations", "technical") and c.name not in SLIDE_NAMES]
    candidates += [c for c in _elements(FA(note, "play")) if c.name == "mute"]

    events: List[ResolvedEvent] = []
    have_replacing = False
    for el in candidates:
        rule = rules.get(el.name)
        if rule is None:
            continue
        ev = resolve_rule(rule, el, fret)
        if ev.replaces_label:
            if have_replacing:
                ev = replace(ev, replaces_label=False)
            have_replacing = True
        events.append(ev)
    return events

def slide_elements(note: Node) -> List[Node]:
    return [c for c in _elements(FA(note, "notations")) if c.name in SLIDE_NAMES]

def resolve_slide(node: Node, rules: Mapping[str, Rule], fret) -> Optional[ResolvedEvent]:
    rule = rules.get(node.name)
    if rule is None:
        return None
    return resolve_rule(rule, node, fret)
