# src/musicxml2tab/repeats.py
from __future__ import annotations
from dataclasses import dataclass
from typing import List, Optional
import logging

from .parser import Node
from .util.xml import F, FA, attr, to_number

logger = logging.getLogger(__name__)

DEFAULT_PASSES = 2

@dataclass
class _Marks:
    forward_left: bool = False
    forward_right: bool = False
    forward_times: Optional[int] = None
    backward: bool = False
    backward_times: Optional[int] = None

@dataclass
class _Open:
    start: int                 # Index des ersten wiederholten Takts
    times: Optional[int]
    left: bool                 # Forward-Repeat am linken Taktstrich des Start-Takts

def _times(rep: Node) -> Optional[int]:
    v = to_number(attr(rep, "times"))
    return int(v) if v is not None else None

def _repeat_marks(measure: Node) -> _Marks:
    mk = _Marks()
    for bar in FA(measure, "barline"):
        rep = F(bar, "repeat")
        if rep is None:
            continue
        direction = attr(rep, "direction")
        if direction == "backward" and not mk.backward:
            mk.backward = True
            mk.backward_times = _times(rep)
        elif direction == "forward" and not (mk.forward_left or mk.forward_right):
            # MusicXML: location fehlt → "right"
            if attr(bar, "location", "right") == "left":
                mk.forward_left = True
            else:
                mk.forward_right = True
            mk.forward_times = _times(rep)
    return mk

def _expand(measures: List[Node], skip_first_forward: bool, skip_last_backward: bool) -> List[Node]:
    out: List[Node] = []
    stack: List[_Open] = []
    last = len(measures) - 1

    for i, meas in enumerate(measures):
        mk = _repeat_marks(meas)

        if mk.forward_left and not (skip_first_forward and i == 0):
            stack.append(_Open(i, mk.forward_times, left=True))

        # jeder Takt wird beim Besuch genau einmal übernommen
        out.append(meas)

        if mk.backward and not (skip_last_backward and i == last):
            if not stack:
                logger.debug("backward repeat without forward opening at measure index %d ignored", i)
            else:
                op = stack.pop()
                passes = mk.backward_times or op.times or DEFAULT_PASSES
                # innere Wiederholungen des Blocks zuerst ausmultiplizieren
                block = _expand(measures[op.start:i + 1], skip_first_forward=op.left, skip_last_backward=True)
                for _ in range(passes - 1):
                    out.extend(block)

        # erst schließen, dann öffnen: ein Takt kann beides
        if mk.forward_right:
            stack.append(_Open(i + 1, mk.forward_times, left=False))

    return out

def expand_repeats(measures: List[Node]) -> List[Node]:
    """
    Lineare Taktfolge mit ausgeschriebenen Wiederholungen (Takt-Nodes können mehrfach vorkommen).
    Die Nodes selbst werden nicht verändert.
    """
    return _expand(list(measures), skip_first_forward=False, skip_last_backward=False)
