# src/musicxml2tab/slides.py
from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from .articulations import ResolvedEvent
from .timeline import TextEvent

@dataclass
class PendingSlide:
    tick: int
    event: ResolvedEvent

class SlideTracker:
    """
    Paart <slide type="start"> / <slide type="stop"> pro (Staff, Saite).
    Das Label landet an der Zielnote (stop), nicht an der Startnote.
    """
    def __init__(self):
        self._pending: Dict[Tuple[int, int], PendingSlide] = {}

    def pending(self, staff: int, string: int) -> Optional[PendingSlide]:
        return self._pending.get((staff, string))

    def feed(self, staff: int, string: int, slide_type: Optional[str],
             event: ResolvedEvent, tick: int) -> Optional[TextEvent]:
        key = (staff, string)
        if slide_type == "start":
            self._pending[key] = PendingSlide(tick, event)
            return None
        if slide_type == "stop":
            start = self._pending.pop(key, None)
            if start is not None:
                return TextEvent(tick, start.event.kind, start.event.label)
        # stop ohne Partner, continue, kein type → für sich allein
        return TextEvent(tick, event.kind, event.label)
