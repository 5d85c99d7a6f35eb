from __future__ import annotations
from fractions import Fraction

def div_to_ticks(div_val, divisions, tpq: int) -> Fraction:
    # exakt rechnen, gerundet wird erst beim Ausgeben der Events
    return Fraction(div_val) / Fraction(divisions) * tpq

def ticks_to_seconds(ticks, tpq: int, bpm) -> Fraction:
    return Fraction(ticks) / tpq * (Fraction(60) / Fraction(bpm))
