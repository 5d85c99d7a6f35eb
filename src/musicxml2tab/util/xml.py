from __future__ import annotations
from typing import List, Optional, Union
from ..parser import Node

Number = Union[int, float]

def F(node: Optional[Node], name: str) -> Optional[Node]:
    if node is None:
        return None
    for c in node.children:
        if c.name == name:
            return c
    return None

def FA(node: Optional[Node], name: str) -> List[Node]:
    if node is None:
        return []
    return [c for c in node.children if c.name == name]

def T(node: Optional[Node]) -> str:
    """Verketteter Text aller direkten Text-Kinder ("" wenn keiner)."""
    if node is None:
        return ""
    return "".join(c.text for c in node.children if c.is_text)

def attr(node: Optional[Node], name: str, default: Optional[str] = None) -> Optional[str]:
    if node is None:
        return default
    return node.attrs.get(name, default)

def to_number(s: Optional[str]) -> Optional[Number]:
    """Zahl aus Text; int wenn ganzzahlig, sonst float, None wenn nicht lesbar."""
    if s is None:
        return None
    s = s.strip()
    if not s:
        return None
    try:
        return int(s)
    except ValueError:
        pass
    try:
        v = float(s)
    except ValueError:
        return None
    if v != v or v in (float("inf"), float("-inf")):
        return None
    return int(v) if v.is_integer() else v

def child_text(node: Optional[Node], name: str) -> str:
    return T(F(node, name))

def child_num(node: Optional[Node], name: str) -> Optional[Number]:
    return to_number(child_text(node, name))
