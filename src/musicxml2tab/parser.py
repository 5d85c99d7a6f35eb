# src/musicxml2tab/parser.py
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, List, Optional
import logging
import re

from .errors import ParseError

logger = logging.getLogger(__name__)

TEXT = "#text"

_ATTR_RE = re.compile(r'([\w:.\-]+)\s*=\s*"([^"]*)"')
_NAME_RE = re.compile(r"\s*([^\s/>]+)")
_ENTITY_RE = re.compile(r"&(#x[0-9a-fA-F]+|#[0-9]+|lt|gt|amp|quot|apos);")
_ENTITIES = {"lt": "<", "gt": ">", "amp": "&", "quot": '"', "apos": "'"}


@dataclass
class Node:
    name: str
    attrs: Dict[str, str] = field(default_factory=dict)
    children: List["Node"] = field(default_factory=list)
    text: Optional[str] = None   # nur bei Text-Knoten (name == TEXT)

    @property
    def is_text(self) -> bool:
        return self.name == TEXT

    def __repr__(self) -> str:
        if self.is_text:
            return f"Node(#text {self.text!r})"
        return f"Node(<{self.name}> attrs={len(self.attrs)} children={len(self.children)})"


def _unescape(s: str) -> str:
    def repl(m):
        ent = m.group(1)
        if not ent.startswith("#"):
            return _ENTITIES[ent]
        try:
            return chr(int(ent[2:], 16) if ent.startswith("#x") else int(ent[1:]))
        except (ValueError, OverflowError):
            # außerhalb des Unicode-Bereichs: unverändert lassen
            return m.group(0)
    return _ENTITY_RE.sub(repl, s) if "&" in s else s


def _tag_end(xml: str, i: int) -> int:
    """
    Sucht das schließende '>' eines Tags ab Position i, Anführungszeichen werden respektiert.
    -1 wenn kein eindeutiges Ende existiert (z.B. offenes Attribut-Quote).
    """
    quote = None
    n = len(xml)
    while i < n:
        ch = xml[i]
        if quote:
            if ch == quote:
                quote = None
        elif ch == '"' or ch == "'":
            quote = ch
        elif ch == ">":
            return i
        elif ch == "<":
            # neues Tag beginnt bevor das alte zu ist → kaputt
            return -1
        i += 1
    return -1


def _skip_declaration(xml: str, i: int) -> int:
    # verschachtelte <!ENTITY ...> etc. über die Tiefe mitzählen, '>' in Quotes zählt nicht
    depth = 0
    quote = None
    n = len(xml)
    while i < n:
        ch = xml[i]
        if quote:
            if ch == quote:
                quote = None
        elif ch == '"' or ch == "'":
            quote = ch
        elif ch == "<":
            depth += 1
        elif ch == ">":
            depth -= 1
            if depth == 0:
                return i + 1
        i += 1
    return n


def parse_xml(xml: str) -> Node:
    """
    Toleranter XML-Parser: ein Durchlauf von links nach rechts mit explizitem Stack (keine Rekursion).

    - XML-Deklaration, DOCTYPE, Processing Instructions und Kommentare werden verworfen
    - CDATA wird als Text-Kind des aktuellen Elements übernommen
    - Text zwischen Tags nur, wenn er mindestens ein Nicht-Whitespace-Zeichen enthält
    - kaputte Tags werden bis zum nächsten '>' übersprungen statt abzubrechen

    Wirft ParseError nur, wenn kein Wurzelelement bestimmt werden kann.
    """
    root: Optional[Node] = None
    stack: List[Node] = []
    i = 0
    n = len(xml)

    def attach(node: Node):
        nonlocal root
        if stack:
            stack[-1].children.append(node)
        elif root is None:
            root = node
        else:
            logger.debug("additional top-level element <%s> ignored", node.name)

    while i < n:
        if xml.startswith("<?", i):
            # Deklaration oder Processing Instruction
            close = xml.find("?>", i + 2)
            i = n if close < 0 else close + 2
            continue
        if xml.startswith("<!--", i):
            close = xml.find("-->", i + 4)
            i = n if close < 0 else close + 3
            continue
        if xml.startswith("<![CDATA[", i):
            close = xml.find("]]>", i + 9)
            end = n if close < 0 else close
            if stack:
                stack[-1].children.append(Node(TEXT, text=xml[i + 9:end]))
            i = n if close < 0 else close + 3
            continue
        if xml.startswith("<!", i):
            # DOCTYPE, ENTITY, ELEMENT, ... werden verworfen
            i = _skip_declaration(xml, i)
            continue

        if xml[i] == "<":
            if xml.startswith("</", i):
                close = xml.find(">", i + 2)
                if close < 0:
                    logger.debug("unterminated closing tag at %d", i)
                    break
                tag_name = xml[i + 2:close].strip()
                i = close + 1
                if not stack:
                    logger.debug("stray closing tag %r ignored", tag_name)
                    continue
                attach(stack.pop())
                continue

            end = _tag_end(xml, i + 1)
            m = _NAME_RE.match(xml, i + 1)
            if end < 0 or m is None or m.end() > end:
                # kaputtes Tag → bis zum nächsten '>' überspringen
                gt = xml.find(">", i + 1)
                logger.debug("malformed tag at %d skipped", i)
                i = n if gt < 0 else gt + 1
                continue

            body = xml[m.end():end]
            self_close = body.rstrip().endswith("/")
            node = Node(m.group(1))
            for k, v in _ATTR_RE.findall(body):
                node.attrs[k] = _unescape(v)
            i = end + 1
            if self_close:
                attach(node)
            else:
                stack.append(node)
            continue

        # Freitext bis zum nächsten '<'
        nxt = xml.find("<", i)
        if nxt < 0:
            nxt = n
        text = xml[i:nxt]
        if stack and text.strip():
            stack[-1].children.append(Node(TEXT, text=_unescape(text)))
        i = nxt

    if stack:
        # offene Elemente am Dateiende implizit schließen
        logger.debug("closing %d unterminated element(s) at end of input", len(stack))
        while stack:
            attach(stack.pop())

    if root is None:
        raise ParseError("no root element found")
    return root
