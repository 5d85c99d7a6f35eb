# src/musicxml2tab/errors.py
from __future__ import annotations


class ImportFailure(Exception):
    """Fataler Fehler: der Import liefert keinerlei Ergebnis. `stage` benennt die Stufe ("read" | "parse")."""
    stage = "import"

    def __init__(self, message: str, path: str = None):
        super().__init__(message)
        self.path = path

    def __str__(self) -> str:
        msg = super().__str__()
        where = f" ({self.path})" if self.path else ""
        return f"{self.stage} failed{where}: {msg}"


class ReadError(ImportFailure):
    stage = "read"


class ParseError(ImportFailure):
    stage = "parse"
