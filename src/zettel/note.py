"""Core dataclasses: the parsed Note and the rows persisted in the graph store."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

NOTE_EXTENSION = ".md"
WIKI_LINK = "wiki_link"


class Section(Enum):
    """The section a line belongs to while a note is being scanned."""

    NONE = "none"
    NOTAS = "Notas"
    CUES = "Cues"
    RESUMEN = "Resumen"
    ENLACES = "Enlaces"
    OTHER = "other"

    @classmethod
    def from_label(cls, label: str) -> "Section":
        """Map a ``## <label>`` heading to its section; unknown labels are OTHER."""
        for section in (cls.NOTAS, cls.CUES, cls.RESUMEN, cls.ENLACES):
            if label == section.value:
                return section
        return cls.OTHER


@dataclass
class Note:
    """A validated note, as produced by :func:`zettel.parser.parse_note`."""

    title: str
    date: str = ""
    type: str = ""
    notas: str = ""
    resumen: str = ""
    cues: list[str] = field(default_factory=list)
    #: Link targets in order of appearance; duplicates are kept
    links: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "date": self.date,
            "type": self.type,
            "notas": self.notas,
            "resumen": self.resumen,
            "cues": list(self.cues),
            "links": list(self.links),
        }


@dataclass(frozen=True)
class NodeRecord:
    """One row of the ``nodes`` table."""

    id: str
    path: str
    hash: str
    title: str
    last_mod: int = 0


@dataclass(frozen=True)
class EdgeRecord:
    source_id: str
    target_id: str
    type: str = WIKI_LINK
