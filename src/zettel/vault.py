"""NoteVault: resolve, validate, create and edit notes on disk.

Identifiers are filename stems: ``<root>/<id>.md``.  Edits insert a single
bullet right after a section heading and leave the rest of the file as is;
the next sync pass picks the change up through its content hash.
"""

from __future__ import annotations

import re
import unicodedata
from datetime import date
from pathlib import Path
from typing import TYPE_CHECKING

from zettel.errors import MissingSectionError, NotFoundError, ValidationError, Violation
from zettel.note import NOTE_EXTENSION, Note, Section
from zettel.parser import MAX_CUE_CHARS, MAX_TITLE_CHARS, parse_file

if TYPE_CHECKING:
    from zettel.store import GraphStore

_SLUG_RE = re.compile(r"[^a-z0-9]+")

SKELETON = """\
# {title}
Fecha: {date}
Tipo: idea

## Notas


## Cues


## Resumen


## Enlaces

"""


def to_kebab(text: str) -> str:
    """``"Árbol de Decisión"`` -> ``"arbol-de-decision"``."""
    ascii_text = unicodedata.normalize("NFKD", text).encode("ascii", "ignore").decode("ascii")
    return _SLUG_RE.sub("-", ascii_text.lower()).strip("-")


class NoteVault:
    """File-level operations on the notes under *root*."""

    def __init__(self, root: Path | str, *, store: "GraphStore | None" = None, extension: str = NOTE_EXTENSION) -> None:
        self.root = Path(root)
        self.store = store
        self.extension = extension

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def resolve(self, note_id: str) -> Path:
        """Return the file for *note_id*, or raise :class:`NotFoundError`.

        ``<root>/<id>.md`` wins; notes in sub-folders are found through the
        index when a store is attached.
        """
        if not note_id or note_id.startswith(".") or "/" in note_id or "\\" in note_id:
            raise NotFoundError(note_id)
        candidate = self.root / f"{note_id}{self.extension}"
        if candidate.is_file():
            return candidate
        if self.store is not None:
            node = self.store.get_node(note_id)
            if node is not None and (self.root / node.path).is_file():
                return self.root / node.path
        raise NotFoundError(note_id)

    def validate(self, note_id: str) -> Note:
        return parse_file(self.resolve(note_id))

    # ------------------------------------------------------------------
    # Creation / edits
    # ------------------------------------------------------------------

    def create_skeleton(self, title: str, *, today: date | None = None) -> Path:
        """Write an empty note named ``YYYYMMDD-<kebab-title>.md``.

        Raises :class:`FileExistsError` if that file already exists.
        """
        title = title.strip()
        if len(title) > MAX_TITLE_CHARS:
            raise ValidationError(
                Violation.TITLE_LENGTH,
                f"title length {len(title)} exceeds limit {MAX_TITLE_CHARS}",
                limit=MAX_TITLE_CHARS,
                actual=len(title),
            )
        slug = to_kebab(title)
        if not slug:
            raise ValidationError(Violation.TITLE_STRUCTURE, "title needs at least one letter or digit")

        day = today or date.today()
        path = self.root / f"{day:%Y%m%d}-{slug}{self.extension}"
        self.root.mkdir(parents=True, exist_ok=True)
        with path.open("x", encoding="utf-8") as fh:
            fh.write(SKELETON.format(title=title, date=day.isoformat()))
        return path

    def append_link(self, source_id: str, target_id: str) -> Path:
        """Add ``- [[target_id]]`` under the source note's ``## Enlaces`` heading."""
        path = self.resolve(source_id)
        _insert_after_heading(path, Section.ENLACES, f"- [[{target_id}]]")
        return path

    def append_cue(self, note_id: str, question: str) -> Path:
        """Add ``- question`` under the note's ``## Cues`` heading.

        The question is checked before the file is touched.
        """
        question = question.strip()
        if not question.endswith("?"):
            raise ValidationError(Violation.CUE_QUESTION, "cue must end with '?'", subject=question)
        if len(question) > MAX_CUE_CHARS:
            raise ValidationError(
                Violation.CUE_LENGTH,
                f"cue length {len(question)} exceeds limit {MAX_CUE_CHARS}",
                limit=MAX_CUE_CHARS,
                actual=len(question),
                subject=question,
            )
        path = self.resolve(note_id)
        _insert_after_heading(path, Section.CUES, f"- {question}")
        return path


def _insert_after_heading(path: Path, section: Section, bullet: str) -> None:
    heading = f"## {section.value}"
    lines = path.read_text(encoding="utf-8").split("\n")
    for i, line in enumerate(lines):
        if line.strip() == heading:
            lines.insert(i + 1, bullet)
            break
    else:
        raise MissingSectionError(section.value, path)
    path.write_text("\n".join(lines), encoding="utf-8")
