"""Strict note parser: structure, length limits and ``[[WikiLink]]`` discovery.

A note looks like::

    # Title
    Fecha: 2024-02-02
    Tipo: idea

    ## Notas
    Free text, may mention [[other-note]].

    ## Cues
    - A recall question?

    ## Resumen
    One short paragraph.

    ## Enlaces
    - [[other-note|Other]]

The document is scanned once, line by line, with a single *current section*
(:class:`~zettel.note.Section`).  Limits are counted in Unicode code points.
"""

from __future__ import annotations

import re
from pathlib import Path

from zettel.errors import ValidationError, Violation
from zettel.note import Note, Section

MAX_TOTAL_CHARS = 4000
MAX_TITLE_CHARS = 120
MAX_NOTAS_CHARS = 2800
MAX_RESUMEN_CHARS = 500
MAX_CUES = 7
MAX_CUE_CHARS = 120

# [[Target]] or [[Target|Alias]]
_WIKILINK_RE = re.compile(r"\[\[([^\]]+)\]\]")
_DATE_RE = re.compile(r"^Fecha:\s*(.+)")
_TYPE_RE = re.compile(r"^Tipo:\s*(.+)")


def _link_targets(line: str) -> list[str]:
    targets: list[str] = []
    for m in _WIKILINK_RE.finditer(line):
        target = m.group(1).split("|", 1)[0].strip()
        if target:
            targets.append(target)
    return targets


def parse_wikilinks(text: str) -> list[str]:
    """Return every ``[[WikiLink]]`` target in *text*, in order, duplicates kept."""
    result: list[str] = []
    for line in text.splitlines():
        result.extend(_link_targets(line))
    return result


def _check_limit(kind: Violation, label: str, text: str, limit: int, subject: str | None = None) -> None:
    actual = len(text)
    if actual > limit:
        raise ValidationError(
            kind,
            f"{label} length {actual} exceeds limit {limit}",
            limit=limit,
            actual=actual,
            subject=subject,
        )


def parse_note(text: str) -> Note:
    """Validate *text* and return the :class:`Note` it describes.

    Raises :class:`~zettel.errors.ValidationError` on the first violation.
    The total length is checked before anything else is looked at.
    """
    _check_limit(Violation.TOTAL_LENGTH, "total", text, MAX_TOTAL_CHARS)

    title: str | None = None
    date = ""
    note_type = ""
    section = Section.NONE
    notas: list[str] = []
    resumen: list[str] = []
    cues: list[str] = []
    links: list[str] = []

    for raw in text.split("\n"):
        raw = raw.rstrip("\r")
        line = raw.strip()
        if not line:
            continue

        links.extend(_link_targets(line))

        if title is None:
            if not line.startswith("# "):
                raise ValidationError(
                    Violation.TITLE_STRUCTURE,
                    "first line must be a level-1 heading ('# Title')",
                )
            title = line[2:].strip()
            _check_limit(Violation.TITLE_LENGTH, "title", title, MAX_TITLE_CHARS)
            continue

        if section is Section.NONE:
            m = _DATE_RE.match(line)
            if m:
                date = m.group(1).strip()
                continue
            m = _TYPE_RE.match(line)
            if m:
                note_type = m.group(1).strip()
                continue

        if line.startswith("## "):
            section = Section.from_label(line[3:].strip())
            continue

        if section is Section.NOTAS:
            notas.append(raw)
        elif section is Section.RESUMEN:
            resumen.append(raw)
        elif section is Section.CUES and line.startswith("- "):
            cues.append(line[2:].strip())

    if title is None:
        raise ValidationError(Violation.MISSING_TITLE, "missing title")

    notas_text = "\n".join(notas)
    resumen_text = "\n".join(resumen)
    _check_limit(Violation.NOTAS_LENGTH, "'Notas' section", notas_text, MAX_NOTAS_CHARS)
    _check_limit(Violation.RESUMEN_LENGTH, "'Resumen' section", resumen_text, MAX_RESUMEN_CHARS)

    if len(cues) > MAX_CUES:
        raise ValidationError(
            Violation.CUE_COUNT,
            f"too many cues ({len(cues)} > {MAX_CUES})",
            limit=MAX_CUES,
            actual=len(cues),
        )
    for i, cue in enumerate(cues, start=1):
        _check_limit(Violation.CUE_LENGTH, f"cue {i}", cue, MAX_CUE_CHARS, subject=cue)
        if not cue.endswith("?"):
            raise ValidationError(
                Violation.CUE_QUESTION,
                f"cue '{cue}' must end with '?'",
                subject=cue,
            )

    return Note(
        title=title,
        date=date,
        type=note_type,
        notas=notas_text,
        resumen=resumen_text,
        cues=cues,
        links=links,
    )


def parse_file(path: Path) -> Note:
    """Read a UTF-8 note file and parse it."""
    return parse_note(Path(path).read_text(encoding="utf-8"))
