"""Exception taxonomy shared by the index, the note operations and the commands."""

from __future__ import annotations

from enum import Enum


class ZettelError(Exception):
    """Base class for every error raised by :mod:`zettel`."""


# ---------------------------------------------------------------------------
# I/O class: fatal to the enclosing operation only
# ---------------------------------------------------------------------------


class StoreError(ZettelError):
    """The graph store could not be opened, or a transaction failed to begin/commit."""


class SyncError(ZettelError):
    """A sync pass could not run (e.g. the root directory is unreachable)."""


class SyncInProgressError(SyncError):
    """A second pass was started while one was still running."""


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class Violation(str, Enum):
    TOTAL_LENGTH = "total_length"
    TITLE_STRUCTURE = "title_structure"
    MISSING_TITLE = "missing_title"
    TITLE_LENGTH = "title_length"
    NOTAS_LENGTH = "notas_length"
    RESUMEN_LENGTH = "resumen_length"
    CUE_COUNT = "cue_count"
    CUE_LENGTH = "cue_length"
    CUE_QUESTION = "cue_question"
    ENCODING = "encoding"


class ValidationError(ZettelError):
    """A note broke a structural rule or a length limit.

    ``limit`` and ``actual`` are code-point counts (or the cue count) when the
    violation is a limit; ``subject`` names the offending cue, if any.
    """

    def __init__(
        self,
        kind: Violation,
        message: str,
        *,
        limit: int | None = None,
        actual: int | None = None,
        subject: str | None = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.limit = limit
        self.actual = actual
        self.subject = subject

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ValidationError):
            return NotImplemented
        return (self.kind, str(self), self.limit, self.actual, self.subject) == (
            other.kind,
            str(other),
            other.limit,
            other.actual,
            other.subject,
        )

    def __hash__(self) -> int:
        return hash((self.kind, str(self), self.limit, self.actual, self.subject))


# ---------------------------------------------------------------------------
# Lookup / editing / transport
# ---------------------------------------------------------------------------


class NotFoundError(ZettelError):
    def __init__(self, note_id: str) -> None:
        super().__init__(f"note not found: {note_id}")
        self.note_id = note_id


class MissingSectionError(ZettelError):
    def __init__(self, section: str, path: object) -> None:
        super().__init__(f"missing '## {section}' section in {path}")
        self.section = section
        self.path = path


class TransportError(ZettelError):
    """The completion backend was unreachable or returned an unusable reply."""


class CommandError(ZettelError):
    """A command was malformed; the message is the usage line to show."""
