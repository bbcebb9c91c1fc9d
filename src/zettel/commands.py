"""Slash commands: parse text into command variants and run them.

Grammar::

    /note create <title…>
    /note validate <id>
    /note link <source-id> <target-id>
    /cue add <id> <question…?>
    /status
    /ai summarize <id>
    /ai cues <id>
    /ai draft <topic…>

Anything that is not a slash command is rejected.  Running a command never
raises for domain errors; every outcome is a one-line (or short) reply.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Union

from zettel.errors import (
    CommandError,
    MissingSectionError,
    NotFoundError,
    TransportError,
    ValidationError,
    ZettelError,
)

if TYPE_CHECKING:
    from zettel.assistant import CompletionClient
    from zettel.store import GraphStore
    from zettel.vault import NoteVault

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Variants
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CreateNote:
    title: str


@dataclass(frozen=True)
class ValidateNote:
    note_id: str


@dataclass(frozen=True)
class LinkNotes:
    source_id: str
    target_id: str


@dataclass(frozen=True)
class AddCue:
    note_id: str
    question: str


@dataclass(frozen=True)
class Status:
    pass


@dataclass(frozen=True)
class Summarize:
    note_id: str


@dataclass(frozen=True)
class SuggestCues:
    note_id: str


@dataclass(frozen=True)
class Draft:
    topic: str


Command = Union[CreateNote, ValidateNote, LinkNotes, AddCue, Status, Summarize, SuggestCues, Draft]


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

NOTE_USAGE = "usage: /note [create|validate|link] ..."
CUE_USAGE = "usage: /cue add <id> <question?>"
AI_USAGE = "usage: /ai [summarize|cues|draft] ..."
FREE_TEXT = "free text is not accepted; use a /command"


def parse_command(text: str) -> Command:
    """Turn one line of input into a command variant, or raise :class:`CommandError`."""
    text = text.strip()
    if not text.startswith("/"):
        raise CommandError(FREE_TEXT)
    head, _, payload = text.partition(" ")
    name = head.lower()

    if name == "/note":
        return _parse_note(payload.split())
    if name == "/cue":
        # the question keeps its inner spacing
        parts = payload.strip().split(None, 2)
        if len(parts) < 3 or parts[0].lower() != "add":
            raise CommandError(CUE_USAGE)
        return AddCue(parts[1], parts[2])
    if name == "/status":
        if payload.strip():
            raise CommandError("usage: /status")
        return Status()
    if name == "/ai":
        return _parse_ai(payload.split())
    raise CommandError(f"unknown command: {head}")


def _parse_note(args: list[str]) -> Command:
    if not args:
        raise CommandError(NOTE_USAGE)
    action = args[0].lower()
    if action == "create":
        if len(args) < 2:
            raise CommandError("usage: /note create <title>")
        return CreateNote(" ".join(args[1:]))
    if action == "validate":
        if len(args) != 2:
            raise CommandError("usage: /note validate <id>")
        return ValidateNote(args[1])
    if action == "link":
        if len(args) != 3:
            raise CommandError("usage: /note link <source-id> <target-id>")
        return LinkNotes(args[1], args[2])
    raise CommandError(f"unknown action: {action}; {NOTE_USAGE}")


def _parse_ai(args: list[str]) -> Command:
    if not args:
        raise CommandError(AI_USAGE)
    action = args[0].lower()
    if action == "summarize":
        if len(args) != 2:
            raise CommandError("usage: /ai summarize <id>")
        return Summarize(args[1])
    if action == "cues":
        if len(args) != 2:
            raise CommandError("usage: /ai cues <id>")
        return SuggestCues(args[1])
    if action == "draft":
        if len(args) < 2:
            raise CommandError("usage: /ai draft <topic…>")
        return Draft(" ".join(args[1:]))
    raise CommandError(f"unknown ai action: {action}; permitted: summarize, cues, draft")


# ---------------------------------------------------------------------------
# Execution
# ---------------------------------------------------------------------------


class CommandRunner:
    """Executes command variants against a vault, its store and an optional assistant."""

    def __init__(
        self,
        vault: "NoteVault",
        store: "GraphStore",
        assistant: "CompletionClient | None" = None,
    ) -> None:
        self.vault = vault
        self.store = store
        self.assistant = assistant
        self._handlers: dict[type, Callable[..., str]] = {
            CreateNote: self._create,
            ValidateNote: self._validate,
            LinkNotes: self._link,
            AddCue: self._cue,
            Status: self._status,
            Summarize: self._summarize,
            SuggestCues: self._suggest_cues,
            Draft: self._draft,
        }

    def run_text(self, text: str) -> str:
        """Parse and run *text*; a malformed command replies with its usage line."""
        try:
            command = parse_command(text)
        except CommandError as exc:
            return str(exc)
        return self.run(command)

    def run(self, command: Command) -> str:
        handler = self._handlers.get(type(command))
        if handler is None:
            raise TypeError(f"not a command: {command!r}")
        try:
            return handler(command)
        except NotFoundError as exc:
            return f"not found: {exc.note_id}"
        except ValidationError as exc:
            return f"invalid: {exc}"
        except MissingSectionError as exc:
            return f"error: {exc}"
        except TransportError as exc:
            logger.warning("completion failed: %s", exc)
            return f"ai error: {exc}"
        except ZettelError as exc:
            return f"error: {exc}"
        except FileExistsError as exc:
            return f"note already exists: {exc.filename}"
        except OSError as exc:
            logger.warning("file operation failed: %s", exc)
            return f"file error: {exc}"

    # ------------------------------------------------------------------
    # Note commands
    # ------------------------------------------------------------------

    def _create(self, cmd: CreateNote) -> str:
        path = self.vault.create_skeleton(cmd.title)
        return f"created: {path.name}"

    def _validate(self, cmd: ValidateNote) -> str:
        self.vault.validate(cmd.note_id)
        return f"valid: {cmd.note_id}"

    def _link(self, cmd: LinkNotes) -> str:
        self.vault.append_link(cmd.source_id, cmd.target_id)
        return f"linked: {cmd.source_id} -> {cmd.target_id}"

    def _cue(self, cmd: AddCue) -> str:
        self.vault.append_cue(cmd.note_id, cmd.question)
        return f"cue added to {cmd.note_id}"

    def _status(self, cmd: Status) -> str:
        return f"nodes: {self.store.count_nodes()}, edges: {len(self.store.edges())}"

    # ------------------------------------------------------------------
    # AI commands
    # ------------------------------------------------------------------

    def _require_assistant(self) -> "CompletionClient":
        if self.assistant is None:
            raise TransportError("no completion backend configured")
        return self.assistant

    def _summarize(self, cmd: Summarize) -> str:
        assistant = self._require_assistant()
        content = self.vault.resolve(cmd.note_id).read_text(encoding="utf-8")
        return f"summary suggestion:\n\n{assistant.summarize(content)}"

    def _suggest_cues(self, cmd: SuggestCues) -> str:
        assistant = self._require_assistant()
        content = self.vault.resolve(cmd.note_id).read_text(encoding="utf-8")
        cues = assistant.suggest_cues(content)
        return f"cue suggestions:\n\n{cues}\n\nuse /cue add <id> <question?> to apply"

    def _draft(self, cmd: Draft) -> str:
        draft = self._require_assistant().draft(cmd.topic)
        return f"draft:\n\n{draft}\n\nuse /note create <title> to start it"
