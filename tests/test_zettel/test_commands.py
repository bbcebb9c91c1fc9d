"""Unit tests for zettel.commands."""

from pathlib import Path

import httpx
import pytest

from zettel.assistant import CompletionClient
from zettel.commands import (
    AddCue,
    CommandRunner,
    CreateNote,
    Draft,
    LinkNotes,
    Status,
    SuggestCues,
    Summarize,
    ValidateNote,
    parse_command,
)
from zettel.errors import CommandError
from zettel.sync.engine import Synchronizer
from zettel.vault import NoteVault

# ---------------------------------------------------------------------------
# parse_command()
# ---------------------------------------------------------------------------


class TestParseCommand:
    @pytest.mark.parametrize(
        "text, expected",
        [
            ("/note create My First Note", CreateNote("My First Note")),
            ("/note validate alpha", ValidateNote("alpha")),
            ("/note link alpha beta", LinkNotes("alpha", "beta")),
            ("/cue add alpha What is  alpha?", AddCue("alpha", "What is  alpha?")),
            ("/status", Status()),
            ("/ai summarize alpha", Summarize("alpha")),
            ("/ai cues alpha", SuggestCues("alpha")),
            ("/ai draft graph theory", Draft("graph theory")),
            ("  /NOTE VALIDATE alpha  ", ValidateNote("alpha")),
        ],
    )
    def test_variants(self, text, expected):
        assert parse_command(text) == expected

    @pytest.mark.parametrize(
        "text",
        [
            "/note",
            "/note create",
            "/note validate",
            "/note validate a b",
            "/note link alpha",
            "/note link a b c",
            "/note rename a b",
            "/cue add alpha",
            "/cue remove alpha Why?",
            "/status now",
            "/ai",
            "/ai summarize",
            "/ai draft",
            "/ai translate x",
            "/unknown",
        ],
    )
    def test_malformed(self, text):
        with pytest.raises(CommandError) as exc_info:
            parse_command(text)
        assert str(exc_info.value)

    def test_usage_names_the_expected_arguments(self):
        with pytest.raises(CommandError, match=r"/note link <source-id> <target-id>"):
            parse_command("/note link alpha")

    @pytest.mark.parametrize("text", ["hello there", "", "note create x"])
    def test_free_text_rejected(self, text):
        with pytest.raises(CommandError, match="free text"):
            parse_command(text)


# ---------------------------------------------------------------------------
# CommandRunner
# ---------------------------------------------------------------------------


def _assistant(reply: str = "ok", status: int = 200) -> CompletionClient:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status, json={"response": reply})

    return CompletionClient("http://ollama.test", "test-model", transport=httpx.MockTransport(handler))


@pytest.fixture()
def runner(store, notes_root: Path) -> CommandRunner:
    return CommandRunner(NoteVault(notes_root, store=store), store)


class TestCommandRunnerNotes:
    def test_create(self, runner, notes_root):
        reply = runner.run(CreateNote("My Idea"))
        assert reply.startswith("created: ")
        name = reply.removeprefix("created: ")
        assert (notes_root / name).is_file()

    def test_create_twice(self, runner):
        runner.run(CreateNote("Same"))
        assert runner.run(CreateNote("Same")).startswith("note already exists")

    def test_validate(self, runner, write_note):
        write_note("alpha")
        assert runner.run(ValidateNote("alpha")) == "valid: alpha"

    def test_validate_invalid(self, runner, write_note):
        write_note("alpha", cues=["nope"])
        assert runner.run(ValidateNote("alpha")).startswith("invalid: ")

    def test_not_found(self, runner):
        assert runner.run(ValidateNote("ghost")) == "not found: ghost"

    def test_link(self, runner, write_note):
        path = write_note("alpha")
        assert runner.run(LinkNotes("alpha", "beta")) == "linked: alpha -> beta"
        assert "- [[beta]]" in path.read_text(encoding="utf-8")

    def test_link_missing_section(self, runner, write_note):
        write_note("alpha", text="# Alpha\n")
        assert "missing '## Enlaces'" in runner.run(LinkNotes("alpha", "beta"))

    def test_cue(self, runner, write_note):
        write_note("alpha")
        assert runner.run(AddCue("alpha", "Why?")) == "cue added to alpha"

    def test_cue_needs_question_mark(self, runner):
        assert runner.run(AddCue("ghost", "no mark")).startswith("invalid: ")

    def test_status(self, runner, store, write_note, notes_root):
        write_note("alpha", enlaces=["beta"])
        write_note("beta")
        Synchronizer(store, workers=1).sync(notes_root)
        assert runner.run(Status()) == "nodes: 2, edges: 1"

    def test_run_text(self, runner, write_note):
        write_note("alpha")
        assert runner.run_text("/note validate alpha") == "valid: alpha"
        assert runner.run_text("hi").startswith("free text")
        assert runner.run_text("/note link a").startswith("usage:")

    def test_not_a_command(self, runner):
        with pytest.raises(TypeError):
            runner.run("/status")  # type: ignore[arg-type]


class TestCommandRunnerAI:
    def test_without_assistant(self, runner, write_note):
        write_note("alpha")
        assert runner.run(Summarize("alpha")).startswith("ai error: ")

    def test_summarize(self, store, write_note, notes_root):
        write_note("alpha")
        runner = CommandRunner(NoteVault(notes_root), store, _assistant("A short summary."))
        assert "A short summary." in runner.run(Summarize("alpha"))

    def test_suggest_cues(self, store, write_note, notes_root):
        write_note("alpha")
        runner = CommandRunner(NoteVault(notes_root), store, _assistant("- What?"))
        reply = runner.run(SuggestCues("alpha"))
        assert "- What?" in reply
        assert "/cue add" in reply

    def test_draft(self, store, notes_root):
        runner = CommandRunner(NoteVault(notes_root), store, _assistant("# Draft"))
        assert "# Draft" in runner.run(Draft("graphs"))

    def test_summarize_missing_note(self, store, notes_root):
        runner = CommandRunner(NoteVault(notes_root), store, _assistant())
        assert runner.run(Summarize("ghost")) == "not found: ghost"

    def test_backend_error_leaves_notes_alone(self, store, write_note, notes_root):
        path = write_note("alpha")
        before = path.read_text(encoding="utf-8")
        runner = CommandRunner(NoteVault(notes_root), store, _assistant(status=500))
        assert runner.run(Summarize("alpha")).startswith("ai error: ")
        assert path.read_text(encoding="utf-8") == before
        assert runner.run(ValidateNote("alpha")) == "valid: alpha"
