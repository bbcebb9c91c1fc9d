"""Shared fixtures: note text builders and a store under tmp_path."""

from collections.abc import Callable, Iterable
from pathlib import Path

import pytest

from zettel.store import GraphStore


def _note_text(
    title: str = "Alpha",
    *,
    tipo: str = "idea",
    notas: str = "",
    cues: Iterable[str] = (),
    resumen: str = "",
    enlaces: Iterable[str] = (),
) -> str:
    lines = [f"# {title}", "Fecha: 2024-02-02", f"Tipo: {tipo}", "", "## Notas", notas, "", "## Cues"]
    lines += [f"- {c}" for c in cues]
    lines += ["", "## Resumen", resumen, "", "## Enlaces"]
    lines += [f"- [[{target}]]" for target in enlaces]
    return "\n".join(lines) + "\n"


@pytest.fixture()
def note_text() -> Callable[..., str]:
    return _note_text


@pytest.fixture()
def write_note(tmp_path: Path) -> Callable[..., Path]:
    """``write_note("a", "Title", cues=[...])`` writes ``<tmp>/notes/a.md``; ``text=`` writes raw content."""
    root = tmp_path / "notes"
    root.mkdir(exist_ok=True)

    def _write(name: str, title: str = "Alpha", *, text: str | None = None, **kwargs: object) -> Path:
        path = root / f"{name}.md"
        path.parent.mkdir(parents=True, exist_ok=True)
        if text is None:
            text = _note_text(title, **kwargs)  # type: ignore[arg-type]
        path.write_text(text, encoding="utf-8")
        return path

    return _write


@pytest.fixture()
def notes_root(tmp_path: Path) -> Path:
    root = tmp_path / "notes"
    root.mkdir(exist_ok=True)
    return root


@pytest.fixture()
def store(tmp_path: Path):
    s = GraphStore(tmp_path / "index" / "graph.db")
    yield s
    s.close()
