"""Settings: where the notes live, where the index goes, and how to sync.

Layout (relative to the directory holding ``zettel.toml``)::

    zettel.toml          # optional config
    *.md                 # notes (or under ``root``)
    .zettel/
        index.db         # SQLite graph store (hidden dirs are never synced)

zettel.toml example::

    [zettel]
    root = "notes"            # default: the config directory
    # db = ".zettel/index.db" # default: <root>/.zettel/index.db
    workers = 4
    interval = 300            # seconds between passes for `zettel watch`
    ollama_url = "http://localhost:11434"
    ollama_model = "llama3"

Environment variables override the file: ``ZETTEL_ROOT``, ``ZETTEL_DB``,
``ZETTEL_WORKERS``, ``ZETTEL_INTERVAL``, ``OLLAMA_URL``, ``OLLAMA_MODEL``.
"""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

from zettel.assistant import DEFAULT_MODEL, DEFAULT_URL
from zettel.errors import ZettelError
from zettel.sync.scheduler import DEFAULT_INTERVAL

_CONFIG_FILENAME = "zettel.toml"
_DEFAULT_INDEX = ".zettel/index.db"


@dataclass
class Settings:
    root: Path
    db_path: Path
    workers: int = 4
    queue_size: int = 100
    interval: float = DEFAULT_INTERVAL
    ollama_url: str = DEFAULT_URL
    ollama_model: str = DEFAULT_MODEL
    #: The file the settings were read from, if any
    config_path: Path | None = None


def load_settings(root: Path | str | None = None, env: Mapping[str, str] | None = None) -> Settings:
    """Load ``zettel.toml`` from *root* (or search upward from cwd), then apply env overrides."""
    env = os.environ if env is None else env
    base = _find_base(Path(root) if root else Path.cwd())
    config_path = base / _CONFIG_FILENAME

    raw: dict[str, Any] = {}
    if config_path.is_file():
        try:
            with config_path.open("rb") as f:
                raw = tomllib.load(f)
        except tomllib.TOMLDecodeError as exc:
            raise ZettelError(f"invalid {config_path}: {exc}") from exc
    section = raw.get("zettel", {})

    notes_root = _resolve(base, env.get("ZETTEL_ROOT") or section.get("root", "."))
    db_value = env.get("ZETTEL_DB") or section.get("db")
    db_path = _resolve(base, db_value) if db_value else notes_root / _DEFAULT_INDEX

    settings = Settings(
        root=notes_root,
        db_path=db_path,
        workers=_number(int, "workers", env.get("ZETTEL_WORKERS"), section.get("workers", 4)),
        queue_size=_number(int, "queue_size", None, section.get("queue_size", 100)),
        interval=_number(float, "interval", env.get("ZETTEL_INTERVAL"), section.get("interval", DEFAULT_INTERVAL)),
        ollama_url=env.get("OLLAMA_URL") or section.get("ollama_url", DEFAULT_URL),
        ollama_model=env.get("OLLAMA_MODEL") or section.get("ollama_model", DEFAULT_MODEL),
        config_path=config_path if config_path.is_file() else None,
    )
    if settings.workers < 1:
        raise ZettelError(f"workers must be >= 1, got {settings.workers}")
    if settings.interval <= 0:
        raise ZettelError(f"interval must be positive, got {settings.interval}")
    return settings


def _find_base(start: Path) -> Path:
    """Walk upward from start looking for zettel.toml."""
    for directory in (start, *start.parents):
        if (directory / _CONFIG_FILENAME).is_file():
            return directory
    return start


def _resolve(base: Path, value: str) -> Path:
    path = Path(value).expanduser()
    return path if path.is_absolute() else base / path


def _number(kind: type, name: str, env_value: str | None, file_value: Any) -> Any:
    value = env_value if env_value else file_value
    try:
        return kind(value)
    except (TypeError, ValueError) as exc:
        raise ZettelError(f"invalid {name}: {value!r}") from exc
