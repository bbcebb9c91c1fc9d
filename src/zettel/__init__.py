"""Incremental graph index over a folder of Cornell-style Zettelkasten notes."""

from zettel.db import GraphDB
from zettel.errors import NotFoundError, StoreError, SyncError, ValidationError, Violation, ZettelError
from zettel.note import EdgeRecord, NodeRecord, Note, Section
from zettel.parser import parse_file, parse_note, parse_wikilinks
from zettel.store import GraphReader, GraphStore
from zettel.sync.engine import SyncReport, Synchronizer
from zettel.sync.scheduler import PeriodicSync
from zettel.vault import NoteVault

__all__ = [
    "Note",
    "Section",
    "NodeRecord",
    "EdgeRecord",
    "parse_note",
    "parse_file",
    "parse_wikilinks",
    "GraphStore",
    "GraphReader",
    "Synchronizer",
    "SyncReport",
    "PeriodicSync",
    "NoteVault",
    "GraphDB",
    "ZettelError",
    "StoreError",
    "SyncError",
    "ValidationError",
    "NotFoundError",
    "Violation",
]
