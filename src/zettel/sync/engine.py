"""Incremental, content-hash based synchronization of a note tree into the graph store.

One pass::

    walker ──jobs──▶ workers (hash, lookup, parse) ──results──▶ consumer ──▶ prune
    (1 thread)       (N threads, read-only)                    (caller's thread,
                                                                 sole writer)

Both queues are bounded, so a slow consumer stalls the workers and busy
workers stall the walker.  Every walked file produces exactly one result.
All store writes of a pass happen in the consumer inside one transaction;
each file gets its own savepoint so a store error on one file does not undo
the others.  A file whose stem is already held by another path takes over
the id when that path is gone (a move); when both files exist, the lowest
relative path keeps it.  Pruning runs after the commit, in its own
transaction, and never touches notes under a directory the walk could not
list.
"""

from __future__ import annotations

import hashlib
import logging
import os
import queue
import sqlite3
import threading
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING, Any

from zettel.errors import StoreError, SyncError, SyncInProgressError, ValidationError, Violation
from zettel.note import NOTE_EXTENSION, NodeRecord, Note
from zettel.parser import parse_note

if TYPE_CHECKING:
    from collections.abc import Iterator

    from zettel.store import GraphReader, GraphStore

logger = logging.getLogger(__name__)

_DONE = object()


class FileStatus(Enum):
    NEW = "new"
    CHANGED = "changed"
    UNCHANGED = "unchanged"


@dataclass
class _Job:
    path: Path
    rel_path: str


@dataclass
class FileResult:
    """What a worker learned about one file."""

    rel_path: str
    status: FileStatus | None = None
    hash: str = ""
    last_mod: int = 0
    note: Note | None = None
    rejection: ValidationError | None = None
    error: str | None = None

    @property
    def node_id(self) -> str:
        return PurePosixPath(self.rel_path).stem


@dataclass
class SyncReport:
    """Outcome of one pass, keyed by path relative to the synced root."""

    root: Path
    new: list[str] = field(default_factory=list)
    changed: list[str] = field(default_factory=list)
    unchanged: list[str] = field(default_factory=list)
    pruned: list[str] = field(default_factory=list)
    rejected: dict[str, ValidationError] = field(default_factory=dict)
    failed: dict[str, str] = field(default_factory=dict)
    walk_errors: int = 0
    #: Rows written to the store by this pass (inserts, deletes, cascades)
    mutations: int = 0

    @property
    def scanned(self) -> int:
        return len(self.new) + len(self.changed) + len(self.unchanged) + len(self.rejected) + len(self.failed)

    @property
    def ok(self) -> bool:
        return not (self.rejected or self.failed or self.walk_errors)

    def summary(self) -> str:
        return (
            f"{self.scanned} scanned: {len(self.new)} new, {len(self.changed)} changed, "
            f"{len(self.unchanged)} unchanged, {len(self.rejected)} rejected, "
            f"{len(self.failed)} failed, {len(self.pruned)} pruned"
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "root": str(self.root),
            "new": self.new,
            "changed": self.changed,
            "unchanged": self.unchanged,
            "pruned": self.pruned,
            "rejected": {p: str(e) for p, e in self.rejected.items()},
            "failed": self.failed,
            "walk_errors": self.walk_errors,
            "mutations": self.mutations,
        }


@dataclass
class _WalkState:
    errors: int = 0
    crashed: BaseException | None = None
    #: Directories (relative, posix) that could not be listed; "" means the whole tree
    unread: list[str] = field(default_factory=list)

    def covers(self, rel_path: str) -> bool:
        """True if *rel_path* lies under a directory the walk could not list."""
        return any(d == "" or rel_path.startswith(d + "/") for d in self.unread)


class Synchronizer:
    """Runs sync passes of note trees into one :class:`~zettel.store.GraphStore`."""

    def __init__(
        self,
        store: "GraphStore",
        *,
        workers: int = 4,
        queue_size: int = 100,
        extension: str = NOTE_EXTENSION,
    ) -> None:
        if workers < 1:
            raise ValueError("workers must be >= 1")
        if queue_size < 1:
            raise ValueError("queue_size must be >= 1")
        self.store = store
        self.workers = workers
        self.queue_size = queue_size
        self.extension = extension.lower()
        self._active = threading.Lock()

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def sync(self, root: Path | str) -> SyncReport:
        """Run one full walk–diff–commit–prune pass over *root*.

        Per-file read, decode and validation problems end up in the report.
        Raises :class:`~zettel.errors.SyncError` if *root* is not a directory
        or another pass is running, and :class:`~zettel.errors.StoreError` if
        the pass or prune transaction cannot begin, run or commit.
        """
        root = Path(root)
        if not root.is_dir():
            raise SyncError(f"sync root is not a directory: {root}")
        if not self._active.acquire(blocking=False):
            raise SyncInProgressError(f"a sync pass is already running for this store ({root})")
        try:
            return self._run(root)
        finally:
            self._active.release()

    def _run(self, root: Path) -> SyncReport:
        logger.info("sync: starting pass over %s (%d workers)", root, self.workers)
        report = SyncReport(root=root)
        before = self.store.total_changes
        observed: set[str] = set()

        jobs: queue.Queue[Any] = queue.Queue(maxsize=self.queue_size)
        results: queue.Queue[Any] = queue.Queue(maxsize=self.queue_size)
        stop = threading.Event()
        walk = _WalkState()

        readers: list[GraphReader] = []
        try:
            for _ in range(self.workers):
                readers.append(self.store.reader())
        except BaseException:
            for reader in readers:
                reader.close()
            raise
        threads = [
            threading.Thread(
                target=self._walk, args=(root, jobs, stop, walk), name="zettel-walker", daemon=True
            )
        ]
        threads += [
            threading.Thread(
                target=self._work,
                args=(reader, root, jobs, results, stop),
                name=f"zettel-worker-{i}",
                daemon=True,
            )
            for i, reader in enumerate(readers)
        ]
        for t in threads:
            t.start()

        pending = _Results(results, self.workers)
        contested: dict[str, list[FileResult]] = {}
        try:
            with self.store.transaction():
                for result in pending:
                    observed.add(result.rel_path)
                    self._apply(root, result, report, contested)
                self._settle(contested, report)
        except sqlite3.Error as exc:
            raise StoreError(f"sync pass over {root} failed: {exc}") from exc
        finally:
            stop.set()
            for _ in pending:
                pass  # drain so no worker stays blocked on a full queue
            for t in threads:
                t.join()
            for reader in readers:
                reader.close()

        report.walk_errors = walk.errors
        if walk.crashed is not None:
            # the walk is incomplete: pruning now would drop notes that still exist
            raise SyncError(f"directory walk of {root} aborted: {walk.crashed}") from walk.crashed

        report.pruned += self._prune(observed, walk)
        report.mutations = self.store.total_changes - before
        for bucket in (report.new, report.changed, report.unchanged, report.pruned):
            bucket.sort()
        logger.info("sync: %s", report.summary())
        return report

    # ------------------------------------------------------------------
    # Producer
    # ------------------------------------------------------------------

    def iter_notes(self, root: Path, walk: _WalkState | None = None) -> "Iterator[Path]":
        """Yield every note file under *root*, skipping hidden directories below it.

        Directories that cannot be listed are counted and remembered in
        *walk*, so the pass can leave the notes indexed under them alone.
        """
        state = walk or _WalkState()

        def _onerror(exc: OSError) -> None:
            state.errors += 1
            try:
                rel = Path(exc.filename).relative_to(root).as_posix()
            except (TypeError, ValueError):
                rel = ""
            state.unread.append("" if rel == "." else rel)
            logger.warning("walk error: %s", exc)

        for dirpath, dirnames, filenames in os.walk(root, onerror=_onerror):
            dirnames[:] = sorted(d for d in dirnames if not d.startswith("."))
            for name in sorted(filenames):
                if os.path.splitext(name)[1].lower() != self.extension:
                    continue
                path = Path(dirpath) / name
                if path.is_file():
                    yield path

    def _walk(self, root: Path, jobs: queue.Queue[Any], stop: threading.Event, walk: _WalkState) -> None:
        try:
            for path in self.iter_notes(root, walk):
                if stop.is_set():
                    break
                jobs.put(_Job(path, path.relative_to(root).as_posix()))
        except BaseException as exc:  # noqa: BLE001
            walk.crashed = exc
            logger.exception("walk of %s aborted", root)
        finally:
            for _ in range(self.workers):
                jobs.put(_DONE)

    # ------------------------------------------------------------------
    # Workers (read-only)
    # ------------------------------------------------------------------

    def _work(
        self,
        reader: "GraphReader",
        root: Path,
        jobs: queue.Queue[Any],
        results: queue.Queue[Any],
        stop: threading.Event,
    ) -> None:
        try:
            while True:
                job = jobs.get()
                if job is _DONE:
                    break
                if stop.is_set():
                    continue
                try:
                    result = self.inspect(reader, job.path, job.rel_path)
                except Exception as exc:  # noqa: BLE001
                    logger.exception("worker failed on %s", job.rel_path)
                    result = FileResult(job.rel_path, error=f"unexpected error: {exc}")
                results.put(result)
        finally:
            results.put(_DONE)

    def inspect(self, reader: "GraphReader", path: Path, rel_path: str) -> FileResult:
        """Hash one file and, if it differs from the index, parse it."""
        result = FileResult(rel_path)
        try:
            data = path.read_bytes()
            result.last_mod = path.stat().st_mtime_ns
        except OSError as exc:
            result.error = f"read failed: {exc}"
            return result
        # hash and parse the same bytes, so the stored hash always matches what was parsed
        result.hash = hashlib.sha256(data).hexdigest()

        try:
            stored = reader.hash_for(rel_path)
        except sqlite3.Error as exc:
            result.error = f"index lookup failed: {exc}"
            return result
        if stored == result.hash:
            result.status = FileStatus.UNCHANGED
            return result
        result.status = FileStatus.NEW if stored is None else FileStatus.CHANGED

        try:
            text = data.decode("utf-8")
        except UnicodeDecodeError as exc:
            result.rejection = ValidationError(
                Violation.ENCODING, f"not valid UTF-8 ({exc.reason} at byte {exc.start})"
            )
            return result
        try:
            result.note = parse_note(text)
        except ValidationError as exc:
            result.rejection = exc
        return result

    # ------------------------------------------------------------------
    # Consumer (sole writer)
    # ------------------------------------------------------------------

    def _apply(
        self,
        root: Path,
        result: FileResult,
        report: SyncReport,
        contested: dict[str, list[FileResult]],
    ) -> None:
        path = result.rel_path
        if result.error is not None:
            report.failed[path] = result.error
            logger.warning("[!] %s: %s", path, result.error)
            return
        if result.status is FileStatus.UNCHANGED:
            report.unchanged.append(path)
            return
        if result.rejection is not None:
            # an already indexed version of this file stays as it is
            report.rejected[path] = result.rejection
            logger.warning("[!] rejected %s: %s", path, result.rejection)
            return

        try:
            holder = self.store.get_node(result.node_id)
        except sqlite3.Error as exc:
            report.failed[path] = f"store lookup failed: {exc}"
            logger.warning("[!] %s: store lookup failed: %s", path, exc)
            return
        if holder is not None and holder.path != path:
            if (root / holder.path).is_file():
                # another file on disk has the same id; settled once the pass has seen everything
                contested.setdefault(result.node_id, []).append(result)
                return
            # the file moved: its old row gives way to the new path
            self._write(result, report, replaces=holder)
            return
        self._write(result, report)

    def _write(self, result: FileResult, report: SyncReport, replaces: NodeRecord | None = None) -> bool:
        path = result.rel_path
        note = result.note
        assert note is not None
        try:
            with self.store.savepoint():
                if replaces is not None:
                    self.store.delete_node(replaces.id)
                self.store.upsert_node(result.node_id, path, result.hash, note.title, result.last_mod)
                self.store.set_tag(result.node_id, note.type)
                for target in note.links:
                    self.store.add_edge(result.node_id, target)
        except sqlite3.Error as exc:
            report.failed[path] = f"store update failed: {exc}"
            logger.warning("[!] %s: store update failed: %s", path, exc)
            return False

        if replaces is not None:
            report.pruned.append(replaces.path)
            logger.info("[-] pruned: %s (moved to %s)", replaces.path, path)
        if result.status is FileStatus.NEW:
            report.new.append(path)
            logger.info("[+] new: %s", path)
        else:
            report.changed.append(path)
            logger.info("[*] changed: %s", path)
        return True

    def _settle(self, contested: dict[str, list[FileResult]], report: SyncReport) -> None:
        """Give each shared id to the lowest relative path claiming it.

        The rule looks only at the paths present in the tree, so the outcome
        does not depend on the order in which workers finished.
        """
        for node_id, claims in sorted(contested.items()):
            claims.sort(key=lambda r: r.rel_path)
            holder = self.store.get_node(node_id)
            if holder is not None and holder.path < claims[0].rel_path:
                winner = holder.path
                losers = claims
            elif holder is None:
                winner = claims[0].rel_path
                losers = claims[1:]
                self._write(claims[0], report)
            elif self._write(claims[0], report, replaces=holder):
                winner = claims[0].rel_path
                losers = claims[1:]
                # the displaced row is a duplicate, not a removal
                report.pruned.remove(holder.path)
                self._duplicate(holder.path, node_id, winner, report)
            else:
                winner = holder.path
                losers = claims[1:]
            for result in losers:
                self._duplicate(result.rel_path, node_id, winner, report)

    @staticmethod
    def _duplicate(path: str, node_id: str, winner: str, report: SyncReport) -> None:
        for bucket in (report.new, report.changed, report.unchanged):
            if path in bucket:
                bucket.remove(path)
        report.rejected.pop(path, None)
        report.failed[path] = f"duplicate note id {node_id!r}: {winner} uses it"
        logger.warning("[!] %s: duplicate note id %r, kept %s", path, node_id, winner)

    def _prune(self, observed: set[str], walk: _WalkState) -> list[str]:
        try:
            # notes under a directory the walk could not list were not seen, but are not gone
            stored = self.store.paths()
            keep = observed | {p for p in stored if walk.covers(p)}
            if not stored - keep:
                return []
            with self.store.transaction():
                removed = self.store.prune(keep)
        except sqlite3.Error as exc:
            raise StoreError(f"prune failed: {exc}") from exc
        for path in removed:
            logger.info("[-] pruned: %s", path)
        return removed


class _Results:
    """Iterates worker results until every worker has signalled it is done."""

    def __init__(self, results: queue.Queue[Any], workers: int) -> None:
        self._results = results
        self._remaining = workers

    def __iter__(self) -> "Iterator[FileResult]":
        while self._remaining:
            item = self._results.get()
            if item is _DONE:
                self._remaining -= 1
                continue
            yield item


def sync(root: Path | str, store: "GraphStore", **kwargs: Any) -> SyncReport:
    """Run one pass over *root* with a throwaway :class:`Synchronizer`."""
    return Synchronizer(store, **kwargs).sync(root)
