# Copyright (c) 2026 Nenad Vasic. All rights reserved.
# Licensed under the Business Source License 1.1 (BSL-1.1)
# See LICENSE file in the project root for full license text.

"""
Hearth document store — per-user JSON documents on disk.

Layout:
    users/{user_id}/{collection}/{doc_id}.json

Every write is crash-safe (write .tmp, fsync, rename). Two ways to make
several writes hang together:

    # Read-modify-write, serialized against every other writer for this user
    with store.transaction(user_id) as txn:
        doc = txn.get("signal_states", sid)
        doc["state"] = "active"
        txn.set("signal_states", sid, doc)

    # Blind multi-document write, all-or-nothing at staging time
    batch = store.batch(user_id)
    batch.delete("signals", old_id)
    batch.set("signals", new_id, data)
    batch.commit()

Locks are per user and re-entrant, so a transaction body may call the
plain set/merge helpers for the same user without deadlocking.
"""

import copy
import json
import logging
import os
import threading
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple

from core.paths import get_paths
from core.schemas import StoreError

logger = logging.getLogger("hearth.store")

_DELETED = object()


def _atomic_rename(tmp: Path, dest: Path):
    """Flush, fsync, then rename — crash-safe atomic write."""
    fd = os.open(str(tmp), os.O_RDONLY)
    try:
        os.fsync(fd)
    finally:
        os.close(fd)
    os.rename(str(tmp), str(dest))


def _write_tmp(dest: Path, data: Dict[str, Any]) -> Path:
    """Serialize data next to dest and return the .tmp path."""
    dest.parent.mkdir(parents=True, exist_ok=True)
    content = json.dumps(data, indent=2)
    tmp = dest.with_suffix(dest.suffix + ".tmp")
    tmp.write_text(content)
    return tmp


def _check_segment(name: str, what: str) -> str:
    if not name or "/" in name or "\\" in name or name in (".", ".."):
        raise ValueError(f"Invalid {what}: {name!r}")
    return name


class DocumentStore:
    """JSON-file document store keyed by (user, collection, doc id)."""

    def __init__(self, root: Optional[Path] = None):
        self._root = Path(root) if root is not None else get_paths().users_dir
        self._locks: Dict[str, threading.RLock] = {}
        self._locks_guard = threading.Lock()

    @property
    def root(self) -> Path:
        return self._root

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _path(self, user_id: str, collection: str, doc_id: str) -> Path:
        return (
            self._root
            / _check_segment(user_id, "user id")
            / _check_segment(collection, "collection")
            / f"{_check_segment(doc_id, 'document id')}.json"
        )

    def user_lock(self, user_id: str) -> threading.RLock:
        with self._locks_guard:
            lock = self._locks.get(user_id)
            if lock is None:
                lock = threading.RLock()
                self._locks[user_id] = lock
            return lock

    def _read(self, path: Path) -> Optional[Dict[str, Any]]:
        if not path.exists():
            return None
        try:
            data = json.loads(path.read_text())
        except json.JSONDecodeError as e:
            raise StoreError(f"Corrupt document {path}: {e}") from e
        except OSError as e:
            raise StoreError(f"Cannot read {path}: {e}") from e
        return data if isinstance(data, dict) else None

    def _commit(self, user_id: str, final: Dict[Tuple[str, str], Any]) -> None:
        """Stage every write, then rename. Nothing lands if staging fails."""
        staged: List[Tuple[Optional[Path], Path]] = []
        with self.user_lock(user_id):
            try:
                for (collection, doc_id), data in final.items():
                    dest = self._path(user_id, collection, doc_id)
                    if data is _DELETED:
                        staged.append((None, dest))
                    else:
                        staged.append((_write_tmp(dest, data), dest))
            except (OSError, TypeError, ValueError) as e:
                for tmp, _ in staged:
                    if tmp is not None:
                        tmp.unlink(missing_ok=True)
                raise StoreError(f"Commit failed for user {user_id}: {e}") from e

            for tmp, dest in staged:
                if tmp is None:
                    dest.unlink(missing_ok=True)
                else:
                    _atomic_rename(tmp, dest)

    # ------------------------------------------------------------------
    # Single-document operations
    # ------------------------------------------------------------------
    def get(self, user_id: str, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        return self._read(self._path(user_id, collection, doc_id))

    def set(self, user_id: str, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        self._commit(user_id, {(collection, doc_id): copy.deepcopy(data)})

    def merge(self, user_id: str, collection: str, doc_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        """Shallow-merge data into the document (creating it). Returns the result."""
        with self.user_lock(user_id):
            current = self.get(user_id, collection, doc_id) or {}
            current.update(copy.deepcopy(data))
            self._commit(user_id, {(collection, doc_id): current})
            return current

    def delete(self, user_id: str, collection: str, doc_id: str) -> bool:
        path = self._path(user_id, collection, doc_id)
        with self.user_lock(user_id):
            if not path.exists():
                return False
            path.unlink()
            return True

    def list(
        self,
        user_id: str,
        collection: str,
        where: Optional[Dict[str, Any]] = None,
    ) -> List[Dict[str, Any]]:
        """All documents in a collection, optionally filtered by equality."""
        folder = self._root / _check_segment(user_id, "user id") / _check_segment(collection, "collection")
        if not folder.is_dir():
            return []
        docs = []
        for path in sorted(folder.glob("*.json")):
            data = self._read(path)
            if data is None:
                continue
            data.setdefault("id", path.stem)
            if where and any(data.get(k) != v for k, v in where.items()):
                continue
            docs.append(data)
        return docs

    @staticmethod
    def new_id() -> str:
        return uuid.uuid4().hex

    # ------------------------------------------------------------------
    # Multi-document operations
    # ------------------------------------------------------------------
    @contextmanager
    def transaction(self, user_id: str) -> Iterator["Transaction"]:
        """Serialized read-modify-write. Commits on clean exit only."""
        with self.user_lock(user_id):
            txn = Transaction(self, user_id)
            yield txn
            txn.commit()

    def batch(self, user_id: str) -> "WriteBatch":
        return WriteBatch(self, user_id)


class WriteBatch:
    """Collects writes for one user and applies them in a single commit."""

    def __init__(self, store: DocumentStore, user_id: str):
        self._store = store
        self._user_id = user_id
        self._pending: Dict[Tuple[str, str], Any] = {}

    def __len__(self) -> int:
        return len(self._pending)

    def _current(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        key = (collection, doc_id)
        if key in self._pending:
            data = self._pending[key]
            return None if data is _DELETED else copy.deepcopy(data)
        return self._store.get(self._user_id, collection, doc_id)

    def set(self, collection: str, doc_id: str, data: Dict[str, Any]) -> "WriteBatch":
        self._pending[(collection, doc_id)] = copy.deepcopy(data)
        return self

    def merge(self, collection: str, doc_id: str, data: Dict[str, Any]) -> "WriteBatch":
        current = self._current(collection, doc_id) or {}
        current.update(copy.deepcopy(data))
        self._pending[(collection, doc_id)] = current
        return self

    def delete(self, collection: str, doc_id: str) -> "WriteBatch":
        self._pending[(collection, doc_id)] = _DELETED
        return self

    def commit(self) -> int:
        """Apply every pending write. Returns the number of documents touched."""
        count = len(self._pending)
        if count:
            self._store._commit(self._user_id, self._pending)
        self._pending = {}
        return count


class Transaction(WriteBatch):
    """A WriteBatch whose reads see its own pending writes."""

    def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        return self._current(collection, doc_id)


# ===========================================================================
# Singleton
# ===========================================================================

_instance: Optional[DocumentStore] = None
_instance_lock = threading.Lock()


def get_store() -> DocumentStore:
    """Return the global DocumentStore rooted at get_paths().users_dir."""
    global _instance
    with _instance_lock:
        if _instance is None:
            _instance = DocumentStore()
        return _instance


def reset_store() -> None:
    """Drop the singleton so the next get_store() re-reads paths."""
    global _instance
    with _instance_lock:
        _instance = None
