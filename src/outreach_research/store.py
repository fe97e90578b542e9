"""JSON-backed document store.

Each collection is one JSON array of documents in the store directory.
Collections support exact-match or predicate filters, upsert-by-key
replacement, and the handful of aggregates the research pipeline needs
(count, sum, average, distinct, per-value counts).

Writes go through temp file -> fsync -> os.replace so a crash never leaves
a half-written collection behind.
"""

from __future__ import annotations

import json
import os
import tempfile
import threading
from collections import Counter
from collections.abc import Callable, Mapping
from typing import TYPE_CHECKING, Any

import structlog

from outreach_research.exceptions import StoreError

if TYPE_CHECKING:
    from pathlib import Path

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

Document = dict[str, Any]
Filter = Mapping[str, Any] | Callable[[Document], bool] | None


def _matches(doc: Document, flt: Filter) -> bool:
    if flt is None:
        return True
    if callable(flt):
        return bool(flt(doc))
    return all(doc.get(key) == value for key, value in flt.items())


class Collection:
    """A named list of JSON documents persisted to a single file."""

    def __init__(self, path: Path) -> None:
        self._path = path
        self._lock = threading.RLock()

    @property
    def name(self) -> str:
        return self._path.stem

    # -----------------------------------------------------------------------
    # File I/O
    # -----------------------------------------------------------------------

    def _load(self) -> list[Document]:
        if not self._path.exists():
            return []
        try:
            payload = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise StoreError(f"Cannot read collection {self.name!r}: {exc}") from exc
        if not isinstance(payload, list):
            raise StoreError(f"Collection {self.name!r} is not a JSON array")
        return payload

    def _save(self, docs: list[Document]) -> None:
        data = json.dumps(docs, indent=2, default=str).encode("utf-8")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=str(self._path.parent), suffix=".tmp")
            try:
                with os.fdopen(fd, "wb") as handle:
                    handle.write(data)
                    handle.flush()
                    os.fsync(handle.fileno())
                os.replace(tmp_path, self._path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
        except OSError as exc:
            raise StoreError(f"Cannot write collection {self.name!r}: {exc}") from exc

    # -----------------------------------------------------------------------
    # Queries
    # -----------------------------------------------------------------------

    def find(
        self,
        flt: Filter = None,
        sort: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[Document]:
        with self._lock:
            docs = [doc for doc in self._load() if _matches(doc, flt)]
        if sort is not None:
            docs.sort(key=lambda doc: doc.get(sort) or "", reverse=descending)
        if limit is not None:
            docs = docs[:limit]
        return docs

    def find_one(self, flt: Filter = None) -> Document | None:
        with self._lock:
            for doc in self._load():
                if _matches(doc, flt):
                    return doc
        return None

    def count(self, flt: Filter = None) -> int:
        return len(self.find(flt))

    # -----------------------------------------------------------------------
    # Writes
    # -----------------------------------------------------------------------

    def insert_one(self, doc: Document) -> None:
        with self._lock:
            docs = self._load()
            docs.append(doc)
            self._save(docs)

    def replace_one(self, flt: Filter, doc: Document, upsert: bool = False) -> bool:
        """Replace the first matching document.

        Returns:
            True when a new document was inserted, False when one was replaced
            (or nothing matched and ``upsert`` is off).
        """
        with self._lock:
            docs = self._load()
            for index, existing in enumerate(docs):
                if _matches(existing, flt):
                    docs[index] = doc
                    self._save(docs)
                    return False
            if not upsert:
                return False
            docs.append(doc)
            self._save(docs)
            return True

    def delete_one(self, flt: Filter) -> bool:
        with self._lock:
            docs = self._load()
            for index, existing in enumerate(docs):
                if _matches(existing, flt):
                    del docs[index]
                    self._save(docs)
                    return True
        return False

    def delete_many(self, flt: Filter) -> int:
        with self._lock:
            docs = self._load()
            kept = [doc for doc in docs if not _matches(doc, flt)]
            removed = len(docs) - len(kept)
            if removed:
                self._save(kept)
        return removed

    # -----------------------------------------------------------------------
    # Aggregates
    # -----------------------------------------------------------------------

    def sum(self, field: str, flt: Filter = None) -> float:
        return sum(doc.get(field) or 0 for doc in self.find(flt))

    def average(self, field: str, flt: Filter = None) -> float:
        docs = self.find(flt)
        if not docs:
            return 0.0
        return sum(doc.get(field) or 0 for doc in docs) / len(docs)

    def distinct(self, field: str, flt: Filter = None) -> list[Any]:
        seen: list[Any] = []
        for doc in self.find(flt):
            value = doc.get(field)
            if value not in seen:
                seen.append(value)
        return seen

    def group_count(self, field: str, flt: Filter = None) -> dict[str, int]:
        counts = Counter(str(doc.get(field)) for doc in self.find(flt))
        return dict(counts)


class DocumentStore:
    """Directory of JSON collections."""

    def __init__(self, directory: Path) -> None:
        self._directory = directory
        self._collections: dict[str, Collection] = {}
        self._lock = threading.Lock()

    @property
    def directory(self) -> Path:
        return self._directory

    def collection(self, name: str) -> Collection:
        with self._lock:
            if name not in self._collections:
                self._collections[name] = Collection(self._directory / f"{name}.json")
            return self._collections[name]
