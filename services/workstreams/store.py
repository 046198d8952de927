"""
Corpus Store
Read/write access to achievements, workstreams and clustering metadata

Implementations:
- InMemoryCorpusStore: process-local store, used by tests and embedders of the library
- ArangoCorpusStore (arango_store.py): ArangoDB-backed store
"""

import threading
from datetime import datetime
from typing import Optional, Protocol

from shared.schemas import (
    AssignmentSource,
    ClusteringMetadata,
    EmbeddedItem,
    Workstream,
)

from .errors import StoreError


class CorpusStore(Protocol):
    """Storage operations used by the workstreams engine"""

    def list_items(self, corpus_id: str) -> list[EmbeddedItem]: ...

    def get_item(self, item_id: str) -> Optional[EmbeddedItem]: ...

    def list_active_workstreams(self, corpus_id: str) -> list[Workstream]: ...

    def get_workstream(self, workstream_id: str) -> Optional[Workstream]: ...

    def list_members(self, workstream_id: str) -> list[EmbeddedItem]: ...

    def get_metadata(self, corpus_id: str) -> Optional[ClusteringMetadata]: ...

    def save_workstream(self, workstream: Workstream) -> None: ...

    def archive_active_workstreams(self, corpus_id: str, now: datetime) -> int: ...

    def clear_ai_assignments(self, corpus_id: str, now: datetime) -> int: ...

    def assign_items(
        self,
        item_ids: list[str],
        workstream_id: Optional[str],
        source: Optional[AssignmentSource],
        now: datetime,
    ) -> None: ...

    def set_item_embedding(
        self,
        item_id: str,
        embedding: list[float],
        now: datetime,
        model: Optional[str] = None,
    ) -> None: ...

    def upsert_metadata(self, metadata: ClusteringMetadata) -> None: ...


class InMemoryCorpusStore:
    """
    Corpus store held in process memory.

    Records are copied on the way in and out so callers never share
    state with the store.
    """

    def __init__(
        self,
        items: Optional[list[EmbeddedItem]] = None,
        workstreams: Optional[list[Workstream]] = None,
    ):
        self._items: dict[str, EmbeddedItem] = {}
        self._workstreams: dict[str, Workstream] = {}
        self._metadata: dict[str, ClusteringMetadata] = {}
        self._lock = threading.RLock()
        for item in items or []:
            self.add_item(item)
        for ws in workstreams or []:
            self.save_workstream(ws)

    def add_item(self, item: EmbeddedItem) -> None:
        with self._lock:
            self._items[item.id] = item.model_copy(deep=True)

    def list_items(self, corpus_id: str) -> list[EmbeddedItem]:
        with self._lock:
            return [i.model_copy(deep=True) for i in self._items.values() if i.corpus_id == corpus_id]

    def get_item(self, item_id: str) -> Optional[EmbeddedItem]:
        with self._lock:
            item = self._items.get(item_id)
            return item.model_copy(deep=True) if item else None

    def list_active_workstreams(self, corpus_id: str) -> list[Workstream]:
        with self._lock:
            return [
                ws.model_copy(deep=True)
                for ws in self._workstreams.values()
                if ws.corpus_id == corpus_id and not ws.is_archived
            ]

    def list_workstreams(self, corpus_id: str) -> list[Workstream]:
        """All workstreams of a corpus, archived included"""
        with self._lock:
            return [ws.model_copy(deep=True) for ws in self._workstreams.values() if ws.corpus_id == corpus_id]

    def get_workstream(self, workstream_id: str) -> Optional[Workstream]:
        with self._lock:
            ws = self._workstreams.get(workstream_id)
            return ws.model_copy(deep=True) if ws else None

    def list_members(self, workstream_id: str) -> list[EmbeddedItem]:
        with self._lock:
            return [i.model_copy(deep=True) for i in self._items.values() if i.workstream_id == workstream_id]

    def get_metadata(self, corpus_id: str) -> Optional[ClusteringMetadata]:
        with self._lock:
            meta = self._metadata.get(corpus_id)
            return meta.model_copy(deep=True) if meta else None

    def save_workstream(self, workstream: Workstream) -> None:
        with self._lock:
            self._workstreams[workstream.id] = workstream.model_copy(deep=True)

    def archive_active_workstreams(self, corpus_id: str, now: datetime) -> int:
        archived = 0
        with self._lock:
            for ws in self._workstreams.values():
                if ws.corpus_id == corpus_id and not ws.is_archived:
                    ws.is_archived = True
                    ws.updated_at = now
                    archived += 1
        return archived

    def clear_ai_assignments(self, corpus_id: str, now: datetime) -> int:
        cleared = 0
        with self._lock:
            for item in self._items.values():
                if item.corpus_id == corpus_id and item.workstream_source == AssignmentSource.AI:
                    item.workstream_id = None
                    item.updated_at = now
                    cleared += 1
        return cleared

    def assign_items(
        self,
        item_ids: list[str],
        workstream_id: Optional[str],
        source: Optional[AssignmentSource],
        now: datetime,
    ) -> None:
        with self._lock:
            missing = [i for i in item_ids if i not in self._items]
            if missing:
                raise StoreError(f"Unknown achievements: {', '.join(missing)}")
            for item_id in item_ids:
                item = self._items[item_id]
                item.workstream_id = workstream_id
                item.workstream_source = source
                item.updated_at = now

    def set_item_embedding(
        self,
        item_id: str,
        embedding: list[float],
        now: datetime,
        model: Optional[str] = None,
    ) -> None:
        with self._lock:
            item = self._items.get(item_id)
            if item is None:
                raise StoreError(f"Unknown achievement: {item_id}")
            item.embedding = list(embedding)
            item.embedding_model = model
            item.updated_at = now

    def upsert_metadata(self, metadata: ClusteringMetadata) -> None:
        with self._lock:
            existing = self._metadata.get(metadata.corpus_id)
            record = metadata.model_copy(deep=True)
            if existing is not None:
                record.created_at = existing.created_at
            self._metadata[metadata.corpus_id] = record
