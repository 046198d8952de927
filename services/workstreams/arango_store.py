"""
ArangoDB Corpus Store
Persists achievements, workstreams and clustering metadata in ArangoDB
"""

from contextlib import contextmanager
from datetime import datetime
from typing import Any, Iterator, Optional

import structlog
from arango import ArangoClient
from arango.exceptions import ArangoError

from shared.schemas import (
    AssignmentSource,
    ClusteringMetadata,
    EmbeddedItem,
    Workstream,
)

from . import config
from .errors import StoreError

logger = structlog.get_logger()

# Collection names
ITEM_COLLECTION = "achievements"
WORKSTREAM_COLLECTION = "workstreams"
METADATA_COLLECTION = "workstream_metadata"


@contextmanager
def _store_errors(operation: str, **context: Any) -> Iterator[None]:
    try:
        yield
    except ArangoError as e:
        logger.error("ArangoDB operation failed", operation=operation, error=str(e), **context)
        raise StoreError(f"{operation} failed: {e}") from e


def _to_doc(model: EmbeddedItem | Workstream, key: str) -> dict:
    doc = model.model_dump(mode="json", exclude={"id"})
    doc["_key"] = key
    return doc


def _item_from_doc(doc: dict) -> EmbeddedItem:
    return EmbeddedItem.model_validate({**doc, "id": doc["_key"]})


def _workstream_from_doc(doc: dict) -> Workstream:
    return Workstream.model_validate({**doc, "id": doc["_key"]})


class ArangoCorpusStore:
    """
    Corpus store on ArangoDB.

    Collections:
    - achievements: one document per achievement, keyed by achievement id
    - workstreams: one document per workstream, archived ones included
    - workstream_metadata: one document per corpus, keyed by corpus id
    """

    def __init__(
        self,
        host: str = config.ARANGODB_HOST,
        port: int = config.ARANGODB_PORT,
        database: str = config.ARANGODB_DB,
        username: str = config.ARANGODB_USER,
        password: str = config.ARANGODB_PASSWORD,
        db: Any = None,
    ):
        """
        Args:
            host: ArangoDB host
            port: ArangoDB port
            database: Database name
            username: ArangoDB user
            password: ArangoDB password
            db: Already-connected database handle, skips connecting
        """
        if db is None:
            with _store_errors("connect", host=host, database=database):
                client = ArangoClient(hosts=f"http://{host}:{port}")
                db = client.db(database, username=username, password=password, verify=True)
            logger.info("Connected to ArangoDB", host=host, database=database)
        self.db = db
        self._ensure_collections()

    def _ensure_collections(self):
        """Create collections on first use"""
        with _store_errors("ensure_collections"):
            for name in (ITEM_COLLECTION, WORKSTREAM_COLLECTION, METADATA_COLLECTION):
                if not self.db.has_collection(name):
                    self.db.create_collection(name)
                    logger.info("Created collection", name=name)

    def _query(self, query: str, **bind_vars: Any) -> list[dict]:
        with _store_errors("query", bind_vars=list(bind_vars)):
            return list(self.db.aql.execute(query, bind_vars=bind_vars))

    def add_item(self, item: EmbeddedItem) -> None:
        with _store_errors("add_item", item_id=item.id):
            self.db.collection(ITEM_COLLECTION).insert(_to_doc(item, item.id), overwrite=True)

    def list_items(self, corpus_id: str) -> list[EmbeddedItem]:
        docs = self._query(
            "FOR a IN @@col FILTER a.corpus_id == @corpus_id RETURN a",
            **{"@col": ITEM_COLLECTION, "corpus_id": corpus_id},
        )
        return [_item_from_doc(d) for d in docs]

    def get_item(self, item_id: str) -> Optional[EmbeddedItem]:
        with _store_errors("get_item", item_id=item_id):
            doc = self.db.collection(ITEM_COLLECTION).get(item_id)
        return _item_from_doc(doc) if doc else None

    def list_active_workstreams(self, corpus_id: str) -> list[Workstream]:
        docs = self._query(
            "FOR w IN @@col FILTER w.corpus_id == @corpus_id AND w.is_archived == false RETURN w",
            **{"@col": WORKSTREAM_COLLECTION, "corpus_id": corpus_id},
        )
        return [_workstream_from_doc(d) for d in docs]

    def get_workstream(self, workstream_id: str) -> Optional[Workstream]:
        with _store_errors("get_workstream", workstream_id=workstream_id):
            doc = self.db.collection(WORKSTREAM_COLLECTION).get(workstream_id)
        return _workstream_from_doc(doc) if doc else None

    def list_members(self, workstream_id: str) -> list[EmbeddedItem]:
        docs = self._query(
            "FOR a IN @@col FILTER a.workstream_id == @workstream_id RETURN a",
            **{"@col": ITEM_COLLECTION, "workstream_id": workstream_id},
        )
        return [_item_from_doc(d) for d in docs]

    def get_metadata(self, corpus_id: str) -> Optional[ClusteringMetadata]:
        with _store_errors("get_metadata", corpus_id=corpus_id):
            doc = self.db.collection(METADATA_COLLECTION).get(corpus_id)
        return ClusteringMetadata.model_validate(doc) if doc else None

    def save_workstream(self, workstream: Workstream) -> None:
        with _store_errors("save_workstream", workstream_id=workstream.id):
            self.db.collection(WORKSTREAM_COLLECTION).insert(
                _to_doc(workstream, workstream.id), overwrite=True
            )

    def archive_active_workstreams(self, corpus_id: str, now: datetime) -> int:
        keys = self._query(
            """
            FOR w IN @@col
                FILTER w.corpus_id == @corpus_id AND w.is_archived == false
                UPDATE w WITH { is_archived: true, updated_at: @now } IN @@col
                RETURN NEW._key
            """,
            **{"@col": WORKSTREAM_COLLECTION, "corpus_id": corpus_id, "now": now.isoformat()},
        )
        return len(keys)

    def clear_ai_assignments(self, corpus_id: str, now: datetime) -> int:
        keys = self._query(
            """
            FOR a IN @@col
                FILTER a.corpus_id == @corpus_id AND a.workstream_source == @source
                UPDATE a WITH { workstream_id: null, updated_at: @now } IN @@col
                    OPTIONS { keepNull: true }
                RETURN NEW._key
            """,
            **{
                "@col": ITEM_COLLECTION,
                "corpus_id": corpus_id,
                "source": AssignmentSource.AI.value,
                "now": now.isoformat(),
            },
        )
        return len(keys)

    def assign_items(
        self,
        item_ids: list[str],
        workstream_id: Optional[str],
        source: Optional[AssignmentSource],
        now: datetime,
    ) -> None:
        if not item_ids:
            return
        keys = self._query(
            """
            FOR key IN @keys
                UPDATE { _key: key } WITH {
                    workstream_id: @workstream_id,
                    workstream_source: @source,
                    updated_at: @now
                } IN @@col OPTIONS { keepNull: true }
                RETURN NEW._key
            """,
            **{
                "@col": ITEM_COLLECTION,
                "keys": list(item_ids),
                "workstream_id": workstream_id,
                "source": source.value if source else None,
                "now": now.isoformat(),
            },
        )
        if len(keys) != len(item_ids):
            raise StoreError(f"Assigned {len(keys)} of {len(item_ids)} achievements")

    def set_item_embedding(
        self,
        item_id: str,
        embedding: list[float],
        now: datetime,
        model: Optional[str] = None,
    ) -> None:
        with _store_errors("set_item_embedding", item_id=item_id):
            self.db.collection(ITEM_COLLECTION).update(
                {
                    "_key": item_id,
                    "embedding": list(embedding),
                    "embedding_model": model,
                    "updated_at": now.isoformat(),
                }
            )

    def upsert_metadata(self, metadata: ClusteringMetadata) -> None:
        doc = metadata.model_dump(mode="json")
        doc["_key"] = metadata.corpus_id
        with _store_errors("upsert_metadata", corpus_id=metadata.corpus_id):
            self.db.collection(METADATA_COLLECTION).insert(doc, overwrite=True)
