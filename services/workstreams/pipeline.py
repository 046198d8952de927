"""
Workstreams Pipeline
Entry points for generating and maintaining a corpus's workstreams.

Every state-changing call holds a per-corpus lock for its whole duration, so
full reclustering, incremental assignment and centroid updates for one corpus
never interleave within this process.
"""

import threading
import time
from collections import defaultdict
from contextlib import contextmanager
from typing import Iterator, Optional

import structlog

from shared.schemas import (
    AssignmentResult,
    EmbeddedItem,
    WorkstreamBreakdown,
    WorkstreamsUpdate,
)

from . import config
from .assigner import incremental_assignment
from .centroids import on_membership_change, reassign_item
from .embedder import EmbeddingProvider, embed_missing
from .errors import StoreError, WorkstreamNotFoundError
from .namer import NamingProvider
from .orchestrator import full_reclustering
from .policy import clustering_params_for, decide_should_recluster
from .store import CorpusStore

logger = structlog.get_logger()


class CorpusLocks:
    """One re-entrant lock per corpus id"""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: dict[str, threading.RLock] = defaultdict(threading.RLock)

    @contextmanager
    def hold(self, corpus_id: str) -> Iterator[None]:
        with self._guard:
            lock = self._locks[corpus_id]
        with lock:
            yield


class WorkstreamsPipeline:
    """Generates and maintains workstreams on top of a corpus store"""

    def __init__(
        self,
        store: CorpusStore,
        namer: NamingProvider,
        embedder: Optional[EmbeddingProvider] = None,
        assign_outliers: bool = config.ASSIGN_OUTLIERS,
        locks: Optional[CorpusLocks] = None,
    ):
        """
        Args:
            store: Corpus store
            namer: Naming provider for new workstreams
            embedder: If set, achievements without a vector are embedded first
            assign_outliers: Sweep outliers into new workstreams after a full run
            locks: Shared lock registry, for pipelines over the same store
        """
        self.store = store
        self.namer = namer
        self.embedder = embedder
        self.assign_outliers = assign_outliers
        self.locks = locks or CorpusLocks()

    def decide_and_recluster(self, corpus_id: str) -> WorkstreamsUpdate:
        """
        Bring a corpus's workstreams up to date.

        Embeds missing vectors, then runs either a full reclustering or an
        incremental assignment depending on growth and age of the last run.

        Raises:
            InsufficientDataError: if a full run is needed on too small a corpus
        """
        start = time.time()
        with self.locks.hold(corpus_id):
            generated = 0
            if self.embedder is not None:
                generated = embed_missing(self.store, corpus_id, self.embedder)

            count = sum(1 for item in self.store.list_items(corpus_id) if item.embedding)
            metadata = self.store.get_metadata(corpus_id)
            decision = decide_should_recluster(count, metadata)
            logger.info(
                "Workstreams update decision",
                corpus_id=corpus_id,
                items=count,
                strategy=decision.strategy,
                reason=decision.reason,
            )

            if decision.strategy == "full":
                full = full_reclustering(
                    self.store, self.namer, corpus_id, assign_outliers=self.assign_outliers
                )
                update = WorkstreamsUpdate(
                    strategy="full",
                    reason=decision.reason,
                    embeddings_generated=generated,
                    full=full,
                    breakdown=self._workstream_breakdown([ws.id for ws in full.workstreams], is_new=True),
                )
            else:
                assignment = incremental_assignment(self.store, corpus_id, clustering_params_for(count))
                update = WorkstreamsUpdate(
                    strategy="incremental",
                    reason=decision.reason,
                    embeddings_generated=generated,
                    incremental=assignment,
                    breakdown=self._assignment_breakdown(assignment),
                )

        logger.info(
            "Workstreams update complete",
            corpus_id=corpus_id,
            strategy=update.strategy,
            elapsed_seconds=round(time.time() - start, 3),
        )
        return update

    def assign_unassigned(self, corpus_id: str) -> WorkstreamsUpdate:
        """Incremental assignment only; never creates or archives workstreams"""
        with self.locks.hold(corpus_id):
            generated = 0
            if self.embedder is not None:
                generated = embed_missing(self.store, corpus_id, self.embedder)

            count = sum(1 for item in self.store.list_items(corpus_id) if item.embedding)
            assignment = incremental_assignment(self.store, corpus_id, clustering_params_for(count))
            return WorkstreamsUpdate(
                strategy="incremental",
                reason="Assignment to existing workstreams requested",
                embeddings_generated=generated,
                incremental=assignment,
                breakdown=self._assignment_breakdown(assignment),
            )

    def on_item_reassigned(
        self,
        item_id: str,
        old_workstream_id: Optional[str],
        new_workstream_id: Optional[str],
    ) -> None:
        """Recompute centroids after an achievement changed workstream"""
        with self._hold_item(item_id):
            on_membership_change(self.store, item_id, old_workstream_id, new_workstream_id)

    def reassign_item(self, item_id: str, new_workstream_id: Optional[str]) -> Optional[str]:
        """Manually move an achievement, returning its previous workstream"""
        with self._hold_item(item_id):
            return reassign_item(self.store, item_id, new_workstream_id)

    @contextmanager
    def _hold_item(self, item_id: str) -> Iterator[EmbeddedItem]:
        """Hold the lock of an achievement's corpus, yielding the achievement read under it"""
        item = self.store.get_item(item_id)
        if item is None:
            raise StoreError(f"Unknown achievement: {item_id}")
        with self.locks.hold(item.corpus_id):
            current = self.store.get_item(item_id)
            if current is None:
                raise StoreError(f"Achievement removed while waiting for its corpus: {item_id}")
            yield current

    def _workstream_breakdown(self, workstream_ids: list[str], is_new: bool = False) -> list[WorkstreamBreakdown]:
        breakdown = []
        for ws_id in workstream_ids:
            ws = self.store.get_workstream(ws_id)
            if ws is None:
                raise WorkstreamNotFoundError(ws_id)
            breakdown.append(WorkstreamBreakdown(
                workstream_id=ws.id,
                workstream_name=ws.name,
                workstream_color=ws.color,
                is_new=is_new,
                item_ids=[m.id for m in self.store.list_members(ws.id)],
            ))
        breakdown.sort(key=lambda b: len(b.item_ids), reverse=True)
        return breakdown

    def _assignment_breakdown(self, assignment: AssignmentResult) -> list[WorkstreamBreakdown]:
        by_workstream: dict[str, list[str]] = {}
        for item_id, ws_id in assignment.assignments.items():
            by_workstream.setdefault(ws_id, []).append(item_id)

        breakdown = []
        for ws_id, item_ids in by_workstream.items():
            ws = self.store.get_workstream(ws_id)
            if ws is None:
                raise WorkstreamNotFoundError(ws_id)
            breakdown.append(WorkstreamBreakdown(
                workstream_id=ws.id,
                workstream_name=ws.name,
                workstream_color=ws.color,
                item_ids=item_ids,
            ))
        breakdown.sort(key=lambda b: len(b.item_ids), reverse=True)
        return breakdown
