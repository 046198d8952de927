"""Tests for workstreams.pipeline module."""

import threading
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone

import pytest

from services.workstreams.errors import InsufficientDataError, StoreError
from services.workstreams.pipeline import CorpusLocks, WorkstreamsPipeline
from services.workstreams.store import InMemoryCorpusStore
from shared.schemas import AssignmentSource

from conftest import CORPUS, EMBED_MODEL, StubNamer, axis_vector, make_item, two_group_items

EARLIER = datetime(2026, 1, 1, tzinfo=timezone.utc)


class StubEmbedder:
    model_id = EMBED_MODEL

    def embed(self, text: str) -> list[float]:
        return axis_vector(0)


class NextModelEmbedder:
    """Four-dimensional vectors placed by topic"""

    model_id = "next-embed"

    def embed(self, text: str) -> list[float]:
        vector = [0.0] * 4
        vector[0 if "Payments" in text else 1] = 1.0
        return vector


class RecordingLocks(CorpusLocks):
    def __init__(self):
        super().__init__()
        self.held = False

    @contextmanager
    def hold(self, corpus_id: str):
        with super().hold(corpus_id):
            self.held = True
            try:
                yield
            finally:
                self.held = False


class LockAwareStore(InMemoryCorpusStore):
    """Records whether each achievement read happened under the corpus lock"""

    def __init__(self, source: InMemoryCorpusStore, locks: RecordingLocks, vanish_under_lock=None):
        self.locks = locks
        self.vanish_under_lock = vanish_under_lock
        self.reads = []
        super().__init__(items=source.list_items(CORPUS), workstreams=source.list_workstreams(CORPUS))

    def get_item(self, item_id):
        self.reads.append(self.locks.held)
        if self.locks.held and item_id == self.vanish_under_lock:
            return None
        return super().get_item(item_id)


@pytest.fixture
def pipeline(two_group_store) -> WorkstreamsPipeline:
    return WorkstreamsPipeline(two_group_store, StubNamer(), assign_outliers=False)


class TestDecideAndRecluster:
    def test_first_run_is_full(self, pipeline) -> None:
        update = pipeline.decide_and_recluster(CORPUS)

        assert update.strategy == "full"
        assert update.reason == "Initial clustering"
        assert update.full.workstreams_created >= 2
        assert all(b.is_new for b in update.breakdown)
        sizes = [len(b.item_ids) for b in update.breakdown]
        assert sizes == sorted(sizes, reverse=True)
        assert pipeline.store.get_metadata(CORPUS) is not None

    def test_second_run_is_incremental(self, pipeline) -> None:
        pipeline.decide_and_recluster(CORPUS)
        pipeline.store.add_item(make_item("new_a", axis_vector(0)))

        update = pipeline.decide_and_recluster(CORPUS)

        assert update.strategy == "incremental"
        assert update.reason == "Small number of new achievements"
        assert update.incremental.assigned == ["new_a"]
        [entry] = update.breakdown
        assert entry.item_ids == ["new_a"]
        assert not entry.is_new
        assert pipeline.store.get_item("new_a").workstream_source == AssignmentSource.AI

    def test_growth_triggers_full(self, pipeline) -> None:
        pipeline.decide_and_recluster(CORPUS)
        for i in range(3):
            pipeline.store.add_item(make_item(f"extra{i}", axis_vector(1)))

        update = pipeline.decide_and_recluster(CORPUS)

        assert update.strategy == "full"
        assert "growth" in update.reason

    def test_small_corpus_raises(self) -> None:
        store = InMemoryCorpusStore(items=two_group_items()[:10])
        with pytest.raises(InsufficientDataError):
            WorkstreamsPipeline(store, StubNamer()).decide_and_recluster(CORPUS)

    def test_missing_embeddings_generated_first(self) -> None:
        items = two_group_items()[:19] + [make_item("raw", None, title="Payments work")]
        store = InMemoryCorpusStore(items=items)

        update = WorkstreamsPipeline(store, StubNamer(), embedder=StubEmbedder()).decide_and_recluster(CORPUS)

        assert update.embeddings_generated == 1
        assert update.strategy == "full"
        assert store.get_item("raw").embedding == axis_vector(0)

    def test_embedding_model_change_regenerates_vectors(self, two_group_store) -> None:
        WorkstreamsPipeline(two_group_store, StubNamer(), assign_outliers=False).decide_and_recluster(CORPUS)
        for i in range(3):
            two_group_store.add_item(make_item(f"new{i}", None, title=f"Payments migration extra {i}"))

        pipeline = WorkstreamsPipeline(two_group_store, StubNamer(), embedder=NextModelEmbedder(), assign_outliers=False)
        update = pipeline.decide_and_recluster(CORPUS)

        assert update.embeddings_generated == 28
        assert update.strategy == "full"
        for item in two_group_store.list_items(CORPUS):
            assert item.embedding_model == "next-embed"
            assert len(item.embedding) == 4
        for ws in two_group_store.list_active_workstreams(CORPUS):
            assert len(ws.centroid) == 4


class TestAssignUnassigned:
    def test_never_creates_workstreams(self, pipeline) -> None:
        update = pipeline.assign_unassigned(CORPUS)

        assert update.strategy == "incremental"
        assert update.incremental.assigned == []
        assert len(update.incremental.unassigned) == 25
        assert pipeline.store.list_workstreams(CORPUS) == []

    def test_assigns_into_existing(self, pipeline) -> None:
        pipeline.decide_and_recluster(CORPUS)
        pipeline.store.add_item(make_item("new_b", axis_vector(1)))

        update = pipeline.assign_unassigned(CORPUS)

        assert update.incremental.assigned == ["new_b"]
        assert pipeline.store.get_metadata(CORPUS).item_count_at_last_clustering == 25


class TestReassignment:
    def test_on_item_reassigned_updates_both_centroids(self, pipeline) -> None:
        pipeline.decide_and_recluster(CORPUS)
        store = pipeline.store
        source_id = store.get_item("a0").workstream_id
        target_id = store.get_item("b0").workstream_id
        others = [ws.id for ws in store.list_active_workstreams(CORPUS) if ws.id not in (source_id, target_id)]
        for ws_id in [source_id, target_id] + others:
            ws = store.get_workstream(ws_id)
            ws.centroid_updated_at = EARLIER
            store.save_workstream(ws)

        store.assign_items(["a0"], target_id, AssignmentSource.USER, datetime.now(timezone.utc))
        pipeline.on_item_reassigned("a0", source_id, target_id)

        assert store.get_workstream(source_id).centroid_updated_at > EARLIER
        assert store.get_workstream(target_id).centroid_updated_at > EARLIER
        for ws_id in others:
            assert store.get_workstream(ws_id).centroid_updated_at == EARLIER
        assert store.get_workstream(target_id).member_count == len(store.list_members(target_id))

    def test_reassign_item(self, pipeline) -> None:
        pipeline.decide_and_recluster(CORPUS)
        store = pipeline.store
        source_id = store.get_item("a0").workstream_id
        target_id = store.get_item("b0").workstream_id

        previous = pipeline.reassign_item("a0", target_id)

        assert previous == source_id
        item = store.get_item("a0")
        assert item.workstream_id == target_id
        assert item.workstream_source == AssignmentSource.USER

    def test_user_assignment_survives_full_rerun(self, pipeline) -> None:
        pipeline.decide_and_recluster(CORPUS)
        target_id = pipeline.store.get_item("b0").workstream_id
        pipeline.reassign_item("a0", target_id)

        pipeline.store.upsert_metadata(
            pipeline.store.get_metadata(CORPUS).model_copy(
                update={"last_full_clustering_at": datetime.now(timezone.utc) - timedelta(days=60)}
            )
        )
        update = pipeline.decide_and_recluster(CORPUS)

        assert update.strategy == "full"
        assert pipeline.store.get_item("a0").workstream_id == target_id

    @pytest.mark.parametrize("method", ["on_item_reassigned", "reassign_item"])
    def test_unknown_item(self, pipeline, method: str) -> None:
        with pytest.raises(StoreError):
            if method == "on_item_reassigned":
                pipeline.on_item_reassigned("ghost", None, None)
            else:
                pipeline.reassign_item("ghost", None)

    def test_item_read_under_corpus_lock(self, pipeline) -> None:
        pipeline.decide_and_recluster(CORPUS)
        locks = RecordingLocks()
        store = LockAwareStore(pipeline.store, locks)
        guarded = WorkstreamsPipeline(store, StubNamer(), locks=locks)
        target_id = store.get_item("b0").workstream_id
        store.reads.clear()

        guarded.reassign_item("a0", target_id)

        assert store.reads[:2] == [False, True]

    def test_item_removed_while_waiting(self, pipeline) -> None:
        locks = RecordingLocks()
        store = LockAwareStore(pipeline.store, locks, vanish_under_lock="a0")
        guarded = WorkstreamsPipeline(store, StubNamer(), locks=locks)

        with pytest.raises(StoreError, match="removed"):
            guarded.on_item_reassigned("a0", None, None)


class TestCorpusLocks:
    def test_same_corpus_shares_lock(self) -> None:
        locks = CorpusLocks()
        entered = threading.Event()
        release = threading.Event()
        order = []

        def first():
            with locks.hold("c1"):
                entered.set()
                release.wait(timeout=5)
                order.append("first")

        def second():
            entered.wait(timeout=5)
            with locks.hold("c1"):
                order.append("second")

        t1 = threading.Thread(target=first)
        t2 = threading.Thread(target=second)
        t1.start()
        t2.start()
        release.set()
        t1.join(timeout=5)
        t2.join(timeout=5)

        assert order == ["first", "second"]

    def test_reentrant_and_independent(self) -> None:
        locks = CorpusLocks()
        with locks.hold("c1"):
            with locks.hold("c1"):
                acquired = []
                t = threading.Thread(target=lambda: acquired.append(locks._locks["c2"].acquire(timeout=1)))
                t.start()
                t.join(timeout=5)
                assert acquired == [True]
