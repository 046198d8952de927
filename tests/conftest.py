"""Shared fixtures for workstreams tests."""

from datetime import datetime, timezone
from typing import Optional

import numpy as np
import pytest

from services.workstreams.store import InMemoryCorpusStore
from shared.schemas import AssignmentSource, EmbeddedItem, WorkstreamName

CORPUS = "user_1"
DIMENSIONS = 8
EMBED_MODEL = "test-embed"


def make_item(
    item_id: str,
    embedding: Optional[list[float]],
    title: str = "",
    workstream_id: Optional[str] = None,
    source: Optional[AssignmentSource] = None,
    corpus_id: str = CORPUS,
    embedding_model: str = EMBED_MODEL,
) -> EmbeddedItem:
    return EmbeddedItem(
        id=item_id,
        corpus_id=corpus_id,
        title=title or f"Achievement {item_id}",
        embedding=embedding,
        embedding_model=embedding_model if embedding is not None else None,
        workstream_id=workstream_id,
        workstream_source=source,
    )


def axis_vector(axis: int, noise: float = 0.0, rng: Optional[np.random.RandomState] = None) -> list[float]:
    vec = np.zeros(DIMENSIONS)
    vec[axis] = 1.0
    if noise and rng is not None:
        vec = vec + rng.normal(0, noise, DIMENSIONS)
    return vec.tolist()


def two_group_items() -> list[EmbeddedItem]:
    """12 achievements near the first axis, 13 near the second"""
    rng = np.random.RandomState(7)
    items = []
    for i in range(12):
        items.append(make_item(f"a{i}", axis_vector(0, 0.02, rng), title=f"Payments migration step {i}"))
    for i in range(13):
        items.append(make_item(f"b{i}", axis_vector(1, 0.02, rng), title=f"Hiring interview loop {i}"))
    return items


class StubNamer:
    """Naming provider returning numbered names, optionally failing"""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls = 0

    def name_cluster(self, sample):
        self.calls += 1
        if self.fail:
            raise RuntimeError("LLM unavailable")
        return WorkstreamName(name=f"Theme of {sample[0].id}", description=f"{len(sample)} samples")


@pytest.fixture
def now() -> datetime:
    return datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def two_group_store() -> InMemoryCorpusStore:
    return InMemoryCorpusStore(items=two_group_items())


@pytest.fixture
def namer() -> StubNamer:
    return StubNamer()
