"""
Incremental Assignment
Attaches newly embedded, unassigned achievements to existing workstreams
by nearest-centroid confidence, without reclustering
"""

from datetime import datetime, timezone
from typing import Optional

import structlog

from shared.schemas import (
    AssignmentResult,
    AssignmentSource,
    ClusteringParams,
    EmbeddedItem,
    Workstream,
)

from .store import CorpusStore
from .vector_math import cosine_distance

logger = structlog.get_logger()


def nearest_workstream(
    embedding: list[float],
    workstreams: list[Workstream],
) -> tuple[Optional[Workstream], float]:
    """Closest active workstream by centroid cosine distance, skipping ones without a centroid"""
    best: Optional[Workstream] = None
    best_distance = float("inf")
    for ws in workstreams:
        if ws.is_archived or ws.centroid is None:
            continue
        distance = cosine_distance(embedding, ws.centroid)
        if distance < best_distance:
            best, best_distance = ws, distance
    return best, best_distance


def match_items(
    items: list[EmbeddedItem],
    workstreams: list[Workstream],
    params: ClusteringParams,
) -> AssignmentResult:
    """
    Match unassigned items to workstreams without touching either.

    An item is accepted only when its distance to the nearest centroid is
    below 1 - outlier_threshold.

    Args:
        items: Candidate achievements; assigned or unembedded ones are ignored
        workstreams: Existing workstreams of the corpus
        params: Clustering parameters supplying outlier_threshold

    Returns:
        AssignmentResult with accepted and rejected item ids
    """
    result = AssignmentResult()
    max_distance = 1 - params.outlier_threshold

    for item in items:
        if item.workstream_id is not None or not item.embedding:
            continue

        best, distance = nearest_workstream(item.embedding, workstreams)
        if best is not None and distance < max_distance:
            result.assignments[item.id] = best.id
            result.assigned.append(item.id)
        else:
            result.unassigned.append(item.id)

    return result


def incremental_assignment(
    store: CorpusStore,
    corpus_id: str,
    params: ClusteringParams,
    now: Optional[datetime] = None,
) -> AssignmentResult:
    """
    Assign a corpus's unassigned achievements to its active workstreams.

    Accepted items are marked AI-assigned and each receiving workstream's
    member count grows by the number of items it received. Rejected items are
    left untouched for the next full reclustering.
    """
    now = now or datetime.now(timezone.utc)
    candidates = [
        item for item in store.list_items(corpus_id)
        if item.workstream_id is None and item.embedding
    ]
    if not candidates:
        return AssignmentResult()

    workstreams = store.list_active_workstreams(corpus_id)
    result = match_items(candidates, workstreams, params)

    if result.assigned:
        by_workstream: dict[str, list[str]] = {}
        for item_id, ws_id in result.assignments.items():
            by_workstream.setdefault(ws_id, []).append(item_id)

        for ws in workstreams:
            item_ids = by_workstream.get(ws.id)
            if not item_ids:
                continue
            store.assign_items(item_ids, ws.id, AssignmentSource.AI, now)
            ws.member_count += len(item_ids)
            ws.updated_at = now
            store.save_workstream(ws)

    logger.info(
        "Incremental assignment complete",
        corpus_id=corpus_id,
        workstreams=len(workstreams),
        assigned=len(result.assigned),
        unassigned=len(result.unassigned),
    )
    return result
