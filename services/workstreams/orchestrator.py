"""
Full Reclustering
Rebuilds a corpus's workstreams from scratch: clusters every embedded achievement,
archives the previous workstreams, names and persists the new ones
"""

import uuid
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

import structlog

from shared.schemas import (
    AssignmentSource,
    ClusteringMetadata,
    EmbeddedItem,
    FullClusteringResult,
    Workstream,
    WorkstreamName,
)

from . import config
from .assigner import incremental_assignment
from .clusterer import cluster_embeddings
from .errors import InsufficientDataError
from .namer import NAMING_SAMPLE_SIZE, NamingProvider, fallback_name
from .policy import MINIMUM_ITEMS, clustering_params_for
from .store import CorpusStore
from .vector_math import centroid

logger = structlog.get_logger()

WORKSTREAM_COLORS = [
    "#3B82F6",
    "#10B981",
    "#F59E0B",
    "#EF4444",
    "#8B5CF6",
    "#06B6D4",
    "#F97316",
    "#84CC16",
    "#EC4899",
]


@dataclass
class PendingWorkstream:
    """A retained cluster waiting to be named and persisted"""
    index: int
    members: list[EmbeddedItem]  # every clustered achievement, for naming
    assignable: list[EmbeddedItem]  # members not pinned by a user


def name_with_fallback(namer: NamingProvider, cluster: PendingWorkstream) -> WorkstreamName:
    """Ask the naming provider, falling back to a heuristic name on any failure"""
    sample = cluster.members[:NAMING_SAMPLE_SIZE]
    try:
        return namer.name_cluster(sample)
    except Exception as e:
        logger.warning(
            "Naming provider failed, using fallback name",
            cluster_index=cluster.index,
            size=len(cluster.members),
            error=str(e),
        )
        return fallback_name(sample, len(cluster.assignable))


def name_clusters(
    namer: NamingProvider,
    clusters: list[PendingWorkstream],
    max_workers: int = config.NAMING_CONCURRENCY,
) -> list[WorkstreamName]:
    """Name clusters concurrently, in input order"""
    if not clusters:
        return []
    with ThreadPoolExecutor(max_workers=max(1, min(max_workers, len(clusters)))) as pool:
        return list(pool.map(lambda c: name_with_fallback(namer, c), clusters))


def full_reclustering(
    store: CorpusStore,
    namer: NamingProvider,
    corpus_id: str,
    assign_outliers: bool = config.ASSIGN_OUTLIERS,
    now: Optional[datetime] = None,
) -> FullClusteringResult:
    """
    Recluster every embedded achievement of a corpus from scratch.

    User-assigned achievements take part in clustering but are never
    reassigned or cleared.

    Args:
        store: Corpus store
        namer: Naming provider for new workstreams
        corpus_id: Corpus to recluster
        assign_outliers: Sweep leftover outliers into the new workstreams
        now: Timestamp recorded on every write

    Raises:
        InsufficientDataError: if fewer than MINIMUM_ITEMS achievements are embedded
    """
    now = now or datetime.now(timezone.utc)
    items = [item for item in store.list_items(corpus_id) if item.embedding]

    if len(items) < MINIMUM_ITEMS:
        raise InsufficientDataError(MINIMUM_ITEMS, len(items))

    params = clustering_params_for(len(items))
    logger.info("Starting full reclustering", corpus_id=corpus_id, items=len(items), params=params.model_dump())

    result = cluster_embeddings([item.embedding for item in items], params)

    archived = store.archive_active_workstreams(corpus_id, now)
    cleared = store.clear_ai_assignments(corpus_id, now)
    logger.info("Cleared previous workstreams", corpus_id=corpus_id, archived=archived, cleared=cleared)

    pending = []
    for index, indices in enumerate(result.clusters):
        members = [items[i] for i in indices]
        assignable = [m for m in members if m.workstream_source != AssignmentSource.USER]
        if not assignable:
            logger.info("Skipping cluster of user-assigned achievements", cluster_index=index, size=len(members))
            continue
        pending.append(PendingWorkstream(index=index, members=members, assignable=assignable))

    names = name_clusters(namer, pending)

    created = []
    assigned = 0
    for cluster, ws_name in zip(pending, names):
        ws = Workstream(
            id=str(uuid.uuid4()),
            corpus_id=corpus_id,
            name=ws_name.name,
            description=ws_name.description,
            color=WORKSTREAM_COLORS[cluster.index % len(WORKSTREAM_COLORS)],
            centroid=centroid([m.embedding for m in cluster.assignable]),
            centroid_updated_at=now,
            member_count=len(cluster.assignable),
            is_archived=False,
            created_at=now,
            updated_at=now,
        )
        store.save_workstream(ws)
        store.assign_items([m.id for m in cluster.assignable], ws.id, AssignmentSource.AI, now)
        created.append(ws)
        assigned += len(cluster.assignable)

    logger.info("Created workstreams", corpus_id=corpus_id, count=len(created))

    if assign_outliers and created and result.outlier_count:
        swept = incremental_assignment(store, corpus_id, params, now=now)
        assigned += len(swept.assigned)
        logger.info(
            "Assigned outliers to nearest workstreams",
            corpus_id=corpus_id,
            assigned=len(swept.assigned),
            remaining=len(swept.unassigned),
        )

    existing = store.get_metadata(corpus_id)
    metadata = ClusteringMetadata(
        corpus_id=corpus_id,
        last_full_clustering_at=now,
        item_count_at_last_clustering=len(items),
        epsilon=result.epsilon,
        min_pts=params.min_pts,
        workstream_count=len(created),
        outlier_count=result.outlier_count,
        created_at=existing.created_at if existing else now,
        updated_at=now,
    )
    store.upsert_metadata(metadata)

    # Re-read so counts reflect the outlier sweep
    workstreams = [store.get_workstream(ws.id) or ws for ws in created]
    outlier_ids = [
        item.id for item in store.list_items(corpus_id)
        if item.embedding and item.workstream_id is None
    ]

    return FullClusteringResult(
        workstreams_created=len(created),
        items_assigned=assigned,
        outliers=result.outlier_count,
        metadata=metadata,
        workstreams=workstreams,
        outlier_item_ids=outlier_ids,
    )
