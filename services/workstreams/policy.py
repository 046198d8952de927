"""
Reclustering policy
Decides between a full reclustering and incremental assignment
"""

import math
from datetime import datetime, timezone
from typing import Optional

from shared.schemas import ClusteringMetadata, ClusteringParams, UpdateDecision

# Minimum embedded achievements for a full reclustering
MINIMUM_ITEMS = 20
SMALL_DATASET = 100

RECLUSTER_PERCENTAGE_THRESHOLD = 0.1
RECLUSTER_ABSOLUTE_THRESHOLD = 50
RECLUSTER_TIME_THRESHOLD_DAYS = 30


def _as_utc(ts: datetime) -> datetime:
    # Naive timestamps are stored as UTC
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts


def clustering_params_for(item_count: int) -> ClusteringParams:
    """Clustering parameters for a corpus of the given size"""
    if item_count < SMALL_DATASET:
        return ClusteringParams(min_pts=3, min_cluster_size=3, outlier_threshold=0.7)
    # Larger corpora have noisier neighbourhoods
    return ClusteringParams(min_pts=3, min_cluster_size=3, outlier_threshold=0.65)


def decide_should_recluster(
    current_item_count: int,
    metadata: Optional[ClusteringMetadata],
    now: Optional[datetime] = None,
) -> UpdateDecision:
    """
    Decide whether to recluster from scratch or assign incrementally.

    Full reclustering on first run, on 10% growth, on 50+ new achievements,
    or when the last run is more than 30 days old. Checks run in that order
    and the first match supplies the reason.

    A previous run that produced no workstreams does not force a full run by
    itself: such a corpus stays on incremental assignment, which assigns
    nothing, until it grows past a threshold or the last run ages out.
    """
    if metadata is None:
        return UpdateDecision(strategy="full", reason="Initial clustering")

    previous = metadata.item_count_at_last_clustering
    new_items = current_item_count - previous

    if previous > 0:
        growth = new_items / previous
    else:
        growth = math.inf if new_items > 0 else 0.0

    if growth >= RECLUSTER_PERCENTAGE_THRESHOLD:
        return UpdateDecision(
            strategy="full",
            reason=f"{growth * 100:.1f}% growth in achievements",
        )

    if new_items >= RECLUSTER_ABSOLUTE_THRESHOLD:
        return UpdateDecision(
            strategy="full",
            reason=f"{new_items} new achievements since last clustering",
        )

    now = _as_utc(now or datetime.now(timezone.utc))
    last_run = _as_utc(metadata.last_full_clustering_at)
    days_since = (now - last_run).total_seconds() / 86400

    if days_since > RECLUSTER_TIME_THRESHOLD_DAYS:
        return UpdateDecision(
            strategy="full",
            reason=f"{math.floor(days_since)} days since last clustering",
        )

    return UpdateDecision(strategy="incremental", reason="Small number of new achievements")
