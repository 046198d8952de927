"""
Centroid maintenance
Keeps cached workstream centroids in step with membership changes
"""

from datetime import datetime, timezone
from typing import Optional

import structlog

from shared.schemas import AssignmentSource, Workstream

from .errors import StoreError, WorkstreamNotFoundError
from .store import CorpusStore
from .vector_math import centroid

logger = structlog.get_logger()


def update_centroid(
    store: CorpusStore,
    workstream_id: str,
    now: Optional[datetime] = None,
) -> Workstream:
    """
    Recompute a workstream's centroid from its embedded members.

    A workstream with no embedded members left is archived instead.
    """
    now = now or datetime.now(timezone.utc)
    ws = store.get_workstream(workstream_id)
    if ws is None:
        raise WorkstreamNotFoundError(workstream_id)

    embeddings = [m.embedding for m in store.list_members(workstream_id) if m.embedding]

    if not embeddings:
        ws.is_archived = True
        ws.member_count = 0
        logger.info("Archiving empty workstream", workstream_id=workstream_id)
    else:
        ws.centroid = centroid(embeddings)
        ws.centroid_updated_at = now
        ws.member_count = len(embeddings)

    ws.updated_at = now
    store.save_workstream(ws)
    return ws


def on_membership_change(
    store: CorpusStore,
    item_id: str,
    old_workstream_id: Optional[str],
    new_workstream_id: Optional[str],
    now: Optional[datetime] = None,
) -> None:
    """Recompute both sides of a single achievement's reassignment"""
    logger.debug(
        "Membership changed",
        item_id=item_id,
        old_workstream_id=old_workstream_id,
        new_workstream_id=new_workstream_id,
    )
    if old_workstream_id:
        update_centroid(store, old_workstream_id, now=now)
    if new_workstream_id and new_workstream_id != old_workstream_id:
        update_centroid(store, new_workstream_id, now=now)


def reassign_item(
    store: CorpusStore,
    item_id: str,
    new_workstream_id: Optional[str],
    now: Optional[datetime] = None,
) -> Optional[str]:
    """
    Manually move an achievement to another workstream (or none).

    The assignment is marked user-sourced so reclustering leaves it alone.

    Returns:
        The workstream the achievement was previously in
    """
    now = now or datetime.now(timezone.utc)
    item = store.get_item(item_id)
    if item is None:
        raise StoreError(f"Unknown achievement: {item_id}")
    if new_workstream_id is not None and store.get_workstream(new_workstream_id) is None:
        raise WorkstreamNotFoundError(new_workstream_id)

    old_workstream_id = item.workstream_id
    source = AssignmentSource.USER if new_workstream_id is not None else None
    store.assign_items([item_id], new_workstream_id, source, now)
    on_membership_change(store, item_id, old_workstream_id, new_workstream_id, now=now)
    return old_workstream_id
