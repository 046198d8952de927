"""Workstreams Shared Schemas"""

from .workstream import (
    AssignmentResult,
    AssignmentSource,
    ClusteringMetadata,
    ClusteringParams,
    EmbeddedItem,
    FullClusteringResult,
    UpdateDecision,
    Workstream,
    WorkstreamBreakdown,
    WorkstreamName,
    WorkstreamsUpdate,
)

__all__ = [
    # Achievement schemas
    "AssignmentSource",
    "EmbeddedItem",
    # Workstream schemas
    "Workstream",
    "WorkstreamName",
    "ClusteringMetadata",
    "ClusteringParams",
    # Result schemas
    "UpdateDecision",
    "AssignmentResult",
    "FullClusteringResult",
    "WorkstreamBreakdown",
    "WorkstreamsUpdate",
]
