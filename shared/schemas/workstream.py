"""
Workstreams - Achievement and Workstream Schemas

Defines the achievement, workstream and clustering metadata models
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, Field

# Details at or above this length are not embedded
MAX_EMBEDDED_DETAILS = 500


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AssignmentSource(str, Enum):
    """Who placed an achievement in its workstream"""
    AI = "ai"
    USER = "user"


class EmbeddedItem(BaseModel):
    """
    An achievement with its semantic embedding and workstream assignment.
    """

    id: str
    corpus_id: str
    title: str = ""
    summary: Optional[str] = None
    details: Optional[str] = None
    project_name: Optional[str] = None

    embedding: Optional[list[float]] = None
    # Embedding model that produced the vector; a different model means re-embed
    embedding_model: Optional[str] = None

    workstream_id: Optional[str] = None
    workstream_source: Optional[AssignmentSource] = None

    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def text(self) -> str:
        """
        Text sent to the embedding provider.

        Parts are joined with ". ", project context first. Details of
        MAX_EMBEDDED_DETAILS characters or more are left out.
        """
        parts = []
        if self.project_name:
            parts.append(f"Project: {self.project_name}")
        if self.title:
            parts.append(self.title)
        if self.summary:
            parts.append(self.summary)
        if self.details and len(self.details) < MAX_EMBEDDED_DETAILS:
            parts.append(self.details)
        return ". ".join(parts).strip()


class Workstream(BaseModel):
    """
    A named group of semantically related achievements.
    """

    id: str
    corpus_id: str
    name: str = Field(..., max_length=256)
    description: str = Field("", max_length=1000)
    color: Optional[str] = None

    # Mean of current members' embeddings, None until first computed
    centroid: Optional[list[float]] = None
    centroid_updated_at: Optional[datetime] = None

    member_count: int = 0
    is_archived: bool = False

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    class Config:
        json_schema_extra = {
            "example": {
                "id": "3f1c2a9e-7d4b-4f55-9c1e-2a6b8d0e4f11",
                "corpus_id": "user_42",
                "name": "Payments Platform Reliability",
                "description": "Hardening the payments pipeline and on-call tooling.",
                "color": "#3B82F6",
                "member_count": 14,
            }
        }


class ClusteringMetadata(BaseModel):
    """State of the last full reclustering for one corpus"""

    corpus_id: str
    last_full_clustering_at: datetime
    item_count_at_last_clustering: int
    epsilon: float
    min_pts: int
    workstream_count: int = 0
    outlier_count: int = 0

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class ClusteringParams(BaseModel):
    """DBSCAN and assignment parameters derived from corpus size"""

    min_pts: int = Field(..., ge=1)
    min_cluster_size: int = Field(..., ge=1)
    outlier_threshold: float = Field(..., ge=0.0, le=1.0, description="Confidence cutoff for assignment")


class WorkstreamName(BaseModel):
    """Display name produced for a cluster"""

    name: str = Field(..., max_length=256)
    description: str = Field("", max_length=1000)


class UpdateDecision(BaseModel):
    """Whether to recluster from scratch or assign incrementally"""

    strategy: Literal["full", "incremental"]
    reason: str


class AssignmentResult(BaseModel):
    """Outcome of incremental assignment"""

    assigned: list[str] = Field(default_factory=list)
    unassigned: list[str] = Field(default_factory=list)
    assignments: dict[str, str] = Field(default_factory=dict, description="item id -> workstream id")


class FullClusteringResult(BaseModel):
    """Outcome of a full reclustering pass"""

    workstreams_created: int
    items_assigned: int = Field(..., description="Achievements this pass assigned, outlier sweep included")
    outliers: int
    metadata: ClusteringMetadata
    workstreams: list[Workstream] = Field(default_factory=list)
    outlier_item_ids: list[str] = Field(default_factory=list)


class WorkstreamBreakdown(BaseModel):
    """Items grouped under one workstream for reporting"""

    workstream_id: str
    workstream_name: str
    workstream_color: Optional[str] = None
    is_new: bool = False
    item_ids: list[str] = Field(default_factory=list)


class WorkstreamsUpdate(BaseModel):
    """Result of a generate-workstreams request"""

    strategy: Literal["full", "incremental"]
    reason: str
    embeddings_generated: int = 0
    full: Optional[FullClusteringResult] = None
    incremental: Optional[AssignmentResult] = None
    breakdown: list[WorkstreamBreakdown] = Field(default_factory=list)
