"""
Workstreams Service
Groups achievements into workstreams by embedding similarity and keeps them current

Components:
- vector_math.py: cosine distance, centroid and distance matrix primitives
- epsilon.py: k-distance epsilon estimation for DBSCAN
- clusterer.py: DBSCAN clustering with scored epsilon search and size filtering
- policy.py: full-vs-incremental reclustering decision
- assigner.py: nearest-centroid incremental assignment
- orchestrator.py: full reclustering pass
- centroids.py: centroid maintenance on membership change
- namer.py: LLM workstream naming with heuristic fallback
- embedder.py: achievement embeddings via Ollama or sentence-transformers
- store.py / arango_store.py: corpus stores
- pipeline.py: entry points with per-corpus serialization
"""

from .arango_store import ArangoCorpusStore
from .assigner import incremental_assignment, match_items
from .centroids import on_membership_change, reassign_item, update_centroid
from .clusterer import ClusteringResult, cluster_embeddings
from .embedder import AchievementEmbedder, embed_missing
from .epsilon import estimate_epsilon
from .errors import (
    DimensionMismatchError,
    EmptyInputError,
    InsufficientDataError,
    NamingProviderError,
    StoreError,
    WorkstreamNotFoundError,
    WorkstreamsError,
)
from .namer import WorkstreamNamer, fallback_name
from .orchestrator import full_reclustering
from .pipeline import CorpusLocks, WorkstreamsPipeline
from .policy import clustering_params_for, decide_should_recluster
from .store import CorpusStore, InMemoryCorpusStore
from .vector_math import centroid, cosine_distance, cosine_distance_matrix

__all__ = [
    "ArangoCorpusStore",
    "AchievementEmbedder",
    "ClusteringResult",
    "CorpusLocks",
    "CorpusStore",
    "DimensionMismatchError",
    "EmptyInputError",
    "InMemoryCorpusStore",
    "InsufficientDataError",
    "NamingProviderError",
    "StoreError",
    "WorkstreamNamer",
    "WorkstreamNotFoundError",
    "WorkstreamsError",
    "WorkstreamsPipeline",
    "centroid",
    "cluster_embeddings",
    "clustering_params_for",
    "cosine_distance",
    "cosine_distance_matrix",
    "decide_should_recluster",
    "embed_missing",
    "estimate_epsilon",
    "fallback_name",
    "full_reclustering",
    "incremental_assignment",
    "match_items",
    "on_membership_change",
    "reassign_item",
    "update_centroid",
]
