"""
Workstreams error types
"""


class WorkstreamsError(Exception):
    """Base class for all workstreams errors"""


class InsufficientDataError(WorkstreamsError):
    """Corpus is below the minimum size for a full reclustering"""

    def __init__(self, required: int, actual: int):
        self.required = required
        self.actual = actual
        super().__init__(f"Insufficient achievements: need {required}, have {actual}")


class DimensionMismatchError(WorkstreamsError, ValueError):
    """Embedding vectors of differing lengths were combined"""


class EmptyInputError(WorkstreamsError, ValueError):
    """A centroid was requested over zero vectors"""


class NamingProviderError(WorkstreamsError):
    """The naming provider could not produce a name"""


class StoreError(WorkstreamsError):
    """The corpus store failed to read or write"""


class WorkstreamNotFoundError(StoreError):
    """Referenced workstream does not exist"""

    def __init__(self, workstream_id: str):
        self.workstream_id = workstream_id
        super().__init__(f"Workstream not found: {workstream_id}")
