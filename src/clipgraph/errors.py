"""Error taxonomy for the memory graph.

Validation and not-found errors reach the caller unchanged. Persistence
errors surface on writes and degrade to empty results on reads. Upstream
provider errors are absorbed by the clip workflow.
"""


class ClipGraphError(Exception):
    """Base class for every error raised by clipgraph."""


class ValidationError(ClipGraphError, ValueError):
    """Malformed input: empty text, bad vectors, out-of-range threshold."""


class DimensionMismatch(ValidationError):
    """Two vectors of different length were compared."""

    def __init__(self, left: int, right: int):
        super().__init__(f"Vector dimensions differ: {left} != {right}")
        self.left = left
        self.right = right


class NotFoundError(ClipGraphError, LookupError):
    """The operation targets an id that does not exist."""

    def __init__(self, kind: str, ident: str):
        super().__init__(f"{kind} not found: {ident}")
        self.kind = kind
        self.ident = ident


class PersistenceError(ClipGraphError):
    """The underlying storage failed to read or write."""


class UpstreamProviderError(ClipGraphError):
    """The embedding provider failed or is unavailable."""
