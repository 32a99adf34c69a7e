"""Vector index clients for the matching fast path."""

from .vector_index import (
    IndexStatus,
    IndexHit,
    IndexQueryResult,
    VectorIndex,
    InMemoryVectorIndex,
)

__all__ = [
    "IndexStatus",
    "IndexHit",
    "IndexQueryResult",
    "VectorIndex",
    "InMemoryVectorIndex",
]
