"""Node-to-node similarity (embedding cosine with exact-name fallback)."""

from .resolver import SimilarityResolver, cosine_similarity, name_similarity

__all__ = ["SimilarityResolver", "cosine_similarity", "name_similarity"]
