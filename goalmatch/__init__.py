"""
Goal-Compatibility Matching Engine

This package ranks users by how compatible their hierarchical, weighted
life-goals are, and recalibrates goal weights from peer feedback.

Key Design Decisions:
- Goal trees are scored as a flat weighted bag of nodes (hierarchy is informational)
- Similarity uses cached embeddings when both nodes have one, else exact name match
- Matching tries an indexed vector search first and falls back to exhaustive scoring
- Embedding generation is fire-and-forget; nothing depends on it synchronously
- Recalibration is a pure multiplicative update with an optional configurable bound
"""

__version__ = "1.0.0"
