"""
Core types for WordPiece tokenization.
"""

type TokenId = int
type Document[K] = tuple[K, str]
