"""
Processing Module
Content fingerprinting for fetched regulatory sources
"""
from .hashing import ContentHasher, TextDiff, compute_hash, has_content_changed

__all__ = [
    "ContentHasher",
    "TextDiff",
    "compute_hash",
    "has_content_changed",
]
