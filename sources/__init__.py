"""Regulatory source fetching."""

from .fetcher import FetchResult, SourceFetcher, decode_text

__all__ = [
    "FetchResult",
    "SourceFetcher",
    "decode_text",
]
