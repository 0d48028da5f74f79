"""
Content Hashing
Fingerprints fetched source text so re-fetches can tell whether anything changed
"""
from dataclasses import dataclass
import hashlib


@dataclass(frozen=True)
class TextDiff:
    changed: bool
    old_hash: str
    new_hash: str


class ContentHasher:
    """
    Fixed-length digest over UTF-8 text.

    The digest is stored alongside each source; comparing it with the digest
    of a fresh fetch is the only change signal.
    """

    def __init__(self, algorithm: str = "sha256"):
        if algorithm not in hashlib.algorithms_available:
            raise ValueError(f"Unsupported hash algorithm: {algorithm}")
        self.algorithm = algorithm

    def hash(self, text: str) -> str:
        digest = hashlib.new(self.algorithm)
        digest.update((text or "").encode("utf-8"))
        return digest.hexdigest()

    @staticmethod
    def changed(old_digest: str, new_digest: str) -> bool:
        return old_digest != new_digest

    def diff(self, old_text: str, new_text: str) -> TextDiff:
        old_hash = self.hash(old_text)
        new_hash = self.hash(new_text)
        return TextDiff(changed=self.changed(old_hash, new_hash), old_hash=old_hash, new_hash=new_hash)


_default_hasher = ContentHasher()


def compute_hash(text: str) -> str:
    """SHA-256 hex digest of ``text``."""
    return _default_hasher.hash(text)


def has_content_changed(old_hash: str, new_hash: str) -> bool:
    return ContentHasher.changed(old_hash, new_hash)
