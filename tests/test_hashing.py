"""Tests for content hashing."""

from __future__ import annotations

import hashlib

import pytest

from processing import ContentHasher, compute_hash, has_content_changed


def test_hash_is_sha256_hex() -> None:
    text = "AIP GEN 1.2 Entry, transit and departure of aircraft"
    assert compute_hash(text) == hashlib.sha256(text.encode("utf-8")).hexdigest()
    assert len(compute_hash(text)) == 64


def test_hash_is_stable_and_handles_empty_text() -> None:
    hasher = ContentHasher()
    assert hasher.hash("same") == hasher.hash("same")
    assert hasher.hash("") == hashlib.sha256(b"").hexdigest()
    assert hasher.hash(None) == hasher.hash("")


def test_changed_is_plain_inequality() -> None:
    assert has_content_changed("", compute_hash("x")) is True
    assert has_content_changed(compute_hash("x"), compute_hash("x")) is False


def test_diff_reports_both_digests() -> None:
    diff = ContentHasher().diff("old text", "new text")
    assert diff.changed is True
    assert diff.old_hash == compute_hash("old text")
    assert diff.new_hash == compute_hash("new text")
    assert ContentHasher().diff("same", "same").changed is False


def test_unknown_algorithm_rejected() -> None:
    with pytest.raises(ValueError):
        ContentHasher("not-a-digest")
