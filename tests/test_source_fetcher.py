"""Tests for regulatory source fetching and change detection."""

from __future__ import annotations

import httpx
import pytest

from core import Source, SourceStatus, SourceType
from processing import compute_hash
from sources import SourceFetcher, decode_text
from storage import InMemorySourceStore
from utils.exceptions import SourceFetchError


AIP_TEXT = "GEN 1.2 Entry, transit and departure of aircraft. Carriage of munitions of war requires prior permission."


def _source(**fields) -> Source:
    values = {
        "source_id": "src_ken_aip",
        "title": "Kenya AIP GEN 1.2",
        "source_type": SourceType.AIP_GEN,
        "url": "https://aip.example/ken/gen12",
        "countries": ["KEN"],
    }
    values.update(fields)
    return Source(**values)


def _fetcher(store: InMemorySourceStore, handler) -> SourceFetcher:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return SourceFetcher(store, client=client, timeout=5, max_retries=1, user_agent="test-agent")


def test_decode_text_uses_charset_and_collapses_whitespace() -> None:
    assert decode_text("Entrée  \n\n autorisée".encode("latin-1"), "text/html; charset=ISO-8859-1") == "Entrée autorisée"
    assert decode_text(b"  plain\ttext ", "") == "plain text"
    assert decode_text(b"abc", "text/plain; charset=not-a-codec") == "abc"


@pytest.mark.asyncio
async def test_refresh_stores_text_and_hash() -> None:
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["agent"] = request.headers.get("user-agent")
        return httpx.Response(200, text=AIP_TEXT, headers={"content-type": "text/html; charset=utf-8"})

    store = InMemorySourceStore([_source()])
    result = await _fetcher(store, handler).refresh(store.get("src_ken_aip"))

    assert result.changed is True
    assert result.hash == compute_hash(AIP_TEXT)
    stored = store.get("src_ken_aip")
    assert stored.extracted_text == AIP_TEXT
    assert stored.status == SourceStatus.ACTIVE
    assert stored.last_fetched is not None
    assert seen["agent"] == "test-agent"


@pytest.mark.asyncio
async def test_forced_refresh_with_same_text_is_unchanged() -> None:
    store = InMemorySourceStore(
        [_source(extracted_text=AIP_TEXT, hash=compute_hash(AIP_TEXT), status=SourceStatus.ACTIVE)]
    )
    fetcher = _fetcher(store, lambda request: httpx.Response(200, text=AIP_TEXT))

    result = await fetcher.refresh(store.get("src_ken_aip"), force=True)

    assert result.changed is False


@pytest.mark.asyncio
async def test_existing_text_is_reused_without_force() -> None:
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.url)
        return httpx.Response(200, text="new")

    store = InMemorySourceStore([_source(extracted_text=AIP_TEXT, hash="h1")])
    result = await _fetcher(store, handler).refresh(store.get("src_ken_aip"))

    assert calls == []
    assert result.text == AIP_TEXT
    assert result.changed is False


@pytest.mark.asyncio
async def test_not_found_falls_back_to_stored_text() -> None:
    store = InMemorySourceStore([_source(extracted_text=AIP_TEXT, hash="h1", status=SourceStatus.ACTIVE)])
    fetcher = _fetcher(store, lambda request: httpx.Response(404))

    result = await fetcher.refresh(store.get("src_ken_aip"), force=True)

    assert result.text == AIP_TEXT
    assert store.get("src_ken_aip").status == SourceStatus.ACTIVE


@pytest.mark.asyncio
async def test_failure_without_text_marks_source_error() -> None:
    store = InMemorySourceStore([_source()])
    fetcher = _fetcher(store, lambda request: httpx.Response(503))

    with pytest.raises(SourceFetchError) as excinfo:
        await fetcher.refresh(store.get("src_ken_aip"))

    assert excinfo.value.source == "src_ken_aip"
    assert store.get("src_ken_aip").status == SourceStatus.ERROR


@pytest.mark.asyncio
async def test_refresh_all_counts_and_skips_error_sources() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("broken"):
            return httpx.Response(500)
        return httpx.Response(200, text=AIP_TEXT)

    store = InMemorySourceStore(
        [
            _source(),
            _source(source_id="src_jor", title="Jordan AIP GEN 1.2", url="https://aip.example/jor/broken", countries=["JOR"]),
            _source(source_id="src_old", title="Retired page", url="https://aip.example/old", status=SourceStatus.ERROR),
        ]
    )

    counts = await _fetcher(store, handler).refresh_all()

    assert counts == {"checked": 1, "changed": 1, "errors": 1}
    assert store.get("src_jor").status == SourceStatus.ERROR
    assert store.get("src_old").last_fetched is None


def test_texts_for_country_returns_active_sources_with_text() -> None:
    store = InMemorySourceStore(
        [
            _source(extracted_text=AIP_TEXT, status=SourceStatus.ACTIVE),
            _source(source_id="src_pending", title="Kenya ANO", countries=["KEN"]),
        ]
    )
    fetcher = SourceFetcher(store, timeout=5, max_retries=1, user_agent="test-agent")

    assert [s.source_id for s in fetcher.texts_for_country("ken")] == ["src_ken_aip"]
