"""Regulatory source fetching with content-hash change detection."""

from __future__ import annotations

from dataclasses import dataclass
import logging
import re
from typing import Callable, Dict, List, Optional

import httpx
from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt, wait_exponential

from core import Source, SourceStatus, utcnow
from processing.hashing import ContentHasher
from utils.exceptions import SourceFetchError


logger = logging.getLogger(__name__)

Extractor = Callable[[bytes, str], str]

_WHITESPACE_RE = re.compile(r"\s+")
MIN_TEXT_LENGTH = 50


def decode_text(content: bytes, content_type: str) -> str:
    """Default extractor: decode the body and collapse whitespace."""
    match = re.search(r"charset=([\w-]+)", content_type or "", flags=re.IGNORECASE)
    encoding = match.group(1) if match else "utf-8"
    try:
        text = content.decode(encoding, errors="replace")
    except LookupError:
        text = content.decode("utf-8", errors="replace")
    return _WHITESPACE_RE.sub(" ", text).strip()


def _is_transient(error: BaseException) -> bool:
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code >= 500 or error.response.status_code == 429
    return isinstance(error, httpx.TransportError)


@dataclass
class FetchResult:
    text: str
    hash: str
    changed: bool


class SourceFetcher:
    """
    Re-fetches regulatory sources and records whether their text changed.

    Text extraction is pluggable; the default only decodes the body.
    """

    def __init__(
        self,
        store,
        *,
        client: Optional[httpx.AsyncClient] = None,
        extractor: Optional[Extractor] = None,
        hasher: Optional[ContentHasher] = None,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        user_agent: Optional[str] = None,
    ):
        from config import get_source_settings

        settings = get_source_settings()
        self._store = store
        self._client = client
        self._extractor = extractor or decode_text
        self._hasher = hasher or ContentHasher()
        self.timeout = timeout if timeout is not None else settings.request_timeout
        self.max_retries = max_retries if max_retries is not None else settings.max_retries
        self.user_agent = user_agent or settings.user_agent

    async def _get(self, client: httpx.AsyncClient, url: str) -> httpx.Response:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(max(1, int(self.max_retries))),
            wait=wait_exponential(multiplier=1, min=1, max=10),
            retry=retry_if_exception(_is_transient),
            reraise=True,
        ):
            with attempt:
                response = await client.get(url, headers={"User-Agent": self.user_agent})
                response.raise_for_status()
        return response

    async def _download(self, url: str) -> httpx.Response:
        if self._client is not None:
            return await self._get(self._client, url)
        async with httpx.AsyncClient(timeout=httpx.Timeout(self.timeout), follow_redirects=True) as client:
            return await self._get(client, url)

    async def refresh(self, source: Source, *, force: bool = False) -> FetchResult:
        """
        Fetch ``source`` and store its text and hash.

        Existing text is reused unless ``force`` is set. A 404 falls back to
        existing text when there is some.

        Raises:
            SourceFetchError: download failed and no stored text could stand in
        """
        if not force and source.extracted_text:
            logger.info(f"{source.title}: already has text ({len(source.extracted_text)} chars)")
            return FetchResult(text=source.extracted_text, hash=source.hash, changed=False)

        logger.info(f"Fetching {source.title}: {source.url}")
        try:
            response = await self._download(source.url)
        except (httpx.HTTPError, OSError) as e:
            status_code = e.response.status_code if isinstance(e, httpx.HTTPStatusError) else None
            if status_code == 404 and source.extracted_text:
                logger.warning(f"{source.title}: 404, using stored text ({len(source.extracted_text)} chars)")
                return FetchResult(text=source.extracted_text, hash=source.hash, changed=False)

            logger.error(f"{source.title}: fetch failed: {e}")
            if not source.extracted_text:
                self._store.update(source.source_id, {"status": SourceStatus.ERROR, "last_fetched": utcnow()})
            raise SourceFetchError(f"Failed to fetch {source.url}: {e}", source=source.source_id) from e

        text = self._extractor(response.content, response.headers.get("content-type", "text/html"))
        if len(text) < MIN_TEXT_LENGTH:
            logger.warning(f"{source.title}: extracted text is short ({len(text)} chars)")

        digest = self._hasher.hash(text)
        changed = self._hasher.changed(source.hash, digest)
        self._store.update(
            source.source_id,
            {
                "extracted_text": text,
                "hash": digest,
                "last_fetched": utcnow(),
                "status": SourceStatus.ACTIVE,
            },
        )
        logger.info(f"{source.title}: {'changed' if changed else 'no change'} ({len(text)} chars)")
        return FetchResult(text=text, hash=digest, changed=changed)

    async def refresh_all(self, *, force: bool = False) -> Dict[str, int]:
        """Refresh every source not in error status."""
        checked = changed = errors = 0
        for source in self._store.list():
            if source.status == SourceStatus.ERROR:
                continue
            try:
                result = await self.refresh(source, force=force)
            except SourceFetchError:
                errors += 1
                continue
            checked += 1
            if result.changed:
                changed += 1
        logger.info(f"Sources refreshed: checked={checked} changed={changed} errors={errors}")
        return {"checked": checked, "changed": changed, "errors": errors}

    def texts_for_country(self, iso3: str) -> List[Source]:
        """Active sources with text that cover ``iso3``."""
        return self._store.list(country=iso3, status=SourceStatus.ACTIVE, with_text=True)
