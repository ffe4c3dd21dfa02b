"""Bounded fetch-by-id client for the Walrus aggregator.

The store is untrusted: responses are capped by size and wall-clock time and
nothing is retried here. Retrying is the caller's decision.
"""
from __future__ import annotations

import asyncio
import re
import time
from typing import Optional

import httpx

from ..errors import (
    ContentNotFound,
    ContentTooLarge,
    FetchTimeout,
    InvalidContentId,
    UpstreamTransportError,
)
from ..obs.prom import observe_fetch
from ..utils.logging import get_logger, kv

log = get_logger("attestor.store")

CONTENT_ID_RE = re.compile(r"^[A-Za-z0-9_-]+$")
MAX_CONTENT_ID_LEN = 256


def validate_content_id(content_id) -> str:
    """Return ``content_id`` unchanged if it is a well-formed blob id.

    Ids are rejected, never stripped: removing characters could turn two
    different inputs into the same blob id.
    """
    if not isinstance(content_id, str) or not content_id:
        raise InvalidContentId("contentId must be a non-empty string")
    if len(content_id) > MAX_CONTENT_ID_LEN:
        raise InvalidContentId(f"contentId longer than {MAX_CONTENT_ID_LEN} characters")
    if not CONTENT_ID_RE.fullmatch(content_id):
        raise InvalidContentId("contentId may only contain A-Z a-z 0-9 _ -")
    return content_id


class ContentStoreClient:
    def __init__(
        self,
        base_url: str,
        *,
        max_bytes: int = 10 * 1024 * 1024,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.max_bytes = max_bytes
        self.timeout = timeout
        self._client = httpx.AsyncClient(timeout=httpx.Timeout(timeout), transport=transport)

    def blob_url(self, content_id: str) -> str:
        return f"{self.base_url}/v1/blobs/{content_id}"

    async def fetch(self, content_id: str, max_bytes: Optional[int] = None, timeout: Optional[float] = None) -> bytes:
        validate_content_id(content_id)
        limit = self.max_bytes if max_bytes is None else max_bytes
        deadline = self.timeout if timeout is None else timeout
        start = time.monotonic()
        result = "error"
        size = 0
        try:
            data = await asyncio.wait_for(self._fetch(self.blob_url(content_id), limit), deadline)
            result = "ok"
            size = len(data)
            return data
        except asyncio.TimeoutError as e:
            result = "timeout"
            raise FetchTimeout(f"content store did not answer within {deadline:g}s") from e
        except FetchTimeout:
            result = "timeout"
            raise
        except ContentNotFound:
            result = "not_found"
            raise
        except ContentTooLarge:
            result = "too_large"
            raise
        finally:
            elapsed = time.monotonic() - start
            observe_fetch(result=result, seconds=elapsed, size=size)
            log.info("store fetch %s", kv(content_id=content_id, result=result, bytes=size, ms=int(elapsed * 1000)))

    async def _fetch(self, url: str, limit: int) -> bytes:
        try:
            async with self._client.stream("GET", url) as resp:
                if resp.status_code == 404:
                    raise ContentNotFound("content not found in store")
                if not resp.is_success:
                    raise UpstreamTransportError(f"content store answered HTTP {resp.status_code}")
                declared = resp.headers.get("content-length")
                if declared and declared.isdigit() and int(declared) > limit:
                    raise ContentTooLarge(f"content length {declared} exceeds {limit} bytes")
                buf = bytearray()
                async for chunk in resp.aiter_bytes():
                    buf.extend(chunk)
                    if len(buf) > limit:
                        raise ContentTooLarge(f"content exceeds {limit} bytes")
                return bytes(buf)
        except httpx.TimeoutException as e:
            raise FetchTimeout("content store request timed out") from e
        except httpx.HTTPError as e:
            raise UpstreamTransportError(f"content store request failed: {e.__class__.__name__}") from e

    async def aclose(self) -> None:
        await self._client.aclose()
