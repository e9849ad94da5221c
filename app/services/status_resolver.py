"""HTTP status lookups shared by broken-link, canonical and redirect checks."""

import asyncio
import logging
from typing import Dict, NamedTuple, Optional
from urllib.parse import urljoin

import httpx

from app.services.fetcher import DEFAULT_TIMEOUT_MS, MAX_REDIRECTS, validate_url

logger = logging.getLogger(__name__)

# HEAD answers that say nothing about the resource itself
_HEAD_INCONCLUSIVE = {405, 501}


class StatusResult(NamedTuple):
    status: Optional[int]
    error: Optional[str] = None

    @property
    def is_ok(self) -> bool:
        return self.status is not None and 200 <= self.status < 400


def _describe(exc: Exception) -> str:
    return str(exc) or exc.__class__.__name__


class StatusResolver:
    """Resolve URL statuses at most once per instance.

    The first caller's in-flight task is shared with every concurrent
    caller asking for the same URL.  One instance lives for a single rule
    pass and is then discarded.  Every request URL, redirect hops
    included, passes the same SSRF validation as page fetches.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
        *,
        block_private: bool = True,
    ) -> None:
        self._client = client
        self._timeout = timeout_ms / 1000
        self._block_private = block_private
        self._pending: Dict[str, "asyncio.Task[StatusResult]"] = {}

    async def resolve(self, url: str) -> StatusResult:
        task = self._pending.get(url)
        if task is None:
            task = asyncio.ensure_future(self._check(url))
            self._pending[url] = task
        return await task

    async def _status(self, method: str, url: str) -> int:
        """Final status of *url*, following redirects hop by hop.

        The body is never read.

        Raises:
            ValueError: if a hop fails SSRF / scheme validation.
            RuntimeError: on more than MAX_REDIRECTS redirects.
            httpx.HTTPError: on network errors.
        """
        current_url = url
        for _ in range(MAX_REDIRECTS + 1):
            validate_url(current_url, block_private=self._block_private)
            async with self._client.stream(
                method, current_url, timeout=self._timeout, follow_redirects=False
            ) as response:
                if not response.is_redirect:
                    return response.status_code
                location = response.headers.get("location", "")
            current_url = urljoin(current_url, location)
        raise RuntimeError("Too many redirects.")

    async def _check(self, url: str) -> StatusResult:
        """HEAD first; one GET fallback when HEAD fails on the network or is inconclusive."""
        try:
            status = await self._status("HEAD", url)
            if status not in _HEAD_INCONCLUSIVE:
                return StatusResult(status)
        except (ValueError, RuntimeError) as exc:
            logger.debug("Status check refused for %s – %s", url, exc)
            return StatusResult(None, _describe(exc))
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            logger.debug("HEAD %s failed, falling back to GET – %s", url, exc)

        try:
            return StatusResult(await self._status("GET", url))
        except (ValueError, RuntimeError, httpx.HTTPError, httpx.InvalidURL) as exc:
            return StatusResult(None, _describe(exc))
