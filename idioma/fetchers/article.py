"""
Article page fetcher for Idioma.
"""
import asyncio
import logging
from typing import Iterable, Optional

import aiohttp
import async_timeout
import backoff

from idioma.core.exceptions import BlockedError, FetchError
from idioma.utils.http import (
    BROWSER_HEADERS,
    MAX_ATTEMPTS,
    REQUEST_TIMEOUT,
    RETRY_DELAY,
    find_block_signature,
)

logger = logging.getLogger(__name__)

# Network-level failures worth another attempt
RETRYABLE_ERRORS = (aiohttp.ClientError, asyncio.TimeoutError)


class ArticleFetcher:
    """
    Fetches raw article HTML with browser-like headers, a per-attempt timeout
    and a fixed delay between attempts.
    """
    def __init__(self, session: Optional[aiohttp.ClientSession] = None,
                 timeout: float = REQUEST_TIMEOUT,
                 max_attempts: int = MAX_ATTEMPTS,
                 retry_delay: float = RETRY_DELAY,
                 block_signatures: Iterable[str] = ()):
        self._session = session
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay
        self.block_signatures = list(block_signatures)
        self.headers = dict(BROWSER_HEADERS)

    @property
    def session(self):
        """
        Lazy initialization of aiohttp session.

        Returns:
            aiohttp.ClientSession: The HTTP session
        """
        if self._session is None:
            self._session = aiohttp.ClientSession(headers=self.headers)
        return self._session

    async def close_session(self):
        """Close aiohttp session."""
        if self._session is not None:
            await self._session.close()
            self._session = None

    async def _fetch_once(self, url: str) -> str:
        async with async_timeout.timeout(self.timeout):
            async with self.session.get(url, headers=self.headers) as response:
                # 3xx final responses are accepted, anything >= 400 raises
                response.raise_for_status()
                html = await response.text(errors='replace')
                logger.info(
                    f"HTML fetch successful for {url}: status={response.status} "
                    f"content_type={response.headers.get('Content-Type')} length={len(html)}"
                )
                return html

    def _log_retry(self, details):
        logger.warning(
            f"Fetch attempt {details['tries']} failed for {details['args'][0]}, "
            f"retrying in {details['wait']:.1f}s"
        )

    async def fetch(self, url: str) -> str:
        """
        Fetch the raw HTML of a page.

        Args:
            url: The URL to fetch

        Returns:
            The HTML content as a string

        Raises:
            FetchError: If every attempt failed
            BlockedError: If the page looks like a bot-block interstitial
        """
        fetch_with_retry = backoff.on_exception(
            backoff.constant,
            RETRYABLE_ERRORS,
            max_tries=self.max_attempts,
            interval=self.retry_delay,
            jitter=None,
            on_backoff=self._log_retry,
        )(self._fetch_once)

        logger.info(f"Fetching article HTML: {url}")
        try:
            html = await fetch_with_retry(url)
        except RETRYABLE_ERRORS as e:
            logger.error(f"Error fetching {url} after {self.max_attempts} attempts: {e!r}")
            raise FetchError(details=str(e) or e.__class__.__name__) from e

        signature = find_block_signature(html, self.block_signatures)
        if signature:
            logger.warning(f"Possible bot detection for {url}: found {signature!r}")
            raise BlockedError(details="The website appears to be blocking bot access")

        return html
