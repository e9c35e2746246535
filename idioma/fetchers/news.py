"""
Upstream news listing client for Idioma.
"""
import logging
from datetime import datetime
from typing import Optional

import aiohttp

from idioma.core.article import NewsListing
from idioma.core.exceptions import ConfigurationError, UpstreamError

# Configure logging
logger = logging.getLogger(__name__)

NEWSDATA_URL = "https://newsdata.io/api/1/news"


class NewsDataFetcher:
    """
    Fetches the latest headlines for a country and language from newsdata.io.
    """
    def __init__(self, api_key: Optional[str], base_url: str = NEWSDATA_URL,
                 session: Optional[aiohttp.ClientSession] = None):
        """
        Initialize the NewsDataFetcher.

        Args:
            api_key: newsdata.io API key
            base_url: Endpoint of the news API
            session: Optional shared aiohttp session
        """
        self.api_key = api_key
        self.base_url = base_url
        self._session = session

    @property
    def session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession()
        return self._session

    async def close_session(self):
        if self._session is not None:
            await self._session.close()
            self._session = None

    async def fetch(self, country: str, language: str, created_at: datetime) -> NewsListing:
        """
        Fetch one page of articles.

        Args:
            country: Country code understood by the provider
            language: Language code understood by the provider
            created_at: Timestamp for the new listing

        Returns:
            The listing, articles in provider order

        Raises:
            ConfigurationError: If no API key is configured
            UpstreamError: If the provider request failed
        """
        if not self.api_key:
            raise ConfigurationError("API key not configured")

        params = {'apikey': self.api_key, 'country': country, 'language': language}
        try:
            async with self.session.get(self.base_url, params=params) as response:
                if response.status == 401:
                    logger.error("News provider rejected the API key")
                response.raise_for_status()
                data = await response.json()
        except aiohttp.ClientError as e:
            logger.error(f"An error occurred while fetching news for {country}/{language}: {e}")
            raise UpstreamError("Failed to fetch news", details=str(e)) from e

        listing = NewsListing(
            country=country,
            language=language,
            created_at=created_at,
            articles=data.get('results') or [],
            next_page=data.get('nextPage'),
        )
        logger.info(f"Fetched {len(listing.articles)} articles for country: {country}, language: {language}")
        return listing
