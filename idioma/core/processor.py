"""
Article processing pipeline for Idioma.

``ArticleService`` runs the three cache-first flows: extract, simplify and
news. All collaborators are injected; ``build_service`` wires real ones from
configuration.
"""
import asyncio
import logging
from datetime import timedelta
from typing import Any, AsyncIterator, Awaitable, Callable, Optional, Set, Union

import openai

from idioma.config import Config
from idioma.core.article import ExtractedContent, NewsListing, ProficiencyLevel, SimplifiedContent
from idioma.core.cache import (
    Clock,
    DocumentStore,
    ExtractionCache,
    MemoryDocumentStore,
    NewsCache,
    SimplificationCache,
    SQLiteDocumentStore,
    utcnow,
)
from idioma.core.exceptions import IdiomaError, NotFoundError, StoreError, UpstreamError, ValidationError
from idioma.core.extractor import ContentExtractor
from idioma.core.simplifier import Simplifier, SimplifyChunk
from idioma.fetchers.article import ArticleFetcher
from idioma.fetchers.news import NewsDataFetcher

logger = logging.getLogger(__name__)


class ArticleService:
    """
    Fetches, extracts, simplifies and lists articles with caching.
    """
    def __init__(self, fetcher: ArticleFetcher, extractor: ContentExtractor, simplifier: Simplifier,
                 news_fetcher: NewsDataFetcher, extraction_cache: ExtractionCache,
                 simplification_cache: SimplificationCache, news_cache: NewsCache,
                 clock: Clock = utcnow):
        self.fetcher = fetcher
        self.extractor = extractor
        self.simplifier = simplifier
        self.news_fetcher = news_fetcher
        self.extraction_cache = extraction_cache
        self.simplification_cache = simplification_cache
        self.news_cache = news_cache
        self.clock = clock
        # Stream producers outlive their responses; hold references until done
        self._pending: Set[asyncio.Task] = set()

    async def _read_cache(self, lookup: Callable[..., Awaitable[Any]], *key) -> Any:
        """Cache read that degrades to a miss when the store fails."""
        try:
            return await lookup(*key)
        except StoreError as e:
            logger.error(f"Cache read failed for {key}, treating as miss: {e}")
            return None

    async def _write_cache(self, put: Callable[[Any], Awaitable[None]], record: Any) -> None:
        """Cache write whose failure never fails the request."""
        try:
            await put(record)
        except StoreError as e:
            logger.error(f"Failed to cache {type(record).__name__}: {e}")

    async def extract(self, url: Optional[str]) -> ExtractedContent:
        """
        Return extracted content for a URL, fetching and parsing on a cache miss.

        Args:
            url: The article URL

        Returns:
            The freshest non-stale ExtractedContent
        """
        if not url:
            raise ValidationError("Missing 'url' query or body parameter")

        cached = await self._read_cache(self.extraction_cache.get, url)
        if cached:
            logger.info(f"Returning cached article content for {url}")
            return cached

        html = await self.fetcher.fetch(url)
        content = await asyncio.to_thread(self.extractor.extract, html, url, self.clock())
        await self._write_cache(self.extraction_cache.put, content)
        logger.info(f"Parsed and cached article content for {url}: {content.title!r}")
        return content

    async def _prepare_simplify(self, url: Optional[str], level: Union[str, ProficiencyLevel, None]):
        if not url:
            raise ValidationError("Missing 'url' parameter")
        level = ProficiencyLevel.parse(level or ProficiencyLevel.B1.value)

        cached = await self._read_cache(self.simplification_cache.get, url, level)
        if cached:
            logger.info(f"Returning cached simplified article for {url} at {level.value}")
            return level, cached, None

        try:
            source = await self.extraction_cache.get_latest(url)
        except StoreError:
            logger.error(f"Could not read extracted article for {url}")
            raise
        if source is None:
            # Extraction is not triggered here; clients call extract first
            raise NotFoundError("Article not found",
                                details="Please extract the article first using the extract endpoint")
        logger.info(f"Found original article for {url}: {source.title!r} "
                    f"llm_html_length={len(source.model_html)}")
        return level, None, source

    async def simplify(self, url: Optional[str], level: Union[str, ProficiencyLevel, None] = None) -> SimplifiedContent:
        """
        Return a leveled rewrite of an already extracted article.

        Args:
            url: The article URL
            level: CEFR level, B1 when omitted

        Returns:
            The cached or freshly generated SimplifiedContent
        """
        level, cached, source = await self._prepare_simplify(url, level)
        if cached:
            return cached

        completion = await self.simplifier.simplify(source.model_html, level)
        record = SimplifiedContent.from_source(source, level, completion.text,
                                               completion.tokens_used, self.clock())
        await self._write_cache(self.simplification_cache.put, record)
        logger.info(f"Simplified article cached for {url} at {level.value}")
        return record

    async def simplify_stream(self, url: Optional[str], level: Union[str, ProficiencyLevel, None] = None
                              ) -> Union[SimplifiedContent, AsyncIterator[SimplifyChunk]]:
        """
        Streaming variant of ``simplify``.

        Returns the cached record on a hit. Otherwise starts the model call in a
        background task and returns an iterator over its chunks once the first
        chunk has arrived, so failures before any output still raise here. The
        task runs to completion and caches the result even if the iterator is
        abandoned.
        """
        level, cached, source = await self._prepare_simplify(url, level)
        if cached:
            return cached

        queue: asyncio.Queue = asyncio.Queue()
        task = asyncio.create_task(self._produce_stream(source, level, queue))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

        first = await queue.get()
        if isinstance(first, Exception):
            raise first
        return self._drain_stream(first, queue)

    async def _produce_stream(self, source: ExtractedContent, level: ProficiencyLevel,
                              queue: asyncio.Queue) -> None:
        parts = []
        total_tokens = None
        try:
            async for chunk in self.simplifier.stream(source.model_html, level):
                if chunk.done:
                    total_tokens = chunk.total_tokens
                else:
                    parts.append(chunk.content)
                queue.put_nowait(chunk)
        except Exception as e:
            # Forwarded to whoever drains the queue
            logger.error(f"Streaming simplification failed for {source.source_url}: {e}")
            if not isinstance(e, IdiomaError):
                e = UpstreamError("Failed to simplify article", details=str(e))
            queue.put_nowait(e)
            return

        record = SimplifiedContent.from_source(source, level, ''.join(parts), total_tokens, self.clock())
        await self._write_cache(self.simplification_cache.put, record)
        logger.info(f"Streamed result cached for {source.source_url} at {level.value}")

    async def _drain_stream(self, chunk: Any, queue: asyncio.Queue) -> AsyncIterator[SimplifyChunk]:
        while True:
            if isinstance(chunk, Exception):
                raise chunk
            yield chunk
            if chunk.done:
                return
            chunk = await queue.get()

    async def news(self, country: Optional[str], language: Optional[str]) -> NewsListing:
        """
        Return the news listing for a country and language.

        Args:
            country: Country code
            language: Language code

        Returns:
            The cached or freshly fetched listing
        """
        if not country or not language:
            raise ValidationError("Both 'country' and 'language' parameters are required")

        cached = await self._read_cache(self.news_cache.get, country, language)
        if cached:
            logger.info(f"Returning cached news for country: {country}, language: {language}")
            return cached

        listing = await self.news_fetcher.fetch(country, language, self.clock())
        await self._write_cache(self.news_cache.put, listing)
        logger.info(f"Fetched and cached new news for country: {country}, language: {language}")
        return listing

    async def close(self) -> None:
        """Let pending stream producers finish, then release HTTP sessions."""
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)
        await self.fetcher.close_session()
        await self.news_fetcher.close_session()


def build_store(cfg: Config) -> DocumentStore:
    backend = cfg.get('store.backend', 'sqlite')
    if backend == 'memory':
        return MemoryDocumentStore()
    if backend == 'sqlite':
        return SQLiteDocumentStore(cfg.get('store.path'))
    raise ValueError(f"Unsupported store backend: {backend}")


def build_service(cfg: Config, store: Optional[DocumentStore] = None, clock: Clock = utcnow) -> ArticleService:
    """
    Wire an ArticleService from configuration.

    Args:
        cfg: Loaded configuration
        store: Document store to use instead of the configured one
        clock: Source of record timestamps

    Returns:
        The service
    """
    store = store or build_store(cfg)
    api_key = cfg.get('openai.api_key')
    client = openai.AsyncOpenAI(api_key=api_key) if api_key else None
    if client is None:
        logger.warning("OPENAI_API_KEY not set, simplification is disabled")

    return ArticleService(
        fetcher=ArticleFetcher(
            timeout=cfg.get('fetcher.timeout_seconds'),
            max_attempts=cfg.get('fetcher.max_attempts'),
            retry_delay=cfg.get('fetcher.retry_delay_seconds'),
            block_signatures=cfg.get('fetcher.block_signatures', []),
        ),
        extractor=ContentExtractor(),
        simplifier=Simplifier(
            client,
            model=cfg.get('openai.model'),
            max_completion_tokens=cfg.get('openai.max_completion_tokens'),
        ),
        news_fetcher=NewsDataFetcher(cfg.get('news.api_key'), base_url=cfg.get('news.base_url')),
        extraction_cache=ExtractionCache(store, timedelta(days=cfg.get('cache.extraction_days')), clock),
        simplification_cache=SimplificationCache(store, timedelta(hours=cfg.get('cache.simplification_hours')), clock),
        news_cache=NewsCache(store, timedelta(hours=cfg.get('cache.news_hours')), clock),
        clock=clock,
    )
