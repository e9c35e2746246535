import asyncio
from datetime import timedelta

import pytest

from idioma.core.article import ProficiencyLevel, SimplifiedContent
from idioma.core.cache import (
    ARTICLE_CONTENT,
    SIMPLIFIED_ARTICLES,
    ExtractionCache,
    MemoryDocumentStore,
    NewsCache,
    SimplificationCache,
)
from idioma.core.exceptions import NotFoundError, StoreError, UpstreamError, ValidationError
from idioma.core.extractor import ContentExtractor
from idioma.core.processor import ArticleService
from idioma.core.simplifier import Simplifier

from conftest import START, FakeFetcher, FakeNewsFetcher, FakeOpenAI, article_html

URL = "https://example.com/a"


class FlakyStore(MemoryDocumentStore):
    """Memory store whose reads or writes can be switched off."""
    def __init__(self, fail_reads=False, fail_writes=False):
        super().__init__()
        self.fail_reads = fail_reads
        self.fail_writes = fail_writes

    async def add(self, collection, document, created_at):
        if self.fail_writes:
            raise StoreError(details="disk full")
        await super().add(collection, document, created_at)

    async def find_latest(self, collection, filters, newer_than=None):
        if self.fail_reads:
            raise StoreError(details="unavailable")
        return await super().find_latest(collection, filters, newer_than)


def test_concurrent_extracts_both_append_and_newest_wins(make_service, store):
    service = make_service(pages={URL: article_html()})

    async def scenario():
        first, second = await asyncio.gather(service.extract(URL), service.extract(URL))
        latest = await service.extraction_cache.get(URL)
        return first, second, latest

    first, second, latest = asyncio.run(scenario())
    assert store.count(ARTICLE_CONTENT) == 2
    assert len(service.fetcher.calls) == 2
    assert latest.created_at == max(first.created_at, second.created_at)


def test_cached_extract_skips_fetch(make_service):
    service = make_service(pages={URL: article_html()})
    first = asyncio.run(service.extract(URL))
    second = asyncio.run(service.extract(URL))
    assert service.fetcher.calls == [URL]
    assert second.title == first.title
    assert second.created_at == first.created_at


def test_extract_requires_url(make_service):
    with pytest.raises(ValidationError):
        asyncio.run(make_service().extract(""))


def test_simplify_uses_stale_extraction(make_service):
    service = make_service()
    old = ContentExtractor().extract(article_html(), URL, START - timedelta(days=10))
    asyncio.run(service.extraction_cache.put(old))

    result = asyncio.run(service.simplify(URL, "A2"))
    assert result.level is ProficiencyLevel.A2
    assert result.simplified_html == old.model_html
    assert result.title == old.title
    assert result.tokens_used == 42


def test_simplify_without_extraction_is_not_found(make_service):
    service = make_service()
    with pytest.raises(NotFoundError) as excinfo:
        asyncio.run(service.simplify(URL))
    assert "extract" in excinfo.value.details
    assert service.simplifier.client.completions.calls == []


def test_simplify_defaults_to_b1_and_caches(make_service, store):
    service = make_service(pages={URL: article_html()})
    asyncio.run(service.extract(URL))
    first = asyncio.run(service.simplify(URL))
    second = asyncio.run(service.simplify(URL, ProficiencyLevel.B1))
    assert first.level is ProficiencyLevel.B1
    assert second.created_at == first.created_at
    assert len(service.simplifier.client.completions.calls) == 1
    assert store.count(SIMPLIFIED_ARTICLES) == 1


def test_abandoned_stream_still_caches_result(make_service, store):
    service = make_service(pages={URL: article_html()})

    async def scenario():
        await service.extract(URL)
        stream = await service.simplify_stream(URL, "C1")
        first = await stream.__anext__()
        await stream.aclose()
        await service.close()
        return first

    first = asyncio.run(scenario())
    assert not first.done
    assert store.count(SIMPLIFIED_ARTICLES) == 1
    cached = asyncio.run(service.simplification_cache.get(URL, ProficiencyLevel.C1))
    assert cached.tokens_used == 42


def test_stream_returns_cached_record_on_hit(make_service):
    service = make_service(pages={URL: article_html()})
    asyncio.run(service.extract(URL))
    asyncio.run(service.simplify(URL, "B2"))
    result = asyncio.run(service.simplify_stream(URL, "B2"))
    assert isinstance(result, SimplifiedContent)
    assert len(service.simplifier.client.completions.calls) == 1


def test_failed_stream_is_not_cached(make_service, store):
    client = FakeOpenAI(chunk_size=8, error=RuntimeError("connection dropped"), fail_after=2)
    service = make_service(pages={URL: article_html()}, openai_client=client)

    async def scenario():
        await service.extract(URL)
        stream = await service.simplify_stream(URL, "A2")
        received = []
        with pytest.raises(UpstreamError) as excinfo:
            async for chunk in stream:
                received.append(chunk)
        return received, excinfo.value

    received, error = asyncio.run(scenario())
    assert len(received) == 2
    assert error.message == "Failed to simplify article"
    assert error.details == "connection dropped"
    assert store.count(SIMPLIFIED_ARTICLES) == 0


def test_store_read_failure_degrades_to_miss(clock):
    flaky = FlakyStore(fail_reads=True, fail_writes=True)
    service = ArticleService(
        fetcher=FakeFetcher({URL: article_html()}),
        extractor=ContentExtractor(),
        simplifier=Simplifier(FakeOpenAI()),
        news_fetcher=FakeNewsFetcher(),
        extraction_cache=ExtractionCache(flaky, clock=clock),
        simplification_cache=SimplificationCache(flaky, clock=clock),
        news_cache=NewsCache(flaky, clock=clock),
        clock=clock,
    )
    content = asyncio.run(service.extract(URL))
    assert content.images == ["https://example.com/pic.jpg"]
    listing = asyncio.run(service.news("us", "en"))
    assert listing.next_page == "page-2"

    with pytest.raises(StoreError):
        asyncio.run(service.simplify(URL))


def test_news_requires_both_parameters(make_service):
    service = make_service()
    with pytest.raises(ValidationError) as excinfo:
        asyncio.run(service.news("es", None))
    assert excinfo.value.message == "Both 'country' and 'language' parameters are required"
    assert service.news_fetcher.calls == []


def test_simplify_survives_failed_cache_write(clock):
    flaky = FlakyStore()
    service = ArticleService(
        fetcher=FakeFetcher({URL: article_html()}),
        extractor=ContentExtractor(),
        simplifier=Simplifier(FakeOpenAI()),
        news_fetcher=FakeNewsFetcher(),
        extraction_cache=ExtractionCache(flaky, clock=clock),
        simplification_cache=SimplificationCache(flaky, clock=clock),
        news_cache=NewsCache(flaky, clock=clock),
        clock=clock,
    )
    extracted = asyncio.run(service.extract(URL))
    flaky.fail_writes = True

    result = asyncio.run(service.simplify(URL, "B2"))
    assert isinstance(result, SimplifiedContent)
    assert result.level is ProficiencyLevel.B2
    assert result.simplified_html == extracted.model_html
    assert flaky.count(SIMPLIFIED_ARTICLES) == 0
