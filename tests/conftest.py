"""
Shared pytest fixtures and fakes for Idioma tests.
"""
import asyncio
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

from idioma.config import Config
from idioma.core.article import NewsListing
from idioma.core.cache import ExtractionCache, MemoryDocumentStore, NewsCache, SimplificationCache
from idioma.core.exceptions import FetchError
from idioma.core.extractor import ContentExtractor
from idioma.core.processor import ArticleService
from idioma.core.simplifier import Simplifier
from idioma.server import create_app

START = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)

LOREM = (
    "The city council approved a new plan for public transport on Monday, "
    "promising more buses, safer bike lanes and longer opening hours for stations. "
)


def article_html(words: int = 500, image: str = '<img src="/pic.jpg" alt="Picture">', head: str = '') -> str:
    """A news page with one long paragraph inside an article element."""
    sentence_words = LOREM.split()
    text = ' '.join(sentence_words[i % len(sentence_words)] for i in range(words))
    return (
        "<html><head><title>Transit plan approved</title>"
        f"{head}</head><body>"
        "<nav><a href='/'>Home</a> <a href='/world'>World</a></nav>"
        "<article><h1>Transit plan approved</h1>"
        f"{image}<p>{text}</p></article>"
        "<footer>Copyright Example News</footer>"
        "</body></html>"
    )


class FakeClock:
    """Returns ``now`` and then moves it forward by ``step``."""
    def __init__(self, start: datetime = START, step: timedelta = timedelta(seconds=1)):
        self.now = start
        self.step = step

    def __call__(self) -> datetime:
        current = self.now
        self.now += self.step
        return current


class FakeFetcher:
    def __init__(self, pages=None):
        self.pages = dict(pages or {})
        self.calls = []

    async def fetch(self, url):
        self.calls.append(url)
        await asyncio.sleep(0)
        if url not in self.pages:
            raise FetchError(details=f"no page for {url}")
        return self.pages[url]

    async def close_session(self):
        pass


class FakeNewsFetcher:
    def __init__(self, articles=None, next_page="page-2"):
        self.articles = articles if articles is not None else [
            {'title': 'Headline', 'link': 'https://example.com/a', 'description': 'Short text'},
        ]
        self.next_page = next_page
        self.calls = []

    async def fetch(self, country, language, created_at):
        self.calls.append((country, language))
        return NewsListing(country=country, language=language, created_at=created_at,
                           articles=list(self.articles), next_page=self.next_page)

    async def close_session(self):
        pass


def echo_reply(kwargs) -> str:
    """Model stand-in that returns the article HTML it was given."""
    return kwargs['messages'][1]['content'].split(':\n\n', 1)[1]


class FakeCompletions:
    def __init__(self, reply=echo_reply, usage_tokens=42, chunk_size=16,
                 error=None, fail_after=None, report_usage=True):
        self.reply = reply
        self.usage_tokens = usage_tokens
        self.chunk_size = chunk_size
        self.error = error
        self.fail_after = fail_after
        self.report_usage = report_usage
        self.calls = []

    def _text(self, kwargs):
        return self.reply(kwargs) if callable(self.reply) else self.reply

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None and self.fail_after is None:
            raise self.error
        if kwargs.get('stream'):
            return self._stream(self._text(kwargs))
        return SimpleNamespace(
            choices=[SimpleNamespace(message=SimpleNamespace(content=self._text(kwargs)))],
            usage=SimpleNamespace(total_tokens=self.usage_tokens),
        )

    async def _stream(self, text):
        pieces = [text[i:i + self.chunk_size] for i in range(0, len(text), self.chunk_size)]
        for index, piece in enumerate(pieces):
            if self.fail_after is not None and index >= self.fail_after:
                raise self.error
            yield SimpleNamespace(
                choices=[SimpleNamespace(delta=SimpleNamespace(content=piece))], usage=None)
        if self.report_usage:
            yield SimpleNamespace(choices=[], usage=SimpleNamespace(total_tokens=self.usage_tokens))


class FakeOpenAI:
    def __init__(self, **kwargs):
        self.completions = FakeCompletions(**kwargs)
        self.chat = SimpleNamespace(completions=self.completions)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return MemoryDocumentStore()


@pytest.fixture
def make_service(store, clock):
    """Build an ArticleService over fakes; keyword arguments replace them."""
    def _make(pages=None, openai_client=None, news_fetcher=None):
        return ArticleService(
            fetcher=FakeFetcher(pages),
            extractor=ContentExtractor(),
            simplifier=Simplifier(openai_client if openai_client is not None else FakeOpenAI()),
            news_fetcher=news_fetcher or FakeNewsFetcher(),
            extraction_cache=ExtractionCache(store, clock=clock),
            simplification_cache=SimplificationCache(store, clock=clock),
            news_cache=NewsCache(store, clock=clock),
            clock=clock,
        )
    return _make


@pytest.fixture
def quiet_config():
    """Configuration with defaults only, unaffected by the environment."""
    return Config(environ={})


@pytest.fixture
def make_client(quiet_config):
    def _make(service, verifier=None):
        return TestClient(create_app(service=service, verifier=verifier, cfg=quiet_config))
    return _make
