"""
Cache management for Idioma.

Every cache is an append-only log of immutable documents. A write inserts a
new record and a read returns the newest record for the key that is younger
than the cache's staleness window, so concurrent writers never conflict.
"""
import asyncio
import json
import logging
import sqlite3
from contextlib import closing, contextmanager
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

from idioma.core.article import ExtractedContent, NewsListing, ProficiencyLevel, SimplifiedContent
from idioma.core.exceptions import StoreError

logger = logging.getLogger(__name__)

# Collection names
ARTICLE_CONTENT = "articleContent"
SIMPLIFIED_ARTICLES = "simplifiedArticles"
NEWS_ARTICLES = "articles"

# Staleness windows
EXTRACTION_MAX_AGE = timedelta(days=7)
SIMPLIFICATION_MAX_AGE = timedelta(hours=24)
NEWS_MAX_AGE = timedelta(hours=24)

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DocumentStore:
    """
    Insert-only document store queried by field equality, newest first.
    """
    async def add(self, collection: str, document: Dict[str, Any], created_at: datetime) -> None:
        raise NotImplementedError

    async def find_latest(self, collection: str, filters: Dict[str, Any],
                          newer_than: Optional[datetime] = None) -> Optional[Dict[str, Any]]:
        """
        Return the most recent document matching every filter.

        Args:
            collection: Collection to search
            filters: Field/value pairs that must all match
            newer_than: Exclusive lower bound on the document's creation time

        Returns:
            The document, or None
        """
        raise NotImplementedError


class MemoryDocumentStore(DocumentStore):
    """In-process store, used for tests and throwaway runs."""
    def __init__(self):
        self.collections: Dict[str, List[Tuple[datetime, int, Dict[str, Any]]]] = {}
        self._sequence = 0

    async def add(self, collection: str, document: Dict[str, Any], created_at: datetime) -> None:
        self._sequence += 1
        self.collections.setdefault(collection, []).append(
            (created_at, self._sequence, json.loads(json.dumps(document)))
        )

    async def find_latest(self, collection: str, filters: Dict[str, Any],
                          newer_than: Optional[datetime] = None) -> Optional[Dict[str, Any]]:
        matches = [
            (created_at, sequence, document)
            for created_at, sequence, document in self.collections.get(collection, [])
            if all(document.get(field) == value for field, value in filters.items())
            and (newer_than is None or created_at > newer_than)
        ]
        if not matches:
            return None
        return dict(max(matches, key=lambda match: (match[0], match[1]))[2])

    def count(self, collection: str) -> int:
        return len(self.collections.get(collection, []))


class SQLiteDocumentStore(DocumentStore):
    """
    SQLite-backed store. Calls run in a worker thread so the event loop
    never blocks on disk.
    """
    def __init__(self, path: str = "cache/idioma.db"):
        self.path = Path(path)
        self._init_db()

    @contextmanager
    def _connect(self):
        """Connection that commits on success and is always closed."""
        with closing(sqlite3.connect(self.path)) as conn:
            with conn:
                yield conn

    def _init_db(self):
        """Initialize the SQLite database for caching."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        try:
            with self._connect() as conn:
                conn.execute("""
                    CREATE TABLE IF NOT EXISTS documents (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        collection TEXT NOT NULL,
                        created_at REAL NOT NULL,
                        body TEXT NOT NULL
                    )
                """)
                conn.execute("""
                    CREATE INDEX IF NOT EXISTS documents_by_age
                    ON documents (collection, created_at)
                """)
        except sqlite3.Error as e:
            raise StoreError(details=str(e)) from e

    def _insert(self, collection: str, body: str, created_at: float) -> None:
        with self._connect() as conn:
            conn.execute(
                "INSERT INTO documents (collection, created_at, body) VALUES (?, ?, ?)",
                (collection, created_at, body)
            )

    def _select(self, collection: str, filters: Dict[str, Any],
                newer_than: Optional[float]) -> Optional[str]:
        clauses = ["collection = ?"]
        params: List[Any] = [collection]
        for field, value in filters.items():
            clauses.append("json_extract(body, ?) = ?")
            params.extend([f"$.{field}", value])
        if newer_than is not None:
            clauses.append("created_at > ?")
            params.append(newer_than)

        with self._connect() as conn:
            row = conn.execute(
                f"""
                SELECT body FROM documents
                WHERE {' AND '.join(clauses)}
                ORDER BY created_at DESC, id DESC
                LIMIT 1
                """,
                params
            ).fetchone()
        return row[0] if row else None

    async def add(self, collection: str, document: Dict[str, Any], created_at: datetime) -> None:
        try:
            await asyncio.to_thread(self._insert, collection, json.dumps(document), created_at.timestamp())
        except sqlite3.Error as e:
            raise StoreError(details=str(e)) from e

    async def find_latest(self, collection: str, filters: Dict[str, Any],
                          newer_than: Optional[datetime] = None) -> Optional[Dict[str, Any]]:
        bound = newer_than.timestamp() if newer_than is not None else None
        try:
            body = await asyncio.to_thread(self._select, collection, filters, bound)
        except sqlite3.Error as e:
            raise StoreError(details=str(e)) from e
        return json.loads(body) if body is not None else None


class RecordCache:
    """
    Base class for a time-windowed view over one collection.
    """
    collection = ""

    def __init__(self, store: DocumentStore, max_age: timedelta, clock: Clock = utcnow):
        self.store = store
        self.max_age = max_age
        self.clock = clock

    async def _latest(self, filters: Dict[str, Any], windowed: bool = True) -> Optional[Dict[str, Any]]:
        newer_than = self.clock() - self.max_age if windowed else None
        return await self.store.find_latest(self.collection, filters, newer_than=newer_than)

    async def _put(self, document: Dict[str, Any], created_at: datetime) -> None:
        size = len(json.dumps(document).encode('utf-8'))
        logger.info(f"Document size ({self.collection}): {size} bytes ({size / 1024:.2f} KB)")
        await self.store.add(self.collection, document, created_at)


class ExtractionCache(RecordCache):
    """Extracted article content keyed by source URL."""
    collection = ARTICLE_CONTENT

    def __init__(self, store: DocumentStore, max_age: timedelta = EXTRACTION_MAX_AGE, clock: Clock = utcnow):
        super().__init__(store, max_age, clock)

    async def get(self, url: str) -> Optional[ExtractedContent]:
        """Most recent non-stale record for ``url``."""
        document = await self._latest({'url': url})
        return ExtractedContent.from_dict(document) if document else None

    async def get_latest(self, url: str) -> Optional[ExtractedContent]:
        """Most recent record for ``url`` regardless of age."""
        document = await self._latest({'url': url}, windowed=False)
        return ExtractedContent.from_dict(document) if document else None

    async def put(self, content: ExtractedContent) -> None:
        await self._put(content.to_dict(), content.created_at)


class SimplificationCache(RecordCache):
    """Leveled rewrites keyed by (source URL, level)."""
    collection = SIMPLIFIED_ARTICLES

    def __init__(self, store: DocumentStore, max_age: timedelta = SIMPLIFICATION_MAX_AGE, clock: Clock = utcnow):
        super().__init__(store, max_age, clock)

    async def get(self, url: str, level: ProficiencyLevel) -> Optional[SimplifiedContent]:
        document = await self._latest({'originalUrl': url, 'cefrLevel': level.value})
        return SimplifiedContent.from_dict(document) if document else None

    async def put(self, content: SimplifiedContent) -> None:
        await self._put(content.to_dict(), content.created_at)


class NewsCache(RecordCache):
    """Upstream news listings keyed by (country, language)."""
    collection = NEWS_ARTICLES

    def __init__(self, store: DocumentStore, max_age: timedelta = NEWS_MAX_AGE, clock: Clock = utcnow):
        super().__init__(store, max_age, clock)

    async def get(self, country: str, language: str) -> Optional[NewsListing]:
        document = await self._latest({'country': country, 'language': language})
        return NewsListing.from_dict(document) if document else None

    async def put(self, listing: NewsListing) -> None:
        await self._put(listing.to_dict(), listing.created_at)
