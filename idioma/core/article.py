"""
Article data model for Idioma.

Records are immutable once written. ``to_dict`` produces the wire/document
shape shared by the HTTP responses and the document store.
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from idioma.core.exceptions import ValidationError


class ProficiencyLevel(str, Enum):
    """CEFR tiers supported by the simplifier, easiest first."""
    A2 = "A2"
    B1 = "B1"
    B2 = "B2"
    C1 = "C1"

    @classmethod
    def parse(cls, value: Any) -> "ProficiencyLevel":
        """
        Convert user input into a level.

        Raises:
            ValidationError: If the value is not one of A2, B1, B2, C1
        """
        try:
            return cls(value)
        except ValueError:
            raise ValidationError("Invalid level. Use: A2, B1, B2, or C1") from None


def _parse_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


@dataclass(frozen=True)
class ExtractedContent:
    """
    Cleaned result of parsing one URL.
    """
    source_url: str
    title: Optional[str]
    byline: Optional[str]
    site_name: Optional[str]
    display_html: str
    model_html: str
    plain_text: str
    lead_image_url: Optional[str]
    images: List[str]
    created_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            'url': self.source_url,
            'title': self.title,
            'byline': self.byline,
            'siteName': self.site_name,
            'contentHtml': self.display_html,
            'llmHtml': self.model_html,
            'textContent': self.plain_text,
            'leadImageUrl': self.lead_image_url,
            'images': list(self.images),
            'timestamp': self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExtractedContent":
        return cls(
            source_url=data['url'],
            title=data.get('title'),
            byline=data.get('byline'),
            site_name=data.get('siteName'),
            display_html=data.get('contentHtml') or '',
            model_html=data.get('llmHtml') or '',
            plain_text=data.get('textContent') or '',
            lead_image_url=data.get('leadImageUrl'),
            images=list(data.get('images') or []),
            created_at=_parse_timestamp(data['timestamp']),
        )


@dataclass(frozen=True)
class SimplifiedContent:
    """
    Leveled rewrite of one ExtractedContent.

    Metadata is copied from the parent record so a response is self-contained.
    """
    source_url: str
    level: ProficiencyLevel
    simplified_html: str
    title: Optional[str]
    byline: Optional[str]
    site_name: Optional[str]
    lead_image_url: Optional[str]
    images: List[str]
    created_at: datetime
    tokens_used: Optional[int] = None

    @classmethod
    def from_source(cls, source: ExtractedContent, level: ProficiencyLevel,
                    simplified_html: str, tokens_used: Optional[int],
                    created_at: datetime) -> "SimplifiedContent":
        return cls(
            source_url=source.source_url,
            level=level,
            simplified_html=simplified_html,
            title=source.title,
            byline=source.byline,
            site_name=source.site_name,
            lead_image_url=source.lead_image_url,
            images=list(source.images),
            created_at=created_at,
            tokens_used=tokens_used,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'originalUrl': self.source_url,
            'cefrLevel': self.level.value,
            'title': self.title,
            'byline': self.byline,
            'siteName': self.site_name,
            'simplifiedHtml': self.simplified_html,
            'leadImageUrl': self.lead_image_url,
            'images': list(self.images),
            'timestamp': self.created_at.isoformat(),
            'tokensUsed': self.tokens_used,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SimplifiedContent":
        return cls(
            source_url=data['originalUrl'],
            level=ProficiencyLevel(data['cefrLevel']),
            simplified_html=data.get('simplifiedHtml') or '',
            title=data.get('title'),
            byline=data.get('byline'),
            site_name=data.get('siteName'),
            lead_image_url=data.get('leadImageUrl'),
            images=list(data.get('images') or []),
            created_at=_parse_timestamp(data['timestamp']),
            tokens_used=data.get('tokensUsed'),
        )


@dataclass(frozen=True)
class NewsListing:
    """Cached upstream news query result for one (country, language) pair."""
    country: str
    language: str
    created_at: datetime
    articles: List[Dict[str, Any]] = field(default_factory=list)
    next_page: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'country': self.country,
            'language': self.language,
            'articles': list(self.articles),
            'nextPage': self.next_page,
            'timestamp': self.created_at.isoformat(),
        }

    def to_response(self) -> Dict[str, Any]:
        return {'results': list(self.articles), 'nextPage': self.next_page}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "NewsListing":
        return cls(
            country=data['country'],
            language=data['language'],
            created_at=_parse_timestamp(data['timestamp']),
            articles=list(data.get('articles') or []),
            next_page=data.get('nextPage'),
        )
