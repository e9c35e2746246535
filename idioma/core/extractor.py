"""
Main-content extraction for Idioma.

Turns a fetched page into an ExtractedContent: readability isolates the
article subtree, images are rewritten to absolute URLs in place, and two HTML
renditions are produced, one for display and a stripped one for the model.
"""
import logging
import re
from datetime import datetime
from typing import Dict, List, Optional, Tuple

import trafilatura
from bs4 import BeautifulSoup
from readability import Document
from readability.readability import Unparseable

from idioma.core.article import ExtractedContent
from idioma.core.exceptions import ExtractionError
from idioma.utils.http import normalize_srcset, to_absolute

logger = logging.getLogger(__name__)

# Lazy-loading sites keep the real URL in one of these
IMAGE_SRC_ATTRS = ('src', 'data-src', 'data-original')
IMAGE_SRCSET_ATTRS = ('srcset', 'data-srcset')

LEAD_IMAGE_SELECTOR = (
    'meta[property="og:image"], meta[name="og:image"], '
    'meta[name="twitter:image"], meta[property="twitter:image"]'
)
SITE_NAME_SELECTOR = 'meta[property="og:site_name"], meta[name="og:site_name"]'

MODEL_DROP_TAGS = ['script', 'style', 'noscript', 'iframe']
MODEL_KEEP_ATTRS = {
    'img': {'src', 'alt'},
    'a': {'href'},
}


class ContentExtractor:
    """
    Extracts readable article content from raw HTML.
    """
    def __init__(self, parser: str = 'html.parser'):
        self.parser = parser

    def extract(self, raw_html: str, url: str, created_at: datetime) -> ExtractedContent:
        """
        Isolate and normalize the main content of a page.

        Args:
            raw_html: The page HTML as fetched
            url: URL of the page, used to resolve relative URLs
            created_at: Timestamp for the new record

        Returns:
            The populated ExtractedContent

        Raises:
            ExtractionError: If no main content could be identified
        """
        fragment_html, readable_title = self._isolate(raw_html, url)
        fragment = BeautifulSoup(fragment_html, self.parser)

        plain_text = re.sub(r'\s+', ' ', fragment.get_text(separator=' ')).strip()
        if not plain_text:
            logger.error(f"Readability found no text for {url}")
            raise ExtractionError(details="Readability parser could not extract main content from this page")

        page = BeautifulSoup(raw_html, self.parser)
        images, first_image = self._normalize_images(fragment, url)

        lead_image_url = self._meta_content(page, LEAD_IMAGE_SELECTOR)
        if lead_image_url:
            lead_image_url = to_absolute(lead_image_url, url)
        else:
            lead_image_url = first_image
        if lead_image_url and lead_image_url not in images:
            images.append(lead_image_url)

        display_html = str(fragment)
        model_html = self.to_model_html(display_html)

        title = readable_title or self._page_title(page)
        content = ExtractedContent(
            source_url=url,
            title=title,
            byline=self._byline(raw_html, url, page),
            site_name=self._meta_content(page, SITE_NAME_SELECTOR),
            display_html=display_html,
            model_html=model_html,
            plain_text=plain_text,
            lead_image_url=lead_image_url,
            images=images,
            created_at=created_at,
        )
        logger.info(
            f"Article parsed successfully: {url} title={title!r} "
            f"text_length={len(plain_text)} images={len(images)}"
        )
        return content

    def _isolate(self, raw_html: str, url: str) -> Tuple[str, Optional[str]]:
        """Run readability and return the article fragment and its title."""
        try:
            document = Document(raw_html, url=url)
            fragment_html = document.summary(html_partial=True)
            title = document.short_title() or None
        except Unparseable as e:
            logger.error(f"Readability failed to parse {url}: {e}")
            raise ExtractionError(details="Readability parser could not extract main content from this page") from e
        return fragment_html, title

    def _normalize_images(self, fragment: BeautifulSoup, url: str) -> Tuple[List[str], Optional[str]]:
        """
        Rewrite image URLs in place and collect them.

        Returns:
            The de-duplicated image URLs in document order and the first one
        """
        images: Dict[str, None] = {}
        first_image = None

        for img in fragment.find_all('img'):
            raw_src = next((img.get(attr) for attr in IMAGE_SRC_ATTRS if img.get(attr)), '')
            if raw_src:
                absolute = to_absolute(raw_src.strip(), url)
                img['src'] = absolute
                images[absolute] = None
                if first_image is None:
                    first_image = absolute

            raw_srcset = next((img.get(attr) for attr in IMAGE_SRCSET_ATTRS if img.get(attr)), '')
            if raw_srcset:
                img['srcset'] = normalize_srcset(raw_srcset, url)

        return list(images), first_image

    def to_model_html(self, display_html: str) -> str:
        """
        Strip display HTML down to structure plus image and link references.

        Args:
            display_html: Sanitized article HTML

        Returns:
            HTML with scripts, styles and embeds removed and every attribute
            dropped except img src/alt and a href
        """
        soup = BeautifulSoup(display_html, self.parser)
        for node in soup.find_all(MODEL_DROP_TAGS):
            node.decompose()
        for element in soup.find_all(True):
            keep = MODEL_KEEP_ATTRS.get(element.name, set())
            element.attrs = {name: value for name, value in element.attrs.items() if name in keep}
        return str(soup)

    def _meta_content(self, page: BeautifulSoup, selector: str) -> Optional[str]:
        meta = page.select_one(selector)
        if meta is None:
            return None
        content = (meta.get('content') or '').strip()
        return content or None

    def _page_title(self, page: BeautifulSoup) -> Optional[str]:
        if page.title and page.title.string:
            return page.title.string.strip() or None
        return None

    def _byline(self, raw_html: str, url: str, page: BeautifulSoup) -> Optional[str]:
        metadata = trafilatura.extract_metadata(raw_html, default_url=url)
        author = getattr(metadata, 'author', None) if metadata is not None else None
        if author:
            return author
        return self._meta_content(page, 'meta[name="author"]')
