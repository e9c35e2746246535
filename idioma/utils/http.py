"""
HTTP utilities for Idioma.
"""
import logging
from typing import Iterable, Optional
from urllib.parse import urljoin

# Configure logging
logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 30  # seconds, per attempt
MAX_ATTEMPTS = 3
RETRY_DELAY = 2  # seconds between attempts

# Headers of a current desktop Chrome; some sites refuse anything else
BROWSER_HEADERS = {
    'User-Agent': 'Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/119.0.0.0 Safari/537.36',
    'Accept': 'text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8',
    'Accept-Language': 'en-US,en;q=0.9',
    'Accept-Encoding': 'gzip, deflate',
    'Referer': 'https://www.google.com/',
    'Cache-Control': 'no-cache',
    'Pragma': 'no-cache',
    'Sec-Fetch-Dest': 'document',
    'Sec-Fetch-Mode': 'navigate',
    'Sec-Fetch-Site': 'cross-site',
    'Sec-Ch-Ua': '"Google Chrome";v="119", "Chromium";v="119", "Not?A_Brand";v="24"',
    'Sec-Ch-Ua-Mobile': '?0',
    'Sec-Ch-Ua-Platform': '"macOS"',
}


def to_absolute(src: str, base_url: str) -> str:
    """
    Resolve a possibly relative URL against the page URL.

    Args:
        src: URL as found in the document
        base_url: URL of the page the document came from

    Returns:
        The absolute URL, or ``src`` unchanged if it cannot be resolved
    """
    try:
        return urljoin(base_url, src)
    except ValueError:
        logger.debug(f"Could not resolve {src!r} against {base_url}")
        return src


def normalize_srcset(srcset: str, base_url: str) -> str:
    """
    Resolve every candidate URL of a ``srcset`` value, keeping size descriptors.
    """
    candidates = []
    for candidate in srcset.split(','):
        parts = candidate.strip().split(None, 1)
        if not parts:
            continue
        candidates.append(' '.join([to_absolute(parts[0], base_url)] + parts[1:]))
    return ', '.join(candidates)


def find_block_signature(html: str, signatures: Iterable[str]) -> Optional[str]:
    """
    Look for a known bot-block marker in a response body.

    Returns:
        The first signature found, or None
    """
    for signature in signatures:
        if signature in html:
            return signature
    return None
