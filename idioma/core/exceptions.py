"""
Error taxonomy for Idioma.

Every error carries the HTTP status the gateway answers with, a short
``error`` message and an optional human-readable ``details`` string.
"""
from typing import Dict, Optional


class IdiomaError(Exception):
    """Base exception for Idioma."""
    status_code = 500
    default_message = "Internal error"

    def __init__(self, message: Optional[str] = None, details: Optional[str] = None):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message if details is None else f"{self.message}: {details}")

    def to_dict(self) -> Dict[str, str]:
        body = {'error': self.message}
        if self.details:
            body['details'] = self.details
        return body


class ValidationError(IdiomaError):
    """Bad or missing request input."""
    status_code = 400
    default_message = "Invalid request"


class AuthError(IdiomaError):
    """Missing or invalid bearer token."""
    status_code = 401
    default_message = "Unauthorized"


class BlockedError(IdiomaError):
    """The fetch target actively blocked the request."""
    status_code = 403
    default_message = "Access denied - site may be blocking automated requests"


class NotFoundError(IdiomaError):
    """A required record does not exist yet."""
    status_code = 404
    default_message = "Not found"


class ExtractionError(IdiomaError):
    """No main content could be identified in a page."""
    status_code = 422
    default_message = "Unable to parse article content"


class FetchError(IdiomaError):
    """Fetching a page failed after all attempts."""
    default_message = "Failed to fetch article"


class UpstreamError(IdiomaError):
    """The language model or a third-party API failed."""
    default_message = "Upstream service failed"


class EmptyCompletionError(UpstreamError):
    """The model returned no content."""
    default_message = "Failed to generate simplified content"


class StoreError(IdiomaError):
    """Document store read or write failure."""
    default_message = "Document store failure"


class ConfigurationError(IdiomaError):
    """A required setting (usually an API key) is missing."""
    default_message = "Service not configured"
