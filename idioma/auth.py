"""
Bearer token verification for Idioma.

The gateway only needs a yes/no answer plus an identity to log; any object
with an ``async verify(token)`` method returning a user id (or None) can be
plugged in.
"""
import secrets
import logging
from typing import Dict, Optional

logger = logging.getLogger(__name__)


class TokenVerifier:
    """Interface for identity-verification collaborators."""

    async def verify(self, token: str) -> Optional[str]:
        """
        Verify a bearer token.

        Args:
            token: The raw token from the Authorization header

        Returns:
            The caller's user id, or None if the token is not valid
        """
        raise NotImplementedError


class StaticTokenVerifier(TokenVerifier):
    """Accepts a fixed set of tokens, each mapped to a user id."""

    def __init__(self, tokens: Dict[str, str]):
        self.tokens = dict(tokens)

    async def verify(self, token: str) -> Optional[str]:
        for known, uid in self.tokens.items():
            if secrets.compare_digest(known.encode('utf-8'), token.encode('utf-8')):
                return uid
        return None
