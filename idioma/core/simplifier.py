"""
CEFR-level article rewriting for Idioma.
"""
import logging
from dataclasses import dataclass
from typing import AsyncIterator, Dict, List, Optional

import openai

from idioma.core.article import ProficiencyLevel
from idioma.core.exceptions import ConfigurationError, EmptyCompletionError, UpstreamError

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gpt-5-nano"
MAX_COMPLETION_TOKENS = 3000

LEVEL_GUIDELINES = {
    ProficiencyLevel.A2: "- Simple present/past tense, 10-15 word sentences, basic vocabulary",
    ProficiencyLevel.B1: "- Mix simple/compound sentences, common vocabulary, clear structure",
    ProficiencyLevel.B2: "- Varied sentences, sophisticated vocabulary, detailed explanations",
    ProficiencyLevel.C1: "- Complex structures, advanced vocabulary, nuanced explanations",
}

SYSTEM_PROMPT = """Simplify this news article for CEFR {level} level learners. Preserve all <img> tags exactly.

{level} guidelines:
{guidelines}

Return only simplified HTML, no explanations."""

USER_PROMPT = """Please simplify this article for {level} level learners. Preserve all <img> tags exactly:

{html}"""


@dataclass(frozen=True)
class Completion:
    """Result of a blocking simplification call."""
    text: str
    tokens_used: int


@dataclass(frozen=True)
class SimplifyChunk:
    """
    One event of a streamed simplification.

    ``done`` is False for content deltas; the single final chunk has
    ``done=True``, empty content and the total token count.
    """
    content: str
    done: bool = False
    total_tokens: Optional[int] = None


def build_messages(model_html: str, level: ProficiencyLevel) -> List[Dict[str, str]]:
    """Chat messages for rewriting ``model_html`` at ``level``."""
    return [
        {"role": "system", "content": SYSTEM_PROMPT.format(
            level=level.value, guidelines=LEVEL_GUIDELINES[level])},
        {"role": "user", "content": USER_PROMPT.format(level=level.value, html=model_html)},
    ]


class Simplifier:
    """
    Rewrites article HTML at a CEFR level with an OpenAI chat model.
    """
    def __init__(self, client: Optional[openai.AsyncOpenAI], model: str = DEFAULT_MODEL,
                 max_completion_tokens: int = MAX_COMPLETION_TOKENS):
        self.client = client
        self.model = model
        self.max_completion_tokens = max_completion_tokens

    def _require_client(self) -> openai.AsyncOpenAI:
        if self.client is None:
            raise ConfigurationError("OpenAI API key not configured")
        return self.client

    async def simplify(self, model_html: str, level: ProficiencyLevel) -> Completion:
        """
        Rewrite the article in one blocking completion call.

        Args:
            model_html: Stripped article HTML
            level: Target CEFR level

        Returns:
            The simplified HTML and the tokens billed

        Raises:
            EmptyCompletionError: If the model returned no content
            UpstreamError: If the API call failed
        """
        client = self._require_client()
        logger.info(f"Calling OpenAI: level={level.value} model={self.model} "
                    f"content_length={len(model_html)} streaming=False")
        try:
            completion = await client.chat.completions.create(
                model=self.model,
                messages=build_messages(model_html, level),
                max_completion_tokens=self.max_completion_tokens,
                stream=False,
            )
        except openai.OpenAIError as e:
            raise UpstreamError("Failed to simplify article", details=str(e)) from e

        text = completion.choices[0].message.content if completion.choices else None
        if not text:
            logger.error(f"OpenAI returned empty response for level {level.value}")
            raise EmptyCompletionError()

        tokens_used = completion.usage.total_tokens if completion.usage else 0
        logger.info(f"OpenAI simplification completed: level={level.value} "
                    f"simplified_length={len(text)} tokens={tokens_used}")
        return Completion(text=text, tokens_used=tokens_used)

    async def stream(self, model_html: str, level: ProficiencyLevel) -> AsyncIterator[SimplifyChunk]:
        """
        Rewrite the article, yielding text deltas as the model produces them.

        The last chunk yielded is the completion sentinel carrying the token
        count: the provider's reported usage when available, else the number of
        deltas received.
        """
        client = self._require_client()
        logger.info(f"Calling OpenAI: level={level.value} model={self.model} "
                    f"content_length={len(model_html)} streaming=True")
        deltas = 0
        usage_tokens = None
        try:
            response = await client.chat.completions.create(
                model=self.model,
                messages=build_messages(model_html, level),
                max_completion_tokens=self.max_completion_tokens,
                stream=True,
                stream_options={"include_usage": True},
            )
            async for chunk in response:
                if getattr(chunk, 'usage', None):
                    usage_tokens = chunk.usage.total_tokens
                if not chunk.choices:
                    continue
                content = chunk.choices[0].delta.content
                if content:
                    deltas += 1
                    yield SimplifyChunk(content=content)
        except openai.OpenAIError as e:
            raise UpstreamError("Failed to simplify article", details=str(e)) from e

        total_tokens = usage_tokens if usage_tokens is not None else deltas
        logger.info(f"OpenAI streaming completed: level={level.value} deltas={deltas} tokens={total_tokens}")
        yield SimplifyChunk(content='', done=True, total_tokens=total_tokens)
