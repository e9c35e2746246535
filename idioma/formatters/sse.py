"""
Server-sent-event style framing for streamed simplifications.
"""
import json
from typing import Any, Dict

from idioma.core.simplifier import SimplifyChunk


def format_event(payload: Dict[str, Any]) -> str:
    return f"data: {json.dumps(payload)}\n\n"


def format_chunk(chunk: SimplifyChunk) -> str:
    """
    Frame one chunk.

    Deltas become ``{"content": ..., "done": false}``; the final chunk becomes
    ``{"content": "", "done": true, "totalTokens": N}``.
    """
    if chunk.done:
        return format_event({'content': '', 'done': True, 'totalTokens': chunk.total_tokens})
    return format_event({'content': chunk.content, 'done': False})


def format_error(message: str) -> str:
    """Terminal event for a stream that failed after output began."""
    return format_event({'content': '', 'done': True, 'error': message})
