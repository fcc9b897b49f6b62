"""Helpers shared by the per-agent transcript parsers."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from ..models import FIRST_PROMPT_LIMIT, SessionMessage, epoch_to_iso

# Epoch values above this are milliseconds, not seconds.
_MS_THRESHOLD = 10_000_000_000

# Raised by well-formed JSON whose fields have unexpected types.
RECORD_ERRORS = (AttributeError, KeyError, TypeError, ValueError)


@dataclass
class ParseResult:
    """Messages recovered from one session, plus what had to be skipped."""

    messages: list[SessionMessage] = field(default_factory=list)
    skipped: int = 0
    name: Optional[str] = None
    session_id: Optional[str] = None


def part_text(part) -> Optional[str]:
    """Text of a ``{"type": "text", "text": ...}`` content block, or None."""
    if isinstance(part, dict) and part.get("type") == "text":
        text = part.get("text")
        if isinstance(text, str) and text:
            return text
    return None


def extract_content(content) -> Optional[str]:
    """Extract text from message content (handles both string and list formats)."""
    if not content:
        return None
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        texts = [text for text in map(part_text, content) if text]
        return "\n".join(texts) or None
    return None


def to_iso(value) -> Optional[str]:
    """Normalise a record timestamp (ISO string or epoch s/ms) to ISO-8601."""
    if value is None or value == "":
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    seconds = value / 1000 if value > _MS_THRESHOLD else value
    try:
        return epoch_to_iso(seconds)
    except (OverflowError, OSError, ValueError):
        return None


def first_user_prompt(messages: list[SessionMessage]) -> Optional[str]:
    for msg in messages:
        if msg.type == "user" and msg.content and msg.content.strip():
            return msg.content[:FIRST_PROMPT_LIMIT]
    return None


def iso_sort_key(value: Optional[str]) -> float:
    if not value:
        return 0.0
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).timestamp()
    except ValueError:
        return 0.0
