"""Parser for Codex rollout files (``~/.codex/sessions/**/rollout-*.jsonl``).

The first line is session metadata; every later line is an event envelope
whose ``payload`` holds either ``role``/``content`` directly or nested one
level down under ``payload.message``.
"""

import json
import logging
from pathlib import PurePosixPath
from typing import Optional

from ..models import SessionMessage
from .common import RECORD_ERRORS, ParseResult, extract_content, to_iso

logger = logging.getLogger(__name__)


def rollout_file_id(file_path: str) -> str:
    """Session ID derived from the rollout filename."""
    name = PurePosixPath(file_path).name
    return name[: -len(".jsonl")] if name.endswith(".jsonl") else name


def parse_metadata_id(line: str) -> Optional[str]:
    """Canonical session ID carried by the metadata line, if any."""
    try:
        meta = json.loads(line)
    except json.JSONDecodeError:
        return None
    if not isinstance(meta, dict):
        return None
    if isinstance(meta.get("session_id"), str) and meta["session_id"]:
        return meta["session_id"]
    payload = meta.get("payload")
    if meta.get("type") == "session_meta" and isinstance(payload, dict):
        session_id = payload.get("id")
        if isinstance(session_id, str) and session_id:
            return session_id
    return None


def parse_event(event: dict) -> Optional[SessionMessage]:
    payload = event.get("payload")
    if not isinstance(payload, dict):
        return None
    nested = payload.get("message") if isinstance(payload.get("message"), dict) else {}

    role = payload.get("role") or nested.get("role")
    if role not in ("user", "assistant"):
        return None
    content = payload.get("content") or nested.get("content")
    return SessionMessage(
        type=role,
        content=extract_content(content),
        timestamp=to_iso(event.get("timestamp")),
    )


def parse_codex_rollout(content: str) -> ParseResult:
    lines = [line for line in content.splitlines() if line.strip()]
    result = ParseResult()
    if not lines:
        return result

    result.session_id = parse_metadata_id(lines[0])

    for line in lines[1:]:
        try:
            event = json.loads(line)
        except json.JSONDecodeError:
            result.skipped += 1
            continue
        if not isinstance(event, dict):
            result.skipped += 1
            continue
        try:
            message = parse_event(event)
        except RECORD_ERRORS:
            result.skipped += 1
            continue
        if message is not None:
            result.messages.append(message)

    if result.skipped:
        logger.debug(f"Skipped {result.skipped} malformed Codex records")
    return result
