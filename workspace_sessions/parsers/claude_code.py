"""Parser for Claude Code JSONL transcripts.

Claude Code writes one JSON record per line to
``~/.claude/projects/<encoded-project-path>/<session-id>.jsonl``. The project
directory name is the absolute project path with every ``/`` replaced by ``-``.
"""

import json
import logging
from typing import Optional

from ..models import SessionMessage
from .common import RECORD_ERRORS, ParseResult, extract_content, part_text, to_iso

logger = logging.getLogger(__name__)

RESULT_SUBTYPES = ("success", "error_max_turns", "error_during_execution")


def decode_project_path(encoded: str) -> str:
    """Decode directory name back to original path."""
    return encoded.replace("-", "/")


def encode_project_path(project_path: str) -> str:
    return project_path.replace("/", "-")


def _tool_result_text(content) -> Optional[str]:
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return "\n".join(text for text in map(part_text, content) if text)
    return None


def _cost(value) -> float:
    if isinstance(value, bool) or value is None:
        return 0.0
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def _interleaved(parts: list, timestamp: Optional[str]) -> list[SessionMessage]:
    """Split a content array into text, tool_use and tool_result messages, in order."""
    messages = []
    for part in parts:
        if not isinstance(part, dict):
            continue
        part_type = part.get("type")
        if part_type == "text":
            text = part_text(part)
            if text:
                messages.append(SessionMessage(type="assistant", content=text, timestamp=timestamp))
        elif part_type == "tool_use" and "name" in part and "id" in part:
            messages.append(
                SessionMessage(
                    type="tool_use",
                    tool_name=str(part["name"]),
                    tool_id=str(part["id"]),
                    tool_input=json.dumps(part.get("input"), indent=2),
                    timestamp=timestamp,
                )
            )
        elif part_type == "tool_result" and "tool_use_id" in part:
            messages.append(
                SessionMessage(
                    type="tool_result",
                    tool_id=str(part["tool_use_id"]),
                    content=_tool_result_text(part.get("content")),
                    timestamp=timestamp,
                )
            )
    return messages


def parse_record(obj: dict) -> list[SessionMessage]:
    """Convert one decoded JSONL record into zero or more messages."""
    if obj.get("isMeta"):
        return []

    timestamp = to_iso(obj.get("timestamp")) or to_iso(obj.get("ts"))
    record_type = obj.get("type")
    role = obj.get("role")
    inner = obj.get("message") if isinstance(obj.get("message"), dict) else {}

    if record_type == "user" or role == "user":
        raw = obj.get("content") or inner.get("content")
        if isinstance(raw, list) and any(isinstance(p, dict) and p.get("type") == "tool_result" for p in raw):
            return _interleaved(raw, timestamp)
        return [SessionMessage(type="user", content=extract_content(raw), timestamp=timestamp)]

    if record_type == "assistant" or role == "assistant":
        raw = obj.get("content") or inner.get("content")
        if isinstance(raw, list):
            return _interleaved(raw, timestamp)
        text = extract_content(raw)
        return [SessionMessage(type="assistant", content=text, timestamp=timestamp)] if text else []

    if record_type == "result":
        subtype = obj.get("subtype")
        if subtype not in RESULT_SUBTYPES:
            return []
        if subtype == "success":
            summary = f"Session completed ({obj.get('num_turns') or 0} turns, ${_cost(obj.get('cost_usd')):.4f})"
        else:
            summary = f"Session ended: {subtype}"
        return [SessionMessage(type="system", content=summary, timestamp=timestamp)]

    if record_type == "system" and obj.get("subtype") != "init":
        return [SessionMessage(type="system", content=extract_content(obj.get("content")), timestamp=timestamp)]

    return []


def parse_claude_session(content: str) -> ParseResult:
    """Parse a whole transcript; malformed lines are counted and skipped."""
    result = ParseResult()
    for line_num, line in enumerate(content.splitlines(), start=1):
        if not line.strip():
            continue
        try:
            obj = json.loads(line)
        except json.JSONDecodeError:
            result.skipped += 1
            logger.debug(f"Skipping malformed Claude Code record on line {line_num}")
            continue
        if not isinstance(obj, dict):
            result.skipped += 1
            continue

        try:
            messages = parse_record(obj)
        except RECORD_ERRORS as e:
            result.skipped += 1
            logger.debug(f"Skipping unreadable Claude Code record on line {line_num}: {e}")
            continue

        if result.name is None and obj.get("type") == "system" and obj.get("subtype") == "session_name":
            name = obj.get("name")
            result.name = name if isinstance(name, str) and name else None
        if result.session_id is None and isinstance(obj.get("sessionId"), str):
            result.session_id = obj["sessionId"]

        result.messages.extend(messages)
    return result


def extract_session_name(content: str) -> Optional[str]:
    """Return the human-assigned session name, if the transcript has one."""
    return parse_claude_session(content).name


def transcript_messages(result: ParseResult) -> list[SessionMessage]:
    """Messages shown in a transcript: system records are only kept for naming."""
    return [m for m in result.messages if m.type != "system"]
