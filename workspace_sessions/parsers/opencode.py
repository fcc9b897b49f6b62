"""Parser for OpenCode's directory-of-JSON-documents storage.

Layout under ``~/.local/share/opencode/storage``::

    session/<project>/ses_<id>.json     one document per session
    message/<session id>/msg_<id>.json  one document per message
    part/<message id>/prt_<id>.json     one document per message part

IDs increase monotonically, so sorting file names lexically yields
chronological order at every level.
"""

import json
from typing import Optional

from ..models import SessionMessage
from .common import part_text, to_iso


def is_session_file(name: str) -> bool:
    return name.startswith("ses_") and name.endswith(".json")


def is_message_file(name: str) -> bool:
    return name.startswith("msg_") and name.endswith(".json")


def is_part_file(name: str) -> bool:
    return name.startswith("prt_") and name.endswith(".json")


def message_timestamp(message: dict) -> Optional[str]:
    time_data = message.get("time")
    if isinstance(time_data, dict):
        return to_iso(time_data.get("created"))
    return None


def is_transcript_message(message: dict) -> bool:
    return bool(message.get("id")) and message.get("role") in ("user", "assistant")


def parse_part(part: dict, role: str, timestamp: Optional[str]) -> list[SessionMessage]:
    """A text part becomes one message; a tool part becomes tool_use (+ tool_result)."""
    part_type = part.get("type")
    if part_type == "text":
        text = part_text(part)
        return [SessionMessage(type=role, content=text, timestamp=timestamp)] if text else []

    if part_type == "tool":
        state = part.get("state") if isinstance(part.get("state"), dict) else {}
        tool_id = str(part.get("callID") or part.get("id") or "")
        messages = [
            SessionMessage(
                type="tool_use",
                tool_name=str(state.get("title") or part.get("tool") or ""),
                tool_id=tool_id,
                tool_input=json.dumps(state["input"]) if state.get("input") else "",
                timestamp=timestamp,
            )
        ]
        output = state.get("output")
        if output:
            if not isinstance(output, str):
                output = json.dumps(output)
            messages.append(
                SessionMessage(type="tool_result", content=output, tool_id=tool_id, timestamp=timestamp)
            )
        return messages

    return []


def parse_opencode_message(message: dict, parts: list[dict]) -> list[SessionMessage]:
    """Normalise one message document and its (already sorted) parts."""
    if not is_transcript_message(message):
        return []
    timestamp = message_timestamp(message)
    messages = []
    for part in parts:
        messages.extend(parse_part(part, message["role"], timestamp))
    return messages
