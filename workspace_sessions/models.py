"""Unified session model for all agent families."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional


class AgentType(str, Enum):
    """Agent family that owns a session's native storage."""

    CLAUDE_CODE = "claude-code"
    OPENCODE = "opencode"
    CODEX = "codex"


# Order used when only a bare session ID is known.
AGENT_PRIORITY = (AgentType.CLAUDE_CODE, AgentType.OPENCODE, AgentType.CODEX)

MESSAGE_TYPES = ("user", "assistant", "system", "tool_use", "tool_result")
FIRST_PROMPT_LIMIT = 200


def epoch_to_iso(seconds: float) -> str:
    """Format epoch seconds the way JavaScript's toISOString does."""
    dt = datetime.fromtimestamp(seconds, tz=timezone.utc)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass
class SessionMessage:
    """One normalized transcript entry."""

    type: str  # one of MESSAGE_TYPES
    content: Optional[str] = None
    timestamp: Optional[str] = None

    # Tool events
    tool_name: Optional[str] = None
    tool_id: Optional[str] = None
    tool_input: Optional[str] = None

    def to_dict(self) -> dict:
        data = {
            "type": self.type,
            "content": self.content,
            "timestamp": self.timestamp,
            "toolName": self.tool_name,
            "toolId": self.tool_id,
            "toolInput": self.tool_input,
        }
        return {k: v for k, v in data.items() if v is not None}

    @classmethod
    def from_dict(cls, data: dict) -> "SessionMessage":
        return cls(
            type=data.get("type", ""),
            content=data.get("content"),
            timestamp=data.get("timestamp"),
            tool_name=data.get("toolName"),
            tool_id=data.get("toolId"),
            tool_input=data.get("toolInput"),
        )


@dataclass
class RawSession:
    """A session as found in agent storage, before its transcript is read."""

    id: str
    agent_type: AgentType
    mtime: int  # epoch seconds
    project_path: str
    file_path: str
    name: Optional[str] = None

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "agentType": self.agent_type.value,
            "mtime": self.mtime,
            "projectPath": self.project_path,
            "filePath": self.file_path,
        }
        if self.name:
            data["name"] = self.name
        return data


@dataclass
class SessionListItem:
    """Summary of a session computed from its full transcript."""

    id: str
    name: Optional[str]
    agent_type: AgentType
    project_path: str
    message_count: int
    last_activity: str
    first_prompt: Optional[str]

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "agentType": self.agent_type.value,
            "projectPath": self.project_path,
            "messageCount": self.message_count,
            "lastActivity": self.last_activity,
            "firstPrompt": self.first_prompt,
        }


@dataclass
class SessionTranscript:
    """Full message list for one session."""

    id: str
    messages: list[SessionMessage] = field(default_factory=list)
    agent_type: Optional[AgentType] = None

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "messages": [m.to_dict() for m in self.messages],
        }
        if self.agent_type is not None:
            data["agentType"] = self.agent_type.value
        return data


@dataclass
class DeleteResult:
    success: bool
    error: Optional[str] = None

    def to_dict(self) -> dict:
        data = {"success": self.success}
        if self.error:
            data["error"] = self.error
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "DeleteResult":
        return cls(success=bool(data.get("success")), error=data.get("error"))


@dataclass
class SearchResult:
    """A session file that matched a content search."""

    session_id: str
    agent_type: AgentType
    file_path: str
    match_count: int

    def to_dict(self) -> dict:
        return {
            "sessionId": self.session_id,
            "agentType": self.agent_type.value,
            "filePath": self.file_path,
            "matchCount": self.match_count,
        }
