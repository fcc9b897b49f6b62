"""In-process index of the Claude Code and OpenCode sessions on this machine.

The worker serves this index over HTTP so a host can list and read sessions
with one request instead of one command per file.
"""

import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from ..models import DeleteResult
from ..opencode_storage import default_storage_base, delete_opencode_session, get_opencode_session_messages, list_opencode_sessions
from ..parsers.claude_code import decode_project_path, parse_claude_session, transcript_messages
from ..parsers.common import first_user_prompt

logger = logging.getLogger(__name__)

DEFAULT_MESSAGE_LIMIT = 50


def default_claude_dir() -> Path:
    return Path.home() / ".claude" / "projects"


@dataclass
class IndexedSession:
    """A session as reported by the worker."""

    id: str
    agent_type: str  # 'claude' | 'opencode'
    title: str
    directory: str
    file_path: str
    message_count: int
    first_prompt: Optional[str]
    last_activity: int  # epoch milliseconds

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "agentType": self.agent_type,
            "title": self.title,
            "directory": self.directory,
            "filePath": self.file_path,
            "messageCount": self.message_count,
            "firstPrompt": self.first_prompt,
            "lastActivity": self.last_activity,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "IndexedSession":
        return cls(
            id=data["id"],
            agent_type=data.get("agentType", ""),
            title=data.get("title") or "",
            directory=data.get("directory") or "",
            file_path=data.get("filePath") or "",
            message_count=int(data.get("messageCount") or 0),
            first_prompt=data.get("firstPrompt"),
            last_activity=int(data.get("lastActivity") or 0),
        )


def page_from_end(items: list, limit: int, offset: int) -> list:
    """The ``limit`` items that end ``offset`` items before the last one."""
    total = len(items)
    end = max(0, total - offset)
    start = max(0, end - limit)
    return items[start:end]


class SessionIndex:
    """Map of session ID to IndexedSession, rebuilt on refresh()."""

    def __init__(self, claude_dir: Optional[Path] = None, opencode_storage: Optional[Path] = None):
        self.claude_dir = claude_dir or default_claude_dir()
        self.opencode_storage = opencode_storage or default_storage_base()
        self._sessions: dict[str, IndexedSession] = {}
        self._lock = threading.Lock()
        self._initialized = False

    def refresh(self):
        sessions = {}
        for session in self._scan_claude():
            sessions[session.id] = session
        for session in self._scan_opencode():
            sessions[session.id] = session
        with self._lock:
            self._sessions = sessions
            self._initialized = True
        logger.debug(f"Indexed {len(sessions)} sessions")

    def _ensure(self, session_id: Optional[str] = None):
        with self._lock:
            stale = not self._initialized or (session_id is not None and session_id not in self._sessions)
        if stale:
            self.refresh()

    def all_sessions(self) -> list[IndexedSession]:
        self._ensure()
        with self._lock:
            sessions = list(self._sessions.values())
        return sorted(sessions, key=lambda s: s.last_activity, reverse=True)

    def get(self, session_id: str) -> Optional[IndexedSession]:
        self._ensure(session_id)
        with self._lock:
            return self._sessions.get(session_id)

    def _scan_claude(self) -> list[IndexedSession]:
        try:
            project_dirs = sorted(p for p in self.claude_dir.iterdir() if p.is_dir())
        except OSError:
            return []

        sessions = []
        for project_dir in project_dirs:
            try:
                files = sorted(project_dir.glob("*.jsonl"))
            except OSError:
                continue
            for path in files:
                if path.name.startswith("agent-"):
                    continue
                session = self._index_claude_file(path, project_dir.name)
                if session is not None:
                    sessions.append(session)
        return sessions

    def _index_claude_file(self, path: Path, project_name: str) -> Optional[IndexedSession]:
        try:
            stat = path.stat()
            content = path.read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            logger.debug(f"Skipping {path}: {e}")
            return None
        if not content.strip():
            return None

        parsed = parse_claude_session(content)
        messages = transcript_messages(parsed)
        first_prompt = first_user_prompt(messages)
        directory = decode_project_path(project_name)
        return IndexedSession(
            id=path.stem,
            agent_type="claude",
            title=parsed.name or first_prompt or directory,
            directory=directory,
            file_path=str(path),
            message_count=len(messages),
            first_prompt=first_prompt,
            last_activity=int(stat.st_mtime * 1000),
        )

    def _scan_opencode(self) -> list[IndexedSession]:
        return [
            IndexedSession(
                id=info.id,
                agent_type="opencode",
                title=info.title,
                directory=info.directory,
                file_path=info.file,
                message_count=info.message_count,
                first_prompt=info.title or None,
                last_activity=info.mtime,
            )
            for info in list_opencode_sessions(self.opencode_storage)
        ]

    def get_messages(self, session_id: str, limit: int = DEFAULT_MESSAGE_LIMIT, offset: int = 0) -> dict:
        """Page of a session's transcript counted back from its newest message."""
        session = self.get(session_id)
        if session is None:
            return {"id": session_id, "messages": [], "total": 0}

        if session.agent_type == "claude":
            try:
                content = Path(session.file_path).read_text(encoding="utf-8", errors="replace")
            except OSError as e:
                logger.warning(f"Could not read {session.file_path}: {e}")
                return {"id": session_id, "messages": [], "total": 0}
            messages = transcript_messages(parse_claude_session(content))
        else:
            messages = get_opencode_session_messages(session_id, self.opencode_storage).messages

        return {
            "id": session_id,
            "messages": [m.to_dict() for m in page_from_end(messages, limit, offset)],
            "total": len(messages),
        }

    def delete(self, session_id: str) -> DeleteResult:
        session = self.get(session_id)
        if session is None:
            return DeleteResult(success=False, error="Session not found")

        if session.agent_type == "claude":
            try:
                Path(session.file_path).unlink()
            except OSError as e:
                return DeleteResult(success=False, error=str(e))
        else:
            result = delete_opencode_session(session_id, self.opencode_storage)
            if not result.success:
                return result

        with self._lock:
            self._sessions.pop(session_id, None)
        return DeleteResult(success=True)
