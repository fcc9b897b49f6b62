"""Most recently opened sessions, kept in a small JSON file."""

import json
import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from .models import AgentType

logger = logging.getLogger(__name__)

CACHE_FILE = "recent-sessions.json"
MAX_RECENT = 20


@dataclass
class RecentSession:
    workspace_name: str
    session_id: str
    agent_type: AgentType
    last_accessed: str

    def to_dict(self) -> dict:
        return {
            "workspaceName": self.workspace_name,
            "sessionId": self.session_id,
            "agentType": self.agent_type.value,
            "lastAccessed": self.last_accessed,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "RecentSession":
        return cls(
            workspace_name=data["workspaceName"],
            session_id=data["sessionId"],
            agent_type=AgentType(data["agentType"]),
            last_accessed=data.get("lastAccessed", ""),
        )


class RecentSessionsCache:
    """Thread-safe list of recently accessed sessions, newest first."""

    def __init__(self, config_dir: Path):
        self._cache_path = Path(config_dir) / CACHE_FILE
        self._lock = threading.Lock()
        self._recent: list[RecentSession] | None = None

    def _load(self) -> list[RecentSession]:
        if self._recent is not None:
            return self._recent

        self._recent = []
        if self._cache_path.exists():
            try:
                with open(self._cache_path) as f:
                    data = json.load(f)
                self._recent = [RecentSession.from_dict(entry) for entry in data.get("recent", [])]
            except (json.JSONDecodeError, IOError, KeyError, ValueError, AttributeError) as e:
                logger.warning(f"Ignoring unreadable recent sessions file {self._cache_path}: {e}")
                self._recent = []
        return self._recent

    def _save(self):
        try:
            self._cache_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self._cache_path, "w") as f:
                json.dump({"recent": [r.to_dict() for r in self._recent or []]}, f, indent=2)
        except IOError as e:
            logger.warning(f"Could not save recent sessions: {e}")

    def get_recent(self, limit: int = 10) -> list[RecentSession]:
        with self._lock:
            return list(self._load()[:limit])

    def record_access(self, workspace_name: str, session_id: str, agent_type: AgentType):
        """Move (or add) a session to the front of the list."""
        now = datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")
        entry = RecentSession(workspace_name, session_id, AgentType(agent_type), now)
        with self._lock:
            recent = [
                r for r in self._load()
                if not (r.workspace_name == workspace_name and r.session_id == session_id)
            ]
            self._recent = [entry, *recent][:MAX_RECENT]
            self._save()

    def remove_for_workspace(self, workspace_name: str):
        with self._lock:
            self._recent = [r for r in self._load() if r.workspace_name != workspace_name]
            self._save()

    def remove_session(self, workspace_name: str, session_id: str):
        with self._lock:
            self._recent = [
                r for r in self._load()
                if not (r.workspace_name == workspace_name and r.session_id == session_id)
            ]
            self._save()
