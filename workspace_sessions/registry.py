"""Durable registry linking caller-issued session IDs to agent session IDs.

The registry is one JSON document per state directory::

    {"version": 1, "sessions": {"<perrySessionId>": {...record...}}}

Every mutation loads the whole document, changes it in memory and atomically
replaces the file. Mutations on the same directory are serialised by a
process-wide lock; readers never see a half-written file because writes go
through a temp file and ``os.replace``.
"""

import asyncio
import json
import logging
import os
import tempfile
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Callable, Optional, TypeVar, Union

from .errors import RegistryWriteError, UnsupportedRegistryVersion
from .models import AgentType

logger = logging.getLogger(__name__)

REGISTRY_FILE = "session-registry.json"
REGISTRY_VERSION = 1

T = TypeVar("T")
StateDir = Union[str, os.PathLike]


class RegistryAgentType(str, Enum):
    """Agent tags as stored in registry records."""

    CLAUDE = "claude"
    OPENCODE = "opencode"
    CODEX = "codex"


_TO_REGISTRY = {
    AgentType.CLAUDE_CODE: RegistryAgentType.CLAUDE,
    AgentType.OPENCODE: RegistryAgentType.OPENCODE,
    AgentType.CODEX: RegistryAgentType.CODEX,
}


def to_registry_agent(agent_type: AgentType) -> RegistryAgentType:
    return _TO_REGISTRY[AgentType(agent_type)]


def from_registry_agent(agent_type: str) -> AgentType:
    tag = RegistryAgentType(agent_type)
    for provider_type, registry_type in _TO_REGISTRY.items():
        if registry_type is tag:
            return provider_type
    raise ValueError(f"Unknown registry agent type: {agent_type}")


def registry_tag(agent_type: str) -> str:
    """Normalise a registry or provider agent type to the stored tag.

    Raises ValueError for anything else.
    """
    try:
        return RegistryAgentType(agent_type).value
    except ValueError:
        return to_registry_agent(AgentType(agent_type)).value


@dataclass
class SessionRecord:
    """One registry entry, keyed by perry_session_id."""

    perry_session_id: str
    workspace_name: str
    agent_type: str  # a RegistryAgentType value
    agent_session_id: Optional[str]
    project_path: Optional[str]
    created_at: str
    last_activity: str

    def to_dict(self) -> dict:
        return {
            "perrySessionId": self.perry_session_id,
            "workspaceName": self.workspace_name,
            "agentType": self.agent_type,
            "agentSessionId": self.agent_session_id,
            "projectPath": self.project_path,
            "createdAt": self.created_at,
            "lastActivity": self.last_activity,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SessionRecord":
        return cls(
            perry_session_id=data["perrySessionId"],
            workspace_name=data["workspaceName"],
            agent_type=data["agentType"],
            agent_session_id=data.get("agentSessionId"),
            project_path=data.get("projectPath"),
            created_at=data["createdAt"],
            last_activity=data["lastActivity"],
        )


# Per-directory write locks, shared by every event loop and thread in the process.
_locks: dict[str, threading.Lock] = {}
_locks_guard = threading.Lock()


def _lock_for(state_dir: StateDir) -> threading.Lock:
    key = str(Path(state_dir).resolve())
    with _locks_guard:
        lock = _locks.get(key)
        if lock is None:
            lock = _locks[key] = threading.Lock()
        return lock


def get_store_path(state_dir: StateDir) -> Path:
    return Path(state_dir) / REGISTRY_FILE


def _now() -> str:
    now = datetime.now(timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _parse_time(value: str) -> Optional[datetime]:
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (ValueError, TypeError, AttributeError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _sort_key(record: SessionRecord) -> datetime:
    return _parse_time(record.last_activity) or datetime.min.replace(tzinfo=timezone.utc)


def _not_before(candidate: str, floor: str) -> str:
    """Return candidate unless it is earlier than floor."""
    candidate_dt = _parse_time(candidate)
    floor_dt = _parse_time(floor)
    if candidate_dt is None or floor_dt is None:
        return candidate
    return floor if candidate_dt < floor_dt else candidate


def _load(state_dir: StateDir) -> dict[str, SessionRecord]:
    path = get_store_path(state_dir)
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except (FileNotFoundError, NotADirectoryError):
        return {}
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        logger.warning(f"Session registry {path} is unreadable, treating as empty: {e}")
        return {}

    if not isinstance(data, dict) or "version" not in data:
        logger.warning(f"Session registry {path} has no version, treating as empty")
        return {}
    if data["version"] != REGISTRY_VERSION:
        raise UnsupportedRegistryVersion(data["version"], path)

    sessions = data.get("sessions")
    if not isinstance(sessions, dict):
        return {}

    records = {}
    for key, raw in sessions.items():
        try:
            records[key] = SessionRecord.from_dict(raw)
        except (KeyError, TypeError, AttributeError):
            logger.warning(f"Skipping malformed registry record {key!r} in {path}")
    return records


def _save(state_dir: StateDir, records: dict[str, SessionRecord]):
    path = get_store_path(state_dir)
    document = {
        "version": REGISTRY_VERSION,
        "sessions": {key: record.to_dict() for key, record in records.items()},
    }
    tmp_name = None
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=".session-registry.", suffix=".tmp", dir=path.parent)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(document, f, indent=2)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, path)
    except OSError as e:
        if tmp_name and os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise RegistryWriteError(f"Failed to write session registry {path}: {e}") from e


def _mutate_locked(
    state_dir: StateDir,
    mutation: Callable[[dict[str, SessionRecord]], tuple[T, bool]],
) -> T:
    with _lock_for(state_dir):
        records = _load(state_dir)
        result, changed = mutation(records)
        if changed:
            _save(state_dir, records)
        return result


async def _mutate(state_dir, mutation):
    return await asyncio.to_thread(_mutate_locked, state_dir, mutation)


async def _read(state_dir: StateDir) -> dict[str, SessionRecord]:
    return await asyncio.to_thread(_load, state_dir)


async def create_session(
    state_dir: StateDir,
    perry_session_id: str,
    workspace_name: str,
    agent_type: str,
    agent_session_id: Optional[str] = None,
    project_path: Optional[str] = None,
) -> SessionRecord:
    """Create a record when the first message of a conversation is sent.

    An existing record with the same perry_session_id is replaced outright;
    callers issue a fresh ID for every conversation attempt.
    """
    tag = registry_tag(agent_type)

    def mutation(records):
        now = _now()
        record = SessionRecord(
            perry_session_id=perry_session_id,
            workspace_name=workspace_name,
            agent_type=tag,
            agent_session_id=agent_session_id,
            project_path=project_path,
            created_at=now,
            last_activity=now,
        )
        records[perry_session_id] = record
        return record, True

    return await _mutate(state_dir, mutation)


async def link_agent_session(
    state_dir: StateDir, perry_session_id: str, agent_session_id: str
) -> Optional[SessionRecord]:
    """Attach the agent's own session ID once the agent has responded."""

    def mutation(records):
        record = records.get(perry_session_id)
        if record is None:
            return None, False
        record.agent_session_id = agent_session_id
        record.last_activity = _not_before(_now(), record.last_activity)
        return record, True

    return await _mutate(state_dir, mutation)


async def touch_session(state_dir: StateDir, perry_session_id: str) -> Optional[SessionRecord]:
    def mutation(records):
        record = records.get(perry_session_id)
        if record is None:
            return None, False
        record.last_activity = _not_before(_now(), record.last_activity)
        return record, True

    return await _mutate(state_dir, mutation)


async def get_session(state_dir: StateDir, perry_session_id: str) -> Optional[SessionRecord]:
    records = await _read(state_dir)
    return records.get(perry_session_id)


def _find_by_agent_id(records, agent_type, agent_session_id) -> Optional[SessionRecord]:
    for record in records.values():
        if (
            record.agent_type == agent_type
            and record.agent_session_id is not None
            and record.agent_session_id == agent_session_id
        ):
            return record
    return None


async def find_session_by_agent_id(
    state_dir: StateDir, agent_type: str, agent_session_id: str
) -> Optional[SessionRecord]:
    records = await _read(state_dir)
    return _find_by_agent_id(records, registry_tag(agent_type), agent_session_id)


async def get_sessions_for_workspace(state_dir: StateDir, workspace_name: str) -> list[SessionRecord]:
    """Sessions of one workspace, most recently active first."""
    records = await _read(state_dir)
    matching = [r for r in records.values() if r.workspace_name == workspace_name]
    matching.sort(key=_sort_key, reverse=True)
    return matching


async def get_all_sessions(state_dir: StateDir) -> list[SessionRecord]:
    records = await _read(state_dir)
    return list(records.values())


async def delete_session(state_dir: StateDir, perry_session_id: str) -> bool:
    def mutation(records):
        if perry_session_id not in records:
            return False, False
        del records[perry_session_id]
        return True, True

    return await _mutate(state_dir, mutation)


async def import_external_session(
    state_dir: StateDir,
    perry_session_id: str,
    workspace_name: str,
    agent_type: str,
    agent_session_id: str,
    project_path: Optional[str] = None,
    created_at: Optional[str] = None,
    last_activity: Optional[str] = None,
) -> SessionRecord:
    """Adopt a session that was started directly against an agent CLI.

    If the (agent_type, agent_session_id) pair is already registered the
    existing record is returned unchanged.
    """
    tag = registry_tag(agent_type)

    def mutation(records):
        existing = _find_by_agent_id(records, tag, agent_session_id)
        if existing is not None:
            return existing, False

        now = _now()
        created = created_at or now
        record = SessionRecord(
            perry_session_id=perry_session_id,
            workspace_name=workspace_name,
            agent_type=tag,
            agent_session_id=agent_session_id,
            project_path=project_path,
            created_at=created,
            last_activity=_not_before(last_activity or now, created),
        )
        records[perry_session_id] = record
        return record, True

    return await _mutate(state_dir, mutation)


async def session_exists(
    state_dir: StateDir,
    perry_session_id: Optional[str] = None,
    agent_type: Optional[str] = None,
    agent_session_id: Optional[str] = None,
) -> bool:
    if perry_session_id:
        return await get_session(state_dir, perry_session_id) is not None
    if agent_type and agent_session_id:
        return await find_session_by_agent_id(state_dir, agent_type, agent_session_id) is not None
    return False
