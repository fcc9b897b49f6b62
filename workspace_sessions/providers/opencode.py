"""OpenCode session provider.

OpenCode's storage is a three-level tree of small JSON documents, which is
slow to walk one ``cat`` at a time. Instead the worker CLI is run inside the
target (``workspace-sessions worker sessions ...``) and walks the tree locally
with opencode_storage, printing JSON.
"""

import json
import logging
from typing import Optional

from ..config import SessionsConfig
from ..execution import Executor
from ..models import AgentType, DeleteResult, RawSession, SessionListItem, SessionMessage, SessionTranscript, epoch_to_iso
from ..parsers.common import first_user_prompt
from .base import log_failure

logger = logging.getLogger(__name__)


class OpenCodeProvider:
    """Provider for OpenCode sessions."""

    agent_type = AgentType.OPENCODE
    display_name = "OpenCode"

    def __init__(self, config: Optional[SessionsConfig] = None):
        self.config = config or SessionsConfig()

    def _command(self, *args: str) -> list[str]:
        return [*self.config.worker_command, "sessions", *args]

    async def _run_json(self, target: str, execute: Executor, *args: str):
        result = await execute(target, self._command(*args), user=self.config.exec_user)
        if not result.ok:
            log_failure(self.display_name, " ".join(args), target, result.stderr)
            return None
        try:
            return json.loads(result.stdout)
        except json.JSONDecodeError:
            logger.warning(f"OpenCode: worker returned invalid JSON for '{' '.join(args)}' in {target}")
            return None

    async def discover_sessions(self, target: str, execute: Executor) -> list[RawSession]:
        data = await self._run_json(target, execute, "list")
        if not isinstance(data, list):
            return []

        sessions = []
        for item in data:
            if not isinstance(item, dict) or not item.get("id"):
                continue
            sessions.append(RawSession(
                id=item["id"],
                agent_type=self.agent_type,
                project_path=item.get("directory") or "",
                mtime=int(item.get("mtime") or 0) // 1000,
                name=item.get("title") or None,
                file_path=item.get("file") or "",
            ))
        return sessions

    async def _fetch_messages(self, target: str, session_id: str, execute: Executor) -> Optional[list[SessionMessage]]:
        data = await self._run_json(target, execute, "messages", session_id)
        if not isinstance(data, dict) or not isinstance(data.get("messages"), list):
            return None
        return [SessionMessage.from_dict(m) for m in data["messages"] if isinstance(m, dict)]

    async def get_session_details(
        self, target: str, raw: RawSession, execute: Executor
    ) -> Optional[SessionListItem]:
        messages = await self._fetch_messages(target, raw.id, execute)
        if not messages:
            return None

        conversation = [m for m in messages if m.type in ("user", "assistant")]
        return SessionListItem(
            id=raw.id,
            name=raw.name,
            agent_type=raw.agent_type,
            project_path=raw.project_path,
            message_count=len(conversation),
            last_activity=epoch_to_iso(raw.mtime),
            first_prompt=first_user_prompt(conversation),
        )

    async def get_session_messages(
        self, target: str, session_id: str, execute: Executor, project_path: Optional[str] = None
    ) -> Optional[SessionTranscript]:
        messages = await self._fetch_messages(target, session_id, execute)
        if messages is None:
            return None
        return SessionTranscript(id=session_id, messages=messages)

    async def delete_session(self, target: str, session_id: str, execute: Executor) -> DeleteResult:
        result = await execute(target, self._command("delete", session_id), user=self.config.exec_user)
        if not result.ok:
            return DeleteResult(success=False, error=result.stderr.strip() or "Failed to delete session")
        try:
            return DeleteResult.from_dict(json.loads(result.stdout))
        except (json.JSONDecodeError, AttributeError):
            return DeleteResult(success=False, error="Invalid response from worker")
