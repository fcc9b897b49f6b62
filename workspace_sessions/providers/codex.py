"""Codex session provider."""

import shlex
from pathlib import PurePosixPath
from typing import Optional

from ..config import SessionsConfig
from ..execution import Executor
from ..models import AgentType, DeleteResult, RawSession, SessionListItem, SessionTranscript, epoch_to_iso
from ..parsers.codex import parse_codex_rollout, parse_metadata_id, rollout_file_id
from ..parsers.common import first_user_prompt
from .base import FIND_PRINTF, log_failure, parse_find_listing, split_lines


class CodexProvider:
    """Provider for Codex rollout files.

    A rollout's canonical session ID lives in its first line and may differ
    from the ID in its file name, so lookups accept either.
    """

    agent_type = AgentType.CODEX
    display_name = "Codex"

    def __init__(self, config: Optional[SessionsConfig] = None):
        self.config = config or SessionsConfig()

    @property
    def sessions_dir(self) -> str:
        return self.config.codex_sessions_dir

    def _project_path(self, file_path: str) -> str:
        relative = file_path[len(self.sessions_dir):].lstrip("/") if file_path.startswith(self.sessions_dir) else file_path
        return str(PurePosixPath(relative).parent) if "/" in relative else ""

    async def discover_sessions(self, target: str, execute: Executor) -> list[RawSession]:
        script = (
            f"find {shlex.quote(self.sessions_dir)} -name 'rollout-*.jsonl' -type f "
            f'-printf "{FIND_PRINTF}" 2>/dev/null || true'
        )
        result = await execute(target, ["sh", "-c", script], user=self.config.exec_user)
        if not result.ok:
            log_failure(self.display_name, "discovery", target, result.stderr)
            return []

        return [
            RawSession(
                id=rollout_file_id(file_path),
                agent_type=self.agent_type,
                mtime=mtime,
                project_path=self._project_path(file_path),
                file_path=file_path,
            )
            for file_path, mtime, _size in parse_find_listing(result.stdout)
        ]

    async def get_session_details(
        self, target: str, raw: RawSession, execute: Executor
    ) -> Optional[SessionListItem]:
        result = await execute(target, ["cat", raw.file_path], user=self.config.exec_user)
        if not result.ok:
            log_failure(self.display_name, f"read {raw.file_path}", target, result.stderr)
            return None

        parsed = parse_codex_rollout(result.stdout)
        if not parsed.messages:
            return None

        return SessionListItem(
            id=parsed.session_id or raw.id,
            name=None,
            agent_type=raw.agent_type,
            project_path=raw.project_path,
            message_count=len(parsed.messages),
            last_activity=epoch_to_iso(raw.mtime),
            first_prompt=first_user_prompt(parsed.messages),
        )

    async def _list_files(self, target: str, execute: Executor) -> list[str]:
        script = f"find {shlex.quote(self.sessions_dir)} -name '*.jsonl' -type f 2>/dev/null"
        result = await execute(target, ["bash", "-c", script], user=self.config.exec_user)
        if not result.ok:
            return []
        return split_lines(result.stdout)

    async def get_session_messages(
        self, target: str, session_id: str, execute: Executor, project_path: Optional[str] = None
    ) -> Optional[SessionTranscript]:
        files = await self._list_files(target, execute)
        # Rollout names embed the session UUID, so try likely files first.
        files.sort(key=lambda f: session_id not in PurePosixPath(f).name)

        for file_path in files:
            result = await execute(target, ["cat", file_path], user=self.config.exec_user)
            if not result.ok:
                continue
            parsed = parse_codex_rollout(result.stdout)
            file_id = rollout_file_id(file_path)
            if session_id in (parsed.session_id, file_id):
                return SessionTranscript(id=parsed.session_id or file_id, messages=parsed.messages)
        return None

    async def delete_session(self, target: str, session_id: str, execute: Executor) -> DeleteResult:
        files = await self._list_files(target, execute)
        if not files:
            return DeleteResult(success=False, error="No session files found")

        for file_path in files:
            if rollout_file_id(file_path) != session_id:
                head = await execute(target, ["head", "-1", file_path], user=self.config.exec_user)
                if not head.ok or parse_metadata_id(head.stdout.strip()) != session_id:
                    continue

            result = await execute(target, ["rm", "-f", file_path], user=self.config.exec_user)
            if not result.ok:
                return DeleteResult(success=False, error=result.stderr.strip() or "Failed to delete session file")
            return DeleteResult(success=True)

        return DeleteResult(success=False, error="Session not found")
