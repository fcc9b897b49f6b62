"""Claude Code session provider."""

import shlex
from pathlib import PurePosixPath
from typing import Optional

from ..config import SessionsConfig
from ..execution import Executor
from ..models import AgentType, DeleteResult, RawSession, SessionListItem, SessionTranscript, epoch_to_iso
from ..parsers.claude_code import decode_project_path, encode_project_path, parse_claude_session, transcript_messages
from ..parsers.common import first_user_prompt
from .base import FIND_PRINTF, log_failure, parse_find_listing, safe_session_id


class ClaudeCodeProvider:
    """Provider for Claude Code sessions (one JSONL file per session)."""

    agent_type = AgentType.CLAUDE_CODE
    display_name = "Claude Code"

    def __init__(self, config: Optional[SessionsConfig] = None):
        self.config = config or SessionsConfig()

    @property
    def sessions_dir(self) -> str:
        return self.config.claude_projects_dir

    async def discover_sessions(self, target: str, execute: Executor) -> list[RawSession]:
        """Discover all JSONL session files, skipping sub-agent transcripts."""
        script = (
            f"find {shlex.quote(self.sessions_dir)} -name '*.jsonl' -type f ! -name 'agent-*.jsonl' "
            f'-printf "{FIND_PRINTF}" 2>/dev/null || true'
        )
        result = await execute(target, ["bash", "-c", script], user=self.config.exec_user)
        if not result.ok:
            log_failure(self.display_name, "discovery", target, result.stderr)
            return []

        sessions = []
        for file_path, mtime, size in parse_find_listing(result.stdout):
            if size == 0:
                continue
            path = PurePosixPath(file_path)
            project_path = decode_project_path(path.parent.name)
            # Only sessions that belong to a workspace project are exposed.
            if not self.config.is_workspace_path(project_path):
                continue
            sessions.append(RawSession(
                id=path.stem,
                agent_type=self.agent_type,
                mtime=mtime,
                project_path=project_path,
                file_path=file_path,
            ))
        return sessions

    async def get_session_details(
        self, target: str, raw: RawSession, execute: Executor
    ) -> Optional[SessionListItem]:
        result = await execute(target, ["cat", raw.file_path], user=self.config.exec_user)
        if not result.ok:
            log_failure(self.display_name, f"read {raw.file_path}", target, result.stderr)
            return None

        parsed = parse_claude_session(result.stdout)
        messages = transcript_messages(parsed)
        if not messages:
            return None

        return SessionListItem(
            id=raw.id,
            name=parsed.name,
            agent_type=raw.agent_type,
            project_path=raw.project_path,
            message_count=len(messages),
            last_activity=epoch_to_iso(raw.mtime),
            first_prompt=first_user_prompt(messages),
        )

    async def _locate(self, target: str, session_id: str, execute: Executor) -> Optional[str]:
        script = (
            f"find {shlex.quote(self.sessions_dir)} -name {shlex.quote(session_id + '.jsonl')} "
            f"-type f 2>/dev/null | head -1"
        )
        result = await execute(target, ["bash", "-c", script], user=self.config.exec_user)
        if not result.ok or not result.stdout.strip():
            return None
        return result.stdout.strip().splitlines()[0]

    async def get_session_messages(
        self, target: str, session_id: str, execute: Executor, project_path: Optional[str] = None
    ) -> Optional[SessionTranscript]:
        safe_id = safe_session_id(session_id)
        if not safe_id:
            return None

        content = None
        if project_path:
            hinted = f"{self.sessions_dir}/{encode_project_path(project_path)}/{safe_id}.jsonl"
            result = await execute(target, ["cat", hinted], user=self.config.exec_user)
            if result.ok:
                content = result.stdout

        if content is None:
            file_path = await self._locate(target, safe_id, execute)
            if file_path is None:
                return None
            result = await execute(target, ["cat", file_path], user=self.config.exec_user)
            if not result.ok:
                log_failure(self.display_name, f"read {file_path}", target, result.stderr)
                return None
            content = result.stdout

        messages = [
            m for m in transcript_messages(parse_claude_session(content))
            if m.type in ("tool_use", "tool_result") or (m.content and m.content.strip())
        ]
        return SessionTranscript(id=session_id, messages=messages)

    async def delete_session(self, target: str, session_id: str, execute: Executor) -> DeleteResult:
        safe_id = safe_session_id(session_id)
        if not safe_id:
            return DeleteResult(success=False, error="Invalid session ID")

        file_path = await self._locate(target, safe_id, execute)
        if file_path is None:
            return DeleteResult(success=False, error="Session not found")

        result = await execute(target, ["rm", "-f", file_path], user=self.config.exec_user)
        if not result.ok:
            return DeleteResult(success=False, error=result.stderr.strip() or "Failed to delete session file")
        return DeleteResult(success=True)
