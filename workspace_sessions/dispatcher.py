"""Cross-agent session operations routed to the right provider."""

import asyncio
import logging
import shlex
from pathlib import PurePosixPath
from typing import Optional

from .config import SessionsConfig
from .errors import WorkerError
from .execution import Executor
from .models import AGENT_PRIORITY, AgentType, DeleteResult, RawSession, SearchResult, SessionListItem, SessionTranscript
from .parsers.codex import rollout_file_id
from .parsers.common import iso_sort_key
from .parsers.opencode import is_session_file
from .providers import get_all_providers, get_provider

logger = logging.getLogger(__name__)

SEARCH_MAX_FILES = 100

# Agents the in-target worker indexes.
WORKER_AGENTS = (AgentType.CLAUDE_CODE, AgentType.OPENCODE)


def classify_search_hit(path: str, match_count: int, config: Optional[SessionsConfig] = None) -> Optional[SearchResult]:
    """Map a file that matched a content search to the session that owns it.

    Returns None for files that are not whole sessions, such as OpenCode
    message and part fragments or Claude sub-agent transcripts.
    """
    config = config or SessionsConfig()
    name = PurePosixPath(path).name

    if path.startswith(config.claude_projects_dir + "/"):
        if not name.endswith(".jsonl") or name.startswith("agent-"):
            return None
        return SearchResult(name[: -len(".jsonl")], AgentType.CLAUDE_CODE, path, match_count)

    if path.startswith(config.opencode_storage_dir + "/"):
        relative = path[len(config.opencode_storage_dir) + 1:]
        if relative.startswith("session/") and is_session_file(name):
            return SearchResult(name[: -len(".json")], AgentType.OPENCODE, path, match_count)
        return None

    if path.startswith(config.codex_sessions_dir + "/"):
        if not name.endswith(".jsonl"):
            return None
        return SearchResult(rollout_file_id(path), AgentType.CODEX, path, match_count)

    return None


def parse_search_output(stdout: str) -> list[tuple[str, int]]:
    """Parse ``rg -c`` output (``path:count`` per line)."""
    hits = []
    for line in stdout.strip().splitlines():
        path, sep, count = line.rpartition(":")
        if not sep or not path:
            continue
        try:
            hits.append((path, int(count)))
        except ValueError:
            continue
    return hits


class SessionDispatcher:
    """Discover, read, delete and search sessions across all agent families.

    When a worker cache is given, Claude Code and OpenCode requests go to the
    in-target worker first and fall back to the command-based providers if
    the worker cannot be reached.
    """

    def __init__(self, executor: Executor, config: Optional[SessionsConfig] = None, worker_cache=None):
        self.executor = executor
        self.config = config or SessionsConfig()
        self.worker_cache = worker_cache

    def _uses_worker(self, agent_type: AgentType) -> bool:
        return self.worker_cache is not None and agent_type in WORKER_AGENTS

    async def _discover_via_worker(self, target: str) -> Optional[list[RawSession]]:
        """Worker-indexed sessions under the workspace roots, or None if the worker failed."""
        try:
            indexed = await self.worker_cache.discover_sessions(target)
        except WorkerError as e:
            logger.warning(f"Worker discovery failed for {target}, falling back to providers: {e}")
            return None
        return [
            raw for raw in indexed
            if raw.agent_type != AgentType.CLAUDE_CODE or self.config.is_workspace_path(raw.project_path)
        ]

    async def _discover_with(self, target: str, providers) -> list[RawSession]:
        results = await asyncio.gather(*(provider.discover_sessions(target, self.executor) for provider in providers))
        return [raw for sessions in results for raw in sessions]

    async def discover_all_sessions(self, target: str) -> list[RawSession]:
        """Discover sessions of every agent family concurrently."""
        if self.worker_cache is None:
            return await self._discover_with(target, get_all_providers(self.config))

        indexed, codex = await asyncio.gather(
            self._discover_via_worker(target),
            get_provider(AgentType.CODEX, self.config).discover_sessions(target, self.executor),
        )
        if indexed is None:
            indexed = await self._discover_with(
                target, [get_provider(agent_type, self.config) for agent_type in WORKER_AGENTS]
            )
        return indexed + codex

    async def get_session_details(self, target: str, raw: RawSession) -> Optional[SessionListItem]:
        if self._uses_worker(raw.agent_type):
            try:
                return await self.worker_cache.get_session_details(target, raw)
            except WorkerError as e:
                logger.warning(f"Worker details failed for {raw.id}, falling back to provider: {e}")
        return await get_provider(raw.agent_type, self.config).get_session_details(target, raw, self.executor)

    async def get_session_messages(
        self,
        target: str,
        session_id: str,
        agent_type: AgentType,
        project_path: Optional[str] = None,
    ) -> Optional[SessionTranscript]:
        agent_type = AgentType(agent_type)
        transcript = None
        if self._uses_worker(agent_type):
            try:
                transcript = await self.worker_cache.get_session_messages(target, session_id)
            except WorkerError as e:
                logger.warning(f"Worker messages failed for {session_id}, falling back to provider: {e}")
            else:
                if transcript is None:
                    return None

        if transcript is None:
            provider = get_provider(agent_type, self.config)
            transcript = await provider.get_session_messages(target, session_id, self.executor, project_path)
            if transcript is None:
                return None

        transcript.agent_type = agent_type
        return transcript

    async def find_session_messages(self, target: str, session_id: str) -> Optional[SessionTranscript]:
        """Look a bare session ID up in each agent family, in priority order."""
        for agent_type in AGENT_PRIORITY:
            transcript = await self.get_session_messages(target, session_id, agent_type)
            if transcript and transcript.messages:
                return transcript
        return None

    async def delete_session(self, target: str, session_id: str, agent_type: AgentType) -> DeleteResult:
        try:
            agent_type = AgentType(agent_type)
        except ValueError:
            return DeleteResult(success=False, error="Unknown agent type")

        if self._uses_worker(agent_type):
            try:
                return await self.worker_cache.delete_session(target, session_id)
            except WorkerError as e:
                logger.warning(f"Worker delete failed for {session_id}, falling back to provider: {e}")
        return await get_provider(agent_type, self.config).delete_session(target, session_id, self.executor)

    async def list_sessions(self, target: str) -> list[SessionListItem]:
        """Discover and summarise every session, newest first.

        Sessions whose transcript turns out to be empty are left out.
        """
        raws = await self.discover_all_sessions(target)
        details = await asyncio.gather(*(self.get_session_details(target, raw) for raw in raws))
        items = [item for item in details if item is not None]
        items.sort(key=lambda item: iso_sort_key(item.last_activity), reverse=True)
        return items

    async def search_sessions(self, target: str, query: str) -> list[SearchResult]:
        """Case-insensitive content search over every agent's storage."""
        roots = " ".join(shlex.quote(root) for root in self.config.search_roots)
        script = (
            f"rg -c -i --no-messages -- {shlex.quote(query)} {roots} 2>/dev/null "
            f"| head -{SEARCH_MAX_FILES}"
        )
        result = await self.executor(target, ["bash", "-c", script], user=self.config.exec_user)
        if not result.ok or not result.stdout.strip():
            return []

        results = []
        for path, count in parse_search_output(result.stdout):
            hit = classify_search_hit(path, count, self.config)
            if hit is not None:
                results.append(hit)
        logger.debug(f"Search for {query!r} in {target}: {len(results)} sessions")
        return results
