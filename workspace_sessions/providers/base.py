"""Interface shared by the per-agent session providers."""

import logging
import re
from typing import Optional, Protocol

from ..execution import Executor
from ..models import AgentType, DeleteResult, RawSession, SessionListItem, SessionTranscript

logger = logging.getLogger(__name__)

# find -printf "%p\t%T@\t%s\n"
FIND_PRINTF = "%p\\t%T@\\t%s\\n"


class SessionProvider(Protocol):
    """Discovery, parsing and deletion for one agent family.

    Every method degrades to an empty result ([] / None / unsuccessful
    DeleteResult) when the target has no data or a command fails.
    """

    agent_type: AgentType
    display_name: str

    async def discover_sessions(self, target: str, execute: Executor) -> list[RawSession]:
        ...

    async def get_session_details(
        self, target: str, raw: RawSession, execute: Executor
    ) -> Optional[SessionListItem]:
        ...

    async def get_session_messages(
        self, target: str, session_id: str, execute: Executor, project_path: Optional[str] = None
    ) -> Optional[SessionTranscript]:
        ...

    async def delete_session(self, target: str, session_id: str, execute: Executor) -> DeleteResult:
        ...


def parse_find_listing(stdout: str) -> list[tuple[str, int, int]]:
    """Parse ``path<TAB>mtime<TAB>size`` lines into (path, mtime seconds, size)."""
    entries = []
    for line in stdout.strip().splitlines():
        parts = line.split("\t")
        if len(parts) < 2 or not parts[0]:
            continue
        try:
            mtime = int(float(parts[1]))
        except ValueError:
            mtime = 0
        try:
            size = int(parts[2]) if len(parts) > 2 else -1
        except ValueError:
            size = -1
        entries.append((parts[0], mtime, size))
    return entries


def safe_session_id(session_id: str) -> str:
    """Strip everything that could escape a shell word or a path component."""
    return re.sub(r"[^a-zA-Z0-9_-]", "", session_id)


def split_lines(stdout: str) -> list[str]:
    return [line for line in stdout.strip().splitlines() if line]


def log_failure(agent: str, action: str, target: str, stderr: str):
    logger.debug(f"{agent}: {action} failed in {target}: {stderr.strip()[:200]}")
