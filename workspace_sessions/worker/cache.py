"""One worker client per target, and the provider contract on top of it."""

import functools
import logging
from typing import Awaitable, Callable, Optional

from ..config import SessionsConfig
from ..errors import WorkerUnavailableError
from ..execution import Executor
from ..models import AgentType, DeleteResult, RawSession, SessionListItem, SessionMessage, SessionTranscript, epoch_to_iso
from .client import HostResolver, WorkerClient, create_worker_client

logger = logging.getLogger(__name__)

WORKER_MESSAGE_LIMIT = 1000

ClientFactory = Callable[[str], Awaitable[WorkerClient]]


def worker_agent_type(tag: str) -> AgentType:
    return AgentType.CLAUDE_CODE if tag == "claude" else AgentType(tag)


def make_client_factory(
    executor: Executor,
    config: Optional[SessionsConfig] = None,
    resolve_host: Optional[HostResolver] = None,
) -> ClientFactory:
    return functools.partial(create_worker_client, executor=executor, config=config, resolve_host=resolve_host)


class WorkerClientCache:
    """Caches connected WorkerClients by target name.

    A client whose worker becomes unreachable is evicted so the next call
    reconnects (and restarts the worker if needed).
    """

    def __init__(self, factory: ClientFactory):
        self._factory = factory
        self._clients: dict[str, WorkerClient] = {}

    def __contains__(self, target: str) -> bool:
        return target in self._clients

    async def get(self, target: str) -> WorkerClient:
        client = self._clients.get(target)
        if client is not None:
            return client

        created = await self._factory(target)
        # Another caller may have connected while we were awaiting.
        client = self._clients.get(target)
        if client is None:
            self._clients[target] = created
            return created
        await created.aclose()
        return client

    async def clear(self, target: Optional[str] = None):
        if target is not None:
            clients = [self._clients.pop(target)] if target in self._clients else []
        else:
            clients = list(self._clients.values())
            self._clients.clear()
        for client in clients:
            await client.aclose()

    async def _call(self, target: str, method: str, *args, **kwargs):
        client = await self.get(target)
        try:
            return await getattr(client, method)(*args, **kwargs)
        except WorkerUnavailableError:
            logger.warning(f"Worker in {target} went away, dropping cached client")
            await self.clear(target)
            raise

    async def discover_sessions(self, target: str) -> list[RawSession]:
        sessions = await self._call(target, "list_sessions")
        return [
            RawSession(
                id=s.id,
                agent_type=worker_agent_type(s.agent_type),
                project_path=s.directory,
                mtime=s.last_activity // 1000,
                name=s.title or None,
                file_path=s.file_path,
            )
            for s in sessions
        ]

    async def get_session_details(self, target: str, raw: RawSession) -> Optional[SessionListItem]:
        session = await self._call(target, "get_session", raw.id)
        if session is None:
            return None
        return SessionListItem(
            id=session.id,
            name=session.title or None,
            agent_type=raw.agent_type,
            project_path=session.directory,
            message_count=session.message_count,
            last_activity=epoch_to_iso(session.last_activity / 1000),
            first_prompt=session.first_prompt,
        )

    async def get_session_messages(self, target: str, session_id: str) -> Optional[SessionTranscript]:
        data = await self._call(target, "get_messages", session_id, limit=WORKER_MESSAGE_LIMIT, offset=0)
        messages = [SessionMessage.from_dict(m) for m in data.get("messages") or [] if isinstance(m, dict)]
        if not messages:
            return None
        return SessionTranscript(id=session_id, messages=messages)

    async def delete_session(self, target: str, session_id: str) -> DeleteResult:
        return await self._call(target, "delete_session", session_id)
