"""HTTP client for the worker running inside a target."""

import logging
import shlex
from typing import Awaitable, Callable, Optional
from urllib.parse import quote

import httpx
import tenacity

from ..config import SessionsConfig
from ..errors import WorkerError, WorkerUnavailableError
from ..execution import Executor, run_process
from ..models import DeleteResult
from .index import IndexedSession

logger = logging.getLogger(__name__)

WORKER_LOG = "/tmp/workspace-sessions-worker.log"

HostResolver = Callable[[str], Awaitable[Optional[str]]]


async def docker_host_resolver(target: str) -> Optional[str]:
    """IP address of a running container, or None."""
    result = await run_process(
        ["docker", "inspect", "-f", "{{range .NetworkSettings.Networks}}{{.IPAddress}}{{end}}", target],
        timeout=10,
    )
    address = result.stdout.strip()
    return address if result.ok and address else None


async def local_host_resolver(target: str) -> Optional[str]:
    return "127.0.0.1"


class WorkerClient:
    """Async client for the worker HTTP API.

    Transport failures raise WorkerUnavailableError; unexpected HTTP statuses
    raise WorkerError. A missing session is None, never an error.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url
        self._client = httpx.AsyncClient(base_url=base_url, timeout=timeout, transport=transport)

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            return await self._client.request(method, path, **kwargs)
        except httpx.TransportError as e:
            raise WorkerUnavailableError(f"Worker at {self.base_url} unreachable: {e}") from e

    @staticmethod
    def _json(response: httpx.Response, action: str):
        if response.is_error:
            raise WorkerError(f"Failed to {action}: HTTP {response.status_code}")
        try:
            return response.json()
        except ValueError as e:
            raise WorkerError(f"Failed to {action}: invalid JSON") from e

    async def health(self, timeout: Optional[float] = None) -> dict:
        kwargs = {"timeout": timeout} if timeout is not None else {}
        response = await self._request("GET", "/health", **kwargs)
        return self._json(response, "get health")

    async def is_healthy(self, timeout: Optional[float] = None) -> bool:
        try:
            await self.health(timeout=timeout)
        except WorkerError:
            return False
        return True

    async def list_sessions(self) -> list[IndexedSession]:
        data = self._json(await self._request("GET", "/sessions"), "list sessions")
        return [IndexedSession.from_dict(s) for s in data.get("sessions", [])]

    async def get_session(self, session_id: str) -> Optional[IndexedSession]:
        response = await self._request("GET", f"/sessions/{quote(session_id, safe='')}")
        if response.status_code == 404:
            return None
        data = self._json(response, "get session")
        return IndexedSession.from_dict(data["session"])

    async def get_messages(self, session_id: str, limit: Optional[int] = None, offset: Optional[int] = None) -> dict:
        params = {}
        if limit is not None:
            params["limit"] = limit
        if offset is not None:
            params["offset"] = offset
        response = await self._request("GET", f"/sessions/{quote(session_id, safe='')}/messages", params=params)
        return self._json(response, "get messages")

    async def delete_session(self, session_id: str) -> DeleteResult:
        response = await self._request("DELETE", f"/sessions/{quote(session_id, safe='')}")
        # A 404 still carries {"success": false, "error": ...}.
        try:
            return DeleteResult.from_dict(response.json())
        except (ValueError, AttributeError) as e:
            raise WorkerError(f"Failed to delete session: HTTP {response.status_code}") from e

    async def aclose(self):
        await self._client.aclose()


async def start_worker(target: str, executor: Executor, config: SessionsConfig):
    command = shlex.join([*config.worker_command, "serve", "--port", str(config.worker_port)])
    logger.info(f"Starting worker in {target}")
    await executor(
        target,
        ["sh", "-c", f"nohup {command} > {WORKER_LOG} 2>&1 &"],
        user=config.exec_user,
    )


async def wait_until_healthy(client: WorkerClient, config: SessionsConfig):
    retryer = tenacity.AsyncRetrying(
        retry=tenacity.retry_if_exception_type(WorkerError),
        wait=tenacity.wait_fixed(config.worker_startup_poll_interval),
        stop=tenacity.stop_after_delay(config.worker_startup_timeout),
        reraise=True,
    )
    async for attempt in retryer:
        with attempt:
            await client.health(timeout=config.worker_health_timeout)


async def create_worker_client(
    target: str,
    executor: Executor,
    config: Optional[SessionsConfig] = None,
    resolve_host: Optional[HostResolver] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> WorkerClient:
    """Connect to the worker in target, starting it first if it is not running."""
    config = config or SessionsConfig()
    resolve_host = resolve_host or docker_host_resolver

    host = await resolve_host(target)
    if not host:
        raise WorkerUnavailableError(f"Could not get address for {target}")

    client = WorkerClient(
        f"http://{host}:{config.worker_port}",
        timeout=config.worker_request_timeout,
        transport=transport,
    )
    if await client.is_healthy(timeout=config.worker_health_timeout):
        return client

    await start_worker(target, executor, config)
    try:
        await wait_until_healthy(client, config)
    except WorkerError as e:
        await client.aclose()
        raise WorkerUnavailableError(f"Worker failed to start in {target}") from e
    return client
