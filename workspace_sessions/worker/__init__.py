"""Session worker: an HTTP index served from inside a target, and its client."""

from .cache import WorkerClientCache, make_client_factory
from .client import WorkerClient, create_worker_client, docker_host_resolver, local_host_resolver
from .index import IndexedSession, SessionIndex

__all__ = [
    "IndexedSession",
    "SessionIndex",
    "WorkerClient",
    "WorkerClientCache",
    "create_worker_client",
    "docker_host_resolver",
    "local_host_resolver",
    "make_client_factory",
]
