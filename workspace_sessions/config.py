"""Runtime configuration for session discovery inside target environments."""

import os
import shlex
from dataclasses import dataclass, field
from pathlib import Path

ENV_PREFIX = "WORKSPACE_SESSIONS_"

DEFAULT_HOME = "/home/workspace"
DEFAULT_WORKSPACE_ROOTS = ("/workspace", "/home/workspace")
DEFAULT_EXEC_USER = "workspace"
DEFAULT_WORKER_COMMAND = ("workspace-sessions", "worker")
DEFAULT_WORKER_PORT = 7392
DEFAULT_STATE_DIR = Path.home() / ".local" / "state" / "workspace-sessions"


@dataclass
class SessionsConfig:
    """Where agent storage lives inside a target, and how to reach it.

    Paths are target-side POSIX paths, kept as strings because they are
    interpolated into commands that run inside the target.
    """

    home: str = DEFAULT_HOME
    workspace_roots: tuple[str, ...] = DEFAULT_WORKSPACE_ROOTS
    exec_user: str | None = DEFAULT_EXEC_USER
    worker_command: tuple[str, ...] = DEFAULT_WORKER_COMMAND
    worker_port: int = DEFAULT_WORKER_PORT
    worker_request_timeout: float = 30.0
    worker_health_timeout: float = 2.0
    worker_startup_timeout: float = 15.0
    worker_startup_poll_interval: float = 0.2
    exec_timeout: float = 60.0
    state_dir: Path = field(default_factory=lambda: DEFAULT_STATE_DIR)

    @property
    def claude_projects_dir(self) -> str:
        return f"{self.home}/.claude/projects"

    @property
    def opencode_storage_dir(self) -> str:
        return f"{self.home}/.local/share/opencode/storage"

    @property
    def codex_sessions_dir(self) -> str:
        return f"{self.home}/.codex/sessions"

    @property
    def search_roots(self) -> list[str]:
        return [self.claude_projects_dir, self.opencode_storage_dir, self.codex_sessions_dir]

    def is_workspace_path(self, path: str) -> bool:
        """True if path lies under one of the known workspace roots."""
        return any(path.startswith(root) for root in self.workspace_roots)

    @classmethod
    def from_env(cls, environ=None) -> "SessionsConfig":
        """Build a config from WORKSPACE_SESSIONS_* environment variables."""
        env = os.environ if environ is None else environ

        def get(name):
            value = env.get(ENV_PREFIX + name)
            return value if value else None

        config = cls()
        if get("HOME"):
            config.home = get("HOME").rstrip("/")
        if get("WORKSPACE_ROOTS"):
            config.workspace_roots = tuple(
                root for root in get("WORKSPACE_ROOTS").split(os.pathsep) if root
            )
        if get("EXEC_USER") is not None:
            config.exec_user = get("EXEC_USER")
        if get("WORKER_COMMAND"):
            config.worker_command = tuple(shlex.split(get("WORKER_COMMAND")))
        if get("WORKER_PORT"):
            config.worker_port = int(get("WORKER_PORT"))
        if get("EXEC_TIMEOUT"):
            config.exec_timeout = float(get("EXEC_TIMEOUT"))
        if get("STATE_DIR"):
            config.state_dir = Path(get("STATE_DIR")).expanduser()
        return config
