"""Run commands inside a target environment and capture their output."""

import asyncio
import logging
import subprocess
from dataclasses import dataclass
from typing import Optional, Protocol

logger = logging.getLogger(__name__)

TIMEOUT_EXIT_CODE = 124
NOT_FOUND_EXIT_CODE = 127


@dataclass
class ExecResult:
    stdout: str
    stderr: str
    exit_code: int

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


class Executor(Protocol):
    """Callable that runs argv inside target, optionally as a given user."""

    async def __call__(self, target: str, argv: list[str], user: Optional[str] = None) -> ExecResult:
        ...


async def run_process(argv: list[str], timeout: float) -> ExecResult:
    """Run argv locally; failures come back as exit codes, never exceptions."""
    try:
        proc = await asyncio.create_subprocess_exec(
            *argv,
            stdin=subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        logger.warning(f"Could not start {argv[0]}: {e}")
        return ExecResult(stdout="", stderr=str(e), exit_code=NOT_FOUND_EXIT_CODE)

    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        proc.kill()
        try:
            await asyncio.wait_for(proc.communicate(), timeout=5)
        except (asyncio.TimeoutError, ProcessLookupError):
            pass
        logger.warning(f"Command timed out after {timeout}s: {argv[0]}")
        return ExecResult(stdout="", stderr=f"timed out after {timeout}s", exit_code=TIMEOUT_EXIT_CODE)

    return ExecResult(
        stdout=stdout.decode(errors="replace"),
        stderr=stderr.decode(errors="replace"),
        exit_code=proc.returncode if proc.returncode is not None else 1,
    )


class DockerExecutor:
    """Executes commands in a container with ``docker exec``."""

    def __init__(self, docker_binary: str = "docker", timeout: float = 60.0):
        self.docker_binary = docker_binary
        self.timeout = timeout

    def build_argv(self, target: str, argv: list[str], user: Optional[str] = None) -> list[str]:
        command = [self.docker_binary, "exec"]
        if user:
            command += ["-u", user]
        return command + [target, *argv]

    async def __call__(self, target: str, argv: list[str], user: Optional[str] = None) -> ExecResult:
        return await run_process(self.build_argv(target, argv, user), self.timeout)


class LocalExecutor:
    """Executes commands on this host; the target name is ignored."""

    def __init__(self, timeout: float = 60.0):
        self.timeout = timeout

    async def __call__(self, target: str, argv: list[str], user: Optional[str] = None) -> ExecResult:
        return await run_process(argv, self.timeout)
