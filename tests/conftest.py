"""Shared fixtures: a scripted executor standing in for docker exec."""

import pytest

from workspace_sessions.config import SessionsConfig
from workspace_sessions.execution import ExecResult


class FakeExecutor:
    """Answers commands from a list of (fragment, result) rules.

    The first rule whose fragment occurs in the space-joined argv wins;
    unmatched commands fail with exit code 1.
    """

    def __init__(self):
        self.calls = []
        self.rules = []

    def on(self, fragment: str, stdout: str = "", stderr: str = "", exit_code: int = 0):
        self.rules.append((fragment, ExecResult(stdout, stderr, exit_code)))
        return self

    def commands(self) -> list[str]:
        return [" ".join(argv) for _, argv, _ in self.calls]

    async def __call__(self, target, argv, user=None):
        self.calls.append((target, list(argv), user))
        command = " ".join(argv)
        for fragment, result in self.rules:
            if fragment in command:
                return result
        return ExecResult("", "no such file", 1)


@pytest.fixture
def executor():
    return FakeExecutor()


@pytest.fixture
def config():
    return SessionsConfig()
