"""Per-agent session providers and selection by agent type."""

from typing import Optional

from ..config import SessionsConfig
from ..models import AGENT_PRIORITY, AgentType
from .base import SessionProvider
from .claude_code import ClaudeCodeProvider
from .codex import CodexProvider
from .opencode import OpenCodeProvider

Provider = ClaudeCodeProvider | OpenCodeProvider | CodexProvider


def get_provider(agent_type: AgentType | str, config: Optional[SessionsConfig] = None) -> Provider:
    """Get the provider for an agent type.

    Raises ValueError for an unknown agent type.
    """
    match AgentType(agent_type):
        case AgentType.CLAUDE_CODE:
            return ClaudeCodeProvider(config)
        case AgentType.OPENCODE:
            return OpenCodeProvider(config)
        case AgentType.CODEX:
            return CodexProvider(config)


def get_all_providers(config: Optional[SessionsConfig] = None) -> list[Provider]:
    """Get one provider per agent type, in lookup priority order."""
    return [get_provider(agent_type, config) for agent_type in AGENT_PRIORITY]


__all__ = [
    "SessionProvider",
    "ClaudeCodeProvider",
    "OpenCodeProvider",
    "CodexProvider",
    "get_provider",
    "get_all_providers",
]
