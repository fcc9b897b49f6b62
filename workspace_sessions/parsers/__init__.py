"""Pure parsers turning each agent's raw storage into SessionMessage lists."""

from .claude_code import (
    decode_project_path,
    encode_project_path,
    extract_session_name,
    parse_claude_session,
    transcript_messages,
)
from .codex import parse_codex_rollout, rollout_file_id
from .common import ParseResult, extract_content, first_user_prompt
from .opencode import parse_opencode_message

__all__ = [
    "ParseResult",
    "extract_content",
    "first_user_prompt",
    "decode_project_path",
    "encode_project_path",
    "extract_session_name",
    "parse_claude_session",
    "transcript_messages",
    "parse_codex_rollout",
    "rollout_file_id",
    "parse_opencode_message",
]
