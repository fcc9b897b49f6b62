"""Direct access to OpenCode's on-disk storage tree.

This runs inside the target environment (through ``workspace-sessions worker
sessions ...``); hosts reach it via OpenCodeProvider.
"""

import json
import logging
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .models import DeleteResult
from .parsers.common import RECORD_ERRORS, ParseResult
from .parsers.opencode import is_message_file, is_part_file, is_session_file, parse_opencode_message
from .providers.base import safe_session_id

logger = logging.getLogger(__name__)


def default_storage_base() -> Path:
    return Path.home() / ".local" / "share" / "opencode" / "storage"


@dataclass
class OpencodeSessionInfo:
    id: str
    title: str
    directory: str
    mtime: int  # epoch milliseconds
    file: str
    message_count: int

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "directory": self.directory,
            "mtime": self.mtime,
            "file": self.file,
            "messageCount": self.message_count,
        }


def _read_json(path: Path) -> Optional[dict]:
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except (json.JSONDecodeError, UnicodeDecodeError, OSError) as e:
        logger.debug(f"Skipping unreadable OpenCode document {path}: {e}")
        return None
    return data if isinstance(data, dict) else None


def _sorted_files(directory: Path, predicate) -> list[Path]:
    try:
        return sorted((p for p in directory.iterdir() if predicate(p.name)), key=lambda p: p.name)
    except OSError:
        return []


def _document_id(data: dict) -> Optional[str]:
    """The document's ``id`` if it can safely name a storage directory."""
    doc_id = data.get("id")
    if isinstance(doc_id, str) and doc_id and safe_session_id(doc_id) == doc_id:
        return doc_id
    return None


def _text_field(data: dict, key: str) -> str:
    value = data.get(key)
    return value if isinstance(value, str) else ""


def _updated_ms(data: dict, fallback: int) -> int:
    time_data = data.get("time") if isinstance(data.get("time"), dict) else {}
    updated = time_data.get("updated")
    if isinstance(updated, bool) or not isinstance(updated, (int, float)) or updated <= 0:
        return fallback
    return int(updated)


def list_opencode_sessions(storage_base: Optional[Path] = None) -> list[OpencodeSessionInfo]:
    """List every session document; message counts come from file names only."""
    storage_base = storage_base or default_storage_base()
    session_dir = storage_base / "session"
    message_dir = storage_base / "message"

    try:
        project_dirs = [p for p in session_dir.iterdir() if p.is_dir()]
    except OSError:
        return []

    sessions = []
    for project_dir in sorted(project_dirs):
        for session_file in _sorted_files(project_dir, is_session_file):
            data = _read_json(session_file)
            internal_id = _document_id(data) if data else None
            if internal_id is None:
                logger.debug(f"Skipping OpenCode session document without a usable id: {session_file}")
                continue
            try:
                file_mtime_ms = int(session_file.stat().st_mtime * 1000)
            except OSError:
                continue

            sessions.append(OpencodeSessionInfo(
                id=internal_id,
                title=_text_field(data, "title"),
                directory=_text_field(data, "directory"),
                mtime=_updated_ms(data, file_mtime_ms),
                file=str(session_file),
                message_count=len(_sorted_files(message_dir / internal_id, is_message_file)),
            ))
    return sessions


def find_session_file(storage_base: Path, session_id: str) -> Optional[Path]:
    """Locate ``session/<project>/<session_id>.json``; unsafe IDs never match."""
    if not session_id or safe_session_id(session_id) != session_id:
        return None
    session_dir = storage_base / "session"
    try:
        project_dirs = sorted(p for p in session_dir.iterdir() if p.is_dir())
    except OSError:
        return None
    for project_dir in project_dirs:
        candidate = project_dir / f"{session_id}.json"
        if candidate.is_file():
            return candidate
    return None


def get_opencode_session_messages(session_id: str, storage_base: Optional[Path] = None) -> ParseResult:
    """Walk session document -> message documents -> part documents."""
    storage_base = storage_base or default_storage_base()
    result = ParseResult(session_id=session_id)

    session_file = find_session_file(storage_base, session_id)
    if session_file is None:
        return result

    data = _read_json(session_file)
    internal_id = _document_id(data) if data else None
    if internal_id is None:
        result.skipped += 1
        return result
    result.name = _text_field(data, "title") or None

    for msg_file in _sorted_files(storage_base / "message" / internal_id, is_message_file):
        message = _read_json(msg_file)
        if message is None:
            result.skipped += 1
            continue
        message_id = _document_id(message)
        if message_id is None:
            continue

        parts = []
        for part_file in _sorted_files(storage_base / "part" / message_id, is_part_file):
            part = _read_json(part_file)
            if part is None:
                result.skipped += 1
                continue
            parts.append(part)

        try:
            result.messages.extend(parse_opencode_message(message, parts))
        except RECORD_ERRORS as e:
            result.skipped += 1
            logger.debug(f"Skipping unreadable OpenCode message {msg_file}: {e}")

    return result


def delete_opencode_session(session_id: str, storage_base: Optional[Path] = None) -> DeleteResult:
    """Remove a session document together with its message and part subtrees."""
    storage_base = storage_base or default_storage_base()

    session_file = find_session_file(storage_base, session_id)
    if session_file is None:
        return DeleteResult(success=False, error="Session not found")

    data = _read_json(session_file)
    internal_id = _document_id(data) if data else None

    try:
        session_file.unlink()
    except OSError as e:
        return DeleteResult(success=False, error=f"Failed to delete session file: {e}")

    if not internal_id:
        logger.warning(f"OpenCode session {session_id} had no readable id; only the session file was removed")
        return DeleteResult(success=True)

    msg_dir = storage_base / "message" / internal_id
    for msg_file in _sorted_files(msg_dir, is_message_file):
        message = _read_json(msg_file)
        message_id = _document_id(message) if message else None
        if message_id:
            _remove_tree(storage_base / "part" / message_id)
    _remove_tree(msg_dir)

    return DeleteResult(success=True)


def _remove_tree(path: Path):
    if not path.exists():
        return
    try:
        shutil.rmtree(path)
    except OSError as e:
        logger.warning(f"Partial delete, could not remove {path}: {e}")
