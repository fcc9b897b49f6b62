"""Tests for reading and deleting OpenCode's storage tree."""

import json

import pytest

from workspace_sessions.opencode_storage import (
    delete_opencode_session,
    get_opencode_session_messages,
    list_opencode_sessions,
)


def write_json(path, data):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data))


@pytest.fixture
def storage(tmp_path):
    """A storage tree with one two-message session and one empty session."""
    base = tmp_path / "storage"
    write_json(base / "session" / "proj1" / "ses_a.json", {
        "id": "ses_a", "title": "Add tests", "directory": "/workspace/app",
        "time": {"created": 1700000000000, "updated": 1700000500000},
    })
    write_json(base / "session" / "proj1" / "ses_b.json", {"id": "ses_b", "title": "", "directory": "/workspace/app"})
    (base / "session" / "proj1" / "notes.txt").write_text("ignored")

    write_json(base / "message" / "ses_a" / "msg_001.json", {"id": "msg_001", "role": "user", "time": {"created": 1700000000000}})
    write_json(base / "message" / "ses_a" / "msg_002.json", {"id": "msg_002", "role": "assistant", "time": {"created": 1700000001000}})

    write_json(base / "part" / "msg_001" / "prt_001.json", {"type": "text", "text": "Please add tests"})
    write_json(base / "part" / "msg_002" / "prt_001.json", {"type": "text", "text": "Adding them"})
    write_json(base / "part" / "msg_002" / "prt_002.json", {
        "type": "tool", "callID": "c1", "tool": "write", "state": {"input": {"file": "t.py"}, "output": "written"},
    })
    return base


class TestListSessions:
    """Tests for list_opencode_sessions."""

    def test_lists_session_documents(self, storage):
        sessions = {s.id: s for s in list_opencode_sessions(storage)}

        assert set(sessions) == {"ses_a", "ses_b"}
        assert sessions["ses_a"].title == "Add tests"
        assert sessions["ses_a"].directory == "/workspace/app"
        assert sessions["ses_a"].message_count == 2
        assert sessions["ses_a"].mtime == 1700000500000
        assert sessions["ses_b"].message_count == 0
        assert sessions["ses_b"].mtime > 0

    def test_missing_storage(self, tmp_path):
        assert list_opencode_sessions(tmp_path / "nowhere") == []

    def test_to_dict(self, storage):
        data = next(s for s in list_opencode_sessions(storage) if s.id == "ses_a").to_dict()
        assert data["messageCount"] == 2
        assert data["file"].endswith("ses_a.json")

    def test_documents_with_unexpected_field_types(self, storage):
        write_json(storage / "session" / "proj1" / "ses_c.json", {"id": 7, "title": "numeric id"})
        write_json(storage / "session" / "proj1" / "ses_d.json", {
            "id": "ses_d", "title": ["x"], "directory": 5, "time": {"updated": "soon"},
        })

        sessions = {s.id: s for s in list_opencode_sessions(storage)}

        assert set(sessions) == {"ses_a", "ses_b", "ses_d"}
        assert sessions["ses_d"].title == ""
        assert sessions["ses_d"].directory == ""
        assert sessions["ses_d"].mtime > 0


class TestGetMessages:
    """Tests for get_opencode_session_messages."""

    def test_three_level_traversal_in_order(self, storage):
        result = get_opencode_session_messages("ses_a", storage)

        assert [m.type for m in result.messages] == ["user", "assistant", "tool_use", "tool_result"]
        assert result.messages[0].content == "Please add tests"
        assert result.messages[2].tool_name == "write"
        assert result.messages[3].content == "written"
        assert result.name == "Add tests"
        assert result.skipped == 0

    def test_corrupt_part_is_counted(self, storage):
        (storage / "part" / "msg_001" / "prt_002.json").write_text("{broken")
        result = get_opencode_session_messages("ses_a", storage)
        assert result.skipped == 1
        assert len(result.messages) == 4

    def test_unknown_session(self, storage):
        result = get_opencode_session_messages("ses_zzz", storage)
        assert result.messages == []

    def test_session_without_messages(self, storage):
        assert get_opencode_session_messages("ses_b", storage).messages == []

    def test_message_documents_with_unexpected_field_types(self, storage):
        write_json(storage / "message" / "ses_a" / "msg_003.json", {"id": 3, "role": "user"})
        write_json(storage / "message" / "ses_a" / "msg_004.json", {"id": "msg_004", "role": "assistant"})
        write_json(storage / "part" / "msg_004" / "prt_001.json", {"type": "text", "text": {"rich": True}})

        result = get_opencode_session_messages("ses_a", storage)

        assert len(result.messages) == 4

    def test_path_like_session_id_is_rejected(self, storage):
        write_json(storage / "secret.json", {"id": "ses_a"})
        assert get_opencode_session_messages("../../secret", storage).messages == []


class TestDeleteSession:
    """Tests for delete_opencode_session."""

    def test_removes_session_messages_and_parts(self, storage):
        result = delete_opencode_session("ses_a", storage)

        assert result.success
        assert not (storage / "session" / "proj1" / "ses_a.json").exists()
        assert not (storage / "message" / "ses_a").exists()
        assert not (storage / "part" / "msg_001").exists()
        assert not (storage / "part" / "msg_002").exists()
        assert (storage / "session" / "proj1" / "ses_b.json").exists()

    def test_delete_unknown(self, storage):
        result = delete_opencode_session("ses_zzz", storage)
        assert not result.success
        assert result.error == "Session not found"

    def test_delete_session_without_messages(self, storage):
        assert delete_opencode_session("ses_b", storage).success
        assert not (storage / "session" / "proj1" / "ses_b.json").exists()

    def test_path_like_session_id_is_not_deleted(self, storage):
        write_json(storage / "secret.json", {"id": "ses_a"})

        result = delete_opencode_session("../../secret", storage)

        assert not result.success
        assert result.error == "Session not found"
        assert (storage / "secret.json").exists()
        assert (storage / "message" / "ses_a").exists()
