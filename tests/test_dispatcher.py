"""Tests for cross-agent routing and content search."""

import asyncio
import json

import pytest

from workspace_sessions.dispatcher import SessionDispatcher, classify_search_hit, parse_search_output
from workspace_sessions.errors import WorkerUnavailableError
from workspace_sessions.models import AgentType, DeleteResult, RawSession, SessionListItem, SessionMessage, SessionTranscript

HOME = "/home/workspace"
PROJECTS = f"{HOME}/.claude/projects"
STORAGE = f"{HOME}/.local/share/opencode/storage"
CODEX = f"{HOME}/.codex/sessions"


def run(coro):
    return asyncio.run(coro)


def jsonl(*records) -> str:
    return "\n".join(json.dumps(r) for r in records) + "\n"


class FakeWorkerCache:
    """Stands in for WorkerClientCache; fails every call when down."""

    def __init__(self, down=False, sessions=None):
        self.down = down
        self.calls = []
        self.sessions = sessions if sessions is not None else [
            RawSession("w1", AgentType.CLAUDE_CODE, 1700000000, "/workspace/app", "/f/w1.jsonl"),
        ]

    def _check(self, name):
        self.calls.append(name)
        if self.down:
            raise WorkerUnavailableError("worker down")

    async def discover_sessions(self, target):
        self._check("discover")
        return list(self.sessions)

    async def get_session_details(self, target, raw):
        self._check("details")
        return SessionListItem(raw.id, None, raw.agent_type, raw.project_path, 3, "2023-11-14T22:13:20.000Z", "hi")

    async def get_session_messages(self, target, session_id):
        self._check("messages")
        if session_id == "missing":
            return None
        return SessionTranscript(session_id, [SessionMessage(type="user", content="from worker")])

    async def delete_session(self, target, session_id):
        self._check("delete")
        return DeleteResult(success=True)


class TestClassifySearchHit:
    """Tests for mapping search hits to sessions."""

    def test_claude(self):
        hit = classify_search_hit(f"{PROJECTS}/-workspace-app/abc.jsonl", 3)
        assert (hit.session_id, hit.agent_type, hit.match_count) == ("abc", AgentType.CLAUDE_CODE, 3)

    def test_claude_subagent_skipped(self):
        assert classify_search_hit(f"{PROJECTS}/-workspace-app/agent-1.jsonl", 1) is None

    def test_opencode_session_document(self):
        hit = classify_search_hit(f"{STORAGE}/session/proj/ses_123.json", 2)
        assert (hit.session_id, hit.agent_type) == ("ses_123", AgentType.OPENCODE)

    def test_opencode_fragments_skipped(self):
        assert classify_search_hit(f"{STORAGE}/part/msg_1/prt_1.json", 1) is None
        assert classify_search_hit(f"{STORAGE}/message/ses_1/msg_1.json", 1) is None

    def test_codex(self):
        hit = classify_search_hit(f"{CODEX}/2025/01/02/rollout-x.jsonl", 5)
        assert (hit.session_id, hit.agent_type) == ("rollout-x", AgentType.CODEX)

    def test_unrelated_path(self):
        assert classify_search_hit("/etc/passwd", 1) is None

    def test_parse_search_output(self):
        stdout = "/a/b:c.jsonl:4\n/x.jsonl:notanumber\nnocolon\n"
        assert parse_search_output(stdout) == [("/a/b:c.jsonl", 4)]


class TestDispatcherWithProviders:
    """Routing through the command-based providers."""

    def test_discover_all_concatenates(self, executor):
        executor.on("sessions list", json.dumps([{"id": "ses_a", "directory": "/workspace/app", "mtime": 0, "file": "f"}]))
        executor.on("rollout-*.jsonl", f"{CODEX}/2025/01/02/rollout-x.jsonl\t1\t10\n")
        executor.on("agent-*.jsonl", f"{PROJECTS}/-workspace-app/abc.jsonl\t1\t10\n")

        sessions = run(SessionDispatcher(executor).discover_all_sessions("box"))

        assert sorted((s.agent_type.value, s.id) for s in sessions) == [
            ("claude-code", "abc"), ("codex", "rollout-x"), ("opencode", "ses_a"),
        ]

    def test_messages_tagged_with_agent_type(self, executor):
        executor.on("sessions messages ses_a", json.dumps({"messages": [{"type": "user", "content": "hi"}]}))
        transcript = run(SessionDispatcher(executor).get_session_messages("box", "ses_a", "opencode"))
        assert transcript.agent_type == AgentType.OPENCODE

    def test_find_follows_priority(self, executor):
        # Claude Code has no such file, OpenCode has no messages, Codex has it.
        executor.on("-name abc.jsonl", "")
        executor.on("sessions messages abc", json.dumps({"messages": []}))
        executor.on("bash -c find", f"{CODEX}/2025/01/02/rollout-abc.jsonl\n")
        executor.on("cat", jsonl({"session_id": "abc"}, {"payload": {"role": "user", "content": "hello"}}))

        transcript = run(SessionDispatcher(executor).find_session_messages("box", "abc"))

        assert transcript.agent_type == AgentType.CODEX
        assert transcript.messages[0].content == "hello"

    def test_find_nothing(self, executor):
        assert run(SessionDispatcher(executor).find_session_messages("box", "abc")) is None

    def test_delete_unknown_agent(self, executor):
        result = run(SessionDispatcher(executor).delete_session("box", "abc", "cursor"))
        assert result.error == "Unknown agent type"

    def test_list_sessions_sorted_newest_first(self, executor):
        executor.on("agent-*.jsonl", "\n".join([
            f"{PROJECTS}/-workspace-app/old.jsonl\t1600000000\t10",
            f"{PROJECTS}/-workspace-app/new.jsonl\t1700000000\t10",
            f"{PROJECTS}/-workspace-app/empty.jsonl\t1800000000\t10",
        ]))
        executor.on("cat /home/workspace/.claude/projects/-workspace-app/empty.jsonl", "")
        executor.on("cat", jsonl({"type": "user", "message": {"content": "hi"}}))

        items = run(SessionDispatcher(executor).list_sessions("box"))

        assert [i.id for i in items] == ["new", "old"]

    def test_list_sessions_survives_oddly_typed_records(self, executor):
        executor.on("agent-*.jsonl", "\n".join([
            f"{PROJECTS}/-workspace-app/good.jsonl\t1700000000\t10",
            f"{PROJECTS}/-workspace-app/odd.jsonl\t1600000000\t10",
        ]))
        executor.on("cat /home/workspace/.claude/projects/-workspace-app/odd.jsonl", jsonl(
            {"type": "result", "subtype": "success", "cost_usd": "0.1"},
            {"type": "assistant", "message": {"content": [{"type": "text", "text": 7}]}},
            {"type": "user", "message": {"content": "still readable"}},
        ))
        executor.on("cat", jsonl({"type": "user", "message": {"content": "hi"}}))

        items = run(SessionDispatcher(executor).list_sessions("box"))

        assert [i.id for i in items] == ["good", "odd"]
        assert items[1].first_prompt == "still readable"

    def test_search(self, executor):
        executor.on("rg -c -i", "\n".join([
            f"{PROJECTS}/-workspace-app/abc.jsonl:3",
            f"{STORAGE}/part/msg_1/prt_1.json:1",
            f"{STORAGE}/session/proj/ses_1.json:2",
        ]))

        results = run(SessionDispatcher(executor).search_sessions("box", "it's \"quoted\""))

        assert [(r.session_id, r.match_count) for r in results] == [("abc", 3), ("ses_1", 2)]
        script = executor.calls[0][1][2]
        assert "'it'\"'\"'s \"quoted\"'" in script
        assert "head -100" in script

    def test_search_no_hits(self, executor):
        executor.on("rg", "")
        assert run(SessionDispatcher(executor).search_sessions("box", "zzz")) == []


class TestDispatcherWithWorker:
    """Routing through the worker cache, with fallback."""

    def test_discover_uses_worker_plus_codex(self, executor):
        executor.on("rollout-*.jsonl", f"{CODEX}/2025/01/02/rollout-x.jsonl\t1\t10\n")
        cache = FakeWorkerCache()

        sessions = run(SessionDispatcher(executor, worker_cache=cache).discover_all_sessions("box"))

        assert [s.id for s in sessions] == ["w1", "rollout-x"]
        assert not any("sessions list" in c for c in executor.commands())

    def test_worker_claude_sessions_outside_workspace_are_dropped(self, executor):
        cache = FakeWorkerCache(sessions=[
            RawSession("in", AgentType.CLAUDE_CODE, 1, "/workspace/app", "/f/in.jsonl"),
            RawSession("home", AgentType.CLAUDE_CODE, 1, "/home/workspace/lib", "/f/home.jsonl"),
            RawSession("out", AgentType.CLAUDE_CODE, 1, "/tmp/scratch", "/f/out.jsonl"),
            RawSession("ses_o", AgentType.OPENCODE, 1, "/tmp/scratch", "/f/ses_o.json"),
        ])

        sessions = run(SessionDispatcher(executor, worker_cache=cache).discover_all_sessions("box"))

        assert [s.id for s in sessions] == ["in", "home", "ses_o"]

    def test_worker_and_codex_discovery_overlap(self, executor):
        executor.on("rollout-*.jsonl", f"{CODEX}/2025/01/02/rollout-x.jsonl\t1\t10\n")
        seen = {}

        class SlowWorkerCache(FakeWorkerCache):
            async def discover_sessions(self, target):
                await asyncio.sleep(0)
                seen["codex_started"] = any("rollout-" in c for c in executor.commands())
                return await super().discover_sessions(target)

        sessions = run(SessionDispatcher(executor, worker_cache=SlowWorkerCache()).discover_all_sessions("box"))

        assert seen["codex_started"]
        assert [s.id for s in sessions] == ["w1", "rollout-x"]

    def test_discover_falls_back_when_worker_down(self, executor):
        executor.on("sessions list", json.dumps([{"id": "ses_a", "mtime": 0}]))
        cache = FakeWorkerCache(down=True)

        sessions = run(SessionDispatcher(executor, worker_cache=cache).discover_all_sessions("box"))

        assert [s.id for s in sessions] == ["ses_a"]
        assert cache.calls == ["discover"]

    def test_messages_via_worker(self, executor):
        dispatcher = SessionDispatcher(executor, worker_cache=FakeWorkerCache())
        transcript = run(dispatcher.get_session_messages("box", "s1", AgentType.CLAUDE_CODE))
        assert transcript.messages[0].content == "from worker"
        assert transcript.agent_type == AgentType.CLAUDE_CODE
        assert executor.calls == []

    def test_worker_miss_is_not_found(self, executor):
        dispatcher = SessionDispatcher(executor, worker_cache=FakeWorkerCache())
        assert run(dispatcher.get_session_messages("box", "missing", AgentType.OPENCODE)) is None
        assert executor.calls == []

    def test_codex_never_uses_worker(self, executor):
        cache = FakeWorkerCache()
        run(SessionDispatcher(executor, worker_cache=cache).get_session_messages("box", "x", AgentType.CODEX))
        assert cache.calls == []

    def test_details_and_delete_fall_back(self, executor):
        executor.on("cat", jsonl({"type": "user", "message": {"content": "hi"}}))
        executor.on("bash -c find", f"{PROJECTS}/-workspace-app/s1.jsonl\n")
        executor.on("rm -f", "")
        dispatcher = SessionDispatcher(executor, worker_cache=FakeWorkerCache(down=True))
        raw = RawSession("s1", AgentType.CLAUDE_CODE, 1700000000, "/workspace/app", f"{PROJECTS}/-workspace-app/s1.jsonl")

        item = run(dispatcher.get_session_details("box", raw))
        result = run(dispatcher.delete_session("box", "s1", AgentType.CLAUDE_CODE))

        assert item.message_count == 1
        assert result.success
