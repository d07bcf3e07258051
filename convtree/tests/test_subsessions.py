import asyncio
import json
import tempfile
import unittest
from pathlib import Path

from convtree.models import ENTRY_ADAPTER
from convtree.subsessions import (
    FileSubSessionStore,
    load_missing_sub_sessions,
    missing_agent_ids,
    present_agent_ids,
    referenced_agent_ids,
)


def _record(entry_type, uuid, parent_uuid=None, content=None, *, sidechain=False, agent_id=None, **extra) -> dict:
    record = {
        "type": entry_type,
        "uuid": uuid,
        "parentUuid": parent_uuid,
        "sessionId": "session-1",
        "timestamp": "2024-01-01T00:00:00Z",
        "isSidechain": sidechain,
        "message": {"role": entry_type, "content": content if content is not None else ([] if entry_type == "assistant" else uuid)},
    }
    if agent_id is not None:
        record["agentId"] = agent_id
    record.update(extra)
    return record


def _task_result(uuid, tool_use_id, agent_id):
    return ENTRY_ADAPTER.validate_python(
        _record(
            "user",
            uuid,
            "A1",
            [{"type": "tool_result", "tool_use_id": tool_use_id, "content": "done"}],
            toolUseResult={"agentId": agent_id},
        )
    )


def _sub_log(agent_id: str, prompt: str) -> str:
    return "\n".join(
        [
            json.dumps(_record("user", f"{agent_id}-root", None, prompt, agent_id=agent_id)),
            json.dumps({"type": "summary", "summary": "sub", "leafUuid": f"{agent_id}-root"}),
            json.dumps(_record("assistant", f"{agent_id}-reply", f"{agent_id}-root", agent_id=agent_id)),
        ]
    )


class _FakeFetcher:
    def __init__(self, logs: dict[str, str], failing: set[str] | None = None) -> None:
        self.logs = logs
        self.failing = failing or set()
        self.calls: list[tuple[str, str]] = []
        self.active = 0
        self.max_active = 0

    async def fetch(self, parent_session_id: str, agent_id: str) -> str | None:
        self.calls.append((parent_session_id, agent_id))
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await asyncio.sleep(0.01)
            if agent_id in self.failing:
                raise OSError(f"storage unavailable for {agent_id}")
            return self.logs.get(agent_id)
        finally:
            self.active -= 1


class AgentIdScanTests(unittest.TestCase):
    def test_referenced_present_and_missing(self) -> None:
        entries = [
            _task_result("U1", "t1", "ag-1"),
            _task_result("U2", "t2", "ag-2"),
            _task_result("U3", "t3", "ag-1"),
            ENTRY_ADAPTER.validate_python(_record("user", "S1", None, "x", sidechain=True, agent_id="ag-2")),
            ENTRY_ADAPTER.validate_python({"type": "summary", "summary": "s", "leafUuid": "U1"}),
        ]

        self.assertEqual(referenced_agent_ids(entries), ["ag-1", "ag-2"])
        self.assertEqual(present_agent_ids(entries), {"ag-2"})
        self.assertEqual(missing_agent_ids(entries), ["ag-1"])


class LoadMissingSubSessionsTests(unittest.IsolatedAsyncioTestCase):
    async def test_loads_missing_sub_sessions_as_sidechain(self) -> None:
        entries = [_task_result("U1", "t1", "ag-1")]
        fetcher = _FakeFetcher({"ag-1": _sub_log("ag-1", "do X")})

        loaded = await load_missing_sub_sessions(entries, fetcher, "session-1")

        self.assertEqual(fetcher.calls, [("session-1", "ag-1")])
        self.assertEqual([entry.uuid for entry in loaded], ["ag-1-root", "ag-1-reply"])
        self.assertTrue(all(entry.isSidechain for entry in loaded))

    async def test_nothing_missing_means_no_fetch(self) -> None:
        fetcher = _FakeFetcher({})

        loaded = await load_missing_sub_sessions([], fetcher, "session-1")

        self.assertEqual(loaded, [])
        self.assertEqual(fetcher.calls, [])

    async def test_partial_failures_do_not_fail_other_fetches(self) -> None:
        entries = [
            _task_result("U1", "t1", "ok"),
            _task_result("U2", "t2", "boom"),
            _task_result("U3", "t3", "absent"),
            _task_result("U4", "t4", "corrupt"),
        ]
        fetcher = _FakeFetcher(
            {"ok": _sub_log("ok", "do X"), "corrupt": "{broken json"},
            failing={"boom"},
        )

        loaded = await load_missing_sub_sessions(entries, fetcher, "session-1")

        self.assertEqual(len(fetcher.calls), 4)
        self.assertEqual({entry.agentId for entry in loaded}, {"ok"})

    async def test_concurrency_is_bounded(self) -> None:
        entries = [_task_result(f"U{i}", f"t{i}", f"ag-{i}") for i in range(12)]
        fetcher = _FakeFetcher({f"ag-{i}": _sub_log(f"ag-{i}", f"task {i}") for i in range(12)})

        loaded = await load_missing_sub_sessions(entries, fetcher, "session-1", concurrency=3)

        self.assertEqual(len(fetcher.calls), 12)
        self.assertLessEqual(fetcher.max_active, 3)
        self.assertEqual(len(loaded), 24)


class FileSubSessionStoreTests(unittest.IsolatedAsyncioTestCase):
    def _project_dir(self) -> Path:
        tmpdir = tempfile.TemporaryDirectory()
        self.addCleanup(tmpdir.cleanup)
        return Path(tmpdir.name)

    async def test_reads_subagents_directory_first(self) -> None:
        project_dir = self._project_dir()
        nested = project_dir / "session-1" / "subagents" / "agent-ag-1.jsonl"
        nested.parent.mkdir(parents=True)
        nested.write_text("nested", encoding="utf-8")
        (project_dir / "agent-ag-1.jsonl").write_text("flat", encoding="utf-8")

        store = FileSubSessionStore(project_dir)

        self.assertEqual(await store.fetch("session-1", "ag-1"), "nested")

    async def test_falls_back_to_flat_layout(self) -> None:
        project_dir = self._project_dir()
        (project_dir / "agent-ag-2.jsonl").write_text("flat", encoding="utf-8")

        store = FileSubSessionStore(project_dir)

        self.assertEqual(await store.fetch("session-1", "ag-2"), "flat")

    async def test_missing_file_is_none(self) -> None:
        store = FileSubSessionStore(self._project_dir())

        self.assertIsNone(await store.fetch("session-1", "nope"))


if __name__ == "__main__":
    unittest.main()
