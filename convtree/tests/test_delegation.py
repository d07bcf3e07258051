import unittest
from unittest.mock import patch

from convtree.delegation import (
    STRATEGY_AGENT_ID,
    STRATEGY_NONE,
    STRATEGY_PROMPT,
    DelegationInvocation,
    expand_delegations,
    iter_delegation_invocations,
    resolve_delegation,
    resolve_delegation_match,
)
from convtree.models import ENTRY_ADAPTER
from convtree.sidechain import SidechainIndex


def _entry(entry_type, uuid, parent_uuid=None, content=None, *, sidechain=False, agent_id=None, timestamp="2024-01-01T00:00:00Z", **extra):
    record = {
        "type": entry_type,
        "uuid": uuid,
        "parentUuid": parent_uuid,
        "sessionId": "session-1",
        "timestamp": timestamp,
        "isSidechain": sidechain,
        "message": {"role": entry_type, "content": content if content is not None else ([] if entry_type == "assistant" else uuid)},
    }
    if agent_id is not None:
        record["agentId"] = agent_id
    record.update(extra)
    return ENTRY_ADAPTER.validate_python(record)


def _task_call(uuid, parent_uuid, tool_use_id, prompt, *, sidechain=False, name="Task"):
    return _entry(
        "assistant",
        uuid,
        parent_uuid,
        [
            {"type": "text", "text": "Delegating"},
            {"type": "tool_use", "id": tool_use_id, "name": name, "input": {"prompt": prompt, "description": "sub"}},
        ],
        sidechain=sidechain,
    )


def _task_result(uuid, parent_uuid, tool_use_id, agent_id, *, sidechain=False):
    return _entry(
        "user",
        uuid,
        parent_uuid,
        [{"type": "tool_result", "tool_use_id": tool_use_id, "content": "done"}],
        sidechain=sidechain,
        toolUseResult={"agentId": agent_id, "status": "completed"},
    )


class DelegationResolverTests(unittest.TestCase):
    def test_prompt_fallback_round_trip(self) -> None:
        root = _entry("user", "U1", None, "please help")
        call = _task_call("A1", "U1", "toolu_1", "do X")
        delegated_root = _entry("user", "S1", None, "do X", sidechain=True)
        index = SidechainIndex.build([root, call, delegated_root])

        invocation = next(iter_delegation_invocations(call))
        match = resolve_delegation_match(invocation, index)

        self.assertEqual(match.strategy, STRATEGY_PROMPT)
        self.assertEqual(match.entries, (delegated_root,))
        self.assertEqual(resolve_delegation(invocation, index), [delegated_root])

    def test_agent_id_strategy_wins_over_prompt(self) -> None:
        call = _task_call("A1", "U1", "toolu_1", "do X")
        by_prompt = _entry("user", "P1", None, "do X", sidechain=True, timestamp="2024-01-01T00:00:01Z")
        by_agent = _entry("user", "G1", None, "rewritten prompt", sidechain=True, agent_id="ag-1", timestamp="2024-01-01T00:00:02Z")
        agent_reply = _entry("assistant", "G2", "G1", sidechain=True, agent_id="ag-1", timestamp="2024-01-01T00:00:04Z")
        agent_step = _entry("user", "G3", "G2", "step", sidechain=True, agent_id="ag-1", timestamp="2024-01-01T00:00:03Z")
        result = _task_result("U2", "A1", "toolu_1", "ag-1")
        index = SidechainIndex.build([call, by_prompt, by_agent, agent_reply, agent_step, result])

        match = resolve_delegation_match(next(iter_delegation_invocations(call)), index)

        self.assertEqual(match.strategy, STRATEGY_AGENT_ID)
        self.assertEqual(match.root_uuid, "G1")
        self.assertEqual([entry.uuid for entry in match.entries], ["G1", "G3", "G2"])

    def test_unknown_agent_id_falls_back_to_prompt(self) -> None:
        call = _task_call("A1", "U1", "toolu_1", "do X")
        by_prompt = _entry("user", "P1", None, "do X", sidechain=True)
        result = _task_result("U2", "A1", "toolu_1", "never-recorded")
        index = SidechainIndex.build([call, by_prompt, result])

        match = resolve_delegation_match(next(iter_delegation_invocations(call)), index)

        self.assertEqual(match.strategy, STRATEGY_PROMPT)
        self.assertEqual(match.root_uuid, "P1")

    def test_unresolved_invocation_returns_empty_list(self) -> None:
        index = SidechainIndex.build([_entry("user", "U1", None, "hello")])
        invocation = DelegationInvocation(tool_use_id="toolu_x", tool_name="Task", arguments={"prompt": "nothing"})

        match = resolve_delegation_match(invocation, index)

        self.assertEqual(match.strategy, STRATEGY_NONE)
        self.assertFalse(match.found)
        self.assertEqual(resolve_delegation(invocation, index), [])

    def test_invocation_without_prompt(self) -> None:
        invocation = DelegationInvocation(tool_use_id="toolu_x", tool_name="Task", arguments={"description": "x"})

        self.assertIsNone(invocation.prompt)
        self.assertEqual(resolve_delegation(invocation, SidechainIndex()), [])

    def test_only_delegation_tools_are_invocations(self) -> None:
        call = _entry(
            "assistant",
            "A1",
            "U1",
            [
                {"type": "tool_use", "id": "t1", "name": "Bash", "input": {"command": "ls"}},
                {"type": "tool_use", "id": "t2", "name": "Task", "input": {"prompt": "do X"}},
                {"type": "tool_use", "id": "t3", "name": "Agent", "input": {"prompt": "do Y"}},
            ],
        )

        invocations = list(iter_delegation_invocations(call))
        self.assertEqual([item.tool_use_id for item in invocations], ["t2"])
        self.assertEqual(invocations[0].source_uuid, "A1")
        self.assertEqual(invocations[0].prompt, "do X")

        with patch("convtree.config.DELEGATION_TOOL_NAMES", ("Task", "Agent")):
            self.assertEqual([item.tool_use_id for item in iter_delegation_invocations(call)], ["t2", "t3"])

    def test_user_entries_have_no_invocations(self) -> None:
        self.assertEqual(list(iter_delegation_invocations(_entry("user", "U1", None, "Task"))), [])

    def test_nested_delegations_expand_recursively(self) -> None:
        main_call = _task_call("A1", "U1", "toolu_outer", "outer task")
        outer_root = _entry("user", "S1", None, "outer task", sidechain=True, timestamp="2024-01-01T00:00:01Z")
        nested_call = _task_call("S2", "S1", "toolu_inner", "inner task", sidechain=True)
        inner_root = _entry("user", "N1", None, "inner task", sidechain=True, timestamp="2024-01-01T00:00:03Z")
        entries = [main_call, outer_root, nested_call, inner_root]
        index = SidechainIndex.build(entries)

        nodes = expand_delegations([main_call], index)

        self.assertEqual(len(nodes), 1)
        self.assertEqual(nodes[0].root_uuid, "S1")
        self.assertEqual(len(nodes[0].children), 1)
        self.assertEqual(nodes[0].children[0].root_uuid, "N1")
        self.assertEqual(nodes[0].children[0].entries, (inner_root,))
        self.assertEqual(nodes[0].children[0].children, ())

    def test_self_referencing_sidechain_does_not_recurse_forever(self) -> None:
        root = _entry("user", "S1", None, "loop", sidechain=True)
        call = _task_call("S2", "S1", "toolu_loop", "loop", sidechain=True)
        index = SidechainIndex.build([root, call])

        nodes = expand_delegations([call], index)

        self.assertEqual(nodes[0].root_uuid, "S1")
        self.assertEqual(len(nodes[0].children), 1)
        self.assertEqual(nodes[0].children[0].children, ())

    def test_unresolved_delegation_still_produces_node(self) -> None:
        call = _task_call("A1", "U1", "toolu_1", "missing")

        nodes = expand_delegations([call], SidechainIndex.build([call]))

        self.assertEqual(nodes[0].strategy, STRATEGY_NONE)
        self.assertEqual(nodes[0].entries, ())
        self.assertIsNone(nodes[0].root_uuid)


if __name__ == "__main__":
    unittest.main()
