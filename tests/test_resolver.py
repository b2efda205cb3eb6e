"""
Active-set resolution tests.

Covers clamping, idempotence, status precedence, edge visibility and
referential stability, plus the bundled multisig and DEX scenarios.
"""

import unittest

from stepflow.core.flow_state import FlowStateContainer
from stepflow.core.models import (
    FlowEdge,
    FlowNode,
    GraphModel,
    HighlightEntry,
    NodeData,
    NodeUpdate,
    NodePatch,
    Position,
)
from stepflow.engine.resolver import (
    INACTIVE_EDGE_OPACITY,
    PENDING_STATUS,
    ActiveSetResolver,
    resolve,
)
from stepflow.scenarios.catalogue import load_scenario


def make_node(node_id, x=0, y=0, **data):
    data.setdefault("label", node_id)
    return FlowNode(id=node_id, position=Position(x=x, y=y), data=NodeData(**data))


def make_edge(edge_id, source, target, **kwargs):
    return FlowEdge(id=edge_id, source=source, target=target, **kwargs)


def entry(nodes=(), edges=(), update=None):
    update_node = None
    if update is not None:
        node_id, patch = update
        update_node = NodeUpdate(id=node_id, data=NodePatch(**patch))
    return HighlightEntry(nodes=tuple(nodes), edges=tuple(edges), update_node=update_node)


class TestResolve(unittest.TestCase):
    """Pure resolution over a three-node chain a -> b -> c."""

    def setUp(self):
        self.graph = GraphModel(
            nodes=(
                make_node("a", status="IDLE"),
                make_node("b", x=300, status_by_step={2: "A"}),
                make_node("c", x=600),
            ),
            edges=(
                make_edge("ab", "a", "b"),
                make_edge("bc", "b", "c"),
            ),
        )
        self.table = (
            entry(),
            entry(nodes=["a"], edges=["ab"]),
            entry(nodes=["a", "b"], edges=["ab"], update=("b", {"status": "B"})),
            entry(nodes=["c"], edges=["bc"]),
        )

    def status(self, step, node_id):
        return resolve(step, self.graph, self.table).node(node_id).data.status

    def test_resolution_is_idempotent(self):
        first = resolve(2, self.graph, self.table)
        second = resolve(2, self.graph, self.table)
        self.assertEqual(
            [n.model_dump() for n in first.nodes],
            [n.model_dump() for n in second.nodes],
        )
        self.assertEqual(
            [e.model_dump() for e in first.edges],
            [e.model_dump() for e in second.edges],
        )
        self.assertEqual(first.active_node_ids, second.active_node_ids)

    def test_negative_step_behaves_like_step_zero(self):
        low = resolve(-5, self.graph, self.table)
        zero = resolve(0, self.graph, self.table)
        self.assertEqual(low.step, 0)
        self.assertEqual([n.model_dump() for n in low.nodes], [n.model_dump() for n in zero.nodes])

    def test_step_past_table_behaves_like_last_step(self):
        high = resolve(99, self.graph, self.table)
        last = resolve(3, self.graph, self.table)
        self.assertEqual(high.step, 3)
        self.assertEqual([e.model_dump() for e in high.edges], [e.model_dump() for e in last.edges])

    def test_step_zero_highlights_nothing(self):
        frame = resolve(0, self.graph, self.table)
        self.assertEqual(frame.active_node_ids, frozenset())
        self.assertFalse(any(n.data.is_current for n in frame.nodes))
        self.assertFalse(any(e.data.is_current for e in frame.edges))

    def test_update_node_beats_status_by_step(self):
        self.assertEqual(self.status(2, "b"), "B")

    def test_status_by_step_is_carried_forward(self):
        self.assertEqual(self.status(3, "b"), "A")

    def test_active_node_without_status_is_pending(self):
        self.assertEqual(self.status(3, "c"), PENDING_STATUS)

    def test_inactive_node_keeps_authored_status(self):
        self.assertEqual(self.status(3, "a"), "IDLE")
        self.assertIsNone(self.status(0, "c"))

    def test_listed_edges_are_current_and_animated(self):
        frame = resolve(1, self.graph, self.table)
        ab = frame.edge("ab")
        self.assertTrue(ab.data.is_current)
        self.assertTrue(ab.data.force_animated)
        self.assertTrue(ab.animated)
        self.assertEqual(ab.opacity, 1.0)

    def test_unlisted_edges_are_dimmed(self):
        frame = resolve(1, self.graph, self.table)
        bc = frame.edge("bc")
        self.assertFalse(bc.data.is_current)
        self.assertFalse(bc.animated)
        self.assertEqual(bc.opacity, INACTIVE_EDGE_OPACITY)

    def test_adjacent_edge_not_in_entry_stays_hidden(self):
        # b is active at step 2 but bc is not listed
        frame = resolve(2, self.graph, self.table)
        self.assertNotIn("bc", frame.visible_edge_ids)
        self.assertEqual(frame.current_edge_ids, frozenset({"ab"}))

    def test_unknown_ids_are_ignored(self):
        table = self.table + (entry(nodes=["ghost", "a"], edges=["nope"], update=("ghost", {"status": "X"})),)
        frame = resolve(4, self.graph, table)
        self.assertEqual(frame.active_node_ids, frozenset({"a"}))
        self.assertEqual(frame.visible_edge_ids, frozenset())
        self.assertIsNone(frame.node("ghost"))

    def test_null_entry_is_empty(self):
        table = (entry(), None, entry(nodes=["a"]))
        frame = resolve(1, self.graph, table)
        self.assertEqual(frame.active_node_ids, frozenset())

    def test_update_fields_accumulate_over_steps(self):
        table = (
            entry(),
            entry(update=("a", {"tooltip": "first"})),
            entry(update=("a", {"status_by_step": {3: "LATE"}})),
            entry(nodes=["a"]),
        )
        frame = resolve(3, self.graph, table)
        a = frame.node("a")
        self.assertEqual(a.data.tooltip, "first")
        self.assertEqual(a.data.status, "LATE")

    def test_resolution_is_path_independent(self):
        direct = resolve(3, self.graph, self.table)
        for step in (1, 2, 0, 3):
            visited = resolve(step, self.graph, self.table)
        self.assertEqual(
            [n.model_dump() for n in direct.nodes],
            [n.model_dump() for n in visited.nodes],
        )


class TestActiveSetResolver(unittest.TestCase):
    """Referential stability across repeated resolutions."""

    def setUp(self):
        self.graph = GraphModel(
            nodes=(make_node("a"), make_node("b", x=300), make_node("c", x=600)),
            edges=(make_edge("ab", "a", "b"), make_edge("bc", "b", "c")),
        )
        self.table = (
            entry(),
            entry(nodes=["a"], edges=["ab"]),
            entry(nodes=["a"], edges=["ab"]),
            entry(nodes=["c"], edges=["bc"]),
        )
        self.resolver = ActiveSetResolver(self.graph, self.table)

    def test_same_step_returns_same_frame(self):
        first = self.resolver.resolve(1)
        self.assertIs(self.resolver.resolve(1), first)

    def test_unchanged_nodes_keep_identity(self):
        first = self.resolver.resolve(1)
        second = self.resolver.resolve(3)
        self.assertIsNot(first.node("a"), second.node("a"))
        self.assertIs(first.node("b"), second.node("b"))

    def test_content_identical_step_keeps_node_identity(self):
        first = self.resolver.resolve(1)
        second = self.resolver.resolve(2)
        self.assertEqual(second.step, 2)
        for a, b in zip(first.nodes, second.nodes):
            self.assertIs(a, b)

    def test_terminal_step(self):
        self.assertEqual(self.resolver.terminal_step, 3)


class TestBundledScenarios(unittest.TestCase):
    """Resolution against the shipped scenario tables."""

    def test_multisig_voting_step(self):
        scenario = load_scenario("multisig_mint")
        frame = resolve(7, scenario.graph, scenario.highlight_table)
        self.assertEqual(frame.node("proposer").data.status, "VOTING_IN_PROGRESS")
        self.assertTrue(frame.edge("e4").data.is_current)
        self.assertFalse(frame.edge("e5").data.is_current)

    def test_dex_has_eleven_entries(self):
        scenario = load_scenario("dex")
        self.assertEqual(len(scenario.highlight_table), 11)
        self.assertEqual(scenario.terminal_step, 10)

    def test_dex_next_step_stops_at_last_entry(self):
        flow = FlowStateContainer(load_scenario("dex").terminal_step)
        for _ in range(10):
            flow.next_step()
        self.assertEqual(flow.step, 10)
        flow.next_step()
        self.assertEqual(flow.step, 10)

    def test_every_scenario_resolves_every_step(self):
        for scenario_id in ("dex", "multisig_mint", "multisig_burn", "governance", "lending", "staking"):
            scenario = load_scenario(scenario_id)
            for step in range(scenario.terminal_step + 1):
                frame = resolve(step, scenario.graph, scenario.highlight_table)
                self.assertEqual(frame.step, step)
                for node_id in frame.entry.nodes:
                    self.assertTrue(frame.node(node_id).data.is_current, f"{scenario_id}:{step}:{node_id}")


if __name__ == "__main__":
    unittest.main()
