"""
Scenario catalogue, data model validation and configuration.
"""

import json
import os
import shutil
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from pydantic import ValidationError

from stepflow.core.config import Config
from stepflow.core.exceptions import ScenarioNotFoundError, ScenarioValidationError
from stepflow.core.models import NodeData, NodePatch, Scenario
from stepflow.scenarios.catalogue import list_scenarios, load_scenario, parse_scenario


def minimal_scenario(**overrides):
    payload = {
        "id": "tiny",
        "title": "Tiny",
        "nodes": [
            {"id": "a", "position": {"x": 0, "y": 0}, "data": {"label": "A"}},
            {"id": "b", "position": {"x": 300, "y": 0}, "data": {"label": "B"}},
        ],
        "edges": [{"id": "ab", "source": "a", "target": "b"}],
        "steps": [{"title": "One"}],
        "highlight_table": [{"nodes": [], "edges": []}, {"nodes": ["a"], "edges": ["ab"]}],
    }
    payload.update(overrides)
    return payload


# ============================================
# Catalogue
# ============================================

class TestCatalogue(unittest.TestCase):

    def setUp(self):
        self.tmpdir = Path(tempfile.mkdtemp())

    def tearDown(self):
        shutil.rmtree(self.tmpdir, ignore_errors=True)

    def test_bundled_scenarios(self):
        self.assertEqual(
            list_scenarios(),
            ["dex", "governance", "lending", "multisig_burn", "multisig_mint", "staking"],
        )

    def test_bundled_scenarios_are_cached(self):
        self.assertIs(load_scenario("staking"), load_scenario("staking"))

    def test_step_counts_match_tables(self):
        for scenario_id in list_scenarios():
            scenario = load_scenario(scenario_id)
            self.assertEqual(len(scenario.steps), scenario.terminal_step, scenario_id)

    def test_unknown_scenario(self):
        with self.assertRaises(ScenarioNotFoundError) as ctx:
            load_scenario("nope")
        self.assertIn("dex", ctx.exception.available)

    def test_load_from_path(self):
        path = self.tmpdir / "tiny.json"
        path.write_text(json.dumps(minimal_scenario()), encoding="utf-8")
        scenario = load_scenario(path)
        self.assertEqual(scenario.id, "tiny")
        self.assertEqual(scenario.terminal_step, 1)

    def test_invalid_json(self):
        with self.assertRaises(ScenarioValidationError):
            parse_scenario("{oops")

    def test_top_level_must_be_object(self):
        with self.assertRaises(ScenarioValidationError):
            parse_scenario("[]")

    def test_duplicate_node_ids_rejected(self):
        payload = minimal_scenario()
        payload["nodes"][1]["id"] = "a"
        with self.assertRaises(ScenarioValidationError):
            parse_scenario(json.dumps(payload))

    def test_empty_table_rejected(self):
        with self.assertRaises(ScenarioValidationError):
            parse_scenario(json.dumps(minimal_scenario(highlight_table=[])))


# ============================================
# Data Model
# ============================================

class TestModels(unittest.TestCase):

    def test_edges_with_unknown_endpoints_are_dropped(self):
        payload = minimal_scenario(edges=[
            {"id": "ab", "source": "a", "target": "b"},
            {"id": "ax", "source": "a", "target": "x"},
        ])
        scenario = Scenario.model_validate(payload)
        self.assertEqual(list(scenario.graph.edges_by_id), ["ab"])
        self.assertEqual(scenario.graph.adjacent_edges("b"), ("ab",))

    def test_authored_is_current_is_discarded(self):
        payload = minimal_scenario()
        payload["nodes"][0]["data"]["is_current"] = True
        scenario = Scenario.model_validate(payload)
        self.assertIsNone(scenario.graph.nodes_by_id["a"].data.is_current)

    def test_step_count_mismatch_only_warns(self):
        scenario = Scenario.model_validate(minimal_scenario(steps=[]))
        self.assertEqual(scenario.terminal_step, 1)
        self.assertIsNone(scenario.step_copy(1))

    def test_step_copy_is_one_based(self):
        scenario = Scenario.model_validate(minimal_scenario())
        self.assertIsNone(scenario.step_copy(0))
        self.assertEqual(scenario.step_copy(1).title, "One")

    def test_patch_merges_status_by_step(self):
        base = NodeData(label="A", status_by_step={1: "X"}, tooltip="keep")
        merged = NodePatch(status_by_step={2: "Y"}, label="A2").merge_into(base)
        self.assertEqual(merged.status_by_step, {1: "X", 2: "Y"})
        self.assertEqual(merged.label, "A2")
        self.assertEqual(merged.tooltip, "keep")

    def test_empty_patch_returns_same_data(self):
        base = NodeData(label="A")
        self.assertIs(NodePatch().merge_into(base), base)


# ============================================
# Configuration
# ============================================

class TestConfig(unittest.TestCase):

    @patch.dict(os.environ, {}, clear=True)
    def test_defaults(self):
        config = Config(_env_file=None)
        self.assertEqual(config.autoplay_interval_ms, 2000)
        self.assertEqual(config.settle_delay_ms, 50)
        self.assertEqual(config.camera_duration_ms, 800)
        self.assertEqual(config.device_class, "auto")

    @patch.dict(os.environ, {"STEPFLOW_AUTOPLAY_INTERVAL_MS": "500"}, clear=True)
    def test_environment_override(self):
        self.assertEqual(Config(_env_file=None).autoplay_interval_ms, 500)

    @patch.dict(os.environ, {}, clear=True)
    def test_settle_must_fit_inside_interval(self):
        with self.assertRaises(ValidationError):
            Config(_env_file=None, autoplay_interval_ms=100, settle_delay_ms=100)

    @patch.dict(os.environ, {}, clear=True)
    def test_api_key_formats(self):
        with self.assertRaises(ValidationError):
            Config(_env_file=None, openai_api_key="nope")
        with self.assertRaises(ValidationError):
            Config(_env_file=None, anthropic_api_key="sk-wrong")
        config = Config(_env_file=None, anthropic_api_key="sk-ant-123", gemini_api_key="g")
        self.assertEqual(config.api_key_for("claude"), "sk-ant-123")
        self.assertEqual(config.api_key_for("gemini"), "g")
        self.assertIsNone(config.api_key_for("openai"))

    @patch.dict(os.environ, {}, clear=True)
    def test_model_for_unknown_provider_uses_openai_model(self):
        config = Config(_env_file=None)
        self.assertEqual(config.model_for("mystery"), config.openai_model)

    @patch.dict(os.environ, {}, clear=True)
    def test_log_level_is_normalized(self):
        self.assertEqual(Config(_env_file=None, log_level="debug").log_level, "DEBUG")
        with self.assertRaises(ValidationError):
            Config(_env_file=None, log_level="chatty")


if __name__ == "__main__":
    unittest.main()
