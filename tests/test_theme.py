"""
Theme lookups and preference storage.
"""

import json
import shutil
import tempfile
import unittest
from pathlib import Path

from stepflow.core.exceptions import ConfigurationError
from stepflow.core.models import EdgeKind, EventKind
from stepflow.core.preferences import (
    PROVIDER_KEY,
    THEME_KEY,
    InMemoryStore,
    JsonFileStore,
    Preferences,
    Provider,
    ThemeMode,
)
from stepflow.core.theme import (
    DARK_PALETTE,
    DEFAULT_STATUS_COLOR,
    EVENT_VISUALS,
    LIGHT_PALETTE,
    edge_color,
    event_visual,
    format_status,
    get_palette,
    hex_to_rgb,
    status_color,
    status_description,
)


# ============================================
# Theme
# ============================================

class TestTheme(unittest.TestCase):

    def test_every_event_kind_has_a_visual(self):
        for kind in EventKind:
            self.assertIn(kind, EVENT_VISUALS)
            self.assertTrue(event_visual(kind).icon)
        self.assertIsNone(event_visual(None))

    def test_every_edge_kind_has_a_color(self):
        for kind in EdgeKind:
            self.assertTrue(edge_color(kind).startswith("#"))

    def test_authored_edge_color_wins(self):
        self.assertEqual(edge_color(EdgeKind.EVENT, "#123456"), "#123456")

    def test_format_status(self):
        self.assertEqual(format_status("VOTING_IN_PROGRESS"), "Voting In Progress")
        self.assertEqual(format_status(None), "")

    def test_status_color_fallback(self):
        self.assertEqual(status_color("MINTING"), "#26a69a")
        self.assertEqual(status_color("SOMETHING_ELSE"), DEFAULT_STATUS_COLOR)

    def test_authored_status_tooltip_wins(self):
        self.assertEqual(status_description("MINTING", {"MINTING": "custom"}), "custom")
        self.assertIn("minted", status_description("MINTING"))
        self.assertEqual(status_description("UNKNOWN"), "Transaction is in progress")

    def test_palettes(self):
        self.assertIs(get_palette("light"), LIGHT_PALETTE)
        self.assertIs(get_palette("dark"), DARK_PALETTE)
        self.assertIs(get_palette("sepia"), DARK_PALETTE)

    def test_hex_to_rgb(self):
        self.assertEqual(hex_to_rgb("#42a5f5"), "66, 165, 245")
        self.assertEqual(hex_to_rgb("#fff"), "255, 255, 255")


# ============================================
# Preferences
# ============================================

class TestPreferences(unittest.TestCase):

    def test_defaults(self):
        prefs = Preferences(InMemoryStore())
        self.assertIs(prefs.provider, Provider.OPENAI)
        self.assertIs(prefs.theme_mode, ThemeMode.DARK)

    def test_set_provider_persists_value(self):
        store = InMemoryStore()
        prefs = Preferences(store)
        prefs.provider = Provider.CLAUDE
        self.assertEqual(store.read(PROVIDER_KEY), "claude")
        self.assertIs(prefs.provider, Provider.CLAUDE)

    def test_unknown_stored_values_fall_back(self):
        prefs = Preferences(InMemoryStore({PROVIDER_KEY: "mistral", THEME_KEY: "sepia"}))
        self.assertIs(prefs.provider, Provider.OPENAI)
        self.assertIs(prefs.theme_mode, ThemeMode.DARK)

    def test_toggle_theme(self):
        prefs = Preferences(InMemoryStore())
        self.assertIs(prefs.toggle_theme(), ThemeMode.LIGHT)
        self.assertIs(prefs.toggle_theme(), ThemeMode.DARK)


class TestJsonFileStore(unittest.TestCase):

    def setUp(self):
        self.tmpdir = Path(tempfile.mkdtemp())
        self.path = self.tmpdir / "nested" / "prefs.json"

    def tearDown(self):
        shutil.rmtree(self.tmpdir, ignore_errors=True)

    def test_missing_file_reads_none(self):
        self.assertIsNone(JsonFileStore(self.path).read(THEME_KEY))

    def test_write_creates_file(self):
        prefs = Preferences(JsonFileStore(self.path))
        prefs.theme_mode = ThemeMode.LIGHT
        prefs.provider = Provider.GEMINI
        data = json.loads(self.path.read_text(encoding="utf-8"))
        self.assertEqual(data, {THEME_KEY: "light", PROVIDER_KEY: "gemini"})
        self.assertIs(Preferences(JsonFileStore(self.path)).theme_mode, ThemeMode.LIGHT)

    def test_corrupt_file_raises(self):
        self.path.parent.mkdir(parents=True)
        self.path.write_text("{not json", encoding="utf-8")
        with self.assertRaises(ConfigurationError):
            JsonFileStore(self.path).read(THEME_KEY)

    def test_non_object_file_raises(self):
        self.path.parent.mkdir(parents=True)
        self.path.write_text("[1, 2]", encoding="utf-8")
        with self.assertRaises(ConfigurationError):
            JsonFileStore(self.path).read(THEME_KEY)


if __name__ == "__main__":
    unittest.main()
