"""
User preferences (explanation provider, theme mode) behind a key-value port.

Nothing here reaches for ambient global storage: callers build a
``Preferences`` around whichever ``KeyValueStore`` fits (in-memory for tests,
a JSON file for the CLI) and pass it to the components that need it.
"""

import json
from enum import Enum
from pathlib import Path
from typing import Dict, Optional, Protocol

from .exceptions import ConfigurationError
from ..utils.logger import get_logger

logger = get_logger("preferences")

PROVIDER_KEY = "aiProvider"
THEME_KEY = "themeMode"


class Provider(str, Enum):
    OPENAI = "openai"
    GEMINI = "gemini"
    CLAUDE = "claude"


PROVIDER_NAMES = {
    Provider.OPENAI: "OpenAI",
    Provider.GEMINI: "Gemini",
    Provider.CLAUDE: "Claude",
}


class ThemeMode(str, Enum):
    LIGHT = "light"
    DARK = "dark"


class KeyValueStore(Protocol):
    def read(self, key: str) -> Optional[str]: ...

    def write(self, key: str, value: str) -> None: ...


class InMemoryStore:
    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def read(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def write(self, key: str, value: str) -> None:
        self._data[key] = value


class JsonFileStore:
    """Flat JSON object on disk; the file is created on first write."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def _load(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigurationError(f"Unreadable preferences file {self.path}: {e}")
        if not isinstance(data, dict):
            raise ConfigurationError(f"Preferences file {self.path} must hold a JSON object")
        return {str(k): str(v) for k, v in data.items()}

    def read(self, key: str) -> Optional[str]:
        return self._load().get(key)

    def write(self, key: str, value: str) -> None:
        data = self._load()
        data[key] = value
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(data, indent=2, sort_keys=True), encoding="utf-8")


class Preferences:
    """Typed view over a ``KeyValueStore``."""

    def __init__(
        self,
        store: KeyValueStore,
        default_provider: Provider = Provider.OPENAI,
        default_theme: ThemeMode = ThemeMode.DARK,
    ):
        self.store = store
        self.default_provider = default_provider
        self.default_theme = default_theme

    @property
    def provider(self) -> Provider:
        raw = self.store.read(PROVIDER_KEY)
        if raw is None:
            return self.default_provider
        try:
            return Provider(raw)
        except ValueError:
            logger.warning("Ignoring unknown stored provider", {"value": raw})
            return self.default_provider

    @provider.setter
    def provider(self, value: Provider) -> None:
        self.store.write(PROVIDER_KEY, Provider(value).value)

    @property
    def theme_mode(self) -> ThemeMode:
        raw = self.store.read(THEME_KEY)
        if raw is None:
            return self.default_theme
        try:
            return ThemeMode(raw)
        except ValueError:
            logger.warning("Ignoring unknown stored theme mode", {"value": raw})
            return self.default_theme

    @theme_mode.setter
    def theme_mode(self, value: ThemeMode) -> None:
        self.store.write(THEME_KEY, ThemeMode(value).value)

    def toggle_theme(self) -> ThemeMode:
        new_mode = ThemeMode.LIGHT if self.theme_mode is ThemeMode.DARK else ThemeMode.DARK
        self.theme_mode = new_mode
        return new_mode
