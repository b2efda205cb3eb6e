"""
Scenario catalogue.

Scenarios ship as JSON package data under ``stepflow/scenarios/data``; any
other JSON file with the same shape can be loaded by path.
"""

import json
from pathlib import Path
from typing import Dict, List, Union

from pydantic import ValidationError

from ..core.exceptions import ScenarioNotFoundError, ScenarioValidationError
from ..core.models import Scenario
from ..utils.logger import get_logger

logger = get_logger("scenarios")

DATA_DIR = Path(__file__).parent / "data"

_cache: Dict[str, Scenario] = {}


def list_scenarios() -> List[str]:
    """Ids of the bundled scenarios, sorted."""
    return sorted(path.stem for path in DATA_DIR.glob("*.json"))


def parse_scenario(raw: str, source: str = "<string>") -> Scenario:
    """
    Validate a JSON document into a frozen ``Scenario``.

    Raises:
        ScenarioValidationError: If the text is not JSON or fails validation
    """
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ScenarioValidationError(f"{source}: invalid JSON ({e})") from e
    if not isinstance(payload, dict):
        raise ScenarioValidationError(f"{source}: top-level value must be an object")
    try:
        return Scenario.model_validate(payload)
    except ValidationError as e:
        raise ScenarioValidationError(f"{source}: {e.error_count()} validation error(s)\n{e}") from e


def load_scenario(name: Union[str, Path]) -> Scenario:
    """
    Load a bundled scenario by id, or any scenario file by path.

    Bundled scenarios are cached; file paths are read fresh every call.

    Raises:
        ScenarioNotFoundError: If neither a bundled id nor an existing file
        ScenarioValidationError: If the file is malformed
    """
    key = str(name)
    if key in _cache:
        return _cache[key]

    bundled = DATA_DIR / f"{key}.json"
    if bundled.is_file():
        scenario = parse_scenario(bundled.read_text(encoding="utf-8"), source=key)
        _cache[key] = scenario
        logger.debug("Loaded bundled scenario", {"scenario": key, "nodes": len(scenario.nodes)})
        return scenario

    path = Path(name)
    if path.suffix == ".json" and path.is_file():
        try:
            raw = path.read_text(encoding="utf-8")
        except OSError as e:
            raise ScenarioValidationError(f"{path}: cannot read file ({e})") from e
        scenario = parse_scenario(raw, source=str(path))
        logger.debug("Loaded scenario file", {"path": str(path), "scenario": scenario.id})
        return scenario

    raise ScenarioNotFoundError(key, available=list_scenarios())
