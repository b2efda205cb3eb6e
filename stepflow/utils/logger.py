"""
Structured logging for stepflow.

Every record is one JSON object:

    {
        "timestamp": "ISO8601",
        "node": "resolver",
        "event": "START | END | ERROR | INFO | WARNING | DEBUG",
        "state_hash": "sha256 of the state fingerprint, or null",
        "metadata": {}
    }

Export pipeline nodes emit START and END/ERROR with the pipeline state.
Engine components have no pipeline state; they log data inconsistencies on
the warning channel and timer/camera activity on the debug channel.
"""

import hashlib
import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional, Set, Tuple


NOISY_LOGGERS = ("playwright", "urllib3", "httpx", "LiteLLM", "asyncio")

# warning_once forgets everything it has seen past this many distinct keys
WARNING_ONCE_LIMIT = 256


def state_fingerprint(state: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Reduce pipeline state to something small and stable enough to hash.

    Frame lists and rendered documents collapse to their length, and a loaded
    scenario collapses to its id, so a START/END pair over hundreds of SVG
    frames stays cheap.
    """
    fingerprint: Dict[str, Any] = {}
    for key, value in state.items():
        if isinstance(value, (list, tuple)) and key != "errors":
            fingerprint[key] = {"len": len(value)}
        elif hasattr(value, "model_dump") and hasattr(value, "id"):
            fingerprint[key] = {"id": value.id}
        else:
            fingerprint[key] = value
    return fingerprint


class StructuredLogger:
    """
    Logger for one pipeline node or engine component.

    ``warning_once`` suppresses repeats of the same message and metadata,
    which keeps frame-by-frame export from repeating one data problem per
    sample.
    """

    def __init__(self, node_name: str, enable_structured: bool = True):
        self.node_name = node_name
        self.enable_structured = enable_structured
        self.logger = logging.getLogger(f"stepflow.{node_name}")
        self._seen: Set[Tuple[str, str]] = set()

    def state_hash(self, state: Optional[Mapping[str, Any]]) -> Optional[str]:
        if not state:
            return None
        serialized = json.dumps(state_fingerprint(state), sort_keys=True, default=str)
        return hashlib.sha256(serialized.encode()).hexdigest()

    def _emit(
        self,
        event: str,
        state: Optional[Mapping[str, Any]],
        metadata: Optional[Dict[str, Any]],
        level: int,
    ) -> None:
        if not self.logger.isEnabledFor(level):
            return

        if self.enable_structured:
            record = {
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "node": self.node_name,
                "event": event,
                "state_hash": self.state_hash(state),
                "metadata": metadata or {},
            }
            self.logger.log(level, json.dumps(record, default=str))
        else:
            text = f"[{event}] {self.node_name}"
            if metadata:
                text += " | " + ", ".join(f"{k}={v}" for k, v in metadata.items())
            self.logger.log(level, text)

    # Pipeline events

    def start(self, state: Mapping[str, Any], metadata: Optional[Dict[str, Any]] = None) -> None:
        self._emit("START", state, metadata, logging.INFO)

    def end(self, state: Mapping[str, Any], metadata: Optional[Dict[str, Any]] = None) -> None:
        self._emit("END", state, metadata, logging.INFO)

    def error(
        self,
        state: Optional[Mapping[str, Any]],
        error: Exception,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Log a failure.

        Args:
            state: Pipeline state, or None when raised outside the pipeline
            error: The exception being reported
            metadata: Extra context merged after the error fields
        """
        details = {
            "error_type": type(error).__name__,
            "error_message": str(error),
            **(metadata or {}),
        }
        self._emit("ERROR", state, details, logging.ERROR)

    # Component messages

    def info(self, message: str, metadata: Optional[Dict[str, Any]] = None) -> None:
        self._emit("INFO", None, {"message": message, **(metadata or {})}, logging.INFO)

    def warning(self, message: str, metadata: Optional[Dict[str, Any]] = None) -> None:
        self._emit("WARNING", None, {"message": message, **(metadata or {})}, logging.WARNING)

    def warning_once(self, message: str, metadata: Optional[Dict[str, Any]] = None) -> bool:
        """Emit a warning unless this exact message and metadata were already logged.

        Returns True when the warning was emitted.
        """
        key = (message, json.dumps(metadata or {}, sort_keys=True, default=str))
        if key in self._seen:
            return False
        if len(self._seen) >= WARNING_ONCE_LIMIT:
            self._seen.clear()
        self._seen.add(key)
        self.warning(message, metadata)
        return True

    def debug(self, message: str, metadata: Optional[Dict[str, Any]] = None) -> None:
        self._emit("DEBUG", None, {"message": message, **(metadata or {})}, logging.DEBUG)


# ============================================
# Logger Configuration
# ============================================

def configure_logging(log_level: str = "INFO", structured: bool = True) -> None:
    """
    Configure the ``stepflow`` logger tree.

    Logs go to stderr so the CLI's rich output on stdout stays clean.

    Args:
        log_level: Logging level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        structured: Emit bare JSON lines instead of timestamped text
    """
    level = getattr(logging, log_level.upper(), logging.INFO)

    logging.basicConfig(
        level=level,
        format="%(message)s" if structured else "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )
    logging.getLogger("stepflow").setLevel(level)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(node_name: str, enable_structured: bool = True) -> StructuredLogger:
    """Get a structured logger for a pipeline node or engine component."""
    return StructuredLogger(node_name, enable_structured)
