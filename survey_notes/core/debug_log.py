"""
Debug logging for the structuring pipeline.

When SN_DEBUG=1, routing decisions, routing-config refreshes, LLM requests and
responses, and validation failures are written as JSON files to
{project_root}/.survey_notes/debug/session_<timestamp>/. The same flag enables
the `timer` decorator.
"""

import functools
import json
import logging
import os
import time
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, TypeVar

from .config import METADATA_DIRNAME

logger = logging.getLogger(__name__)

R = TypeVar("R")


def is_debug_enabled() -> bool:
    """Check if debug logging is enabled via the SN_DEBUG environment variable."""
    return os.getenv("SN_DEBUG", "0") == "1"


def timer(func: Callable[..., R]) -> Callable[..., R]:
    """
    Decorator that logs execution time when SN_DEBUG=1.

    The flag is read on every call so the CLI --debug switch takes effect
    after import.
    """

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> R:
        if not is_debug_enabled():
            return func(*args, **kwargs)
        start_time = time.perf_counter()
        try:
            return func(*args, **kwargs)
        finally:
            elapsed_ms = (time.perf_counter() - start_time) * 1000
            logger.info(f"[SN_DEBUG] {func.__name__}: {elapsed_ms:.2f}ms")

    return wrapper


class DebugLogger:
    """
    Writes one JSON file per pipeline event into a per-run session directory.

    Files are numbered in write order (001_routing.json, 002_llm_request.json,
    ...) so a session reads top to bottom.
    """

    def __init__(self, project_root: str = ".", enabled: Optional[bool] = None):
        self.project_root = project_root
        self.enabled = is_debug_enabled() if enabled is None else enabled
        self.session_id = datetime.now().strftime("%Y%m%d_%H%M%S")
        self.session_dir = Path(project_root) / METADATA_DIRNAME / "debug" / f"session_{self.session_id}"
        self._sequence = 0
        if self.enabled:
            self.session_dir.mkdir(parents=True, exist_ok=True)

    def _write(self, event: str, fields: Dict[str, Any]) -> Optional[Path]:
        if not self.enabled:
            return None
        self._sequence += 1
        record = {"event": event, "session_id": self.session_id, "logged_at": datetime.now().isoformat(), **fields}
        path = self.session_dir / f"{self._sequence:03d}_{event}.json"
        path.write_text(json.dumps(record, indent=2, ensure_ascii=False, default=str), encoding="utf-8")
        return path

    def log_routing(self, transcript: str, decisions: List[Dict[str, Any]]) -> Optional[Path]:
        """
        Log per-statement routing decisions.

        Args:
            transcript: Normalized transcript
            decisions: One dict per statement (statement, topic, section, rerouted)
        """
        dropped = [d for d in decisions if not d.get("section")]
        return self._write(
            "routing",
            {
                "transcript": transcript,
                "decisions": decisions,
                "stats": {"statements": len(decisions), "dropped": len(dropped)},
            },
        )

    def log_config_refresh(self, source: str, ok: bool, error: Optional[str] = None) -> Optional[Path]:
        """Log a routing-config refresh attempt."""
        return self._write("config_refresh", {"source": source, "ok": ok, "error": error})

    def log_llm_request(self, messages: List[Dict[str, str]]) -> Optional[Path]:
        """Log the chat messages sent to the structuring model."""
        return self._write("llm_request", {"messages": messages, "message_count": len(messages)})

    def log_llm_response(self, response_content: str) -> Optional[Path]:
        """Log the raw structuring model response."""
        return self._write("llm_response", {"response_content": response_content, "response_length": len(response_content)})

    def log_validation_error(self, error: Exception, raw_data: Any, context: str = "validation") -> Optional[Path]:
        """
        Log detailed information about a validation failure.

        Args:
            error: The exception that occurred
            raw_data: The raw data that failed validation
            context: Context description for the error
        """
        return self._write(
            f"{context}_validation_error",
            {
                "error": str(error),
                "error_type": type(error).__name__,
                "raw_data": raw_data,
                "validation_errors": error.errors() if hasattr(error, "errors") else [],
            },
        )


_debug_logger: Optional[DebugLogger] = None


def get_debug_logger(project_root: str = ".") -> DebugLogger:
    """
    Return the shared session logger for project_root.

    It is rebuilt when the project root changes or SN_DEBUG has been toggled
    since the last call.
    """
    global _debug_logger
    if _debug_logger is None or _debug_logger.project_root != project_root or _debug_logger.enabled != is_debug_enabled():
        _debug_logger = DebugLogger(project_root)
    return _debug_logger
