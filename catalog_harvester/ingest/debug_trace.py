"""Per-job debug trace of scrape steps."""

import logging
import time
from typing import Any, Dict, List, Optional


class DebugTrace:
    """
    Ordered record of the steps a scrape job went through.

    Each step is ``{"t": <ms since start>, "name": ..., "data": {...}}``. The
    trace is returned to the caller with the job result and every step is
    mirrored to the job logger at DEBUG.
    """

    def __init__(self, logger: Optional[logging.LoggerAdapter | logging.Logger] = None):
        self._started = time.monotonic()
        self._logger = logger or logging.getLogger(__name__)
        self.steps: List[Dict[str, Any]] = []
        self.meta: Dict[str, Any] = {}

    def step(self, name: str, **data) -> None:
        elapsed_ms = int((time.monotonic() - self._started) * 1000)
        entry: Dict[str, Any] = {"t": elapsed_ms, "name": name}
        if data:
            entry["data"] = data
        self.steps.append(entry)
        self._logger.debug(f"[{elapsed_ms}ms] {name} {data if data else ''}")

    def names(self) -> List[str]:
        return [entry["name"] for entry in self.steps]

    def to_dict(self) -> Dict[str, Any]:
        return {"steps": list(self.steps), "meta": dict(self.meta)}
