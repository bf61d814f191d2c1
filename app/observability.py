from __future__ import annotations

import logging
import threading
from collections.abc import Mapping
from typing import Any

logger = logging.getLogger(__name__)

_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def configure_logging(level: str = "INFO") -> None:
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(format=_LOG_FORMAT)
    root.setLevel(level.upper() if level else "INFO")


def _series_key(name: str, labels: Mapping[str, str]) -> str:
    if not labels:
        return name
    rendered = ",".join(f"{key}={labels[key]}" for key in sorted(labels))
    return f"{name}{{{rendered}}}"


class Observability:
    """Process-wide counters handed to each component at construction time."""

    def __init__(self, *, namespace: str = "permits") -> None:
        self.namespace = namespace
        self._lock = threading.Lock()
        self._counters: dict[str, int] = {}
        self._flushed = False

    def increment(self, name: str, amount: int = 1, **labels: str) -> None:
        key = _series_key(f"{self.namespace}_{name}", {k: str(v) for k, v in labels.items()})
        with self._lock:
            self._counters[key] = self._counters.get(key, 0) + int(amount)

    def value(self, name: str, **labels: str) -> int:
        key = _series_key(f"{self.namespace}_{name}", {k: str(v) for k, v in labels.items()})
        with self._lock:
            return self._counters.get(key, 0)

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            counters = dict(sorted(self._counters.items()))
        return {"namespace": self.namespace, "counters": counters}

    def flush(self) -> None:
        with self._lock:
            if self._flushed:
                return
            self._flushed = True
            counters = dict(sorted(self._counters.items()))
        for key, count in counters.items():
            logger.info("metric_flush series=%s value=%s", key, count)
