"""
Metrics Engine - Baseline Service.

============================================================
"RESET" WITHOUT TOUCHING THE SOURCES
============================================================

Broker and component counters belong to other systems and
cannot be reset from here. Instead an operator captures a
baseline; reads then show ``max(0, raw - baseline)`` for every
declared (component, field) pair.

- capture(): read every registered source, replace the whole
  baseline set, stamp the capture time. A source that fails or
  reports an error is skipped.
- adjust(): subtract baselines from declared fields; anything
  else passes through. No capture -> raw values unchanged.
- clear(): drop everything. Safe to call repeatedly.

Display only. Source counters are never modified.

============================================================
"""

import logging
import math
import threading
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional

from .models import BaselineSet


logger = logging.getLogger(__name__)


MetricSource = Callable[[], Awaitable[Dict[str, Any]]]


# component -> {field -> baseline key}
DEFAULT_BASELINE_KEYS: Dict[str, Dict[str, str]] = {
    "telemetry_generator": {
        "messages_published_total": "telemetry_messages_published_total",
        "messages_rate_per_sec": "telemetry_messages_rate_per_sec",
    },
    "processor": {
        "messages_in": "processor_messages_in",
        "events_captured": "processor_events_captured",
        "messages_out": "processor_messages_out",
        "invalid_messages": "processor_invalid_messages",
    },
    "hdfs_sink": {
        "messages_in": "hdfs_messages_in",
        "files_written": "hdfs_files_written",
    },
    "jdbc_sink": {
        "rows_inserted": "jdbc_rows_inserted",
        "database_errors": "jdbc_database_errors",
    },
    "exchange": {
        "total_publish_in": "exchange_total_publish_in",
        "total_publish_out": "exchange_total_publish_out",
    },
}


def _as_number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


def round_half_up(value: float) -> int:
    """Nearest integer, halves rounded up; NaN and infinities read as 0."""
    if not math.isfinite(value):
        return 0
    return int(math.floor(value + 0.5))


class BaselineService:
    """
    Captures and applies metric baselines.

    Usage:
        baselines = BaselineService()
        baselines.register_source("processor", processor_service.get_metrics)
        await baselines.capture()
        adjusted = baselines.adjust("processor", raw)
    """

    def __init__(self, baseline_keys: Optional[Mapping[str, Mapping[str, str]]] = None) -> None:
        table = baseline_keys if baseline_keys is not None else DEFAULT_BASELINE_KEYS
        self._baseline_keys: Dict[str, Dict[str, str]] = {
            component: dict(fields) for component, fields in table.items()
        }
        self._sources: Dict[str, MetricSource] = {}
        self._baselines: Optional[BaselineSet] = None
        self._lock = threading.RLock()

    # =========================================================================
    # SOURCES
    # =========================================================================

    def register_source(self, component: str, source: MetricSource) -> None:
        """Register the reader whose values are captured for ``component``."""
        if component not in self._baseline_keys:
            raise ValueError(f"No baseline keys declared for component: {component}")
        self._sources[component] = source

    @property
    def components(self) -> List[str]:
        return list(self._baseline_keys)

    # =========================================================================
    # OPERATIONS
    # =========================================================================

    async def capture(self) -> BaselineSet:
        """Read every registered source and replace the baseline set."""
        logger.info("Capturing metric baselines...")
        values: Dict[str, float] = {}

        for component, source in self._sources.items():
            try:
                reading = await source()
            except Exception as e:
                logger.warning(f"[{component}] Skipping baseline capture: {e}")
                continue

            if not reading or "error" in reading:
                logger.warning(f"[{component}] Skipping baseline capture: source reported an error")
                continue

            for field_name, baseline_key in self._baseline_keys[component].items():
                number = _as_number(reading.get(field_name))
                values[baseline_key] = number if number is not None else 0.0
            logger.debug(f"[{component}] Captured baselines")

        baseline_set = BaselineSet(values=values)
        with self._lock:
            self._baselines = baseline_set

        logger.info(
            f"Captured {len(values)} metric baselines at {baseline_set.captured_at.isoformat()}"
        )
        return baseline_set

    def adjust(self, component: str, raw: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        """
        Baseline-adjusted copy of ``raw`` for display.

        Returns ``raw`` itself when no baseline has been captured.
        """
        with self._lock:
            baselines = self._baselines

        if raw is None or baselines is None:
            return raw

        adjusted = dict(raw)
        for field_name, baseline_key in self._baseline_keys.get(component, {}).items():
            if field_name not in adjusted:
                continue
            baseline = baselines.get(baseline_key)
            current = _as_number(adjusted[field_name])
            if baseline is None or current is None:
                continue
            adjusted[field_name] = round_half_up(max(0.0, current - baseline))
            logger.debug(f"[{component}] Adjusted {field_name}: {current} - {baseline}")

        adjusted["baseline_captured"] = True
        adjusted["baseline_timestamp"] = baselines.captured_at.isoformat()
        return adjusted

    def clear(self) -> None:
        """Discard all baselines; reads go back to raw values."""
        with self._lock:
            self._baselines = None
        logger.info("Cleared all metric baselines - returning to raw metrics display")

    def get_reset_status(self) -> Dict[str, Any]:
        """Whether a baseline is active, what it holds and how old it is."""
        with self._lock:
            baselines = self._baselines

        if baselines is None:
            return {
                "baselines_captured": False,
                "baseline_timestamp": None,
                "baseline_count": 0,
                "baseline_keys": [],
            }

        elapsed = datetime.now(timezone.utc) - baselines.captured_at
        elapsed_ms = int(elapsed.total_seconds() * 1000)
        return {
            "baselines_captured": True,
            "baseline_timestamp": baselines.captured_at.isoformat(),
            "baseline_count": len(baselines.values),
            "baseline_keys": sorted(baselines.values),
            "time_since_reset_ms": elapsed_ms,
            "time_since_reset_seconds": elapsed_ms // 1000,
        }

    @property
    def has_baseline(self) -> bool:
        with self._lock:
            return self._baselines is not None
