"""
Metrics Normalization & Aggregation Engine.

============================================================
PURPOSE
============================================================

Turns raw counters from independently deployed pipeline
components into comparable, display-ready metrics.

1. Exposition parser     - Prometheus text -> snapshot
2. Pattern resolver      - priority list + substring fallback
3. Aggregator            - sum counters across instances
4. Counter delta tracker - rolling totals immune to resets
5. Baseline service      - "reset" by subtraction, display only

============================================================
USAGE
============================================================

```python
from metrics_engine import (
    BaselineService,
    CounterDeltaTracker,
    parse_exposition,
    resolve_metric,
)

snapshot = parse_exposition(text)
rows = resolve_metric(snapshot, ["jdbc_sink_rows_inserted_total"])

tracker = CounterDeltaTracker()
state = tracker.observe(publish_in=100, publish_out=200)
```

============================================================
"""

from .exposition import MetricSnapshot, parse_exposition
from .resolver import describe_matches, find_match, resolve_metric
from .models import (
    AggregatedHealth,
    AggregatedMetrics,
    AggregationStatus,
    BaselineSet,
    InstanceHealthDetail,
    InstanceHealthStatus,
    ThroughputState,
)
from .aggregator import MultiInstanceAggregator
from .throughput import CounterDeltaTracker, ExchangeThroughputService, amplification_ratio
from .baseline import DEFAULT_BASELINE_KEYS, BaselineService, round_half_up
from .components import (
    ComponentMetricsService,
    EventsProcessorEstimateService,
    GeneratorMetricsService,
    HdfsSinkEstimateService,
    JdbcSinkMetricsService,
    ProcessorMetricsService,
)


__all__ = [
    # Parsing
    "MetricSnapshot",
    "parse_exposition",
    "resolve_metric",
    "find_match",
    "describe_matches",

    # Models
    "AggregationStatus",
    "InstanceHealthStatus",
    "AggregatedMetrics",
    "AggregatedHealth",
    "InstanceHealthDetail",
    "ThroughputState",
    "BaselineSet",

    # Engine
    "MultiInstanceAggregator",
    "CounterDeltaTracker",
    "ExchangeThroughputService",
    "amplification_ratio",
    "BaselineService",
    "DEFAULT_BASELINE_KEYS",
    "round_half_up",

    # Components
    "ComponentMetricsService",
    "GeneratorMetricsService",
    "ProcessorMetricsService",
    "JdbcSinkMetricsService",
    "EventsProcessorEstimateService",
    "HdfsSinkEstimateService",
]
