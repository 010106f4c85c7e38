"""
Component Health Module.

============================================================
PIPELINE COMPONENT HEALTH
============================================================

Tracks whether each pipeline component (generator, processor,
HDFS sink, JDBC sink) is up, using one of two probe modes:

- DISCOVERY: components map to registry services; a component is
  healthy when any of its instances reports UP
- STATIC: each component has one fixed health URL

Every component starts out healthy until the first check cycle
completes.

============================================================
USAGE
============================================================

```python
from component_health import (
    ComponentHealthRegistry,
    HealthAggregator,
    StaticUrlHealthProbe,
)

probe = StaticUrlHealthProbe({"generator": "http://gen:8082/actuator/health"}, collector)
registry = ComponentHealthRegistry(probe.components, mode=probe.mode)
health = HealthAggregator(registry, probe)

await health.check_all()
registry.is_component_healthy("generator")
registry.is_flow_path_healthy("generator", "processor")
```

============================================================
"""

from .models import FLOW_PATHS, DiscoveryMode, ProbeResult
from .registry import ComponentHealthRegistry
from .probes import DiscoveryHealthProbe, HealthProbeStrategy, StaticUrlHealthProbe
from .aggregator import HealthAggregator


__all__ = [
    # Models
    "DiscoveryMode",
    "ProbeResult",
    "FLOW_PATHS",

    # Registry
    "ComponentHealthRegistry",

    # Probes
    "HealthProbeStrategy",
    "StaticUrlHealthProbe",
    "DiscoveryHealthProbe",

    # Aggregator
    "HealthAggregator",
]
