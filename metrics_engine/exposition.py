"""
Metrics Engine - Exposition Text Parser.

============================================================
PROMETHEUS TEXT EXPOSITION -> SNAPSHOT
============================================================

Turns one scrape of ``/actuator/prometheus`` into a flat
name -> value mapping:

- Lines are trimmed; blank lines and ``#`` lines are skipped
- Name is the first whitespace token (a ``{...}`` label block
  stays part of the literal name)
- Value is the LAST whitespace token, parsed as float
  (``NaN``, ``+Inf`` and ``-Inf`` are accepted)
- An unparsable value drops that line only
- A repeated name keeps its last occurrence

============================================================
"""

import logging
from typing import Dict


logger = logging.getLogger(__name__)


MetricSnapshot = Dict[str, float]


def parse_exposition(text: str) -> MetricSnapshot:
    """
    Parse exposition text into a snapshot.

    Args:
        text: Raw body of a Prometheus endpoint

    Returns:
        Mapping of sample name to value
    """
    snapshot: MetricSnapshot = {}
    if not text:
        return snapshot

    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue

        parts = line.split()
        if len(parts) < 2:
            logger.debug(f"Skipping exposition line without value: {line[:120]}")
            continue

        name, value_token = parts[0], parts[-1]
        try:
            snapshot[name] = float(value_token)
        except ValueError:
            logger.warning(f"Could not parse value '{value_token}' for metric {name}")

    return snapshot
