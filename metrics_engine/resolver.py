"""
Metrics Engine - Pattern Resolver.

============================================================
PRIORITY LIST + SUBSTRING FALLBACK
============================================================

Component metric names drift between versions. A caller passes
an ordered list of candidate names and gets one value back:

Pass 1: the first pattern that is an exact key wins.
Pass 2: for each pattern in order, strip a trailing ``_total``
        and take the first key (snapshot order) containing it.

Nothing matched -> 0.0. Absence means "no activity", not failure.

============================================================
"""

from typing import Dict, List, Mapping, Optional, Sequence, Tuple


TOTAL_SUFFIX = "_total"


def _base_pattern(pattern: str) -> str:
    if pattern.endswith(TOTAL_SUFFIX):
        return pattern[: -len(TOTAL_SUFFIX)]
    return pattern


def find_match(
    snapshot: Mapping[str, float],
    patterns: Sequence[str],
) -> Optional[Tuple[str, str]]:
    """
    Locate the key a pattern list resolves to.

    Returns:
        (pattern, matched_key) or None
    """
    for pattern in patterns:
        if pattern in snapshot:
            return pattern, pattern

    for pattern in patterns:
        base = _base_pattern(pattern)
        if not base:
            continue
        for key in snapshot:
            if base in key:
                return pattern, key

    return None


def resolve_metric(snapshot: Mapping[str, float], patterns: Sequence[str]) -> float:
    """Value of the best match for ``patterns``, 0.0 when none matches."""
    match = find_match(snapshot, patterns)
    if match is None:
        return 0.0
    return snapshot[match[1]]


def describe_matches(
    snapshot: Mapping[str, float],
    patterns: Sequence[str],
) -> Dict[str, Dict[str, object]]:
    """
    Debug view: how each pattern fares against a snapshot.

    Every pattern maps to ``{"match": "exact"|"partial"|"missing"}``
    plus the value (exact) or the matching keys and values (partial).
    """
    report: Dict[str, Dict[str, object]] = {}
    for pattern in patterns:
        if pattern in snapshot:
            report[pattern] = {"match": "exact", "value": snapshot[pattern]}
            continue

        base = _base_pattern(pattern)
        partial: List[Dict[str, object]] = [
            {"name": key, "value": value}
            for key, value in snapshot.items()
            if base and base in key
        ]
        if partial:
            report[pattern] = {"match": "partial", "matches": partial}
        else:
            report[pattern] = {"match": "missing"}
    return report
