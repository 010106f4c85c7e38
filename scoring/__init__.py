"""
Scoring Module.

Read-only driver score summaries from a relational database,
with a simulated data set when no database is configured.

Usage:
    from scoring import ScoreSummaryRepository, create_score_engine

    repo = ScoreSummaryRepository(create_score_engine(url))
    repo.get_fleet_summary()
"""

from .engine import check_connection, create_score_engine
from .repository import ScoreSummaryRepository


__all__ = [
    "create_score_engine",
    "check_connection",
    "ScoreSummaryRepository",
]
