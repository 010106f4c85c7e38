"""
Scoring - Score Summary Repository.

============================================================
PURPOSE
============================================================
Read-only driver score summaries for the monitoring API:
- Database health
- Fleet summary with risk distribution
- Top performers and high-risk drivers

When no engine is configured the repository serves a fixed
simulated data set so the dashboard stays usable.

RULES:
- Never writes
- Never raises; failures become status "error" (or an empty list)

============================================================
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError


logger = logging.getLogger(__name__)


ML_MODEL_ACCURACY = 94.3
DRIVER_LIST_LIMIT = 5


# =============================================================
# QUERIES
# =============================================================

FLEET_SUMMARY_SQL = text("""
    SELECT
        AVG(s.score) AS fleet_average_score,
        COUNT(s.driver_id) AS total_drivers,
        AVG(f.speed_compliance_rate) AS avg_speed_compliance,
        AVG(f.avg_g_force) AS avg_g_force,
        SUM(f.harsh_driving_events) AS total_harsh_events,
        AVG(f.phone_usage_rate) AS avg_phone_usage,
        SUM(f.accident_count) AS total_accidents,
        SUM(f.total_events) AS total_events_analyzed,
        SUM(CASE WHEN s.score >= 90 THEN 1 ELSE 0 END) AS excellent,
        SUM(CASE WHEN s.score >= 80 AND s.score < 90 THEN 1 ELSE 0 END) AS good,
        SUM(CASE WHEN s.score >= 70 AND s.score < 80 THEN 1 ELSE 0 END) AS average,
        SUM(CASE WHEN s.score >= 60 AND s.score < 70 THEN 1 ELSE 0 END) AS poor,
        SUM(CASE WHEN s.score < 60 THEN 1 ELSE 0 END) AS high_risk
    FROM v_current_driver_scores s
    LEFT JOIN driver_ml_training_data f ON s.driver_id = f.driver_id
    WHERE s.score IS NOT NULL
""")

_DRIVER_SELECT = """
    SELECT
        s.driver_id,
        s.score,
        CASE
            WHEN s.score >= 90 THEN 'EXCELLENT'
            WHEN s.score >= 80 THEN 'GOOD'
            WHEN s.score >= 70 THEN 'AVERAGE'
            WHEN s.score >= 60 THEN 'POOR'
            ELSE 'HIGH_RISK'
        END AS risk_category,
        f.speed_compliance_rate,
        f.avg_g_force,
        f.harsh_driving_events,
        f.phone_usage_rate,
        f.speed_variance,
        f.accident_count,
        f.total_events,
        s.calculation_date
    FROM v_current_driver_scores s
    JOIN driver_ml_training_data f ON s.driver_id = f.driver_id
"""

TOP_PERFORMERS_SQL = text(_DRIVER_SELECT + """
    WHERE s.score >= 80
    ORDER BY s.score DESC
    LIMIT :limit
""")

HIGH_RISK_SQL = text(_DRIVER_SELECT + """
    WHERE s.score < 80
    ORDER BY s.score ASC
    LIMIT :limit
""")


# =============================================================
# SIMULATED DATA
# =============================================================

SIMULATED_FLEET_SUMMARY: Dict[str, Any] = {
    "fleet_average_score": 83.2,
    "total_drivers": 15,
    "ml_model_accuracy": ML_MODEL_ACCURACY,
    "risk_distribution": {
        "excellent": 2,
        "good": 8,
        "average": 2,
        "poor": 2,
        "high_risk": 1,
    },
    "total_events_analyzed": 2400,
}

# driver_id, score, category, speed_compliance, harsh_events, phone_usage, accidents
SIMULATED_TOP_PERFORMERS = [
    (400011, 93.89, "EXCELLENT", 90.71, 0, 12.82, 0),
    (400017, 92.04, "EXCELLENT", 90.52, 0, 21.90, 0),
    (400022, 91.15, "EXCELLENT", 88.43, 0, 15.67, 0),
    (400035, 87.62, "GOOD", 85.90, 0, 18.24, 0),
    (400019, 86.33, "GOOD", 84.17, 0, 19.88, 0),
]

SIMULATED_HIGH_RISK = [
    (400001, 57.83, "HIGH_RISK", 81.25, 1, 26.25, 2),
    (400008, 59.42, "POOR", 79.33, 2, 28.91, 1),
    (400004, 61.89, "POOR", 84.35, 1, 24.83, 1),
    (400026, 63.84, "AVERAGE", 82.57, 0, 31.72, 0),
    (400015, 65.77, "AVERAGE", 86.91, 0, 22.15, 0),
]


def _simulated_driver(row: tuple) -> Dict[str, Any]:
    driver_id, score, category, compliance, harsh, phone, accidents = row
    return {
        "driver_id": driver_id,
        "safety_score": score,
        "risk_category": category,
        "speed_compliance": compliance,
        "harsh_events": harsh,
        "phone_usage": phone,
        "accidents": accidents,
    }


def _round(value: Any, digits: int = 2) -> float:
    return round(float(value), digits) if value is not None else 0.0


def _as_int(value: Any) -> int:
    return int(value) if value is not None else 0


def _as_iso(value: Any) -> Optional[str]:
    if value is None:
        return None
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return str(value)


# =============================================================
# REPOSITORY
# =============================================================


class ScoreSummaryRepository:
    """
    Read-only driver score summaries.

    Pass engine=None to serve the simulated data set.
    """

    def __init__(self, engine: Optional[Engine] = None):
        self._engine = engine

    @property
    def uses_real_data(self) -> bool:
        return self._engine is not None

    def get_health(self) -> Dict[str, Any]:
        """Database reachability."""
        timestamp = datetime.now(timezone.utc).isoformat()

        if self._engine is None:
            return {
                "status": "UP",
                "connection_test": "simulated",
                "data_source": "simulated",
                "timestamp": timestamp,
            }

        try:
            with self._engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return {
                "status": "UP",
                "connection_test": "real",
                "data_source": "real_database",
                "timestamp": timestamp,
            }
        except SQLAlchemyError as e:
            logger.error(f"Score database health check failed: {e}")
            return {
                "status": "DOWN",
                "error": str(e),
                "timestamp": timestamp,
            }

    def get_fleet_summary(self) -> Dict[str, Any]:
        """Fleet averages and the risk-category distribution."""
        if self._engine is None:
            summary = dict(SIMULATED_FLEET_SUMMARY)
            summary["risk_distribution"] = dict(SIMULATED_FLEET_SUMMARY["risk_distribution"])
            summary["status"] = "success"
            summary["data_source"] = "simulated"
            return summary

        try:
            with self._engine.connect() as conn:
                row = conn.execute(FLEET_SUMMARY_SQL).mappings().first()
        except SQLAlchemyError as e:
            logger.error(f"Failed to load fleet summary: {e}")
            return {"status": "error", "error": str(e)}

        if row is None:
            row = {}

        return {
            "fleet_average_score": _round(row.get("fleet_average_score")),
            "total_drivers": _as_int(row.get("total_drivers")),
            "ml_model_accuracy": ML_MODEL_ACCURACY,
            "avg_speed_compliance": _round(row.get("avg_speed_compliance")),
            "avg_g_force": _round(row.get("avg_g_force")),
            "total_harsh_events": _as_int(row.get("total_harsh_events")),
            "avg_phone_usage": _round(row.get("avg_phone_usage")),
            "total_accidents": _as_int(row.get("total_accidents")),
            "total_events_analyzed": _as_int(row.get("total_events_analyzed")),
            "risk_distribution": {
                "excellent": _as_int(row.get("excellent")),
                "good": _as_int(row.get("good")),
                "average": _as_int(row.get("average")),
                "poor": _as_int(row.get("poor")),
                "high_risk": _as_int(row.get("high_risk")),
            },
            "status": "success",
            "data_source": "real_database",
        }

    def get_top_performers(self, limit: int = DRIVER_LIST_LIMIT) -> List[Dict[str, Any]]:
        """Best scoring drivers (score >= 80), highest first."""
        if self._engine is None:
            return [_simulated_driver(r) for r in SIMULATED_TOP_PERFORMERS[:limit]]
        return self._load_drivers(TOP_PERFORMERS_SQL, limit, "top performers")

    def get_high_risk_drivers(self, limit: int = DRIVER_LIST_LIMIT) -> List[Dict[str, Any]]:
        """Lowest scoring drivers (score < 80), lowest first."""
        if self._engine is None:
            return [_simulated_driver(r) for r in SIMULATED_HIGH_RISK[:limit]]
        return self._load_drivers(HIGH_RISK_SQL, limit, "high-risk drivers")

    def _load_drivers(self, query, limit: int, label: str) -> List[Dict[str, Any]]:
        try:
            with self._engine.connect() as conn:
                rows = conn.execute(query, {"limit": limit}).mappings().all()
        except SQLAlchemyError as e:
            logger.error(f"Failed to load {label}: {e}")
            return []

        return [
            {
                "driver_id": row["driver_id"],
                "safety_score": _round(row["score"]),
                "risk_category": row["risk_category"],
                "speed_compliance": _round(row["speed_compliance_rate"]),
                "avg_g_force": _round(row["avg_g_force"], 3),
                "harsh_events": _as_int(row["harsh_driving_events"]),
                "phone_usage": _round(row["phone_usage_rate"]),
                "speed_variance": _round(row["speed_variance"]),
                "accidents": _as_int(row["accident_count"]),
                "total_events": _as_int(row["total_events"]),
                "calculation_date": _as_iso(row["calculation_date"]),
            }
            for row in rows
        ]
