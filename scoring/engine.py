"""
Scoring - Database Engine.

============================================================
SCORE DATABASE CONNECTION
============================================================

Builds the SQLAlchemy engine used to read driver score summaries.

Requirements:
- Read-only access, no ORM mapping
- Pooled connections that are recycled periodically
- Connection failures surface as SQLAlchemyError to the caller

============================================================
"""

import logging
from typing import Any, Optional

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.engine.url import make_url
from sqlalchemy.exc import ArgumentError


logger = logging.getLogger(__name__)


def _display_url(database_url: str) -> str:
    """Database URL with the password hidden."""
    try:
        return make_url(database_url).render_as_string(hide_password=True)
    except ArgumentError:
        return database_url.split("@")[-1]


def create_score_engine(
    database_url: str,
    pool_recycle: int = 1800,
    echo: bool = False,
    **engine_kwargs: Any,
) -> Engine:
    """
    Create the SQLAlchemy engine for the score database.

    Args:
        database_url: SQLAlchemy URL (e.g. postgresql://user:pw@host/db)
        pool_recycle: Recycle connections after N seconds
        echo: Log SQL statements
        engine_kwargs: Passed through to create_engine

    Returns:
        SQLAlchemy Engine
    """
    logger.info(f"Creating score database engine for: {_display_url(database_url)}")

    engine = create_engine(
        database_url,
        pool_pre_ping=True,
        pool_recycle=pool_recycle,
        echo=echo,
        **engine_kwargs,
    )

    @event.listens_for(engine, "connect")
    def on_connect(dbapi_conn, connection_record):
        logger.debug("Score database connection established")

    return engine


def check_connection(engine: Optional[Engine]) -> bool:
    """
    Run SELECT 1 against the engine.

    Raises:
        SQLAlchemyError: when the database cannot be reached
    """
    if engine is None:
        return False
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))
    return True
