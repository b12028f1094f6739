"""
Database engine initialisation for the administrative store and the warehouse.
"""

import logging
import sys

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine, make_url

from masterdash.config import (
    DW_MAX_OVERFLOW,
    DW_POOL_SIZE,
    DW_POOL_TIMEOUT,
    DW_QUERY_TIMEOUT,
    get_env,
)

logger = logging.getLogger(__name__)


def create_pooled_engine(
    db_uri: str,
    pool_size: int = DW_POOL_SIZE,
    max_overflow: int = DW_MAX_OVERFLOW,
    pool_timeout: int = DW_POOL_TIMEOUT,
    query_timeout: int = DW_QUERY_TIMEOUT,
) -> Engine:
    """
    Create an engine with a bounded connection pool and a per-statement timeout.

    Waiting for a pooled connection is capped by ``pool_timeout``; statements
    are capped by ``query_timeout`` where the driver supports it (SQL Server via
    pyodbc, PostgreSQL via ``statement_timeout``).
    """
    url = make_url(db_uri)
    backend = url.get_backend_name()
    kwargs = {"echo": False, "future": True, "pool_pre_ping": True}
    connect_args = {}

    in_memory = backend == "sqlite" and url.database in (None, "", ":memory:")
    if not in_memory:
        kwargs.update(pool_size=pool_size, max_overflow=max_overflow, pool_timeout=pool_timeout)
    if backend == "postgresql":
        connect_args["options"] = f"-c statement_timeout={query_timeout * 1000}"
    if connect_args:
        kwargs["connect_args"] = connect_args

    engine = create_engine(url, **kwargs)

    if backend == "mssql":
        @event.listens_for(engine, "connect")
        def _set_query_timeout(dbapi_connection, connection_record):
            dbapi_connection.timeout = query_timeout

    return engine


def init_engine(env_name: str) -> Engine:
    """Create an engine from the URI in *env_name* and verify the connection."""
    db_uri = get_env(env_name)
    engine = create_pooled_engine(db_uri)
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except Exception as e:
        print(f"ERROR: could not connect to {env_name}:", e, file=sys.stderr)
        sys.exit(1)
    logger.info("[init] Connected to %s (%s).", env_name, engine.dialect.name)
    return engine
