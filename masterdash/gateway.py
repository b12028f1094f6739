"""
Query gateway: the single entry point for dashboard queries against the warehouse.

Per request: resolve scope -> build predicate -> compose -> execute. A denied
caller never reaches the warehouse; warehouse failures are logged here and
surfaced as a generic QueryExecutionError.
"""

import logging
from typing import Any, Mapping, Optional, Tuple

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from masterdash.config import DEFAULT_COLUMNS, MAX_RESULTS_RETURN
from masterdash.dashboards import DashboardQuery
from masterdash.errors import QueryExecutionError
from masterdash.models import QueryResult
from masterdash.predicates import build_predicate
from masterdash.rbac import resolve_scope
from masterdash.sql_safety import compose_query

logger = logging.getLogger(__name__)


class QueryGateway:
    """
    Holds the two injected engines. The gateway keeps no per-request state;
    each call checks a warehouse connection out of the pool and returns it on
    every exit path.
    """

    def __init__(self, app_engine, warehouse_engine, max_rows: int = MAX_RESULTS_RETURN):
        self.app_engine = app_engine
        self.warehouse_engine = warehouse_engine
        self.max_rows = max_rows

    def execute(
        self,
        caller_id,
        dashboard_slug: str,
        base_query: str,
        order_by: Optional[str] = None,
        params: Optional[Mapping[str, Any]] = None,
        columns: Mapping[str, Optional[str]] = DEFAULT_COLUMNS,
        max_rows: Optional[int] = None,
    ) -> QueryResult:
        """Run *base_query* for *caller_id* restricted to their scope on *dashboard_slug*."""
        scope = resolve_scope(self.app_engine, caller_id, dashboard_slug)

        fragment, bound = build_predicate(scope, params, columns)
        sql = compose_query(base_query, fragment, order_by, self.warehouse_engine.dialect.name)

        limit = min(max_rows, self.max_rows) if max_rows else self.max_rows
        bound["row_cap"] = limit + 1

        try:
            with self.warehouse_engine.connect() as conn:
                rows = [dict(r) for r in conn.execute(text(sql), bound).mappings()]
        except SQLAlchemyError:
            logger.exception(
                "Warehouse query failed (caller=%s, dashboard=%s).", caller_id, dashboard_slug
            )
            raise QueryExecutionError("Query execution failed") from None

        logger.debug(
            "Dashboard %s for caller %s returned %d rows (scope=%s).",
            dashboard_slug, caller_id, len(rows), scope.to_dict(),
        )
        return QueryResult(data=rows[:limit], access_scope=scope, truncated=len(rows) > limit)

    def run_dashboard(self, caller_id, dashboard: DashboardQuery,
                      params: Optional[Mapping[str, Any]] = None,
                      max_rows: Optional[int] = None) -> QueryResult:
        """Execute a registered dashboard query."""
        return self.execute(
            caller_id,
            dashboard.slug,
            dashboard.base_query,
            order_by=dashboard.order_by,
            params=params,
            columns=dashboard.columns,
            max_rows=max_rows,
        )

    def check_connection(self) -> Tuple[bool, str]:
        """Probe the warehouse with a trivial statement."""
        try:
            with self.warehouse_engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError:
            logger.exception("Warehouse connection check failed.")
            return False, "Warehouse connection failed"
        return True, "Warehouse connection OK"
