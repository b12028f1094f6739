"""
Registry of dashboards served through the query gateway.

Each dashboard is backed by one fixed, developer-authored base query. Its
output columns must expose every column named in ``columns`` so scope
predicates can be applied on top of it.
"""

from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Mapping, Optional

from masterdash.config import DEFAULT_COLUMNS
from masterdash.errors import ComposeInvariantViolation
from masterdash.predicates import is_identifier
from masterdash.sql_safety import validate_base_query, validate_order_by


@dataclass(frozen=True)
class DashboardQuery:
    slug: str
    base_query: str
    order_by: Optional[str] = None
    columns: Mapping[str, Optional[str]] = field(default_factory=lambda: dict(DEFAULT_COLUMNS))
    filterable: FrozenSet[str] = frozenset()
    amount_column: Optional[str] = None    # summed in summaries


DASHBOARD_QUERIES: Dict[str, DashboardQuery] = {
    "ventas": DashboardQuery(
        slug="ventas",
        base_query="""
            SELECT
                fecha,
                sucursal,
                region,
                SUM(monto) AS monto,
                COUNT(*) AS cantidad
            FROM vw_ventas
            GROUP BY fecha, sucursal, region
        """,
        order_by="fecha DESC",
        filterable=frozenset({"sucursal", "region"}),
        amount_column="monto",
    ),
    "consolidaciones": DashboardQuery(
        slug="consolidaciones",
        base_query="""
            SELECT
                FECHA AS fecha,
                USUARIO AS usuario,
                NOMBRE_COMPLETO AS nombre,
                CENTRO_COSTOS AS centro_costos,
                RTRIM(SUCURSAL) AS sucursal
            FROM cajas_ETL_Reporte_Consolidaciones
        """,
        order_by="fecha DESC",
        columns={"regions": None, "sucursales": "sucursal", "amount": None, "date": "fecha"},
        filterable=frozenset({"sucursal", "usuario"}),
    ),
}


def get_dashboard_query(slug: str) -> DashboardQuery:
    """Return the registered query for *slug*; KeyError when not configured."""
    return DASHBOARD_QUERIES[slug]


def validate_registry(registry: Mapping[str, DashboardQuery] = None) -> None:
    """Check every registered dashboard can be composed safely. Run at startup."""
    for slug, dashboard in (registry or DASHBOARD_QUERIES).items():
        try:
            validate_base_query(dashboard.base_query)
            validate_order_by(dashboard.order_by)
        except ComposeInvariantViolation as e:
            raise ComposeInvariantViolation(f"Dashboard '{slug}': {e}") from e
        names = [c for c in dashboard.columns.values() if c] + sorted(dashboard.filterable)
        for name in names:
            if not is_identifier(name):
                raise ComposeInvariantViolation(f"Dashboard '{slug}': invalid column name {name!r}.")
