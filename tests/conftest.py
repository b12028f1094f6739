"""
Shared fixtures: in-memory administrative store and warehouse engines.
"""

from types import SimpleNamespace

import pytest
from sqlalchemy import create_engine, insert, text
from sqlalchemy.pool import StaticPool

from masterdash.models import AccessScope
from masterdash.store import (
    create_dashboard,
    create_user,
    grant_access,
    init_schema,
    user_dashboard_access,
)

# 3 rows for Norte, 5 for Sur; one group per row in the ventas base query.
VENTAS_ROWS = [
    ("2024-01-01", "Norte", "NOA", 100),
    ("2024-01-02", "Norte", "NOA", 200),
    ("2024-02-03", "Norte", "NOA", 300),
    ("2024-01-01", "Sur", "Patagonia", 50),
    ("2024-01-02", "Sur", "Patagonia", 150),
    ("2024-01-03", "Sur", "Patagonia", 250),
    ("2024-02-04", "Sur", "Patagonia", 350),
    ("2024-03-05", "Sur", "Patagonia", 450),
]

CONSOLIDACIONES_ROWS = [
    ("2024-01-10 09:00:00", "jperez", "Juan Perez", 101, "Norte   "),
    ("2024-01-11 09:00:00", "jperez", "Juan Perez", 101, "Norte   "),
    ("2024-02-01 10:30:00", "mlopez", "Maria Lopez", 102, "Sur     "),
]


def memory_engine():
    return create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
        future=True,
    )


def seed_ventas(engine, rows):
    with engine.begin() as conn:
        conn.execute(
            text("INSERT INTO vw_ventas (fecha, sucursal, region, monto) VALUES (:f, :s, :r, :m)"),
            [{"f": f, "s": s, "r": r, "m": m} for f, s, r, m in rows],
        )


# ── Helpers / Fakes ──────────────────────────────────────────────────

class CountingEngine:
    """Wrap a real engine and count connection checkouts."""
    def __init__(self, engine):
        self._engine = engine
        self.dialect = engine.dialect
        self.connect_calls = 0

    def connect(self):
        self.connect_calls += 1
        return self._engine.connect()


class FailingConn:
    def __init__(self, exc):
        self._exc = exc
        self.closed = False

    def execute(self, sql, params=None):
        raise self._exc

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.closed = True
        return False


class FailingEngine:
    """Mimic engine.connect() where every statement raises *exc*."""
    def __init__(self, exc, dialect_name="sqlite"):
        self._exc = exc
        self.dialect = SimpleNamespace(name=dialect_name)
        self.connections = []

    def connect(self):
        conn = FailingConn(self._exc)
        self.connections.append(conn)
        return conn


# ── Fixtures ─────────────────────────────────────────────────────────

@pytest.fixture
def app_engine():
    engine = memory_engine()
    init_schema(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def warehouse_engine():
    engine = memory_engine()
    with engine.begin() as conn:
        conn.execute(text(
            "CREATE TABLE vw_ventas (fecha TEXT, sucursal TEXT, region TEXT, monto NUMERIC)"
        ))
        conn.execute(text(
            "CREATE TABLE cajas_ETL_Reporte_Consolidaciones "
            "(FECHA TEXT, USUARIO TEXT, NOMBRE_COMPLETO TEXT, CENTRO_COSTOS INTEGER, SUCURSAL TEXT)"
        ))
        conn.execute(
            text("INSERT INTO cajas_ETL_Reporte_Consolidaciones VALUES (:f, :u, :n, :c, :s)"),
            [{"f": f, "u": u, "n": n, "c": c, "s": s} for f, u, n, c, s in CONSOLIDACIONES_ROWS],
        )
    seed_ventas(engine, VENTAS_ROWS)
    yield engine
    engine.dispose()


@pytest.fixture
def portal(app_engine):
    """
    Users:
      admin     – role admin, no permission records
      norte     – ventas scoped to sucursal Norte; consolidaciones scoped to region NOA
      nogrant   – no permission records
      noscope   – ventas granted with no scope descriptor
      malformed – ventas granted with an unparseable descriptor
    """
    dashboards = {
        "ventas": create_dashboard(app_engine, "ventas", "Dashboard de Ventas", area="Ventas"),
        "consolidaciones": create_dashboard(app_engine, "consolidaciones", "Consolidaciones"),
        "archivado": create_dashboard(app_engine, "archivado", "Archivado", is_active=False),
    }
    users = {
        "admin": create_user(app_engine, "admin@example.com", "Admin", "key-admin", role="admin"),
        "norte": create_user(app_engine, "norte@example.com", "Analista Norte", "key-norte"),
        "nogrant": create_user(app_engine, "nogrant@example.com", "Sin Acceso", "key-nogrant"),
        "noscope": create_user(app_engine, "noscope@example.com", "Sin Scope", "key-noscope"),
        "malformed": create_user(app_engine, "malformed@example.com", "Roto", "key-malformed"),
    }
    grant_access(app_engine, users["norte"], dashboards["ventas"], AccessScope(sucursales=("Norte",)))
    grant_access(app_engine, users["norte"], dashboards["consolidaciones"], AccessScope(regions=("NOA",)))
    grant_access(app_engine, users["norte"], dashboards["archivado"], AccessScope(sucursales=("Norte",)))
    grant_access(app_engine, users["noscope"], dashboards["ventas"])
    with app_engine.begin() as conn:
        conn.execute(insert(user_dashboard_access).values(
            user_id=users["malformed"],
            dashboard_id=dashboards["ventas"],
            access_scope='{"sucursales": "Norte"',
        ))
    return SimpleNamespace(engine=app_engine, users=users, dashboards=dashboards)
