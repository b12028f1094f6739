"""
Tests for the Flask REST API using the test client.
"""

from datetime import timedelta

import pytest
from sqlalchemy.exc import OperationalError

from masterdash.api.app import create_app
from masterdash.api.auth import generate_token, verify_token
from masterdash.models import AccessContext

from conftest import FailingEngine


@pytest.fixture
def client(portal, warehouse_engine):
    app = create_app(portal.engine, warehouse_engine)
    app.config["TESTING"] = True
    return app.test_client()


def login(client, api_key):
    resp = client.post("/api/auth/login", json={"api_key": api_key})
    assert resp.status_code == 200
    return {"Authorization": f"Bearer {resp.get_json()['token']}"}


# ── Auth ─────────────────────────────────────────────────────────────

def test_login_ok(client, portal):
    resp = client.post("/api/auth/login", json={"api_key": "key-norte"})
    body = resp.get_json()
    assert resp.status_code == 200
    assert body["user"]["id"] == portal.users["norte"]
    assert body["user"]["role"] == "user"
    assert verify_token(body["token"])["user_id"] == portal.users["norte"]


def test_login_bad_key(client):
    resp = client.post("/api/auth/login", json={"api_key": "nope"})
    assert resp.status_code == 401
    assert resp.get_json() == {"error": "Authentication failed"}


def test_login_requires_json_and_key(client):
    assert client.post("/api/auth/login", data="api_key=x").status_code == 400
    assert client.post("/api/auth/login", json={}).status_code == 400


def test_missing_token(client):
    resp = client.get("/api/dashboards/ventas/data")
    assert resp.status_code == 401
    assert "missing" in resp.get_json()["error"]


def test_bad_header_and_expired_token(client, portal):
    resp = client.get("/api/user/dashboards", headers={"Authorization": "Token abc"})
    assert resp.status_code == 401

    ctx = AccessContext(portal.users["norte"], "Analista Norte", "norte@example.com", "user")
    expired = generate_token(ctx, expires_in=timedelta(seconds=-5))
    resp = client.get("/api/user/dashboards", headers={"Authorization": f"Bearer {expired}"})
    assert resp.status_code == 401
    assert resp.get_json() == {"error": "Invalid or expired token"}


def test_token_in_query_string(client, portal):
    headers = login(client, "key-norte")
    token = headers["Authorization"].split(" ")[1]
    resp = client.get(f"/api/dashboards/ventas/data?token={token}")
    assert resp.status_code == 200


# ── User ─────────────────────────────────────────────────────────────

def test_profile_reads_role_from_store(client):
    resp = client.get("/api/user/profile", headers=login(client, "key-admin"))
    assert resp.get_json()["user"]["role"] == "admin"


def test_user_dashboards(client):
    resp = client.get("/api/user/dashboards", headers=login(client, "key-norte"))
    dashboards = resp.get_json()["dashboards"]
    assert sorted(d["slug"] for d in dashboards) == ["consolidaciones", "ventas"]
    assert all(d["href"] == f"/dashboards/{d['slug']}" for d in dashboards)


# ── Dashboard data ───────────────────────────────────────────────────

def test_scoped_data(client):
    resp = client.get("/api/dashboards/ventas/data", headers=login(client, "key-norte"))
    body = resp.get_json()
    assert resp.status_code == 200
    assert body["rowCount"] == 3
    assert body["truncated"] is False
    assert body["accessScope"] == {"sucursales": ["Norte"]}
    assert {row["sucursal"] for row in body["data"]} == {"Norte"}


def test_denied_without_permission(client):
    resp = client.get("/api/dashboards/ventas/data", headers=login(client, "key-nogrant"))
    assert resp.status_code == 403
    assert resp.get_json() == {"error": "No access to this dashboard"}


def test_permission_without_scope_returns_no_rows(client):
    resp = client.get("/api/dashboards/ventas/data", headers=login(client, "key-noscope"))
    assert resp.status_code == 200
    assert resp.get_json()["data"] == []


def test_admin_sees_everything(client):
    body = client.get("/api/dashboards/ventas/data", headers=login(client, "key-admin")).get_json()
    assert body["rowCount"] == 8
    assert body["accessScope"] == {"regions": ["*"], "sucursales": ["*"]}


def test_unknown_dashboard(client):
    assert client.get("/api/dashboards/nada/data", headers=login(client, "key-admin")).status_code == 404
    assert client.get("/api/dashboards/nada/data", headers=login(client, "key-norte")).status_code == 403


def test_filters_and_max_rows(client):
    headers = login(client, "key-admin")

    resp = client.get("/api/dashboards/ventas/data?sucursal=Sur&max_rows=2", headers=headers)
    body = resp.get_json()
    assert body["rowCount"] == 2
    assert body["truncated"] is True
    assert {row["sucursal"] for row in body["data"]} == {"Sur"}

    resp = client.get("/api/dashboards/ventas/data?monto=1", headers=headers)
    assert resp.status_code == 400
    assert "monto" in resp.get_json()["error"]

    assert client.get("/api/dashboards/ventas/data?max_rows=0", headers=headers).status_code == 400
    assert client.get("/api/dashboards/ventas/data?max_rows=abc", headers=headers).status_code == 400


def test_summary(client):
    resp = client.get("/api/dashboards/ventas/summary", headers=login(client, "key-norte"))
    body = resp.get_json()
    assert resp.status_code == 200
    assert body["kpis"] == {"totalRegistros": 3, "sucursalesUnicas": 1, "montoTotal": 600.0}
    assert body["charts"]["porSucursal"] == [{"name": "Norte", "value": 3}]
    assert body["charts"]["porMes"] == [
        {"date": "2024-01", "value": 2},
        {"date": "2024-02", "value": 1},
    ]


def test_warehouse_failure_is_generic(portal):
    warehouse = FailingEngine(OperationalError("SELECT", {}, Exception("Invalid object name 'vw_ventas'")))
    client = create_app(portal.engine, warehouse).test_client()

    resp = client.get("/api/dashboards/ventas/data", headers=login(client, "key-norte"))
    assert resp.status_code == 500
    assert resp.get_json() == {"error": "Query execution failed"}


# ── Admin: permissions ───────────────────────────────────────────────

def test_admin_endpoints_require_admin(client):
    headers = login(client, "key-norte")
    assert client.get("/api/admin/permissions", headers=headers).status_code == 403
    assert client.delete("/api/admin/permissions/1", headers=headers).status_code == 403


def test_permission_crud(client, portal):
    headers = login(client, "key-admin")
    assert len(client.get("/api/admin/permissions", headers=headers).get_json()) == 5

    resp = client.post("/api/admin/permissions", headers=headers, json={
        "userId": portal.users["nogrant"],
        "dashboardId": portal.dashboards["ventas"],
        "accessScope": {"sucursales": ["Sur"]},
    })
    assert resp.status_code == 201
    created = resp.get_json()
    assert created["accessScope"] == {"version": 1, "sucursales": ["Sur"]}

    nogrant = login(client, "key-nogrant")
    assert client.get("/api/dashboards/ventas/data", headers=nogrant).get_json()["rowCount"] == 5

    url = f"/api/admin/permissions/{created['id']}"
    assert client.get(url, headers=headers).get_json()["dashboardSlug"] == "ventas"

    resp = client.put(url, headers=headers, json={"accessScope": None})
    assert resp.status_code == 200
    assert resp.get_json()["accessScope"] is None
    assert client.get("/api/dashboards/ventas/data", headers=nogrant).get_json()["data"] == []

    assert client.delete(url, headers=headers).status_code == 200
    assert client.get(url, headers=headers).status_code == 404
    assert client.get("/api/dashboards/ventas/data", headers=nogrant).status_code == 403


def test_permission_validation(client, portal):
    headers = login(client, "key-admin")
    grant = {"userId": portal.users["norte"], "dashboardId": portal.dashboards["ventas"]}

    assert client.post("/api/admin/permissions", headers=headers, json=grant).status_code == 409
    assert client.post("/api/admin/permissions", headers=headers, json={"userId": 1}).status_code == 400

    bad_scope = {**grant, "userId": portal.users["nogrant"], "accessScope": {"sucursales": "Sur"}}
    resp = client.post("/api/admin/permissions", headers=headers, json=bad_scope)
    assert resp.status_code == 400
    assert "Invalid accessScope" in resp.get_json()["error"]

    assert client.put("/api/admin/permissions/9999", headers=headers,
                      json={"accessScope": None}).status_code == 404
    assert client.put("/api/admin/permissions/9999", headers=headers, json={}).status_code == 400
    assert client.delete("/api/admin/permissions/9999", headers=headers).status_code == 404


def test_grant_for_unknown_user_or_dashboard_is_404(client, portal):
    headers = login(client, "key-admin")
    for grant in (
        {"userId": portal.users["nogrant"], "dashboardId": 9999},
        {"userId": 4242, "dashboardId": portal.dashboards["ventas"]},
    ):
        resp = client.post("/api/admin/permissions", headers=headers, json=grant)
        assert resp.status_code == 404
        assert "does not exist" in resp.get_json()["error"]
    assert len(client.get("/api/admin/permissions", headers=headers).get_json()) == 5


def test_out_of_range_scope_is_400(client, portal):
    headers = login(client, "key-admin")
    record = client.get("/api/admin/permissions", headers=headers).get_json()[0]
    huge = {"minAmount": int("1" + "0" * 400)}

    resp = client.put(f"/api/admin/permissions/{record['id']}", headers=headers, json={"accessScope": huge})
    assert resp.status_code == 400

    resp = client.post("/api/admin/permissions", headers=headers, json={
        "userId": portal.users["nogrant"], "dashboardId": portal.dashboards["ventas"], "accessScope": huge,
    })
    assert resp.status_code == 400


# ── Health ───────────────────────────────────────────────────────────

def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.get_json()["checks"] == {"app_store": True, "warehouse": True}


def test_health_reports_broken_warehouse(portal):
    warehouse = FailingEngine(OperationalError("SELECT 1", {}, Exception("timeout")))
    resp = create_app(portal.engine, warehouse).test_client().get("/health")
    assert resp.status_code == 503
    assert resp.get_json()["checks"]["warehouse"] is False


def test_unknown_endpoint_is_json(client):
    resp = client.get("/api/nothing")
    assert resp.status_code == 404
    assert resp.get_json() == {"error": "Endpoint not found"}
