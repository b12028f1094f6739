#!/usr/bin/env python3
"""
Create the administrative tables and a demo set of users, dashboards and grants.

Usage: APP_DB_URI=sqlite:///app.db python scripts/seed_portal.py
"""

import secrets

from masterdash.database import init_engine
from masterdash.models import ALL, AccessScope
from masterdash.store import create_dashboard, create_user, grant_access, init_schema

DASHBOARDS = [
    ("ventas", "Dashboard de Ventas", "Ventas", "Análisis de ventas generales"),
    ("consolidaciones", "Consolidaciones de Caja", "Bancos", "Consolidaciones por sucursal"),
]


def main():
    engine = init_engine("APP_DB_URI")
    init_schema(engine)

    ids = {}
    for slug, title, area, description in DASHBOARDS:
        ids[slug] = create_dashboard(engine, slug, title, area=area, description=description)
        print(f"   ✅ Dashboard: {title} → {area}")

    keys = {}
    for email, name, role in [
        ("admin@example.com", "System Admin", "admin"),
        ("norte@example.com", "Analista Norte", "user"),
        ("pendiente@example.com", "Usuario Pendiente", "user"),
    ]:
        keys[email] = f"mdash_{secrets.token_urlsafe(24)}"
        user_id = create_user(engine, email, name, keys[email], role=role)
        if email == "norte@example.com":
            grant_access(engine, user_id, ids["ventas"], AccessScope(regions=("Norte",)))
            grant_access(engine, user_id, ids["consolidaciones"], AccessScope(sucursales=ALL))
        elif email == "pendiente@example.com":
            # granted without a scope: sees the dashboard but no rows yet
            grant_access(engine, user_id, ids["ventas"])
        print(f"   ✅ User: {name} ({role})  api_key={keys[email]}")

    engine.dispose()


if __name__ == "__main__":
    main()
