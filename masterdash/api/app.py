"""
Flask application factory and server entry-point.
"""

import logging
import os
import sys
from datetime import date, datetime
from decimal import Decimal

from flask import Flask
from flask.json.provider import DefaultJSONProvider
from flask_cors import CORS

from masterdash.config import MAX_RESULTS_RETURN, TOKEN_EXPIRY_HOURS, configure_logging
from masterdash.dashboards import validate_registry
from masterdash.database import init_engine
from masterdash.gateway import QueryGateway
from masterdash.api.routes import register_routes

logger = logging.getLogger(__name__)


class WarehouseJSONProvider(DefaultJSONProvider):
    """Serialise warehouse values (dates, decimals) the way the dashboards expect."""

    @staticmethod
    def default(o):
        if isinstance(o, (datetime, date)):
            return o.isoformat()
        if isinstance(o, Decimal):
            return float(o)
        return DefaultJSONProvider.default(o)


def create_app(app_engine=None, warehouse_engine=None, max_rows: int = MAX_RESULTS_RETURN):
    """
    Build and return a fully configured Flask application.

    Engines are created here when not injected; the caller owns disposing
    them (see ``main``).
    """
    app = Flask(__name__)
    app.json = WarehouseJSONProvider(app)
    CORS(app)

    # ── Initialise shared resources ──────────────────────────────────
    validate_registry()
    if app_engine is None:
        logger.info("[init] Initializing administrative store connection...")
        app_engine = init_engine("APP_DB_URI")
    if warehouse_engine is None:
        logger.info("[init] Initializing warehouse connection...")
        warehouse_engine = init_engine("DW_DB_URI")

    gateway = QueryGateway(app_engine, warehouse_engine, max_rows=max_rows)
    app.extensions["masterdash"] = {"app_engine": app_engine, "gateway": gateway}

    # ── Register routes ──────────────────────────────────────────────
    register_routes(app, app_engine, gateway)
    logger.info("[init] API server ready")

    return app


def main():
    """Run the development server."""
    configure_logging()
    print("=" * 60)
    print("MasterDash Analytics – REST API Server")
    print("=" * 60)

    try:
        app = create_app()
    except Exception as e:
        print(f"[FATAL] Failed to initialize: {e}", file=sys.stderr)
        sys.exit(1)

    host = os.getenv("API_HOST", "0.0.0.0")
    port = int(os.getenv("API_PORT", "8000"))
    debug = os.getenv("FLASK_ENV") == "development"

    print(f"\n[server] Starting Flask API on {host}:{port}")
    print(f"[server] Debug mode: {debug}")
    print(f"[server] Token expiry: {TOKEN_EXPIRY_HOURS} hours")
    print("\nAPI Endpoints:")
    print(f"  - POST http://{host}:{port}/api/auth/login")
    print(f"  - GET  http://{host}:{port}/api/user/dashboards")
    print(f"  - GET  http://{host}:{port}/api/dashboards/<slug>/data")
    print(f"  - GET  http://{host}:{port}/api/dashboards/<slug>/summary")
    print(f"  - GET  http://{host}:{port}/api/admin/permissions")
    print(f"  - GET  http://{host}:{port}/health")
    print("\n" + "=" * 60)

    resources = app.extensions["masterdash"]
    try:
        app.run(host=host, port=port, debug=debug, threaded=True)
    finally:
        resources["gateway"].warehouse_engine.dispose()
        resources["app_engine"].dispose()


if __name__ == "__main__":
    main()
