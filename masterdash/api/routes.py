"""
Flask route handlers for the REST API.
"""

import logging

from flask import jsonify, request
from sqlalchemy import text

from masterdash.analysis import summarize_rows
from masterdash.config import ADMIN_ROLE, MAX_RESULTS_RETURN
from masterdash.dashboards import DASHBOARD_QUERIES, get_dashboard_query
from masterdash.errors import (
    AccessDenied,
    DuplicatePermission,
    GatewayError,
    MalformedScope,
    QueryExecutionError,
    Unauthenticated,
    UnknownReference,
)
from masterdash.models import AccessScope
from masterdash.rbac import resolve_scope
from masterdash.store import (
    get_permission_by_id,
    get_user_role,
    grant_access,
    list_permissions,
    list_user_dashboards,
    load_access_context,
    revoke_access,
    update_scope,
)
from masterdash.api.auth import generate_token, role_required, token_required

logger = logging.getLogger(__name__)

# Query-string keys that are never treated as dashboard filters.
RESERVED_ARGS = {"token", "max_rows"}


def gateway_error_response(e: GatewayError):
    """Translate gateway outcomes to caller-visible responses without internal detail."""
    if isinstance(e, Unauthenticated):
        return jsonify({"error": "Not authenticated"}), 401
    if isinstance(e, AccessDenied):
        return jsonify({"error": "No access to this dashboard"}), 403
    if isinstance(e, QueryExecutionError):
        return jsonify({"error": "Query execution failed"}), 500
    return jsonify({"error": "Internal server error"}), 500


def register_routes(app, app_engine, gateway):
    """Register all API routes on the Flask *app*."""

    admin_required = role_required(app_engine, ADMIN_ROLE)

    # ── Health / info ────────────────────────────────────────────────

    @app.route("/", methods=["GET"])
    def index():
        return jsonify({
            "service": "MasterDash Analytics API",
            "version": "1.0.0",
            "status": "running",
            "endpoints": {
                "auth": "/api/auth/login",
                "dashboards": "/api/user/dashboards",
                "data": "/api/dashboards/<slug>/data",
                "summary": "/api/dashboards/<slug>/summary",
                "permissions": "/api/admin/permissions",
                "health": "/health",
            },
        })

    @app.route("/health", methods=["GET"])
    def health():
        checks = {"app_store": False, "warehouse": False}
        try:
            with app_engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            checks["app_store"] = True
        except Exception:
            logger.exception("Administrative store health check failed.")

        checks["warehouse"], _ = gateway.check_connection()
        all_healthy = all(checks.values())

        return jsonify({
            "status": "healthy" if all_healthy else "unhealthy",
            "checks": checks,
            "dashboards": sorted(DASHBOARD_QUERIES),
        }), 200 if all_healthy else 503

    # ── Auth ─────────────────────────────────────────────────────────

    @app.route("/api/auth/login", methods=["POST"])
    def login():
        if not request.is_json:
            return jsonify({"error": "Content-Type must be application/json"}), 400

        data = request.get_json(silent=True) or {}
        api_key = str(data.get("api_key", "")).strip()
        if not api_key:
            return jsonify({"error": "api_key is required"}), 400

        try:
            ctx = load_access_context(app_engine, api_key)
        except ValueError:
            return jsonify({"error": "Authentication failed"}), 401
        except GatewayError:
            return jsonify({"error": "Internal server error during login"}), 500

        return jsonify({
            "success": True,
            "token": generate_token(ctx),
            "user": {
                "id": ctx.user_id,
                "display_name": ctx.display_name,
                "email": ctx.email,
                "role": ctx.role,
            },
        }), 200

    # ── User ─────────────────────────────────────────────────────────

    @app.route("/api/user/profile", methods=["GET"])
    @token_required
    def get_profile():
        payload = request.token_payload
        try:
            role = get_user_role(app_engine, request.caller_id)
        except GatewayError:
            return jsonify({"error": "Internal server error"}), 500
        if role is None:
            return jsonify({"error": "Unknown or inactive user"}), 401
        return jsonify({
            "success": True,
            "user": {
                "id": request.caller_id,
                "display_name": payload.get("display_name"),
                "email": payload.get("email"),
                "role": role,
            },
        }), 200

    @app.route("/api/user/dashboards", methods=["GET"])
    @token_required
    def get_user_dashboards():
        try:
            items = list_user_dashboards(app_engine, request.caller_id)
        except GatewayError:
            return jsonify({"error": "Internal server error"}), 500
        for item in items:
            item["href"] = f"/dashboards/{item['slug']}"
        return jsonify({"success": True, "dashboards": items}), 200

    # ── Dashboards ───────────────────────────────────────────────────

    def run_dashboard(slug):
        """Shared body of the data/summary endpoints. Returns (result, dashboard, error_response)."""
        if slug not in DASHBOARD_QUERIES:
            # Check access first so an unauthorised caller cannot probe the registry.
            try:
                resolve_scope(app_engine, request.caller_id, slug)
            except GatewayError as e:
                return None, None, gateway_error_response(e)
            return None, None, (jsonify({"error": "Dashboard not configured"}), 404)

        dashboard = get_dashboard_query(slug)
        filters = {k: v for k, v in request.args.items() if k not in RESERVED_ARGS}
        unknown = sorted(set(filters) - dashboard.filterable)
        if unknown:
            return None, None, (jsonify({"error": f"Unsupported filters: {', '.join(unknown)}"}), 400)

        try:
            max_rows = int(request.args.get("max_rows", MAX_RESULTS_RETURN))
        except ValueError:
            max_rows = 0
        if max_rows < 1:
            return None, None, (jsonify({"error": "max_rows must be a positive integer"}), 400)

        try:
            result = gateway.run_dashboard(request.caller_id, dashboard, params=filters, max_rows=max_rows)
        except GatewayError as e:
            return None, None, gateway_error_response(e)
        return result, dashboard, None

    @app.route("/api/dashboards/<slug>/data", methods=["GET"])
    @token_required
    def dashboard_data(slug):
        result, _dashboard, error = run_dashboard(slug)
        if error is not None:
            return error
        return jsonify({
            "data": result.data,
            "accessScope": result.access_scope.to_dict(),
            "rowCount": result.row_count,
            "truncated": result.truncated,
        }), 200

    @app.route("/api/dashboards/<slug>/summary", methods=["GET"])
    @token_required
    def dashboard_summary(slug):
        result, dashboard, error = run_dashboard(slug)
        if error is not None:
            return error
        summary = summarize_rows(
            result.data,
            sucursal_column=dashboard.columns.get("sucursales") or "sucursal",
            date_column=dashboard.columns.get("date") or "fecha",
            amount_column=dashboard.amount_column,
        )
        summary["accessScope"] = result.access_scope.to_dict()
        summary["truncated"] = result.truncated
        return jsonify(summary), 200

    # ── Admin: permissions ───────────────────────────────────────────

    @app.route("/api/admin/permissions", methods=["GET"])
    @token_required
    @admin_required
    def admin_list_permissions():
        try:
            records = list_permissions(app_engine)
        except GatewayError:
            return jsonify({"error": "Error fetching permissions"}), 500
        return jsonify([r.to_dict() for r in records]), 200

    @app.route("/api/admin/permissions", methods=["POST"])
    @token_required
    @admin_required
    def admin_create_permission():
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            return jsonify({"error": "Content-Type must be application/json"}), 400
        try:
            user_id = int(data["userId"])
            dashboard_id = int(data["dashboardId"])
        except (KeyError, TypeError, ValueError):
            return jsonify({"error": "userId and dashboardId are required integers"}), 400

        try:
            scope = _parse_scope(data.get("accessScope"))
        except MalformedScope as e:
            return jsonify({"error": f"Invalid accessScope: {e}"}), 400

        try:
            record = grant_access(app_engine, user_id, dashboard_id, scope)
        except DuplicatePermission:
            return jsonify({"error": "Permission already exists"}), 409
        except UnknownReference as e:
            return jsonify({"error": str(e)}), 404
        except GatewayError:
            return jsonify({"error": "Error creating permission"}), 500
        return jsonify(record.to_dict()), 201

    @app.route("/api/admin/permissions/<int:permission_id>", methods=["GET"])
    @token_required
    @admin_required
    def admin_get_permission(permission_id):
        try:
            record = get_permission_by_id(app_engine, permission_id)
        except GatewayError:
            return jsonify({"error": "Error fetching permission"}), 500
        if record is None:
            return jsonify({"error": "Permission not found"}), 404
        return jsonify(record.to_dict()), 200

    @app.route("/api/admin/permissions/<int:permission_id>", methods=["PUT"])
    @token_required
    @admin_required
    def admin_update_permission(permission_id):
        data = request.get_json(silent=True)
        if not isinstance(data, dict) or "accessScope" not in data:
            return jsonify({"error": "accessScope is required"}), 400
        try:
            scope = _parse_scope(data["accessScope"])
        except MalformedScope as e:
            return jsonify({"error": f"Invalid accessScope: {e}"}), 400

        try:
            record = update_scope(app_engine, permission_id, scope)
        except GatewayError:
            return jsonify({"error": "Error updating permission"}), 500
        if record is None:
            return jsonify({"error": "Permission not found"}), 404
        return jsonify(record.to_dict()), 200

    @app.route("/api/admin/permissions/<int:permission_id>", methods=["DELETE"])
    @token_required
    @admin_required
    def admin_delete_permission(permission_id):
        try:
            deleted = revoke_access(app_engine, permission_id)
        except GatewayError:
            return jsonify({"error": "Error deleting permission"}), 500
        if not deleted:
            return jsonify({"error": "Permission not found"}), 404
        return jsonify({"success": True}), 200

    # ── Error handlers ───────────────────────────────────────────────

    @app.errorhandler(404)
    def not_found(e):
        return jsonify({"error": "Endpoint not found"}), 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return jsonify({"error": "Method not allowed"}), 405

    @app.errorhandler(500)
    def internal_error(e):
        return jsonify({"error": "Internal server error"}), 500


def _parse_scope(raw):
    """None clears the scope (fail-closed); anything else must be a valid descriptor."""
    if raw is None:
        return None
    return AccessScope.from_json(raw)
