"""
Interactive CLI for MasterDash.
Log in with an API key and browse the dashboards you have access to,
scoped exactly as the web portal scopes them.
"""

from masterdash.analysis import compute_basic_analysis, rows_to_frame
from masterdash.config import MAX_PREVIEW_ROWS, configure_logging
from masterdash.dashboards import DASHBOARD_QUERIES, validate_registry
from masterdash.database import init_engine
from masterdash.errors import AccessDenied, GatewayError
from masterdash.gateway import QueryGateway
from masterdash.store import list_user_dashboards, load_access_context


def main():
    configure_logging("WARNING")
    print("=== MasterDash: scoped dashboard browser ===\n")

    validate_registry()
    app_engine = init_engine("APP_DB_URI")
    warehouse_engine = init_engine("DW_DB_URI")
    gateway = QueryGateway(app_engine, warehouse_engine)

    try:
        _session(app_engine, gateway)
    finally:
        warehouse_engine.dispose()
        app_engine.dispose()


def _session(app_engine, gateway):
    # ── Login ────────────────────────────────────────────────────────
    try:
        api_key = input("Enter access key (or 'quit'): ").strip()
    except (EOFError, KeyboardInterrupt):
        print("\nExiting.")
        return

    if not api_key or api_key.lower() in {"quit", "exit"}:
        print("Goodbye.")
        return

    try:
        ctx = load_access_context(app_engine, api_key)
        dashboards = list_user_dashboards(app_engine, ctx.user_id)
    except (ValueError, GatewayError) as e:
        print("\n[ERROR] Login failed.")
        print("Details:", e)
        return

    print(f"\n[auth] Logged in as: {ctx.display_name} (role={ctx.role})")
    available = [d["slug"] for d in dashboards if d["slug"] in DASHBOARD_QUERIES]
    print(f"[auth] Dashboards: {', '.join(available) or '(none)'}")

    # ── REPL ─────────────────────────────────────────────────────────
    while True:
        try:
            slug = input("\nDashboard to open (or 'quit'): ").strip()
        except (EOFError, KeyboardInterrupt):
            print("\nExiting.")
            break

        if not slug:
            continue
        if slug.lower() in {"quit", "exit"}:
            print("Goodbye.")
            break
        if slug not in DASHBOARD_QUERIES:
            print(f"[ERROR] Unknown dashboard '{slug}'.")
            continue

        try:
            result = gateway.run_dashboard(ctx.user_id, DASHBOARD_QUERIES[slug])
        except AccessDenied:
            print("\n[RBAC] You have no access to this dashboard.")
            continue
        except GatewayError:
            print("\n[DB ERROR] The query could not be executed. Try again later.")
            continue

        print(f"\n[scope] {result.access_scope.to_dict() or '(empty: no rows visible)'}")
        df = rows_to_frame(result.data)

        print(f"\n[Preview of results (up to {MAX_PREVIEW_ROWS} rows)]")
        if df.empty:
            print("(no rows returned)")
        else:
            print(df.head(MAX_PREVIEW_ROWS).to_string(index=False))
        if result.truncated:
            print("[WARN] Result truncated at the row cap.")

        numeric_summary, cat_summary = compute_basic_analysis(df)
        print("\n[Numeric summary]")
        print(numeric_summary)
        print("\n[Categorical summary]")
        print(cat_summary)


if __name__ == "__main__":
    main()
