#!/usr/bin/env python3
"""
Generate API keys and a JWT secret for MasterDash.
Prints SQL that registers users and grants scoped dashboard access.
"""

import json
import secrets
import string


def generate_api_key(prefix="mdash", length=32):
    """Generate a secure random API key."""
    chars = string.ascii_letters + string.digits
    random_part = "".join(secrets.choice(chars) for _ in range(length))
    return f"{prefix}_{random_part}"


if __name__ == "__main__":
    print("=" * 70)
    print("MasterDash Key Generator")
    print("=" * 70)
    print()

    print("JWT secret (copy to .env):")
    print("-" * 70)
    print(f"  JWT_SECRET_KEY={secrets.token_hex(32)}")
    print()

    admin_key = generate_api_key()
    user_key = generate_api_key()
    scope = json.dumps({"version": 1, "sucursales": ["Norte"], "minAmount": 0})

    print("=" * 70)
    print("SQL Insert Example:")
    print("=" * 70)
    print()
    print("-- An administrator (sees every row of every dashboard):")
    print(f"""
INSERT INTO users (email, display_name, role, api_key, is_active)
VALUES ('admin@example.com', 'System Admin', 'admin', '{admin_key}', 1);
""")

    print("-- A regular user, restricted to the Norte branch on 'ventas':")
    print(f"""
INSERT INTO users (email, display_name, role, api_key, is_active)
VALUES ('analista@example.com', 'Analista Norte', 'user', '{user_key}', 1);

INSERT INTO user_dashboard_access (user_id, dashboard_id, access_scope)
SELECT u.id, d.id, '{scope}'
FROM users u, dashboards d
WHERE u.email = 'analista@example.com' AND d.slug = 'ventas';
""")

    print("=" * 70)
    print("Note: a permission with a NULL access_scope grants the dashboard")
    print("but shows no rows until a scope is assigned.")
    print("=" * 70)
