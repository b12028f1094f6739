"""
Centralised configuration constants and environment helpers.
"""

import logging
import os
import sys
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

# ── Roles ────────────────────────────────────────────────────────────
ADMIN_ROLE = "admin"
USER_ROLE = "user"
KNOWN_ROLES = {ADMIN_ROLE, USER_ROLE}

# ── Scope descriptor ─────────────────────────────────────────────────
SCOPE_VERSION = 1
WILDCARD_MARKERS = {"*", "all"}

# Warehouse column backing each scope dimension, unless a dashboard overrides it.
DEFAULT_COLUMNS = {
    "regions": "region",
    "sucursales": "sucursal",
    "amount": "monto",
    "date": "fecha",
}

# ── Warehouse limits ─────────────────────────────────────────────────
MAX_RESULTS_RETURN = int(os.getenv("MAX_RESULTS_RETURN", "5000"))
DW_POOL_SIZE = int(os.getenv("DW_POOL_SIZE", "5"))
DW_MAX_OVERFLOW = int(os.getenv("DW_MAX_OVERFLOW", "5"))
DW_POOL_TIMEOUT = int(os.getenv("DW_POOL_TIMEOUT", "10"))
DW_QUERY_TIMEOUT = int(os.getenv("DW_QUERY_TIMEOUT", "30"))
MAX_PREVIEW_ROWS = 20
MAX_CATEGORY_UNIQUE = 10

# ── API server ───────────────────────────────────────────────────────
SECRET_KEY = os.getenv("JWT_SECRET_KEY", "dev-secret-key-change-in-production")
TOKEN_EXPIRY_HOURS = int(os.getenv("TOKEN_EXPIRY_HOURS", "24"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def get_env(name: str) -> str:
    """Return an environment variable or exit with an error message."""
    value = os.getenv(name)
    if not value:
        print(f"ERROR: env var {name} is not set", file=sys.stderr)
        sys.exit(1)
    return value


def configure_logging(level: Optional[str] = None) -> None:
    """Configure root logging once for the server and CLI processes."""
    logging.basicConfig(
        level=(level or LOG_LEVEL).upper(),
        format=LOG_FORMAT,
        stream=sys.stderr,
    )
