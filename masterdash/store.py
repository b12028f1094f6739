"""
Administrative store: users, dashboards and per-dashboard permission records.

The query gateway only reads from here (role and permission lookups); the
remaining helpers back the administrator endpoints and the seed scripts.
"""

import logging
from functools import wraps
from typing import Any, Dict, List, Optional

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
    delete,
    func,
    insert,
    select,
    true,
    update,
)
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from masterdash.config import ADMIN_ROLE, KNOWN_ROLES
from masterdash.errors import DuplicatePermission, StoreUnavailable, UnknownReference
from masterdash.models import AccessContext, AccessScope, PermissionRecord

logger = logging.getLogger(__name__)

metadata = MetaData()

users = Table(
    "users", metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("display_name", String(255), nullable=False),
    Column("role", String(32), nullable=False, default="user"),
    Column("api_key", String(128), nullable=False, unique=True),
    Column("is_active", Boolean, nullable=False, default=True),
    Column("created_at", DateTime, server_default=func.now()),
    Column("updated_at", DateTime, server_default=func.now()),
)

dashboards = Table(
    "dashboards", metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("slug", String(100), nullable=False, unique=True),
    Column("title", String(255), nullable=False),
    Column("description", Text),
    Column("area", String(255)),
    Column("is_active", Boolean, nullable=False, default=True),
    Column("created_at", DateTime, server_default=func.now()),
    Column("updated_at", DateTime, server_default=func.now()),
)

user_dashboard_access = Table(
    "user_dashboard_access", metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
    Column("dashboard_id", Integer, ForeignKey("dashboards.id", ondelete="CASCADE"), nullable=False),
    Column("access_scope", Text, nullable=True),
    Column("created_at", DateTime, server_default=func.now()),
    Column("updated_at", DateTime, server_default=func.now()),
    UniqueConstraint("user_id", "dashboard_id", name="uq_user_dashboard"),
)


def translate_store_errors(f):
    """Surface driver and connection failures as StoreUnavailable."""
    @wraps(f)
    def wrapper(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except SQLAlchemyError as e:
            logger.error("Administrative store error in %s: %s", f.__name__, e)
            raise StoreUnavailable("Administrative store unavailable") from e
    return wrapper


def init_schema(engine) -> None:
    """Create the administrative tables if they do not exist."""
    metadata.create_all(engine)


# ── Lookups used by the gateway ──────────────────────────────────────

@translate_store_errors
def get_user_role(engine, user_id: int) -> Optional[str]:
    """Return the role of an active user, or None when unknown or inactive."""
    sql = select(users.c.role).where(users.c.id == user_id, users.c.is_active == true())
    with engine.connect() as conn:
        role = conn.execute(sql).scalar_one_or_none()
    return str(role).strip().lower() if role is not None else None


@translate_store_errors
def get_permission(engine, user_id: int, dashboard_slug: str) -> Optional[PermissionRecord]:
    """Return the permission record for (user, active dashboard), or None."""
    sql = (
        _permission_select()
        .where(user_dashboard_access.c.user_id == user_id)
        .where(dashboards.c.slug == dashboard_slug)
        .where(dashboards.c.is_active == true())
    )
    with engine.connect() as conn:
        row = conn.execute(sql).mappings().first()
    return _to_record(row) if row else None


@translate_store_errors
def load_access_context(engine, api_key: str) -> AccessContext:
    """Look up a user by API key and return their AccessContext."""
    sql = select(users.c.id, users.c.display_name, users.c.email, users.c.role).where(
        users.c.api_key == api_key, users.c.is_active == true()
    )
    with engine.connect() as conn:
        row = conn.execute(sql).mappings().first()

    if not row:
        raise ValueError("Invalid key or user inactive.")

    role = str(row["role"]).strip().lower()
    if role not in KNOWN_ROLES:
        raise ValueError(f"Unsupported role '{row['role']}' for user {row['id']}.")

    return AccessContext(
        user_id=int(row["id"]),
        display_name=str(row["display_name"]),
        email=str(row["email"]),
        role=role,
    )


@translate_store_errors
def list_user_dashboards(engine, user_id: int) -> List[Dict[str, Any]]:
    """Active dashboards the user may open; admins see every active dashboard."""
    role = get_user_role(engine, user_id)
    if role is None:
        return []
    sql = select(dashboards.c.id, dashboards.c.slug, dashboards.c.title, dashboards.c.area).where(
        dashboards.c.is_active == true()
    )
    if role != ADMIN_ROLE:
        sql = sql.join_from(
            dashboards, user_dashboard_access,
            user_dashboard_access.c.dashboard_id == dashboards.c.id,
        ).where(user_dashboard_access.c.user_id == user_id)
    sql = sql.order_by(dashboards.c.title)
    with engine.connect() as conn:
        return [dict(r) for r in conn.execute(sql).mappings()]


# ── Administration ───────────────────────────────────────────────────

@translate_store_errors
def create_user(engine, email: str, display_name: str, api_key: str, role: str = "user") -> int:
    if role not in KNOWN_ROLES:
        raise ValueError(f"Unsupported role '{role}'.")
    with engine.begin() as conn:
        result = conn.execute(
            insert(users).values(email=email, display_name=display_name, api_key=api_key, role=role)
        )
    return int(result.inserted_primary_key[0])


@translate_store_errors
def create_dashboard(engine, slug: str, title: str, area: str = None,
                     description: str = None, is_active: bool = True) -> int:
    with engine.begin() as conn:
        result = conn.execute(
            insert(dashboards).values(
                slug=slug, title=title, area=area, description=description, is_active=is_active,
            )
        )
    return int(result.inserted_primary_key[0])


@translate_store_errors
def list_permissions(engine) -> List[PermissionRecord]:
    sql = _permission_select().order_by(
        user_dashboard_access.c.created_at.desc(), user_dashboard_access.c.id.desc()
    )
    with engine.connect() as conn:
        return [_to_record(r) for r in conn.execute(sql).mappings()]


@translate_store_errors
def get_permission_by_id(engine, permission_id: int) -> Optional[PermissionRecord]:
    sql = _permission_select().where(user_dashboard_access.c.id == permission_id)
    with engine.connect() as conn:
        row = conn.execute(sql).mappings().first()
    return _to_record(row) if row else None


@translate_store_errors
def grant_access(engine, user_id: int, dashboard_id: int,
                 scope: Optional[AccessScope] = None) -> PermissionRecord:
    """
    Create the permission record for (user, dashboard).

    Raises UnknownReference when either side does not exist and
    DuplicatePermission when the pair is already granted.
    """
    values = {
        "user_id": user_id,
        "dashboard_id": dashboard_id,
        "access_scope": scope.to_json() if scope is not None else None,
    }
    try:
        with engine.begin() as conn:
            if conn.execute(select(users.c.id).where(users.c.id == user_id)).first() is None:
                raise UnknownReference(f"User {user_id} does not exist.")
            dashboard = select(dashboards.c.id).where(dashboards.c.id == dashboard_id)
            if conn.execute(dashboard).first() is None:
                raise UnknownReference(f"Dashboard {dashboard_id} does not exist.")
            existing = conn.execute(
                select(user_dashboard_access.c.id).where(
                    user_dashboard_access.c.user_id == user_id,
                    user_dashboard_access.c.dashboard_id == dashboard_id,
                )
            ).first()
            if existing is not None:
                raise DuplicatePermission(
                    f"User {user_id} already has access to dashboard {dashboard_id}."
                )
            result = conn.execute(insert(user_dashboard_access).values(**values))
    except IntegrityError as e:
        # only the unique pair can still collide here (concurrent grant)
        if "UNIQUE" not in str(e.orig).upper():
            raise
        raise DuplicatePermission(
            f"User {user_id} already has access to dashboard {dashboard_id}."
        ) from e
    logger.info("Granted dashboard %s to user %s.", dashboard_id, user_id)
    return get_permission_by_id(engine, int(result.inserted_primary_key[0]))


@translate_store_errors
def update_scope(engine, permission_id: int,
                 scope: Optional[AccessScope]) -> Optional[PermissionRecord]:
    """Replace the scope descriptor of a permission record; None clears it."""
    sql = (
        update(user_dashboard_access)
        .where(user_dashboard_access.c.id == permission_id)
        .values(access_scope=scope.to_json() if scope is not None else None, updated_at=func.now())
    )
    with engine.begin() as conn:
        result = conn.execute(sql)
    if result.rowcount == 0:
        return None
    return get_permission_by_id(engine, permission_id)


@translate_store_errors
def revoke_access(engine, permission_id: int) -> bool:
    with engine.begin() as conn:
        result = conn.execute(
            delete(user_dashboard_access).where(user_dashboard_access.c.id == permission_id)
        )
    return result.rowcount > 0


@translate_store_errors
def delete_user(engine, user_id: int) -> bool:
    """Delete a user together with every permission record they own."""
    with engine.begin() as conn:
        conn.execute(delete(user_dashboard_access).where(user_dashboard_access.c.user_id == user_id))
        result = conn.execute(delete(users).where(users.c.id == user_id))
    return result.rowcount > 0


@translate_store_errors
def delete_dashboard(engine, dashboard_id: int) -> bool:
    """Delete a dashboard together with every permission record pointing at it."""
    with engine.begin() as conn:
        conn.execute(
            delete(user_dashboard_access).where(user_dashboard_access.c.dashboard_id == dashboard_id)
        )
        result = conn.execute(delete(dashboards).where(dashboards.c.id == dashboard_id))
    return result.rowcount > 0


# ── Helpers ──────────────────────────────────────────────────────────

def _permission_select():
    return select(
        user_dashboard_access.c.id,
        user_dashboard_access.c.user_id,
        user_dashboard_access.c.dashboard_id,
        dashboards.c.slug.label("dashboard_slug"),
        user_dashboard_access.c.access_scope,
        user_dashboard_access.c.created_at,
        user_dashboard_access.c.updated_at,
    ).join_from(
        user_dashboard_access, dashboards,
        user_dashboard_access.c.dashboard_id == dashboards.c.id,
    )


def _to_record(row) -> PermissionRecord:
    return PermissionRecord(
        id=int(row["id"]),
        user_id=int(row["user_id"]),
        dashboard_id=int(row["dashboard_id"]),
        dashboard_slug=str(row["dashboard_slug"]),
        access_scope=row["access_scope"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )
