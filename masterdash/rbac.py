"""
Access scope resolution: what, if anything, may a caller see on a dashboard.
"""

import logging

from masterdash.config import ADMIN_ROLE
from masterdash.errors import AccessDenied, MalformedScope, Unauthenticated
from masterdash.models import AccessScope
from masterdash.store import get_permission, get_user_role

logger = logging.getLogger(__name__)


def resolve_scope(engine, caller_id, dashboard_slug: str) -> AccessScope:
    """
    Resolve the row scope of *caller_id* on *dashboard_slug*.

    Returns the unrestricted scope for administrators (no permission lookup),
    an empty scope when the permission record carries no usable descriptor,
    and the parsed descriptor otherwise. Raises AccessDenied when no
    permission record exists. StoreUnavailable propagates from the store.
    """
    if caller_id is None:
        raise Unauthenticated("No caller identity.")

    role = get_user_role(engine, caller_id)
    if role == ADMIN_ROLE:
        return AccessScope.unrestricted_scope()
    if role is None:
        raise AccessDenied(f"Unknown or inactive user {caller_id}.")

    record = get_permission(engine, caller_id, dashboard_slug)
    if record is None:
        raise AccessDenied(f"User {caller_id} has no access to dashboard '{dashboard_slug}'.")

    if record.access_scope is None or not record.access_scope.strip():
        return AccessScope.empty()

    try:
        return AccessScope.from_json(record.access_scope)
    except MalformedScope as e:
        logger.warning(
            "Malformed scope on permission %s (user=%s, dashboard=%s): %s. Using empty scope.",
            record.id, caller_id, dashboard_slug, e,
        )
        return AccessScope.empty()
