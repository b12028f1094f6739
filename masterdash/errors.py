"""
Exception taxonomy for the query gateway and the permission store.
"""


class GatewayError(Exception):
    """Base class for errors crossing the gateway boundary."""


class Unauthenticated(GatewayError):
    """No caller identity was supplied."""


class AccessDenied(GatewayError):
    """The caller holds no permission record for the dashboard."""


class StoreUnavailable(GatewayError):
    """The administrative store could not be reached. Safe to retry."""


class QueryExecutionError(GatewayError):
    """The warehouse failed to execute a scoped query. Safe to retry."""


class DuplicatePermission(GatewayError):
    """A permission record already exists for the (user, dashboard) pair."""


class UnknownReference(GatewayError):
    """A grant names a user or dashboard that does not exist."""


class MalformedScope(ValueError):
    """A stored scope descriptor could not be parsed."""


class ComposeInvariantViolation(ValueError):
    """A dashboard base query cannot be safely composed with scope predicates."""
