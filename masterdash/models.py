"""
Domain dataclasses used across the application.
"""

import json
import math
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

from masterdash.config import SCOPE_VERSION, WILDCARD_MARKERS
from masterdash.errors import MalformedScope


class Wildcard(Enum):
    """Marker for a scope dimension with no restriction."""
    ALL = "*"

    def __repr__(self):
        return "ALL"


ALL = Wildcard.ALL

Labels = Union[None, Wildcard, Tuple[str, ...]]

_LABEL_KEYS = {"regions": "regions", "sucursales": "sucursales"}
_SCALAR_KEYS = {
    "minAmount": "min_amount",
    "maxAmount": "max_amount",
    "dateFrom": "date_from",
    "dateTo": "date_to",
}
_ALLOWED_KEYS = {"version"} | set(_LABEL_KEYS) | set(_SCALAR_KEYS)


@dataclass
class AccessContext:
    """Represents an authenticated user's identity."""
    user_id: int
    display_name: str
    email: str
    role: str                  # "admin" or "user"


@dataclass(frozen=True)
class AccessScope:
    """
    Row-visibility restriction attached to a permission record.

    ``None`` on a dimension means it was not specified; ``ALL`` means it was
    explicitly left open. A scope with no dimension specified is empty and
    matches no rows.
    """
    regions: Labels = None
    sucursales: Labels = None
    min_amount: Optional[float] = None
    max_amount: Optional[float] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    unrestricted: bool = False

    @classmethod
    def unrestricted_scope(cls) -> "AccessScope":
        return cls(regions=ALL, sucursales=ALL, unrestricted=True)

    @classmethod
    def empty(cls) -> "AccessScope":
        return cls()

    @property
    def is_empty(self) -> bool:
        return not self.unrestricted and all(
            getattr(self, name) is None
            for name in ("regions", "sucursales", "min_amount", "max_amount", "date_from", "date_to")
        )

    # ── Serialisation ────────────────────────────────────────────────

    @classmethod
    def from_json(cls, raw: Union[str, bytes, Dict[str, Any]]) -> "AccessScope":
        """Parse a persisted scope descriptor, raising MalformedScope on any defect."""
        if isinstance(raw, (str, bytes)):
            try:
                raw = json.loads(raw)
            except (ValueError, RecursionError) as e:
                raise MalformedScope(f"Scope is not valid JSON: {e}") from e
        if not isinstance(raw, dict):
            raise MalformedScope(f"Scope must be a JSON object, got {type(raw).__name__}.")

        unknown = set(raw) - _ALLOWED_KEYS
        if unknown:
            raise MalformedScope(f"Unknown scope keys: {', '.join(sorted(unknown))}.")

        version = raw.get("version", SCOPE_VERSION)
        if version != SCOPE_VERSION:
            raise MalformedScope(f"Unsupported scope version {version!r}.")

        kwargs: Dict[str, Any] = {}
        for key, attr in _LABEL_KEYS.items():
            if key in raw and raw[key] is not None:
                kwargs[attr] = _parse_labels(key, raw[key])
        for key in ("minAmount", "maxAmount"):
            if raw.get(key) is not None:
                kwargs[_SCALAR_KEYS[key]] = _parse_amount(key, raw[key])
        for key in ("dateFrom", "dateTo"):
            if raw.get(key) is not None:
                kwargs[_SCALAR_KEYS[key]] = _parse_date(key, raw[key])

        scope = cls(**kwargs)
        if scope.min_amount is not None and scope.max_amount is not None:
            if scope.min_amount > scope.max_amount:
                raise MalformedScope("minAmount is greater than maxAmount.")
        if scope.date_from is not None and scope.date_to is not None:
            if scope.date_from > scope.date_to:
                raise MalformedScope("dateFrom is later than dateTo.")
        return scope

    def to_dict(self) -> Dict[str, Any]:
        """JSON-friendly view using the persisted camelCase keys."""
        out: Dict[str, Any] = {}
        for key, attr in _LABEL_KEYS.items():
            value = getattr(self, attr)
            if value is ALL:
                out[key] = [ALL.value]
            elif value is not None:
                out[key] = list(value)
        for key, attr in _SCALAR_KEYS.items():
            value = getattr(self, attr)
            if isinstance(value, date):
                out[key] = value.isoformat()
            elif value is not None:
                out[key] = value
        return out

    def to_json(self) -> str:
        return json.dumps({"version": SCOPE_VERSION, **self.to_dict()}, ensure_ascii=False)


def _parse_labels(key: str, value: Any) -> Labels:
    if not isinstance(value, list):
        raise MalformedScope(f"{key} must be a list of labels.")
    labels = []
    for item in value:
        if not isinstance(item, str):
            raise MalformedScope(f"{key} contains a non-string label: {item!r}.")
        if item.strip().lower() in WILDCARD_MARKERS:
            return ALL
        labels.append(item)
    return tuple(labels)


def _parse_amount(key: str, value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise MalformedScope(f"{key} must be a number.")
    try:
        amount = float(value)
    except (OverflowError, ValueError) as e:
        raise MalformedScope(f"{key} is out of range.") from e
    if not math.isfinite(amount):
        raise MalformedScope(f"{key} must be a finite number.")
    return amount


def _parse_date(key: str, value: Any) -> date:
    """Accept ``YYYY-MM-DD`` or a full ISO datetime; nothing may trail it."""
    if not isinstance(value, str):
        raise MalformedScope(f"{key} must be an ISO date string.")
    text = value.strip()
    try:
        if len(text) == 10:
            return date.fromisoformat(text)
        return datetime.fromisoformat(text).date()
    except ValueError as e:
        raise MalformedScope(f"{key} is not a valid date: {value!r}.") from e


@dataclass
class PermissionRecord:
    """One user's grant to one dashboard, as stored."""
    id: int
    user_id: int
    dashboard_id: int
    dashboard_slug: str
    access_scope: Optional[str]    # raw JSON text, None when unset
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        scope: Any = None
        if self.access_scope is not None:
            try:
                scope = json.loads(self.access_scope)
            except (ValueError, RecursionError):
                scope = self.access_scope
        return {
            "id": self.id,
            "userId": self.user_id,
            "dashboardId": self.dashboard_id,
            "dashboardSlug": self.dashboard_slug,
            "accessScope": scope,
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }


@dataclass
class QueryResult:
    """Rows returned by the gateway with the scope that filtered them."""
    data: List[Dict[str, Any]]
    access_scope: AccessScope
    truncated: bool = False
    row_count: int = field(init=False)

    def __post_init__(self):
        self.row_count = len(self.data)


def _iso(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return str(value)
