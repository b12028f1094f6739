"""
Translate a resolved AccessScope into a parameterised SQL filter fragment.

Every scope- or caller-derived value travels as a bound parameter; only
column names (from the dashboard registry, or validated identifiers for
extra parameters) ever appear in the SQL text.
"""

import re
from datetime import timedelta
from typing import Any, Dict, List, Mapping, Optional, Tuple

from masterdash.config import DEFAULT_COLUMNS
from masterdash.models import ALL, AccessScope

MATCH_NOTHING = "1 = 0"

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def is_identifier(name: str) -> bool:
    return bool(_IDENTIFIER.match(name or ""))


def build_predicate(
    scope: AccessScope,
    extra_params: Optional[Mapping[str, Any]] = None,
    columns: Mapping[str, Optional[str]] = DEFAULT_COLUMNS,
) -> Tuple[str, Dict[str, Any]]:
    """
    Return ``(fragment, params)`` for *scope* plus caller equality filters.

    The fragment has no leading ``WHERE``; it is ``""`` with no params when
    nothing restricts the rows. Conditions are ANDed together.

    Fails closed: an empty scope, an empty label list, or a restriction on a
    dimension the dashboard has no column for all yield ``1 = 0``.

    ``dateTo`` includes the whole day: it is bound as the following day and
    compared with ``<`` so datetime columns keep same-day timestamps.
    """
    conditions: List[str] = []
    params: Dict[str, Any] = {}

    if scope.is_empty:
        conditions.append(MATCH_NOTHING)
    elif not scope.unrestricted:
        _label_condition(conditions, params, "region", scope.regions, columns.get("regions"))
        _label_condition(conditions, params, "sucursal", scope.sucursales, columns.get("sucursales"))
        _range_condition(conditions, params, "amount", scope.min_amount, scope.max_amount,
                         columns.get("amount"))
        date_end = scope.date_to + timedelta(days=1) if scope.date_to is not None else None
        _range_condition(conditions, params, "date", scope.date_from, date_end,
                         columns.get("date"), exclusive_high=True)

    for key, value in (extra_params or {}).items():
        if not is_identifier(key):
            raise ValueError(f"Invalid filter column name: {key!r}")
        name = f"extra_{key}"
        conditions.append(f"{key} = :{name}")
        params[name] = value

    return " AND ".join(conditions), params


def _label_condition(conditions, params, label, values, column) -> None:
    if values is None or values is ALL:
        return
    if not values or not column:
        conditions.append(MATCH_NOTHING)
        return
    names = []
    for i, value in enumerate(values):
        name = f"scope_{label}_{i}"
        params[name] = value
        names.append(f":{name}")
    conditions.append(f"{column} IN ({', '.join(names)})")


def _range_condition(conditions, params, label, low, high, column, exclusive_high=False) -> None:
    if low is None and high is None:
        return
    if not column:
        conditions.append(MATCH_NOTHING)
        return
    if low is not None:
        params[f"scope_{label}_min"] = low
        conditions.append(f"{column} >= :scope_{label}_min")
    if high is not None:
        params[f"scope_{label}_max"] = high
        op = "<" if exclusive_high else "<="
        conditions.append(f"{column} {op} :scope_{label}_max")
