"""
Row summaries for dashboards – KPIs, chart series and plain-text overviews.
"""

from typing import Any, Dict, List, Optional, Tuple

import pandas as pd

from masterdash.config import MAX_CATEGORY_UNIQUE


def rows_to_frame(rows: List[Dict[str, Any]]) -> pd.DataFrame:
    return pd.DataFrame.from_records(rows) if rows else pd.DataFrame()


# ── Dashboard summary ────────────────────────────────────────────────

def summarize_rows(
    rows: List[Dict[str, Any]],
    sucursal_column: str = "sucursal",
    date_column: str = "fecha",
    amount_column: Optional[str] = None,
) -> Dict[str, Any]:
    """
    KPIs and chart series for a dashboard's scoped rows.

    ``charts.porSucursal`` is sorted by count descending and ``charts.porMes``
    by month ascending. Missing columns simply produce empty series.
    """
    df = rows_to_frame(rows)
    kpis: Dict[str, Any] = {"totalRegistros": int(len(df))}
    charts: Dict[str, List[Dict[str, Any]]] = {"porSucursal": [], "porMes": []}

    if df.empty:
        kpis["sucursalesUnicas"] = 0
        if amount_column:
            kpis["montoTotal"] = 0.0
        return {"kpis": kpis, "charts": charts}

    if sucursal_column in df.columns:
        sucursales = df[sucursal_column].dropna().astype(str).str.strip()
        kpis["sucursalesUnicas"] = int(sucursales.nunique())
        counts = sucursales.value_counts()
        charts["porSucursal"] = [
            {"name": name, "value": int(value)}
            for name, value in sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))
        ]
    else:
        kpis["sucursalesUnicas"] = 0

    if date_column in df.columns:
        dates = pd.to_datetime(df[date_column], errors="coerce").dropna()
        by_month = dates.dt.strftime("%Y-%m").value_counts().sort_index()
        charts["porMes"] = [{"date": month, "value": int(value)} for month, value in by_month.items()]

    if amount_column:
        if amount_column in df.columns:
            kpis["montoTotal"] = float(pd.to_numeric(df[amount_column], errors="coerce").fillna(0).sum())
        else:
            kpis["montoTotal"] = 0.0

    return {"kpis": kpis, "charts": charts}


# ── Text overview (CLI) ──────────────────────────────────────────────

def compute_basic_analysis(df: pd.DataFrame) -> Tuple[str, str]:
    """
    Basic numeric + categorical summaries.
    Returns (numeric_summary_str, categorical_summary_str).
    """
    if df.empty:
        return "(no numeric summary – no rows)", "(no categorical summary – no rows)"

    numeric_summary = "(no numeric columns)"
    cat_summary = "(no small categorical columns)"

    num_cols = df.select_dtypes(include="number")
    if not num_cols.empty:
        numeric_summary = num_cols.describe().T.to_markdown()

    pieces = []
    for col in df.columns:
        if col in num_cols.columns:
            continue
        vals = df[col].dropna().astype(str)
        n_unique = vals.nunique()
        if 0 < n_unique <= MAX_CATEGORY_UNIQUE:
            vc = vals.value_counts().reset_index()
            vc.columns = [col, "count"]
            pieces.append(f"Column: {col}\n" + vc.to_markdown(index=False))

    if pieces:
        cat_summary = "\n\n".join(pieces)

    return numeric_summary, cat_summary
