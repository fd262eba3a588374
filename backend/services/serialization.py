"""Helpers de serialisation.

Convertit des objets backend (dataclasses, pandas, numpy, datetimes) en
structures 100% JSON-serialisables pour l'API et le stockage JSON.
"""

from __future__ import annotations

from dataclasses import fields, is_dataclass
from datetime import date, datetime
from typing import Any

import numpy as np
import pandas as pd


def _is_nan(value: Any) -> bool:
    try:
        return bool(value != value)
    except (TypeError, ValueError):
        return False


def _dt_to_iso(value: Any) -> str | None:
    if value is None:
        return None
    if value is pd.NaT:
        return None
    if isinstance(value, (pd.Timestamp, datetime)):
        if pd.isna(value):
            return None
        # Conserve l'info timezone si presente.
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return None


def df_to_records(df: pd.DataFrame, *, limit: int | None = None) -> list[dict[str, Any]]:
    if df is None:
        return []
    if limit is not None:
        df = df.head(int(limit))
    # IMPORTANT: cast en object pour conserver None dans les colonnes numeriques.
    safe = df.copy().astype(object)
    safe = safe.where(pd.notna(safe), None)

    dt_cols = [c for c in df.columns if pd.api.types.is_datetime64_any_dtype(df[c])]
    for col in dt_cols:
        safe[col] = safe[col].apply(lambda v: _dt_to_iso(v))
    return [to_jsonable(row) for row in safe.to_dict(orient="records")]


def to_jsonable(obj: Any, *, dataframe_limit: int | None = None) -> Any:
    """Convertit obj en primitives JSON-serialisables.

    Retourne uniquement dict/list/str/int/float/bool/None.
    """

    if obj is None:
        return None

    if obj is pd.NaT:
        return None

    if isinstance(obj, (pd.Timestamp, datetime, date)):
        return _dt_to_iso(obj)

    # Scalaire numpy
    if isinstance(obj, np.generic):
        return to_jsonable(obj.item())

    if isinstance(obj, (str, int, bool)):
        return obj
    if isinstance(obj, float):
        return None if _is_nan(obj) else obj

    if isinstance(obj, dict):
        return {str(k): to_jsonable(v, dataframe_limit=dataframe_limit) for k, v in obj.items()}
    if isinstance(obj, (list, tuple, set)):
        return [to_jsonable(v, dataframe_limit=dataframe_limit) for v in obj]
    if isinstance(obj, np.ndarray):
        return [to_jsonable(v) for v in obj.tolist()]

    if isinstance(obj, pd.DataFrame):
        return {
            "columns": [str(c) for c in obj.columns],
            "records": df_to_records(obj, limit=dataframe_limit),
        }

    if is_dataclass(obj) and not isinstance(obj, type):
        return {f.name: to_jsonable(getattr(obj, f.name), dataframe_limit=dataframe_limit) for f in fields(obj)}

    return str(obj)
