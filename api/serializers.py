"""Make aggregation results (DataFrames, numpy scalars, snapshots) JSON-safe."""
from enum import Enum
from typing import Any

import numpy as np
import pandas as pd


def serialize_dict(d: dict) -> dict:
    """Serialize a dict for JSON (e.g. an overview or breakdown payload)."""
    return {str(k): _serialize_value(v) for k, v in d.items()}


def _serialize_value(val: Any) -> Any:
    if val is None:
        return None
    if isinstance(val, float) and np.isnan(val):
        return None
    if isinstance(val, Enum):
        return val.value
    if isinstance(val, np.bool_):
        return bool(val)
    if isinstance(val, np.integer):
        return int(val)
    if isinstance(val, np.floating):
        f = float(val)
        return None if np.isnan(f) else f
    if val is pd.NA or val is pd.NaT:
        return None
    if hasattr(val, 'to_dict') and not isinstance(val, (pd.DataFrame, pd.Series)):
        return _serialize_value(val.to_dict())
    if isinstance(val, pd.DataFrame):
        return dataframe_to_records(val)
    if isinstance(val, (list, tuple)):
        return [_serialize_value(v) for v in val]
    if isinstance(val, dict):
        return {str(k): _serialize_value(v) for k, v in val.items()}
    return val


def dataframe_to_records(df: pd.DataFrame) -> list[dict]:
    """Convert DataFrame to list of dicts with JSON-serializable values."""
    if df is None or df.empty:
        return []
    records = df.astype(object).where(df.notna(), None).to_dict(orient="records")
    return [{k: _serialize_value(v) for k, v in r.items()} for r in records]
