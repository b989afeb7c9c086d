"""
Filter and row normalisation.

Upstream records store facility names with inconsistent punctuation and
an organisational suffix ("PROFIS"), so a unit filter that finds nothing
is retried with progressively looser variants.
"""
import re
from typing import Dict, List, Optional, Tuple

import pandas as pd

UNIT_NOISE_SUFFIX = 'PROFIS'

# Selector values that mean "no filter"
_ALL_SENTINELS = {'todos', 'todas', 'all'}

# Canonical ResultRow columns and their defaults
ROW_COLUMNS = {
    'student_name': '',
    'class_name': '',
    'unit': '',
    'region': '',
    'school_year': '',
    'component': '',
    'semester': '',
    'skill_id': '',
    'skill_code': '',
    'skill_description': '',
    'evaluated': False,
    'correct_count': 0,
    'total_count': 0,
    'learning_level': None,
}

_TEXT_COLUMNS = [
    'student_name', 'class_name', 'unit', 'region', 'school_year',
    'component', 'semester', 'skill_id', 'skill_code', 'skill_description',
]

# Strategy modes
MODE_EXACT = 'exact'
MODE_PARTIAL = 'partial'


def normalize_unit_name(value: str) -> str:
    """Remove commas, turn hyphens into spaces and collapse whitespace."""
    if value is None:
        return ''
    cleaned = str(value).replace(',', '')
    cleaned = cleaned.replace('-', ' ')
    cleaned = re.sub(r'\s+', ' ', cleaned)
    return cleaned.strip()


def strip_noise_suffix(value: str, suffix: str = UNIT_NOISE_SUFFIX) -> str:
    """Drop a trailing *suffix* token (case-insensitive)."""
    if not value:
        return ''
    pattern = r'\s*' + re.escape(suffix) + r'\s*$'
    return re.sub(pattern, '', value, flags=re.IGNORECASE).strip()


def normalize_filter_value(value: str) -> str:
    """Fully canonical form of a facility name: punctuation and suffix removed."""
    return strip_noise_suffix(normalize_unit_name(value))


def unit_match_strategies(value: str) -> List[Tuple[str, str, str]]:
    """Return the ordered retry cascade for a unit filter value.

    Each entry is ``(strategy_name, unit_value, mode)``. Callers stop at the
    first strategy that yields rows.
    """
    normalized = normalize_unit_name(value)
    without_suffix = strip_noise_suffix(normalized)
    return [
        ('exact', value, MODE_EXACT),
        ('normalized', normalized, MODE_EXACT),
        ('no_suffix', without_suffix, MODE_EXACT),
        ('partial', without_suffix, MODE_PARTIAL),
    ]


def normalize_select(value: Optional[str]) -> Optional[str]:
    """Map empty and "Todos/Todas/All" selector values to None."""
    if value is None:
        return None
    s = str(value).strip().lower()
    if not s or s in _ALL_SENTINELS:
        return None
    return value


def clean_filters(filters: Optional[Dict]) -> Dict[str, str]:
    """Drop empty and sentinel selector values from a filter dict."""
    if not filters:
        return {}
    out = {}
    for key, value in filters.items():
        value = normalize_select(value)
        if value is not None:
            out[key] = value
    return out


def prepare_rows(df: Optional[pd.DataFrame]) -> pd.DataFrame:
    """Return a copy of *df* with every ResultRow column present and typed."""
    if df is None or df.empty:
        return _empty_rows()

    df = df.copy()
    for col, default in ROW_COLUMNS.items():
        if col not in df.columns:
            df[col] = default

    for col in _TEXT_COLUMNS:
        df[col] = df[col].fillna('').astype(str).str.strip()

    # Semesters read back from numeric columns arrive as "1.0"
    df['semester'] = df['semester'].str.replace(r'\.0$', '', regex=True)
    df['evaluated'] = df['evaluated'].map(_to_bool).astype(bool)
    for col in ('correct_count', 'total_count'):
        df[col] = pd.to_numeric(df[col], errors='coerce').fillna(0).clip(lower=0).astype(int)
    return df


def _empty_rows() -> pd.DataFrame:
    data = {}
    for col in ROW_COLUMNS:
        if col == 'evaluated':
            data[col] = pd.Series(dtype=bool)
        elif col in ('correct_count', 'total_count'):
            data[col] = pd.Series(dtype=int)
        else:
            data[col] = pd.Series(dtype=object)
    return pd.DataFrame(data)


def _to_bool(value) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ('true', 't', '1', 'sim', 'yes')
    if value is None or (isinstance(value, float) and pd.isna(value)):
        return False
    return bool(value)
