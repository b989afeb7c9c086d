"""
Result store access for the Proficiency Dashboard.
Uses PostgreSQL via Supabase (connected with psycopg2).

All reads return DataFrames with the English ResultRow column names; the
store's own (Portuguese) column names only appear in SQL.
"""
import warnings
warnings.filterwarnings('ignore', message='pandas only supports SQLAlchemy')

import logging
import re
from typing import Dict, List, Optional

import numpy as np
import pandas as pd
import psycopg2
import psycopg2.extras
from psycopg2.extensions import register_adapter, AsIs

from core.normalizer import MODE_PARTIAL, clean_filters, unit_match_strategies
from core.settings import PAGE_SIZE, get_links_table, get_results_table, get_setting

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Register numpy types so psycopg2 can handle them as query parameters
# ---------------------------------------------------------------------------

def _adapt_numpy_int(val):
    return AsIs(int(val))

def _adapt_numpy_float(val):
    return AsIs(float(val))

for _np_int_type in [np.int64, np.int32, np.int16, np.int8, np.intp]:
    register_adapter(_np_int_type, _adapt_numpy_int)
for _np_float_type in [np.float64, np.float32, np.float16]:
    register_adapter(_np_float_type, _adapt_numpy_float)

# ---------------------------------------------------------------------------
# Column mapping
# ---------------------------------------------------------------------------

# store column -> ResultRow column
COLUMN_MAP = {
    'nome_aluno': 'student_name',
    'turma': 'class_name',
    'unidade': 'unit',
    'regional': 'region',
    'ano_escolar': 'school_year',
    'componente': 'component',
    'semestre': 'semester',
    'habilidade_id': 'skill_id',
    'habilidade_codigo': 'skill_code',
    'descricao_habilidade': 'skill_description',
    'avaliado': 'evaluated',
    'acertos': 'correct_count',
    'total': 'total_count',
    'nivel_aprendizagem': 'learning_level',
}

# ResultRow filter key -> store column
FILTER_COLUMNS = {v: k for k, v in COLUMN_MAP.items()}

_IDENTIFIER = re.compile(r'^[A-Za-z_][A-Za-z0-9_.]*$')


class FetchError(RuntimeError):
    """A store query failed."""


# ---------------------------------------------------------------------------
# Connection
# ---------------------------------------------------------------------------

def get_db_connection():
    """Get PostgreSQL database connection to Supabase.

    Reads the connection string from Streamlit secrets (preferred)
    or the DATABASE_URL environment variable as fallback.
    """
    db_url = get_setting('DATABASE_URL')
    if not db_url:
        raise RuntimeError(
            "DATABASE_URL not found. Set it in .streamlit/secrets.toml "
            "or as an environment variable."
        )
    return psycopg2.connect(db_url)


def _dict_cursor(conn):
    """Return a cursor that yields dicts instead of tuples."""
    return conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor)


def _table(name: str) -> str:
    if not _IDENTIFIER.match(name):
        raise ValueError(f"Invalid table name: {name!r}")
    return name


def _connect():
    """get_db_connection() with failures raised as FetchError."""
    try:
        return get_db_connection()
    except (psycopg2.Error, RuntimeError) as e:
        raise FetchError(str(e)) from e

# ---------------------------------------------------------------------------
# Schema initialisation
# ---------------------------------------------------------------------------

def init_database():
    """Create the results and skill-link tables if missing.

    Safe to call repeatedly -- uses IF NOT EXISTS.
    """
    results = _table(get_results_table())
    links = _table(get_links_table())
    conn = get_db_connection()
    cursor = conn.cursor()

    cursor.execute(f'''
        CREATE TABLE IF NOT EXISTS {results} (
            id BIGSERIAL PRIMARY KEY,
            nome_aluno TEXT NOT NULL,
            turma TEXT,
            unidade TEXT,
            regional TEXT,
            ano_escolar TEXT,
            componente TEXT,
            semestre TEXT,
            habilidade_id TEXT,
            habilidade_codigo TEXT,
            descricao_habilidade TEXT,
            avaliado BOOLEAN NOT NULL DEFAULT FALSE,
            acertos INTEGER NOT NULL DEFAULT 0 CHECK (acertos >= 0),
            total INTEGER NOT NULL DEFAULT 0 CHECK (total >= 0),
            nivel_aprendizagem TEXT,
            created_at TIMESTAMPTZ DEFAULT NOW(),
            CHECK (acertos <= total)
        )
    ''')

    cursor.execute(f'''
        CREATE TABLE IF NOT EXISTS {links} (
            id BIGSERIAL PRIMARY KEY,
            habilidade_codigo TEXT NOT NULL,
            componente TEXT NOT NULL,
            link TEXT NOT NULL,
            UNIQUE(habilidade_codigo, componente)
        )
    ''')

    for idx_sql in [
        f'CREATE INDEX IF NOT EXISTS idx_{results}_unidade ON {results}(unidade)',
        f'CREATE INDEX IF NOT EXISTS idx_{results}_regional ON {results}(regional)',
        f'CREATE INDEX IF NOT EXISTS idx_{results}_componente ON {results}(componente)',
        f'CREATE INDEX IF NOT EXISTS idx_{results}_ano ON {results}(ano_escolar)',
        f'CREATE INDEX IF NOT EXISTS idx_{results}_aluno ON {results}(nome_aluno)',
    ]:
        cursor.execute(idx_sql)

    conn.commit()
    conn.close()
    logger.info("Database initialized (%s, %s)", results, links)

# ---------------------------------------------------------------------------
# Query helpers
# ---------------------------------------------------------------------------

def _where_clause(filters: Optional[Dict], unit_like: Optional[str] = None):
    """Build ``WHERE ...`` and params from ResultRow-keyed equality filters."""
    conditions: List[str] = []
    params: list = []
    for key, value in clean_filters(filters).items():
        column = FILTER_COLUMNS.get(key)
        if column is None:
            raise ValueError(f"Unknown filter: {key}")
        if unit_like is not None and key == 'unit':
            continue
        conditions.append(f'{column} = %s')
        params.append(str(value))
    if unit_like is not None:
        conditions.append('unidade ILIKE %s')
        params.append(f'%{unit_like}%')
    where = (' WHERE ' + ' AND '.join(conditions)) if conditions else ''
    return where, params


def _to_result_rows(df: pd.DataFrame) -> pd.DataFrame:
    if df is None or df.empty:
        return pd.DataFrame(columns=list(COLUMN_MAP.values()))
    df = df.rename(columns=COLUMN_MAP)
    return df[[c for c in COLUMN_MAP.values() if c in df.columns]]


def list_results(filters: Optional[Dict] = None, page_size: int = PAGE_SIZE,
                 unit_like: Optional[str] = None) -> pd.DataFrame:
    """Fetch every result row matching *filters*, one page at a time.

    Pages are requested until a page shorter than *page_size* comes back.
    ``unit_like`` switches the unit filter to a case-insensitive substring
    match. Raises FetchError when the store query fails.
    """
    table = _table(get_results_table())
    where, params = _where_clause(filters, unit_like)
    query = f'SELECT * FROM {table}{where} ORDER BY id LIMIT %s OFFSET %s'

    frames = []
    page = 0
    conn = _connect()
    try:
        while True:
            df = pd.read_sql_query(query, conn, params=params + [page_size, page * page_size])
            if not df.empty:
                frames.append(df)
            if len(df) < page_size:
                break
            page += 1
    except (psycopg2.Error, pd.errors.DatabaseError) as e:
        raise FetchError(str(e)) from e
    finally:
        conn.close()

    if not frames:
        return _to_result_rows(pd.DataFrame())
    return _to_result_rows(pd.concat(frames, ignore_index=True))


def list_results_unit_like(unit: str, filters: Optional[Dict] = None) -> pd.DataFrame:
    """Rows whose unit contains *unit* (case-insensitive), other filters exact."""
    return list_results(filters, unit_like=unit)


def fetch_results(filters: Optional[Dict] = None) -> pd.DataFrame:
    """Fetch result rows, retrying a unit filter with looser variants.

    With a unit filter the cascade is: exact value, punctuation-normalised
    value, normalised value without the noise suffix, then a substring
    match on that last value. Each step runs only if the previous one
    returned nothing.
    """
    filters = clean_filters(filters)
    unit = filters.get('unit')
    if not unit:
        return list_results(filters)

    result = pd.DataFrame()
    for name, value, mode in unit_match_strategies(unit):
        if not value:
            continue
        if mode == MODE_PARTIAL:
            result = list_results_unit_like(value, filters)
        else:
            result = list_results({**filters, 'unit': value})
        if not result.empty:
            if name != 'exact':
                logger.info("unit %r matched with strategy %s (%r)", unit, name, value)
            return result
    return result


def get_proficiency_summary(filters: Optional[Dict] = None) -> pd.DataFrame:
    """Per-semester tier counts computed in the store from stored labels.

    Each student counts once per semester, at their worst stored label.
    Columns: semester, deficient, intermediate, adequate.
    """
    table = _table(get_results_table())
    where, params = _where_clause(filters)
    where = where + (' AND ' if where else ' WHERE ') + 'avaliado'
    query = f'''
        WITH per_student AS (
            SELECT semestre,
                   MIN(CASE nivel_aprendizagem
                           WHEN 'Defasagem' THEN 0
                           WHEN 'Aprendizado Intermediário' THEN 1
                           WHEN 'Aprendizado Adequado' THEN 2
                       END) AS rank
            FROM {table}{where}
            GROUP BY semestre, nome_aluno, COALESCE(turma, ''), COALESCE(unidade, '')
        )
        SELECT semestre AS semester,
               COUNT(*) FILTER (WHERE rank = 0) AS deficient,
               COUNT(*) FILTER (WHERE rank = 1) AS intermediate,
               COUNT(*) FILTER (WHERE rank = 2) AS adequate
        FROM per_student
        WHERE rank IS NOT NULL
        GROUP BY semestre
        ORDER BY semestre
    '''
    conn = _connect()
    try:
        df = pd.read_sql_query(query, conn, params=params)
    except (psycopg2.Error, pd.errors.DatabaseError) as e:
        raise FetchError(str(e)) from e
    finally:
        conn.close()
    if not df.empty:
        df['semester'] = df['semester'].astype(str)
    return df

# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------

def get_link(skill_code: str, component: str) -> Optional[str]:
    """Reference URL for a skill/component pair, or None."""
    table = _table(get_links_table())
    conn = _connect()
    try:
        cur = _dict_cursor(conn)
        cur.execute(
            f'SELECT link FROM {table} WHERE habilidade_codigo = %s AND componente = %s LIMIT 1',
            (skill_code, component),
        )
        row = cur.fetchone()
    except psycopg2.Error as e:
        raise FetchError(str(e)) from e
    finally:
        conn.close()
    return row['link'] if row and row['link'] else None


def _natural_key(value: str):
    return [int(p) if p.isdigit() else p.lower() for p in re.split(r'(\d+)', str(value))]


def get_filter_options(region: Optional[str] = None) -> Dict[str, List[str]]:
    """Distinct regions, units (optionally within *region*) and school years."""
    table = _table(get_results_table())
    where, params = _where_clause({'region': region})
    conn = _connect()
    try:
        units_df = pd.read_sql_query(
            f'SELECT DISTINCT unidade FROM {table}{where}'
            + (' AND' if where else ' WHERE') + ' unidade IS NOT NULL',
            conn, params=params,
        )
        years_df = pd.read_sql_query(
            f'SELECT DISTINCT ano_escolar FROM {table} WHERE ano_escolar IS NOT NULL',
            conn,
        )
        regions_df = pd.read_sql_query(
            f'SELECT DISTINCT regional FROM {table} WHERE regional IS NOT NULL',
            conn,
        )
    except (psycopg2.Error, pd.errors.DatabaseError) as e:
        raise FetchError(str(e)) from e
    finally:
        conn.close()
    units = sorted([u for u in units_df['unidade'].tolist() if u], key=_natural_key)
    years = sorted([y for y in years_df['ano_escolar'].tolist() if y], key=_natural_key)
    regions = sorted([r for r in regions_df['regional'].tolist() if r], key=_natural_key)
    return {'regions': regions, 'units': units, 'school_years': years}


def search_students(prefix: str, filters: Optional[Dict] = None, limit: int = 10) -> List[str]:
    """Unique student names starting with *prefix*."""
    if not prefix:
        return []
    table = _table(get_results_table())
    filters = {k: v for k, v in clean_filters(filters).items() if k != 'student_name'}
    where, params = _where_clause(filters)
    where = where + (' AND ' if where else ' WHERE ') + 'nome_aluno ILIKE %s'
    params.append(f'{prefix}%')
    conn = _connect()
    try:
        df = pd.read_sql_query(
            f"SELECT DISTINCT nome_aluno FROM {table}{where} ORDER BY nome_aluno LIMIT %s",
            conn, params=params + [limit],
        )
    except (psycopg2.Error, pd.errors.DatabaseError) as e:
        raise FetchError(str(e)) from e
    finally:
        conn.close()
    return list(dict.fromkeys(df['nome_aluno'].tolist()))


if __name__ == '__main__':
    init_database()
