"""
Runtime settings lookup.

Values come from Streamlit secrets (preferred) or environment variables
as fallback, so the same code runs under ``streamlit run``, uvicorn and
the CLI scripts.
"""
import os
from typing import List, Optional

import streamlit as st

DEFAULT_RESULTS_TABLE = 'prova_resultados'
DEFAULT_LINKS_TABLE = 'habilidade_links'
DEFAULT_TEXT_GENERATION_URL = 'https://api.groq.com/openai/v1/chat/completions'
DEFAULT_TEXT_GENERATION_MODEL = 'llama-3.1-8b-instant'
DEFAULT_TEXT_GENERATION_TIMEOUT = 30

# Rows per page when paging through the results table
PAGE_SIZE = 1000


def get_setting(name: str, default: Optional[str] = None) -> Optional[str]:
    """Return a setting from Streamlit secrets, then the environment."""
    value = None
    try:
        value = st.secrets[name]
    except Exception:
        # No secrets.toml, or key missing from it
        pass
    if not value:
        value = os.environ.get(name)
    if not value:
        return default
    return str(value)


def get_results_table() -> str:
    return get_setting('RESULTS_TABLE', DEFAULT_RESULTS_TABLE)


def get_links_table() -> str:
    return get_setting('LINKS_TABLE', DEFAULT_LINKS_TABLE)


def get_generation_timeout() -> float:
    raw = get_setting('TEXT_GENERATION_TIMEOUT')
    try:
        return float(raw) if raw else float(DEFAULT_TEXT_GENERATION_TIMEOUT)
    except ValueError:
        return float(DEFAULT_TEXT_GENERATION_TIMEOUT)


DEFAULT_CORS_ORIGINS = 'http://localhost:8501,http://localhost:5173'


def get_cors_origins() -> List[str]:
    """Comma-separated ``CORS_ORIGINS``; an empty value means the Streamlit dev origin."""
    raw = get_setting('CORS_ORIGINS', DEFAULT_CORS_ORIGINS) or ''
    origins = [o.strip() for o in raw.split(',') if o.strip()]
    return origins or ['http://localhost:8501']
