"""
Overview Dashboard Page
Six proficiency cards: unit, regional and network, for each assessment
of the year, with the change from the 1st to the 2nd assessment.
"""
import streamlit as st

from core.database import FetchError, fetch_results, get_filter_options
from core.scope_resolver import (
    SCOPE_LABELS,
    SCOPES,
    SEMESTERS,
    FilterSelection,
    OverviewState,
)
from core.tier_engine import TIERS, COUNT_KEYS, TIER_COLORS, TierPolicy
from core.visualizations import create_score_gauge

ALL = 'Todos'
COMPONENTS = [ALL, 'LP', 'MT']

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _overview_state() -> OverviewState:
    if 'overview_state' not in st.session_state:
        st.session_state.overview_state = OverviewState()
    return st.session_state.overview_state


def _options(region):
    try:
        return get_filter_options(None if region == ALL else region)
    except FetchError as e:
        st.warning(f"Não foi possível carregar os filtros: {e}")
        return {'regions': [], 'units': [], 'school_years': []}


def _badge(trend) -> str:
    if trend is None or not trend.visible:
        return ''
    return f":{trend.color}[{trend.label}]"


def _render_card(snapshot, delta=None):
    st.plotly_chart(create_score_gauge(snapshot), use_container_width=True)
    counts = snapshot.tier_counts
    for tier in TIERS:
        key = COUNT_KEYS[tier]
        badge = _badge(delta.tiers[key]) if delta is not None else ''
        color = TIER_COLORS[tier]
        st.markdown(
            f"<span style='color:{color}'>■</span> {tier}: **{counts[key]}** {badge}",
            unsafe_allow_html=True,
        )
    st.caption(f"{snapshot.total} estudantes")
    if delta is not None and delta.show_overall:
        sign = '+' if delta.overall_delta > 0 else ''
        line = f"Índice geral: {sign}{delta.overall_delta:.1f}"
        if delta.show_population:
            psign = '+' if delta.population_delta > 0 else ''
            line += f" · População: {psign}{delta.population_delta}"
        st.caption(line)

# ---------------------------------------------------------------------------
# Main dashboard
# ---------------------------------------------------------------------------

def show_overview_dashboard():
    st.title("Visão Geral da Proficiência")

    # ── Filters ───────────────────────────────────────────────────────────
    f1, f2, f3, f4, f5 = st.columns(5)
    with f1:
        component = st.selectbox("Componente", COMPONENTS)
    with f3:
        base_options = _options(ALL)
        region = st.selectbox("Regional", [ALL] + base_options['regions'])
    options = _options(region) if region != ALL else base_options
    with f2:
        school_year = st.selectbox("Ano escolar", [ALL] + options['school_years'])
    with f4:
        unit = st.selectbox("Unidade", [ALL] + options['units'])
    with f5:
        use_labels = st.toggle("Usar nível registrado", value=False,
                               help="Classificar pelo nível de aprendizagem gravado em vez do percentual de acerto")
    policy = TierPolicy.STORED_LABEL if use_labels else TierPolicy.RATIO

    selection = FilterSelection(component=component, school_year=school_year, region=region, unit=unit)

    with st.spinner("Carregando resultados..."):
        result = _overview_state().refresh(selection, policy, fetch=fetch_results)

    if result is None:
        st.info("Sem resultados para os filtros selecionados.")
        return

    # ── Cards ─────────────────────────────────────────────────────────────
    for scope in SCOPES:
        st.subheader(SCOPE_LABELS[scope])
        cols = st.columns(len(SEMESTERS))
        for col, sem in zip(cols, SEMESTERS):
            with col:
                delta = result.deltas.get(scope) if sem == '2' else None
                _render_card(result.snapshots[(scope, sem)], delta)
