"""
Results Dashboard Page
Participation, learning levels, skill performance and the per-student
breakdown with remediation plan download.
"""
import streamlit as st
import pandas as pd

from core.aggregation import (
    aggregate_by_skill,
    learning_level_distribution,
    lowest_skills,
    participation_summary,
    performance_bands,
    student_component_breakdown,
)
from core.database import FetchError, fetch_results, get_filter_options, get_link
from core.link_cache import LinkCache
from core.normalizer import clean_filters, prepare_rows
from core.remediation_report import InProgressRegistry, generate_student_report
from core.text_generator import get_default_generator
from core.visualizations import (
    create_level_distribution_chart,
    create_lowest_skills_chart,
    create_performance_bands_chart,
)

ALL = 'Todos'

# ---------------------------------------------------------------------------
# Session state
# ---------------------------------------------------------------------------

def _link_cache() -> LinkCache:
    if 'link_cache' not in st.session_state:
        st.session_state.link_cache = LinkCache(get_link)
    return st.session_state.link_cache


def _registry() -> InProgressRegistry:
    if 'report_registry' not in st.session_state:
        st.session_state.report_registry = InProgressRegistry()
    return st.session_state.report_registry


def _load_rows(filters: dict) -> pd.DataFrame:
    try:
        return prepare_rows(fetch_results(filters))
    except FetchError as e:
        st.warning(f"Não foi possível carregar os resultados: {e}")
        return prepare_rows(None)

# ---------------------------------------------------------------------------
# Sections
# ---------------------------------------------------------------------------

def _show_insights(rows: pd.DataFrame):
    part = participation_summary(rows)
    m1, m2, m3 = st.columns(3)
    m1.metric("Estudantes", part['total_students'])
    m2.metric("Avaliados", part['evaluated_students'])
    m3.metric("Participação", f"{part['participation_pct']:.1f}%")

    c1, c2 = st.columns(2)
    with c1:
        levels = learning_level_distribution(rows)
        if levels:
            st.plotly_chart(create_level_distribution_chart(levels), use_container_width=True)
        else:
            st.info("Sem nível de aprendizagem registrado.")
    with c2:
        st.plotly_chart(create_performance_bands_chart(performance_bands(rows)), use_container_width=True)


def _show_skills(rows: pd.DataFrame):
    st.subheader("Habilidades")
    st.plotly_chart(create_lowest_skills_chart(lowest_skills(rows, limit=10)), use_container_width=True)

    skills = aggregate_by_skill(rows)
    if skills.empty:
        return
    tbl = skills[['skill_id', 'skill_description', 'count', 'mean_correct', 'ratio_of_sums', 'mean_of_ratios']].copy()
    tbl.columns = ['Habilidade', 'Descrição', 'Registros', 'Média de acertos', '% acerto', 'Média dos %']
    for col in ['Média de acertos', '% acerto', 'Média dos %']:
        tbl[col] = tbl[col].apply(lambda x: f"{x:.1f}" if pd.notna(x) else "--")
    st.dataframe(tbl, use_container_width=True, height=300)


def _show_skill_line(skill: dict, component: str):
    icon = "🔴" if skill['is_weak'] else "🟢"
    ratio = f"{skill['ratio']:.0f}%" if pd.notna(skill['ratio']) else "--"
    c1, c2 = st.columns([5, 1])
    with c1:
        st.markdown(f"{icon} **{skill['skill_id']}** {skill['skill_description']} "
                    f"({skill['correct']}/{skill['total']}, {ratio})")
    with c2:
        link = _link_cache().for_skill(skill, component)
        if link:
            st.link_button("Material", link)


def _show_students(rows: pd.DataFrame):
    st.subheader("Estudantes")
    students = student_component_breakdown(rows)
    if not students:
        st.info("Nenhum estudante avaliado para os filtros selecionados.")
        return

    registry = _registry()
    for i, student in enumerate(students):
        key = (student['student_name'], student['class_name'], student['unit'])
        title = f"{student['student_name']} · {student['class_name']} · {student['unit']}"
        expanded = st.toggle(title, key=f"expand_{i}")
        if not expanded:
            continue

        for comp in student['components']:
            ratio = f"{comp['ratio']:.1f}%" if pd.notna(comp['ratio']) else "--"
            st.markdown(f"**{comp['component_label']}** · {comp['correct']}/{comp['total']} ({ratio})")
            for skill in comp['skills']:
                _show_skill_line(skill, comp['component'])

        busy = registry.is_active(key)
        if st.button("Gerar plano de intervenção", key=f"plan_{i}", disabled=busy):
            with st.spinner("Gerando plano..."):
                outcome = generate_student_report(key, rows, get_default_generator(), registry)
            if outcome.ok:
                st.success(outcome.message)
                st.download_button("Baixar PDF", outcome.content, outcome.filename,
                                   'application/pdf', key=f"download_{i}")
            elif outcome.status == 'no_weak_skills':
                st.info(outcome.message)
            else:
                st.error(outcome.message)
        st.markdown("---")

# ---------------------------------------------------------------------------
# Main dashboard
# ---------------------------------------------------------------------------

def show_results_dashboard():
    st.title("Resultados da Avaliação")

    try:
        options = get_filter_options()
    except FetchError as e:
        st.warning(f"Não foi possível carregar os filtros: {e}")
        options = {'regions': [], 'units': [], 'school_years': []}

    f1, f2, f3, f4 = st.columns(4)
    with f1:
        component = st.selectbox("Componente", [ALL, 'LP', 'MT'])
    with f2:
        school_year = st.selectbox("Ano escolar", [ALL] + options['school_years'])
    with f3:
        unit = st.selectbox("Unidade", [ALL] + options['units'])
    with f4:
        semester = st.selectbox("Avaliação", [ALL, '1', '2'])

    filters = clean_filters({
        'component': component,
        'school_year': school_year,
        'unit': unit,
        'semester': semester,
    })
    with st.spinner("Carregando resultados..."):
        rows = _load_rows(filters)

    if rows.empty:
        st.info("Sem resultados para os filtros selecionados.")
        return

    _show_insights(rows)
    _show_skills(rows)
    _show_students(rows)
