"""
Main Streamlit application for the Proficiency Dashboard
"""
import streamlit as st

# Page configuration
st.set_page_config(
    page_title="Painel de Proficiência",
    page_icon="📊",
    layout="wide",
    initial_sidebar_state="expanded"
)

# Sidebar navigation
st.sidebar.title("📊 Painel de Proficiência")
st.sidebar.markdown("---")

page = st.sidebar.radio(
    "Navegação",
    ["Visão Geral", "Resultados"],
    key="main_nav"
)

# Route to appropriate page
if page == "Visão Geral":
    from pages.overview_dashboard import show_overview_dashboard
    show_overview_dashboard()
else:
    from pages.results_dashboard import show_results_dashboard
    show_results_dashboard()
