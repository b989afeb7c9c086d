"""
Visualization functions for the proficiency dashboard
"""
import plotly.graph_objects as go
import pandas as pd
from typing import Dict, List, Optional

from core.tier_engine import DEFAULT_COLOR, TIER_COLORS, ScopeSnapshot

BAND_COLORS = ['#10B981', '#3B82F6', '#F59E0B', '#EF4444']


def create_score_gauge(snapshot: ScopeSnapshot, height: int = 220) -> go.Figure:
    """Create 0-100 gauge for a snapshot's overall score, colored by dominant tier"""
    color = TIER_COLORS.get(snapshot.dominant_tier, DEFAULT_COLOR)

    fig = go.Figure(go.Indicator(
        mode='gauge+number',
        value=round(snapshot.overall_score, 1),
        number={'suffix': '', 'valueformat': '.1f'},
        gauge={
            'axis': {'range': [0, 100]},
            'bar': {'color': color},
            'steps': [
                {'range': [0, 30], 'color': '#FEE2E2'},
                {'range': [30, 71], 'color': '#FEF3C7'},
                {'range': [71, 100], 'color': '#D1FAE5'},
            ],
        },
        title={'text': snapshot.label, 'font': {'size': 14}},
    ))

    fig.update_layout(height=height, margin=dict(l=20, r=20, t=50, b=10))
    return fig


def create_lowest_skills_chart(skills: pd.DataFrame, title: Optional[str] = None) -> go.Figure:
    """Create bar chart of the lowest-performing skills (ratio of sums)"""
    fig = go.Figure()
    if skills is None or skills.empty:
        fig.update_layout(title=title or 'Habilidades com menor desempenho', height=400)
        return fig

    fig.add_trace(go.Bar(
        x=skills['skill_id'],
        y=skills['ratio_of_sums'],
        marker_color='#EF4444',
        text=[f"{v:.1f}%" for v in skills['ratio_of_sums']],
        textposition='outside',
        hovertext=skills['skill_description'],
        name='% de acerto',
    ))

    fig.update_layout(
        title=title or 'Habilidades com menor desempenho',
        xaxis_title='Habilidade',
        yaxis_title='% de acerto',
        height=400,
        yaxis=dict(range=[0, 105]),
    )
    return fig


def create_performance_bands_chart(bands: List[Dict]) -> go.Figure:
    """Create donut chart of performance band distribution"""
    fig = go.Figure(data=[go.Pie(
        labels=[b['band'] for b in bands],
        values=[b['count'] for b in bands],
        hole=0.4,
        marker_colors=BAND_COLORS[:len(bands)],
        sort=False,
    )])

    fig.update_layout(title='Faixas de desempenho', showlegend=True, height=400)
    return fig


def create_level_distribution_chart(levels: List[Dict]) -> go.Figure:
    """Create bar chart of stored learning-level counts"""
    fig = go.Figure(go.Bar(
        x=[lv['level'] for lv in levels],
        y=[lv['count'] for lv in levels],
        marker_color=[TIER_COLORS.get(lv['level'], DEFAULT_COLOR) for lv in levels],
        text=[f"{lv['pct']:.1f}%" for lv in levels],
        textposition='outside',
    ))

    fig.update_layout(
        title='Nível de aprendizagem',
        xaxis_title='',
        yaxis_title='Estudantes',
        height=400,
    )
    return fig
