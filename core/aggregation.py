"""
Result aggregation.

Turns the flat stream of result rows (one per student x skill x
assessment) into per-student, per-skill and per-component summaries.
Everything here is a pure function of the input DataFrame; callers
rebuild aggregates from fresh rows on every filter change.
"""
from typing import Dict, List

import numpy as np
import pandas as pd

from core.normalizer import prepare_rows

# Composite student identity (name alone collides across classes)
STUDENT_KEY = ['student_name', 'class_name', 'unit']

COMPONENT_LABELS = {
    'LP': 'Língua Portuguesa',
    'MT': 'Matemática',
}

# Performance bands: (label, minimum ratio)
PERFORMANCE_BANDS = [
    ('Excelente (90-100%)', 90),
    ('Bom (70-89%)', 70),
    ('Regular (50-69%)', 50),
    ('Insuficiente (0-49%)', 0),
]


def component_label(code: str) -> str:
    return COMPONENT_LABELS.get(code, code)


def _ratio(correct, total):
    """100 * correct / total, NaN where total is zero."""
    correct = np.asarray(correct, dtype=float)
    total = np.asarray(total, dtype=float)
    with np.errstate(divide='ignore', invalid='ignore'):
        return np.where(total > 0, correct / np.where(total > 0, total, 1) * 100, np.nan)


def evaluated_rows(rows: pd.DataFrame) -> pd.DataFrame:
    """Canonicalise *rows* and keep only evaluated ones."""
    df = prepare_rows(rows)
    return df[df['evaluated']]


# ---------------------------------------------------------------------------
# Students
# ---------------------------------------------------------------------------

def aggregate_by_student(rows: pd.DataFrame) -> pd.DataFrame:
    """Sum correct/total per student and derive a 0-100 ratio.

    Returns one row per student identity with columns
    ``student_name, class_name, unit, correct, total, ratio``. Students
    whose total is zero have no ratio and are left out.
    """
    df = evaluated_rows(rows)
    df = df[df['student_name'] != '']
    if df.empty:
        return pd.DataFrame(columns=STUDENT_KEY + ['correct', 'total', 'ratio'])

    grp = (
        df.groupby(STUDENT_KEY, sort=True)
        .agg(correct=('correct_count', 'sum'), total=('total_count', 'sum'))
        .reset_index()
    )
    grp = grp[grp['total'] > 0].copy()
    grp['ratio'] = _ratio(grp['correct'], grp['total'])
    return grp.reset_index(drop=True)


def student_component_breakdown(rows: pd.DataFrame) -> List[Dict]:
    """Per-student list of components with totals and their skill rows.

    Mirrors the students list: every student in *rows* appears (sorted by
    name), but only evaluated rows add to the totals and skill lists.
    """
    df = prepare_rows(rows)
    df = df[df['student_name'] != '']
    if df.empty:
        return []

    students = []
    for key, stu in df.groupby(STUDENT_KEY, sort=False):
        name, class_name, unit = key
        components = []
        for comp, comp_rows in stu.groupby('component', sort=True):
            ev = comp_rows[comp_rows['evaluated']]
            correct = int(ev['correct_count'].sum())
            total = int(ev['total_count'].sum())
            skills = []
            for _, r in ev.iterrows():
                ratio = 100.0 * r['correct_count'] / r['total_count'] if r['total_count'] > 0 else None
                skills.append({
                    'skill_id': r['skill_id'],
                    'skill_code': r['skill_code'],
                    'skill_description': r['skill_description'],
                    'correct': int(r['correct_count']),
                    'total': int(r['total_count']),
                    'ratio': round(ratio, 1) if ratio is not None else None,
                    'is_weak': ratio is not None and ratio < 100,
                })
            components.append({
                'component': comp,
                'component_label': component_label(comp),
                'correct': correct,
                'total': total,
                'ratio': round(100.0 * correct / total, 1) if total > 0 else None,
                'skills': skills,
            })
        first = stu.iloc[0]
        students.append({
            'student_name': name,
            'class_name': class_name,
            'unit': unit,
            'semester': first['semester'],
            'components': components,
        })

    students.sort(key=lambda s: (s['student_name'].lower(), s['class_name'], s['unit']))
    return students


# ---------------------------------------------------------------------------
# Skills
# ---------------------------------------------------------------------------

def aggregate_by_skill(rows: pd.DataFrame) -> pd.DataFrame:
    """Per-skill summary over evaluated rows with a skill_id.

    Two averages are reported because they diverge when question counts
    vary per student:
      - ``ratio_of_sums``  = 100 * sum(correct) / sum(total)
      - ``mean_of_ratios`` = mean of each row's own ratio
    ``mean_correct`` and ``mean_total`` are the per-row means of the counts.
    """
    cols = [
        'skill_id', 'skill_code', 'skill_description', 'correct', 'total',
        'count', 'mean_correct', 'mean_total', 'ratio_of_sums', 'mean_of_ratios',
    ]
    df = evaluated_rows(rows)
    df = df[df['skill_id'] != '']
    if df.empty:
        return pd.DataFrame(columns=cols)

    df = df.assign(_row_ratio=_ratio(df['correct_count'], df['total_count']))
    grp = (
        df.groupby('skill_id', sort=True)
        .agg(
            skill_code=('skill_code', 'first'),
            skill_description=('skill_description', 'first'),
            correct=('correct_count', 'sum'),
            total=('total_count', 'sum'),
            count=('correct_count', 'size'),
            mean_of_ratios=('_row_ratio', 'mean'),
        )
        .reset_index()
    )
    grp['mean_correct'] = grp['correct'] / grp['count']
    grp['mean_total'] = grp['total'] / grp['count']
    grp['ratio_of_sums'] = np.where(
        grp['total'] > 0, _ratio(grp['correct'], grp['total']), 0.0
    )
    return grp[cols]


def lowest_skills(rows: pd.DataFrame, limit: int = 10) -> pd.DataFrame:
    """The *limit* skills with the lowest ratio_of_sums."""
    skills = aggregate_by_skill(rows)
    if skills.empty:
        return skills
    return skills.sort_values(['ratio_of_sums', 'skill_id'], kind='mergesort').head(limit).reset_index(drop=True)


# ---------------------------------------------------------------------------
# Population insights
# ---------------------------------------------------------------------------

def participation_summary(rows: pd.DataFrame) -> Dict:
    """Distinct students, evaluated students and participation percentage."""
    df = prepare_rows(rows)
    df = df[df['student_name'] != '']
    if df.empty:
        return {'total_students': 0, 'evaluated_students': 0, 'participation_pct': 0.0}

    total = len(df.drop_duplicates(STUDENT_KEY))
    evaluated = len(df[df['evaluated']].drop_duplicates(STUDENT_KEY))
    return {
        'total_students': int(total),
        'evaluated_students': int(evaluated),
        'participation_pct': round(100.0 * evaluated / total, 1) if total else 0.0,
    }


def learning_level_distribution(rows: pd.DataFrame) -> List[Dict]:
    """Stored learning-level counts, one label per student x component x semester."""
    df = evaluated_rows(rows)
    if 'learning_level' not in df.columns:
        return []
    df = df[df['learning_level'].notna() & (df['learning_level'].astype(str).str.strip() != '')]
    if df.empty:
        return []

    key = STUDENT_KEY + ['component', 'semester']
    # Last label seen for a group wins
    labels = df.drop_duplicates(key, keep='last')['learning_level'].astype(str).str.strip()
    n = len(labels)
    counts = labels.value_counts(sort=False)
    return [
        {'level': level, 'count': int(count), 'pct': round(100.0 * count / n, 1)}
        for level, count in counts.items()
    ]


def performance_bands(rows: pd.DataFrame) -> List[Dict]:
    """Band each student x component x semester by its aggregate ratio."""
    df = evaluated_rows(rows)
    df = df[df['student_name'] != '']
    counts = {label: 0 for label, _ in PERFORMANCE_BANDS}

    if not df.empty:
        key = STUDENT_KEY + ['component', 'semester']
        grp = df.groupby(key).agg(correct=('correct_count', 'sum'), total=('total_count', 'sum'))
        grp = grp[grp['total'] > 0]
        for ratio in _ratio(grp['correct'], grp['total']):
            for label, low in PERFORMANCE_BANDS:
                if ratio >= low:
                    counts[label] += 1
                    break

    total = sum(counts.values())
    return [
        {'band': label, 'count': count, 'pct': round(100.0 * count / total, 1) if total else 0.0}
        for label, count in counts.items()
    ]
