"""
Results dashboard API: participation and level insights, skill
performance, per-student component breakdown.

Store failures degrade to empty results rather than errors.
"""
import logging
import time

import pandas as pd
from fastapi import APIRouter, HTTPException, Query

from core.aggregation import (
    aggregate_by_skill,
    learning_level_distribution,
    lowest_skills,
    participation_summary,
    performance_bands,
    student_component_breakdown,
)
from core.database import FetchError, fetch_results, search_students
from core.normalizer import clean_filters, prepare_rows
from api.serializers import dataframe_to_records, serialize_dict

logger = logging.getLogger(__name__)

router = APIRouter()


def _filters(component, school_year, region, unit, semester, class_name, student_name=None) -> dict:
    return clean_filters({
        "component": component,
        "school_year": school_year,
        "region": region,
        "unit": unit,
        "semester": semester,
        "class_name": class_name,
        "student_name": student_name,
    })


def _load_rows(filters: dict) -> pd.DataFrame:
    try:
        return prepare_rows(fetch_results(filters))
    except FetchError as e:
        logger.warning("dashboard fetch failed, returning empty data: %s", e)
        return prepare_rows(None)


@router.get("/dashboard/insights")
def get_insights(
    component: str | None = None,
    school_year: str | None = None,
    region: str | None = None,
    unit: str | None = None,
    semester: str | None = None,
    class_name: str | None = None,
):
    t0 = time.perf_counter()
    try:
        rows = _load_rows(_filters(component, school_year, region, unit, semester, class_name))
        out = serialize_dict({
            "participation": participation_summary(rows),
            "learning_levels": learning_level_distribution(rows),
            "performance_bands": performance_bands(rows),
        })
        logger.info("dashboard/insights %.3fs", time.perf_counter() - t0)
        return out
    except Exception:
        logger.exception("get_insights failed")
        raise HTTPException(status_code=500, detail="Internal server error")


@router.get("/dashboard/skills")
def get_skills(
    component: str | None = None,
    school_year: str | None = None,
    region: str | None = None,
    unit: str | None = None,
    semester: str | None = None,
    class_name: str | None = None,
    limit: int = Query(10, ge=1, le=100),
):
    """Skill table (both average flavours) and the *limit* lowest skills."""
    t0 = time.perf_counter()
    try:
        rows = _load_rows(_filters(component, school_year, region, unit, semester, class_name))
        out = {
            "skills": dataframe_to_records(aggregate_by_skill(rows)),
            "lowest": dataframe_to_records(lowest_skills(rows, limit=limit)),
        }
        logger.info("dashboard/skills %.3fs", time.perf_counter() - t0)
        return out
    except Exception:
        logger.exception("get_skills failed")
        raise HTTPException(status_code=500, detail="Internal server error")


@router.get("/dashboard/students")
def get_students(
    component: str | None = None,
    school_year: str | None = None,
    region: str | None = None,
    unit: str | None = None,
    semester: str | None = None,
    class_name: str | None = None,
    student_name: str | None = None,
):
    t0 = time.perf_counter()
    try:
        rows = _load_rows(_filters(component, school_year, region, unit, semester, class_name, student_name))
        students = [serialize_dict(s) for s in student_component_breakdown(rows)]
        logger.info("dashboard/students %.3fs", time.perf_counter() - t0)
        return {"students": students, "count": len(students)}
    except Exception:
        logger.exception("get_students failed")
        raise HTTPException(status_code=500, detail="Internal server error")


@router.get("/dashboard/students/search")
def get_student_suggestions(
    prefix: str,
    unit: str | None = None,
    school_year: str | None = None,
    limit: int = Query(10, ge=1, le=50),
):
    """Autocomplete: unique student names starting with *prefix*."""
    try:
        names = search_students(prefix, {"unit": unit, "school_year": school_year}, limit=limit)
    except FetchError as e:
        logger.warning("student search failed: %s", e)
        names = []
    except Exception:
        logger.exception("get_student_suggestions failed")
        raise HTTPException(status_code=500, detail="Internal server error")
    return {"names": names}
