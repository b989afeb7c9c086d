"""
Overview API: six proficiency snapshots (unit / regional / network x
semester 1 / 2) and their semester-over-semester deltas.
"""
import logging
import time

from fastapi import APIRouter, HTTPException

from core.database import fetch_results, get_proficiency_summary
from core.scope_resolver import (
    FilterSelection,
    OverviewResult,
    compute_overview,
    resolve_summary_snapshots,
)
from core.tier_engine import TierPolicy, policy_from_value
from core.trend import overview_deltas
from api.serializers import serialize_dict

logger = logging.getLogger(__name__)

router = APIRouter()

SOURCE_ROWS = "rows"
SOURCE_SUMMARY = "summary"


@router.get("/overview")
def get_overview(
    component: str | None = None,
    school_year: str | None = None,
    region: str | None = None,
    unit: str | None = None,
    policy: str | None = None,
    source: str = SOURCE_ROWS,
):
    """Return the overview cards.

    ``source=summary`` uses the store's per-semester counts (stored labels,
    worst per student) instead of fetching and classifying raw rows.
    """
    if source not in (SOURCE_ROWS, SOURCE_SUMMARY):
        raise HTTPException(
            status_code=400,
            detail={"message": f"source must be '{SOURCE_ROWS}' or '{SOURCE_SUMMARY}'", "code": "invalid_source"},
        )
    t0 = time.perf_counter()
    try:
        selection = FilterSelection(component=component, school_year=school_year, region=region, unit=unit)
        if source == SOURCE_SUMMARY:
            snapshots = resolve_summary_snapshots(selection, summary=get_proficiency_summary)
            result = OverviewResult(
                selection=selection,
                policy=TierPolicy.STORED_LABEL,
                snapshots=snapshots,
                deltas=overview_deltas(snapshots),
            )
        else:
            result = compute_overview(selection, policy_from_value(policy), fetch=fetch_results)
        out = serialize_dict(result.to_dict())
        logger.info("overview (%s) %.3fs", source, time.perf_counter() - t0)
        return out
    except Exception:
        logger.exception("get_overview failed")
        raise HTTPException(status_code=500, detail="Internal server error")
