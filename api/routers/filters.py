"""
Filter options and skill reference links.
"""
import logging

from fastapi import APIRouter, HTTPException

from core.database import FetchError, get_filter_options, get_link

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/filters/options")
def get_options(region: str | None = None):
    """Distinct regions, units (within *region* when given) and school years."""
    try:
        return get_filter_options(region)
    except FetchError as e:
        logger.warning("filter options unavailable: %s", e)
        return {"regions": [], "units": [], "school_years": []}
    except Exception:
        logger.exception("get_options failed")
        raise HTTPException(status_code=500, detail="Internal server error")


@router.get("/skills/link")
def get_skill_link(skill_code: str, component: str):
    """Reference URL for a skill; ``link`` is null when none is registered."""
    try:
        link = get_link(skill_code, component)
    except FetchError as e:
        logger.warning("link lookup failed for %s/%s: %s", skill_code, component, e)
        link = None
    except Exception:
        logger.exception("get_skill_link failed")
        raise HTTPException(status_code=500, detail="Internal server error")
    return {"skill_code": skill_code, "component": component, "link": link}
