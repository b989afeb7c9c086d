"""
Proficiency dashboard HTTP service.

    uvicorn api.main:app --reload

Every error leaves as ``{"detail": {"message": ..., "code": ...}}``.
"""
import logging
import sys
from pathlib import Path

_root = Path(__file__).resolve().parent.parent
if str(_root) not in sys.path:
    sys.path.insert(0, str(_root))

from dotenv import load_dotenv

load_dotenv(_root / ".env")

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from api.routers import dashboard, filters, overview, remediation
from core.settings import get_cors_origins

logger = logging.getLogger(__name__)

ROUTERS = (
    (overview.router, "overview"),
    (dashboard.router, "dashboard"),
    (filters.router, "filters"),
    (remediation.router, "remediation"),
)


def error_payload(message: str, code: str = "error") -> dict:
    return {"message": message, "code": code}


def create_app() -> FastAPI:
    api = FastAPI(
        title="Proficiency Dashboard API",
        description="Tier snapshots by unit, region and network; skill results; remediation plans",
        version="1.0.0",
    )

    @api.exception_handler(HTTPException)
    def http_error(request: Request, exc: HTTPException) -> JSONResponse:
        detail = exc.detail
        if not (isinstance(detail, dict) and "message" in detail):
            detail = error_payload(str(detail) if detail else "Error")
        return JSONResponse(status_code=exc.status_code, content={"detail": detail})

    @api.exception_handler(Exception)
    def unexpected_error(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("%s %s failed", request.method, request.url.path)
        return JSONResponse(
            status_code=500,
            content={"detail": error_payload("Internal server error", "internal_error")},
        )

    origins = get_cors_origins()
    api.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials="*" not in origins,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
        # PDF downloads read the file name and plan source from these
        expose_headers=["Content-Disposition", "X-Plan-Source"],
    )

    for router, tag in ROUTERS:
        api.include_router(router, prefix="/api", tags=[tag])

    @api.get("/health")
    def health():
        return {"status": "ok"}

    return api


app = create_app()
