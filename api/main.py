"""FastAPI application for UK street-level crime searches."""

from __future__ import annotations

from typing import Literal

from fastapi import FastAPI, Query, Request
from fastapi.responses import JSONResponse

from api import queries
from api.models import ErrorResponse, SearchResponse
from pipeline.aggregate import SortField
from pipeline.config import configure_logging
from pipeline.errors import (
    CrimeDashboardError,
    NetworkError,
    NoValidPostcodesError,
    ValidationError,
)
from pipeline.models import HistoryEntry
from pipeline.months import MONTH_KEY_PATTERN, current_month

configure_logging()

app = FastAPI(
    title="UK Crime Dashboard API",
    description="Street-level crime around UK postcodes, from data.police.uk",
    version="0.1.0",
)

_ERROR_STATUS = {
    ValidationError: 422,
    NoValidPostcodesError: 404,
    NetworkError: 502,
}


@app.exception_handler(CrimeDashboardError)
async def dashboard_error_handler(request: Request, exc: CrimeDashboardError):
    status = _ERROR_STATUS.get(type(exc), 500)
    body = ErrorResponse(detail=exc.message, code=exc.code)
    return JSONResponse(status_code=status, content=body.model_dump())


@app.get("/")
def root():
    return {
        "message": "UK Crime Dashboard API",
        "endpoints": ["/search", "/history"],
    }


@app.get("/search", response_model=SearchResponse)
async def search(
    postcodes: str = Query(..., description="Comma-separated UK postcodes"),
    dateFrom: str | None = Query(None, pattern=MONTH_KEY_PATTERN, description="First month (YYYY-MM)"),
    dateTo: str | None = Query(None, pattern=MONTH_KEY_PATTERN, description="Last month (YYYY-MM)"),
    trigger: int = Query(0, ge=0, description="Bump to bypass the cached result"),
    postcode: str | None = Query(None, description="Only crimes for this postcode"),
    category: str | None = Query(None, description="Only this crime category"),
    outcome: str | None = Query(None, description="Only this outcome ('Unknown' for none)"),
    sort: SortField = Query("month", description="Sort field"),
    direction: Literal["asc", "desc"] = Query("desc", description="Sort direction"),
):
    return await queries.search_crimes(
        postcodes,
        dateFrom or current_month(),
        dateTo or current_month(),
        trigger=trigger,
        postcode=postcode,
        category=category,
        outcome=outcome,
        sort=sort,
        direction=direction,
    )


@app.get("/history", response_model=list[HistoryEntry])
async def history():
    """Most recent searches, newest first."""
    return queries.get_history()


@app.delete("/history/{postcode}", response_model=list[HistoryEntry])
async def remove_history(postcode: str):
    return queries.remove_history(postcode)


@app.delete("/history", response_model=list[HistoryEntry])
async def clear_history():
    return queries.clear_history()
