"""Token usage statistics endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from hookdesk.api.deps import require_token
from hookdesk.api.schemas import ProjectUsageResponse, StatisticsResponse, TotalStatisticsResponse
from hookdesk.statistics import statistics_store

router = APIRouter(tags=["statistics"])


@router.get("/statistics", response_model=StatisticsResponse)
async def get_statistics(_: None = Depends(require_token)) -> StatisticsResponse:
    total, projects = statistics_store.calculate_statistics()
    return StatisticsResponse(
        total=TotalStatisticsResponse.from_totals(total),
        projects=[ProjectUsageResponse.from_usage(p) for p in projects],
    )
