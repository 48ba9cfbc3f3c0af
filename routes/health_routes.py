"""GET /health: process liveness for load balancers. Touches neither MongoDB nor the session."""

from __future__ import annotations

from fastapi import APIRouter

from schemas.dto.responses.common import HealthResponse

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    return HealthResponse()
