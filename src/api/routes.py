"""Liveness routes."""

from __future__ import annotations

from fastapi import APIRouter, Response
from fastapi.responses import PlainTextResponse

from api.schemas import HealthResponse
from config.settings import get_settings

router = APIRouter(tags=["health"])


@router.get("/", response_class=PlainTextResponse)
async def root() -> str:
    return "Backend is running"


@router.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    return HealthResponse()


def build_health_check_router() -> APIRouter:
    """Extra platform health route at the configured path."""

    health_router = APIRouter(tags=["health"])

    @health_router.get(get_settings().health_check_endpoint, include_in_schema=False)
    async def platform_health_check() -> Response:
        return Response(status_code=200)

    return health_router
