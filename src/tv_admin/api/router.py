# src/tv_admin/api/router.py
"""Admin REST API."""
from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from src.tv_admin.application.service import AdminService
from src.tv_common.database import get_db_session
from src.tv_common.response import ApiResponse, success_response
from src.tv_engine.dependencies import get_admin_service

router = APIRouter(prefix="/admin", tags=["admin"])


class SeedEntityRequest(BaseModel):
    entity_id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    market_cap_cents: int | None = Field(None, ge=0)
    shares_outstanding: int | None = Field(None, ge=0)
    event_date: datetime | None = None


class ResetEntityRequest(BaseModel):
    market_cap_cents: int | None = Field(None, ge=0)
    shares_outstanding: int | None = Field(None, ge=0)


@router.post("/entities")
async def seed_entity(
    body: SeedEntityRequest,
    request: Request,
    service: Annotated[AdminService, Depends(get_admin_service)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> ApiResponse:
    result = await service.seed_entity(
        db,
        body.entity_id,
        body.name,
        market_cap=body.market_cap_cents,
        shares_outstanding=body.shares_outstanding,
        event_date=body.event_date,
    )
    return success_response(result, request)


@router.post("/entities/{entity_id}/reset")
async def reset_entity(
    entity_id: str,
    body: ResetEntityRequest,
    request: Request,
    service: Annotated[AdminService, Depends(get_admin_service)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> ApiResponse:
    result = await service.reset_entity(
        db,
        entity_id,
        market_cap=body.market_cap_cents,
        shares_outstanding=body.shares_outstanding,
    )
    return success_response(result, request)


@router.get("/entities/{entity_id}/reconcile")
async def reconcile_entity(
    entity_id: str,
    request: Request,
    service: Annotated[AdminService, Depends(get_admin_service)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> ApiResponse:
    result = await service.reconcile_entity(db, entity_id)
    return success_response(result, request)
