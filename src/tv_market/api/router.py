"""tv_market REST endpoints (read side).

GET /entities                                             — valuations ranked by market cap
GET /entities/{entity_id}                                 — current valuation
GET /entities/{entity_id}/timeline                        — price history since initial_state
GET /entities/{entity_id}/state?at=                       — point-in-time state
GET /holders/{holder_id}/positions                        — portfolio summary
GET /holders/{holder_id}/positions/{entity_id}            — single position
GET /holders/{holder_id}/entities/{entity_id}/transactions — trade history, newest first
"""

from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.tv_common.database import get_db_session
from src.tv_common.response import ApiResponse, success_response
from src.tv_engine.dependencies import get_query_service
from src.tv_market.application.service import ValuationQueryService

router = APIRouter(tags=["valuations"])

Service = Annotated[ValuationQueryService, Depends(get_query_service)]
Db = Annotated[AsyncSession, Depends(get_db_session)]


@router.get("/entities")
async def list_valuations(request: Request, service: Service, db: Db) -> ApiResponse:
    result = await service.list_valuations(db)
    return success_response(result.model_dump(), request)


@router.get("/entities/{entity_id}")
async def get_valuation(
    entity_id: str, request: Request, service: Service, db: Db
) -> ApiResponse:
    result = await service.get_current_valuation(db, entity_id)
    return success_response(result.model_dump(), request)


@router.get("/entities/{entity_id}/timeline")
async def get_timeline(
    entity_id: str,
    request: Request,
    service: Service,
    db: Db,
    from_date: datetime | None = Query(None, alias="from"),
    to_date: datetime | None = Query(None, alias="to"),
) -> ApiResponse:
    result = await service.get_timeline(db, entity_id, from_date, to_date)
    return success_response(result.model_dump(), request)


@router.get("/entities/{entity_id}/state")
async def get_state_at(
    entity_id: str,
    request: Request,
    service: Service,
    db: Db,
    at: datetime = Query(..., description="ISO-8601 instant; naive values are UTC"),
) -> ApiResponse:
    result = await service.get_state_at(db, entity_id, at)
    return success_response(result.model_dump(), request)


@router.get("/holders/{holder_id}/positions")
async def get_portfolio(
    holder_id: str, request: Request, service: Service, db: Db
) -> ApiResponse:
    result = await service.get_portfolio(db, holder_id)
    return success_response(result.model_dump(), request)


@router.get("/holders/{holder_id}/positions/{entity_id}")
async def get_position(
    holder_id: str, entity_id: str, request: Request, service: Service, db: Db
) -> ApiResponse:
    result = await service.get_position(db, holder_id, entity_id)
    return success_response(result.model_dump(), request)


@router.get("/holders/{holder_id}/entities/{entity_id}/transactions")
async def get_transactions(
    holder_id: str, entity_id: str, request: Request, service: Service, db: Db
) -> ApiResponse:
    result = await service.get_transactions_by_holder_and_entity(db, holder_id, entity_id)
    return success_response(result.model_dump(), request)
