"""tv_engine REST endpoints (write side).

POST /matches/settle   — fixture data source reports a concluded match
POST /orders           — order intake forwards a validated buy/sell
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.tv_common.database import get_db_session
from src.tv_common.id_generator import generate_order_id
from src.tv_common.response import ApiResponse, success_response
from src.tv_engine.application.schemas import (
    MatchSettleRequest,
    OrderRequest,
    SettlementResponse,
    TradeResultResponse,
)
from src.tv_engine.dependencies import get_engine
from src.tv_engine.engine import ValuationEngine

router = APIRouter(tags=["engine"])


@router.post("/matches/settle")
async def settle_match(
    body: MatchSettleRequest,
    request: Request,
    engine: Annotated[ValuationEngine, Depends(get_engine)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> ApiResponse:
    outcome = await engine.settle_match(db, body.to_domain())
    return success_response(SettlementResponse.from_outcome(outcome).model_dump(), request)


@router.post("/orders")
async def execute_order(
    body: OrderRequest,
    request: Request,
    engine: Annotated[ValuationEngine, Depends(get_engine)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> ApiResponse:
    order = body.to_domain(body.order_id or generate_order_id())
    outcome = await engine.execute_trade(db, order)
    return success_response(TradeResultResponse.from_outcome(outcome).model_dump(), request)
