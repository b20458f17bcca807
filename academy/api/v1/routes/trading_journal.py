import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from academy.core.database import get_db
from academy.core.middleware import get_current_user
from academy.services.trading_journal_service import TradingJournalService, serialize_trade

router = APIRouter()
logger = logging.getLogger(__name__)


def get_trading_journal_service() -> TradingJournalService:
    """Dependency to get trading journal service instance"""
    return TradingJournalService()


class CreateTradeRequest(BaseModel):
    symbol: Optional[str] = None
    instrument_type: Optional[str] = None
    direction: Optional[str] = None
    entry_price: Optional[float] = None
    entry_time: Optional[datetime] = None
    position_size: Optional[float] = None
    position_size_currency: Optional[str] = None
    leverage: Optional[float] = None
    entry_reason: Optional[str] = None
    stop_loss: Optional[float] = None
    take_profit: Optional[float] = None
    notes: Optional[str] = None


class CloseTradeRequest(BaseModel):
    exit_price: float
    exit_time: datetime
    exit_reason: Optional[str] = None
    pnl_amount: Optional[float] = None
    pnl_percentage: Optional[float] = None
    notes: Optional[str] = None
    lessons_learned: Optional[str] = None


def _http_error(operation: str, e: Exception) -> HTTPException:
    if isinstance(e, LookupError):
        logger.error(f"{operation}: LookupError - {e}")
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    if isinstance(e, ValueError):
        logger.error(f"{operation}: ValueError - {e}")
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    logger.error(f"{operation}: Failure - {e}")
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))


@router.get("/trades")
async def list_trades(
    page: int = 1,
    limit: int = 20,
    status_filter: Optional[str] = Query(None, alias="status"),
    symbol: Optional[str] = None,
    instrument_type: Optional[str] = None,
    direction: Optional[str] = None,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    db: Session = Depends(get_db),
    current_user: dict = Depends(get_current_user),
    journal_service: TradingJournalService = Depends(get_trading_journal_service)
):
    try:
        return journal_service.list_trades(
            db,
            current_user['uid'],
            filters={
                'status': status_filter,
                'symbol': symbol,
                'instrument_type': instrument_type,
                'direction': direction,
                'start_date': start_date,
                'end_date': end_date,
            },
            page=page,
            limit=min(limit, 100),
        )
    except Exception as e:
        raise _http_error("list_trades", e)


@router.post("/trades", status_code=status.HTTP_201_CREATED)
async def create_trade(
    request: CreateTradeRequest,
    db: Session = Depends(get_db),
    current_user: dict = Depends(get_current_user),
    journal_service: TradingJournalService = Depends(get_trading_journal_service)
):
    user_id = current_user['uid']
    logger.info(f"create_trade: Entry - user: {user_id}, symbol: {request.symbol}")

    try:
        trade = journal_service.create_trade(db, user_id, request.model_dump())
        logger.info(f"create_trade: Success - {trade.trade_id}")
        return serialize_trade(trade)
    except Exception as e:
        raise _http_error("create_trade", e)


@router.post("/trades/{trade_id}/close")
async def close_trade(
    trade_id: str,
    request: CloseTradeRequest,
    db: Session = Depends(get_db),
    current_user: dict = Depends(get_current_user),
    journal_service: TradingJournalService = Depends(get_trading_journal_service)
):
    user_id = current_user['uid']
    logger.info(f"close_trade: Entry - user: {user_id}, trade: {trade_id}")

    try:
        trade = journal_service.close_trade(
            db,
            user_id,
            trade_id,
            exit_price=request.exit_price,
            exit_time=request.exit_time,
            pnl_amount=request.pnl_amount,
            pnl_percentage=request.pnl_percentage,
            exit_reason=request.exit_reason,
            notes=request.notes,
            lessons_learned=request.lessons_learned,
        )
        logger.info(f"close_trade: Success - {trade.trade_id}")
        return serialize_trade(trade)
    except Exception as e:
        raise _http_error("close_trade", e)


@router.get("/performance")
async def get_performance(
    period_type: str = 'monthly',
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    db: Session = Depends(get_db),
    current_user: dict = Depends(get_current_user),
    journal_service: TradingJournalService = Depends(get_trading_journal_service)
):
    user_id = current_user['uid']
    logger.info(f"get_performance: Entry - user: {user_id}, period: {period_type}")

    try:
        result = journal_service.get_performance(db, user_id, period_type, start_date, end_date)
        logger.info(f"get_performance: Success - user: {user_id}")
        return result
    except Exception as e:
        raise _http_error("get_performance", e)
