# routers/portfolio_routes.py

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status

from middleware.rate_limit import TRADE_IP_RATE_LIMIT, TRADE_RATE_LIMIT, client_address_key, limiter
from schemas.portfolio import (
    BuyRequest,
    Portfolio,
    PortfolioInit,
    PortfolioValuation,
    SellRequest,
    TradeOut,
    Transaction,
)
from services.errors import (
    AlreadyExistsError,
    InsufficientFundsError,
    InsufficientHoldingsError,
    InvalidAmountError,
    NotFoundError,
    PersistError,
    PriceFetchError,
    TradingError,
)
from services.portfolio.ledger import describe_transaction
from services.trading_service import TradingService

router = APIRouter()

_STATUS_BY_ERROR = {
    NotFoundError: status.HTTP_404_NOT_FOUND,
    AlreadyExistsError: status.HTTP_409_CONFLICT,
    InvalidAmountError: 422,
    InsufficientFundsError: status.HTTP_400_BAD_REQUEST,
    InsufficientHoldingsError: status.HTTP_400_BAD_REQUEST,
    PriceFetchError: status.HTTP_502_BAD_GATEWAY,
    PersistError: status.HTTP_503_SERVICE_UNAVAILABLE,
}


# ---- Dependency to get the service (built once in the app lifespan) ----
def get_trading_service(request: Request) -> TradingService:
    return request.app.state.trading_service


def to_http_exception(e: TradingError) -> HTTPException:
    return HTTPException(
        status_code=_STATUS_BY_ERROR.get(type(e), status.HTTP_400_BAD_REQUEST),
        detail=str(e),
    )


# ---------- Routes (thin controllers delegating to the service) ----------
@router.post("/{user_id}", response_model=Portfolio, status_code=status.HTTP_201_CREATED)
async def init_portfolio(
    user_id: str,
    payload: Optional[PortfolioInit] = None,
    svc: TradingService = Depends(get_trading_service),
):
    try:
        return await svc.init_portfolio(user_id, payload.initial_balance if payload else None)
    except TradingError as e:
        raise to_http_exception(e)


@router.get("/{user_id}", response_model=Portfolio)
def get_portfolio(
    user_id: str,
    svc: TradingService = Depends(get_trading_service),
):
    try:
        return svc.get_portfolio(user_id)
    except TradingError as e:
        raise to_http_exception(e)


@router.get("/{user_id}/transactions", response_model=List[Transaction])
def get_transactions(
    user_id: str,
    svc: TradingService = Depends(get_trading_service),
):
    try:
        return svc.get_transactions(user_id)
    except TradingError as e:
        raise to_http_exception(e)


@router.get("/{user_id}/value", response_model=PortfolioValuation)
async def get_portfolio_value(
    user_id: str,
    svc: TradingService = Depends(get_trading_service),
):
    try:
        return await svc.get_portfolio_value(user_id)
    except TradingError as e:
        raise to_http_exception(e)


@router.post("/{user_id}/buy", response_model=TradeOut)
@limiter.limit(TRADE_IP_RATE_LIMIT, key_func=client_address_key)
@limiter.limit(TRADE_RATE_LIMIT)
async def buy(
    request: Request,
    user_id: str,
    payload: BuyRequest,
    svc: TradingService = Depends(get_trading_service),
):
    try:
        tx = await svc.buy(user_id, payload.coin, payload.amount_usd)
    except TradingError as e:
        raise to_http_exception(e)
    return TradeOut(
        message=describe_transaction(tx),
        transaction=tx,
        usd_balance=svc.get_portfolio(user_id).usd_balance,
    )


@router.post("/{user_id}/sell", response_model=TradeOut)
@limiter.limit(TRADE_IP_RATE_LIMIT, key_func=client_address_key)
@limiter.limit(TRADE_RATE_LIMIT)
async def sell(
    request: Request,
    user_id: str,
    payload: SellRequest,
    svc: TradingService = Depends(get_trading_service),
):
    try:
        tx = await svc.sell(user_id, payload.coin, payload.crypto_amount)
    except TradingError as e:
        raise to_http_exception(e)
    return TradeOut(
        message=describe_transaction(tx),
        transaction=tx,
        usd_balance=svc.get_portfolio(user_id).usd_balance,
    )
