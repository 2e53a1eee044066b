# routers/crypto_routes.py
from typing import List

from fastapi import APIRouter, Depends, Query, Request

from middleware.rate_limit import PRICE_RATE_LIMIT, limiter
from routers.portfolio_routes import get_trading_service, to_http_exception
from services.errors import TradingError
from services.trading_service import TradingService

router = APIRouter()


@router.get("/supported", response_model=List[str])
def list_supported_assets(svc: TradingService = Depends(get_trading_service)):
    return svc.list_supported_assets()


@router.get("/search")
def search_coins(
    q: str = Query(..., min_length=1),
    limit: int = Query(5, ge=1, le=20),
    svc: TradingService = Depends(get_trading_service),
):
    return [
        {"coin_id": c.coin_id, "symbol": c.symbol, "name": c.name}
        for c in svc.catalog.search(q, limit=limit)
    ]


@router.get("/price/{coin}")
@limiter.limit(PRICE_RATE_LIMIT)
async def get_crypto_price(
    request: Request,
    coin: str,
    svc: TradingService = Depends(get_trading_service),
):
    """Current USD price for any CoinGecko id or supported ticker alias."""
    coin_id = svc.catalog.normalize(coin)
    try:
        price = await svc.get_crypto_price(coin_id)
    except TradingError as e:
        raise to_http_exception(e)
    return {"coin_id": coin_id, "usd": price, "formatted": f"${price:.4f}"}
