# routers/alert_routes.py
from typing import Dict, List

from fastapi import APIRouter, Depends, status

from routers.portfolio_routes import get_trading_service, to_http_exception
from schemas.alerts import Alert, AlertCreate, AlertOut, PriceObservation, SweepReport
from services.errors import TradingError
from services.trading_service import TradingService

router = APIRouter()


@router.post("", response_model=AlertOut, status_code=status.HTTP_201_CREATED)
async def set_alert(
    payload: AlertCreate,
    svc: TradingService = Depends(get_trading_service),
):
    try:
        alert = await svc.set_alert(payload.user, payload.coin, payload.target_price)
    except TradingError as e:
        raise to_http_exception(e)
    return AlertOut(
        message=f"Alert set for {alert.user} when {alert.coin} reaches ${alert.target_price:.2f}",
        alert=alert,
    )


@router.get("", response_model=List[Alert])
def get_alerts(svc: TradingService = Depends(get_trading_service)):
    return svc.get_alerts()


# declared before /{user}/{coin} so "prices" is never read as a user id
@router.get("/prices", response_model=Dict[str, PriceObservation])
def get_price_history(svc: TradingService = Depends(get_trading_service)):
    return svc.get_price_history()


@router.post("/sweep", response_model=SweepReport)
async def run_alert_sweep(svc: TradingService = Depends(get_trading_service)):
    """
    Check every alert against fresh prices and notify owners.
    Safe to call manually or from a cron job.
    """
    return await svc.run_alert_sweep()


@router.get("/{user}/{coin}", response_model=Alert)
def get_alert(
    user: str,
    coin: str,
    svc: TradingService = Depends(get_trading_service),
):
    try:
        return svc.get_alert(user, coin)
    except TradingError as e:
        raise to_http_exception(e)


@router.delete("/{user}/{coin}", response_model=Alert)
async def remove_alert(
    user: str,
    coin: str,
    svc: TradingService = Depends(get_trading_service),
):
    try:
        return await svc.remove_alert(user, coin)
    except TradingError as e:
        raise to_http_exception(e)
