from .portfolio import PortfolioAccount, PortfolioHolding, PortfolioTransaction
from .price_alert import PriceAlert, PriceObservationRecord
