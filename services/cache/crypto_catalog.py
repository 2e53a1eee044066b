# cache/crypto_catalog.py
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

@dataclass(frozen=True)
class CryptoCoin:
    coin_id: str          # CoinGecko id, e.g. "bitcoin"
    symbol: str           # ticker alias, e.g. "BTC"
    name: str | None = None

DEFAULT_COINS: List[CryptoCoin] = [
    CryptoCoin("bitcoin", "BTC", "Bitcoin"),
    CryptoCoin("ethereum", "ETH", "Ethereum"),
    CryptoCoin("internet-computer", "ICP", "Internet Computer"),
    CryptoCoin("solana", "SOL", "Solana"),
    CryptoCoin("cardano", "ADA", "Cardano"),
    CryptoCoin("polkadot", "DOT", "Polkadot"),
    CryptoCoin("binancecoin", "BNB", "BNB"),
    CryptoCoin("ripple", "XRP", "XRP"),
    CryptoCoin("dogecoin", "DOGE", "Dogecoin"),
    CryptoCoin("shiba-inu", "SHIB", "Shiba Inu"),
]

class CryptoCatalog:
    """
    Single source of truth for coin identifiers.

    Both the ledger and the alert evaluator resolve user input through
    `normalize`, so "btc" and "bitcoin" always land on the same asset.
    """

    def __init__(self, coins: Optional[Iterable[CryptoCoin]] = None):
        self._coins: List[CryptoCoin] = []
        self._aliases: Dict[str, str] = {}
        self.set(list(coins) if coins is not None else DEFAULT_COINS)

    def set(self, coins: List[CryptoCoin]):
        self._coins = list(coins)
        self._aliases = {c.symbol.lower(): c.coin_id for c in self._coins}

    def normalize(self, coin: str) -> str:
        """Alias -> canonical id. Unknown ids pass through lower-cased."""
        key = (coin or "").strip().lower()
        return self._aliases.get(key, key)

    def supported_ids(self) -> List[str]:
        return [c.coin_id for c in self._coins]

    def get(self, coin: str) -> CryptoCoin | None:
        coin_id = self.normalize(coin)
        for c in self._coins:
            if c.coin_id == coin_id:
                return c
        return None

    def search(self, q: str, limit: int = 5) -> List[CryptoCoin]:
        q_raw = (q or "").strip()
        if not q_raw:
            return []

        q_upper = q_raw.upper()
        q_lower = q_raw.lower()

        def name_lower(c: CryptoCoin) -> str:
            return (c.name or "").lower()

        # 1) exact symbol or id match first
        exact = [c for c in self._coins if c.symbol == q_upper or c.coin_id == q_lower]
        used = {c.coin_id for c in exact}

        # 2) symbol prefix
        sym_prefix = [c for c in self._coins if c.coin_id not in used and c.symbol.startswith(q_upper)]
        used |= {c.coin_id for c in sym_prefix}

        # 3) id / name prefix (e.g. "bit" -> "bitcoin")
        name_prefix = [
            c for c in self._coins
            if c.coin_id not in used and (c.coin_id.startswith(q_lower) or name_lower(c).startswith(q_lower))
        ]
        used |= {c.coin_id for c in name_prefix}

        # 4) contains anywhere
        contains = [
            c for c in self._coins
            if c.coin_id not in used and (q_lower in c.coin_id or q_lower in name_lower(c))
        ]

        return (exact + sym_prefix + name_prefix + contains)[:limit]


crypto_catalog = CryptoCatalog()
