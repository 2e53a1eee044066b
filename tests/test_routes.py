import os

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

import unittest

from fastapi.testclient import TestClient

from config.settings import Settings
from main import create_app
from middleware.rate_limit import TRADE_IP_RATE_LIMIT, TRADE_RATE_LIMIT, limiter
from services.errors import PersistError, PriceFetchError
from services.state_store import InMemoryStateStore, StateSnapshot
from services.trading_service import TradingService


class _FakePriceSource:
    def __init__(self, prices):
        self.prices = dict(prices)

    async def get_price(self, coin_id: str) -> float:
        price = self.prices.get(coin_id)
        if price is None:
            raise PriceFetchError(coin_id, "API error (status 404): coin not found")
        return price


class _RecordingSink:
    def __init__(self):
        self.sent = []

    async def send(self, user_id: str, message: str) -> None:
        self.sent.append((user_id, message))


class _FlakyStore(InMemoryStateStore):
    def __init__(self):
        super().__init__()
        self.fail = False

    def save(self, snapshot: StateSnapshot) -> None:
        if self.fail:
            raise PersistError("Failed to save state: database is locked")
        super().save(snapshot)


class _ApiTestCase(unittest.TestCase):
    def setUp(self):
        limiter.reset()
        self.prices = _FakePriceSource({"bitcoin": 50000.0, "internet-computer": 10.2})
        self.sink = _RecordingSink()
        self.store = _FlakyStore()
        self.service = TradingService(self.prices, self.store, sink=self.sink)
        app = create_app(service=self.service, settings=Settings(state_backend="memory"))
        self._client_cm = TestClient(app)
        self.client = self._client_cm.__enter__()

    def tearDown(self):
        self._client_cm.__exit__(None, None, None)


class TestPortfolioRoutes(_ApiTestCase):
    def test_init_buy_sell_flow(self):
        r = self.client.post("/api/portfolio/alice", json={"initial_balance": 1000.0})
        self.assertEqual(r.status_code, 201)
        self.assertEqual(r.json()["usd_balance"], 1000.0)

        r = self.client.post("/api/portfolio/alice/buy", json={"coin": "btc", "amount_usd": 500.0})
        self.assertEqual(r.status_code, 200)
        body = r.json()
        self.assertEqual(body["message"], "Successfully bought 0.010000 bitcoin for $500.00 USD")
        self.assertEqual(body["usd_balance"], 500.0)
        self.assertEqual(body["transaction"]["transaction_type"], "buy")

        self.prices.prices["bitcoin"] = 60000.0
        r = self.client.post("/api/portfolio/alice/sell", json={"coin": "bitcoin", "crypto_amount": 0.01})
        self.assertEqual(r.status_code, 200)
        self.assertAlmostEqual(r.json()["usd_balance"], 1100.0, places=6)

        r = self.client.get("/api/portfolio/alice")
        self.assertEqual(r.json()["holdings"], {})
        self.assertEqual(len(r.json()["transactions"]), 2)

        r = self.client.get("/api/portfolio/alice/transactions")
        self.assertEqual([t["transaction_type"] for t in r.json()], ["buy", "sell"])

    def test_init_without_body_uses_default_balance(self):
        r = self.client.post("/api/portfolio/bob")
        self.assertEqual(r.status_code, 201)
        self.assertEqual(r.json()["usd_balance"], 10000.0)

    def test_error_status_mapping(self):
        self.assertEqual(self.client.get("/api/portfolio/ghost").status_code, 404)

        self.client.post("/api/portfolio/carl", json={"initial_balance": 100.0})
        r = self.client.post("/api/portfolio/carl", json={"initial_balance": 100.0})
        self.assertEqual(r.status_code, 409)
        self.assertIn("already exists", r.json()["detail"])

        r = self.client.post("/api/portfolio/carl/buy", json={"coin": "btc", "amount_usd": 0})
        self.assertEqual(r.status_code, 422)

        r = self.client.post("/api/portfolio/carl/buy", json={"coin": "btc", "amount_usd": 500.0})
        self.assertEqual(r.status_code, 400)
        self.assertIn("Insufficient USD balance", r.json()["detail"])

        r = self.client.post("/api/portfolio/carl/sell", json={"coin": "eth", "crypto_amount": 1.0})
        self.assertEqual(r.status_code, 400)

        r = self.client.post("/api/portfolio/carl/buy", json={"coin": "notacoin", "amount_usd": 10.0})
        self.assertEqual(r.status_code, 502)
        self.assertIn("Failed to get price for notacoin", r.json()["detail"])

    def test_persist_failure_is_503_but_trade_stands(self):
        self.client.post("/api/portfolio/dina", json={"initial_balance": 1000.0})
        self.store.fail = True

        r = self.client.post("/api/portfolio/dina/buy", json={"coin": "btc", "amount_usd": 100.0})
        self.assertEqual(r.status_code, 503)
        self.assertIn("Transaction recorded but failed to save", r.json()["detail"])
        self.assertEqual(self.client.get("/api/portfolio/dina").json()["usd_balance"], 900.0)

    def test_value_reports_skipped_assets(self):
        self.client.post("/api/portfolio/erin", json={"initial_balance": 1000.0})
        self.client.post("/api/portfolio/erin/buy", json={"coin": "btc", "amount_usd": 500.0})
        del self.prices.prices["bitcoin"]

        r = self.client.get("/api/portfolio/erin/value")
        self.assertEqual(r.status_code, 200)
        body = r.json()
        self.assertEqual(body["total_usd"], 500.0)
        self.assertEqual([s["coin_id"] for s in body["skipped_assets"]], ["bitcoin"])


class TestAlertRoutes(_ApiTestCase):
    def test_set_alert_and_sweep(self):
        self.service.registry.record_price("internet-computer", 9.5)

        r = self.client.post("/api/alerts", json={"user": "bob", "coin": "icp", "target_price": 10.0})
        self.assertEqual(r.status_code, 201)
        self.assertEqual(r.json()["message"], "Alert set for bob when icp reaches $10.00")

        r = self.client.post("/api/alerts/sweep")
        self.assertEqual(r.status_code, 200)
        report = r.json()
        self.assertEqual(report["alerts_checked"], 1)
        self.assertEqual(report["notifications_sent"], 2)
        self.assertTrue(report["persisted"])
        self.assertIn("Target price alert", self.sink.sent[0][1])
        self.assertIn("gained value", self.sink.sent[1][1])

        r = self.client.get("/api/alerts/prices")
        self.assertEqual(r.json()["internet-computer"]["last_price"], 10.2)

    def test_get_and_delete_alert(self):
        self.client.post("/api/alerts", json={"user": "bob", "coin": "ICP", "target_price": 10.0})

        self.assertEqual(len(self.client.get("/api/alerts").json()), 1)
        self.assertEqual(self.client.get("/api/alerts/bob/icp").json()["target_price"], 10.0)

        r = self.client.delete("/api/alerts/bob/icp")
        self.assertEqual(r.status_code, 200)
        self.assertEqual(self.client.get("/api/alerts/bob/icp").status_code, 404)
        self.assertEqual(self.client.delete("/api/alerts/bob/icp").status_code, 404)

    def test_invalid_alerts_rejected(self):
        r = self.client.post("/api/alerts", json={"user": "  ", "coin": "icp", "target_price": 10.0})
        self.assertEqual(r.status_code, 422)
        r = self.client.post("/api/alerts", json={"user": "bob", "coin": "icp", "target_price": -1})
        self.assertEqual(r.status_code, 422)


class TestCryptoRoutes(_ApiTestCase):
    def test_supported_and_search(self):
        supported = self.client.get("/api/crypto/supported").json()
        self.assertIn("bitcoin", supported)

        results = self.client.get("/api/crypto/search", params={"q": "btc"}).json()
        self.assertEqual(results[0]["coin_id"], "bitcoin")

    def test_price_lookup(self):
        r = self.client.get("/api/crypto/price/BTC")
        self.assertEqual(r.status_code, 200)
        self.assertEqual(r.json(), {"coin_id": "bitcoin", "usd": 50000.0, "formatted": "$50000.0000"})

        self.assertEqual(self.client.get("/api/crypto/price/notacoin").status_code, 502)


class TestTradeRateLimits(_ApiTestCase):
    @staticmethod
    def _allowed(limit: str) -> int:
        return int(limit.split("/")[0])

    def test_rotating_user_ids_does_not_bypass_trade_limit(self):
        allowed = self._allowed(TRADE_IP_RATE_LIMIT)
        for i in range(allowed):
            r = self.client.post(f"/api/portfolio/rotating-{i}/buy", json={"coin": "btc", "amount_usd": 1.0})
            self.assertEqual(r.status_code, 404)

        r = self.client.post(f"/api/portfolio/rotating-{allowed}/buy", json={"coin": "btc", "amount_usd": 1.0})
        self.assertEqual(r.status_code, 429)

    def test_single_user_trade_limit(self):
        allowed = self._allowed(TRADE_RATE_LIMIT)
        for _ in range(allowed):
            self.assertEqual(
                self.client.post("/api/portfolio/ghost/sell", json={"coin": "btc", "crypto_amount": 1.0}).status_code,
                404,
            )
        r = self.client.post("/api/portfolio/ghost/sell", json={"coin": "btc", "crypto_amount": 1.0})
        self.assertEqual(r.status_code, 429)


class TestMiddleware(_ApiTestCase):
    def test_health_has_security_and_request_id_headers(self):
        r = self.client.get("/health", headers={"X-Request-ID": "abc123"})
        self.assertEqual(r.status_code, 200)
        self.assertEqual(r.json(), {"status": "ok"})
        self.assertEqual(r.headers["X-Frame-Options"], "DENY")
        self.assertEqual(r.headers["X-Content-Type-Options"], "nosniff")
        self.assertIn("Content-Security-Policy", r.headers)
        self.assertEqual(r.headers["X-Request-ID"], "abc123")

    def test_request_id_generated_when_missing(self):
        r = self.client.get("/health")
        self.assertEqual(len(r.headers["X-Request-ID"]), 12)


if __name__ == "__main__":
    unittest.main()
