import asyncio
import unittest

from schemas.alerts import Alert, PriceObservation
from services.alerts.alert_registry import AlertRegistry
from services.errors import InvalidAmountError, NotFoundError, PersistError


class AlertRegistryTests(unittest.TestCase):
    def setUp(self):
        self.commits = []
        self.registry = AlertRegistry(on_commit=lambda: self.commits.append(1))

    def test_set_alert_normalises_key(self):
        key = asyncio.run(self.registry.set_alert(" bob ", " ICP ", 10))
        self.assertEqual(key, ("bob", "icp"))
        alert = self.registry.get_alert("bob", "ICP")
        self.assertEqual(alert, Alert(user="bob", coin="icp", target_price=10.0))
        self.assertEqual(len(self.commits), 1)

    def test_set_alert_overwrites_previous_target(self):
        asyncio.run(self.registry.set_alert("bob", "icp", 10.0))
        asyncio.run(self.registry.set_alert("bob", "icp", 12.5))
        alerts = self.registry.list_alerts()
        self.assertEqual(len(alerts), 1)
        self.assertEqual(alerts[0].target_price, 12.5)

    def test_alerts_are_per_user_and_coin(self):
        asyncio.run(self.registry.set_alert("bob", "icp", 10.0))
        asyncio.run(self.registry.set_alert("bob", "btc", 50000.0))
        asyncio.run(self.registry.set_alert("amy", "icp", 11.0))
        self.assertEqual(len(self.registry.list_alerts()), 3)

    def test_invalid_target_is_rejected(self):
        for target in (0, -1.0, float("nan"), float("inf")):
            with self.assertRaises(InvalidAmountError):
                asyncio.run(self.registry.set_alert("bob", "icp", target))
        self.assertEqual(self.registry.list_alerts(), [])
        self.assertEqual(self.commits, [])

    def test_blank_user_or_coin_is_rejected(self):
        with self.assertRaises(InvalidAmountError):
            asyncio.run(self.registry.set_alert("  ", "icp", 1.0))
        with self.assertRaises(InvalidAmountError):
            asyncio.run(self.registry.set_alert("bob", "", 1.0))

    def test_get_and_remove_missing_alert(self):
        with self.assertRaises(NotFoundError):
            self.registry.get_alert("bob", "icp")
        with self.assertRaises(NotFoundError):
            asyncio.run(self.registry.remove_alert("bob", "icp"))

    def test_remove_alert(self):
        asyncio.run(self.registry.set_alert("bob", "icp", 10.0))
        removed = asyncio.run(self.registry.remove_alert("bob", "ICP"))
        self.assertEqual(removed.coin, "icp")
        self.assertEqual(self.registry.list_alerts(), [])
        self.assertEqual(len(self.commits), 2)

    def test_persist_failure_keeps_alert(self):
        def failing():
            raise PersistError("Failed to save state: read-only database")

        registry = AlertRegistry(on_commit=failing)
        with self.assertRaises(PersistError) as ctx:
            asyncio.run(registry.set_alert("bob", "icp", 10.0))
        self.assertIn("Alert set but failed to save", str(ctx.exception))
        self.assertEqual(len(registry.list_alerts()), 1)

    def test_load_replaces_state(self):
        asyncio.run(self.registry.set_alert("old", "btc", 1.0))
        self.registry.load(
            [Alert(user="bob", coin="icp", target_price=10.0)],
            {"internet-computer": PriceObservation(coin_id="internet-computer", last_price=9.5)},
        )
        self.assertEqual([a.user for a in self.registry.list_alerts()], ["bob"])
        self.assertEqual(self.registry.get_last_price("internet-computer"), 9.5)
        self.assertIsNone(self.registry.get_last_price("bitcoin"))


if __name__ == "__main__":
    unittest.main()
