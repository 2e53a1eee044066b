import json
import logging
import unittest

from config.logging_config import JsonFormatter, configure_logging


class TestJsonFormatter(unittest.TestCase):
    def test_includes_extra_fields(self):
        record = logging.LogRecord("services.x", logging.INFO, __file__, 1, "trade_executed side=%s", ("buy",), None)
        record.coin_id = "bitcoin"
        out = json.loads(JsonFormatter().format(record))
        self.assertEqual(out["message"], "trade_executed side=buy")
        self.assertEqual(out["level"], "INFO")
        self.assertEqual(out["logger"], "services.x")
        self.assertEqual(out["coin_id"], "bitcoin")
        self.assertNotIn("args", out)


class TestConfigureLogging(unittest.TestCase):
    def setUp(self):
        root = logging.getLogger()
        self._saved = (root.handlers[:], root.level)

    def tearDown(self):
        root = logging.getLogger()
        root.handlers[:] = self._saved[0]
        root.setLevel(self._saved[1])

    def test_single_handler_after_repeat_calls(self):
        configure_logging(level="debug", json_logs=True)
        configure_logging(level="debug", json_logs=True)
        root = logging.getLogger()
        self.assertEqual(len(root.handlers), 1)
        self.assertIsInstance(root.handlers[0].formatter, JsonFormatter)
        self.assertEqual(root.level, logging.DEBUG)
        self.assertEqual(logging.getLogger("httpx").level, logging.WARNING)


if __name__ == "__main__":
    unittest.main()
