import asyncio
import json
import unittest

import httpx

from services.notifications.notification_service import (
    LoggingNotificationSink,
    WebhookNotificationSink,
    build_notification_sink,
)


def _webhook(handler) -> WebhookNotificationSink:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return WebhookNotificationSink("https://hooks.test/notify", client=client)


class TestWebhookNotificationSink(unittest.TestCase):
    def test_posts_json_payload(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append((request.method, str(request.url), json.loads(request.content)))
            return httpx.Response(204)

        asyncio.run(_webhook(handler).send("bob", "🎯 **icp** hit"))

        self.assertEqual(len(seen), 1)
        method, url, body = seen[0]
        self.assertEqual(method, "POST")
        self.assertEqual(url, "https://hooks.test/notify")
        self.assertEqual(body, {"user": "bob", "message": "🎯 **icp** hit", "format": "markdown"})

    def test_http_error_is_logged_not_raised(self):
        def handler(request):
            return httpx.Response(500, text="boom")

        with self.assertLogs("services.notifications.notification_service", level="WARNING") as logs:
            asyncio.run(_webhook(handler).send("bob", "hello"))
        self.assertIn("notification_failed", logs.output[0])

    def test_transport_error_is_logged_not_raised(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with self.assertLogs("services.notifications.notification_service", level="WARNING"):
            asyncio.run(_webhook(handler).send("bob", "hello"))


class TestLoggingNotificationSink(unittest.TestCase):
    def test_logs_message_without_user(self):
        with self.assertLogs("services.notifications.notification_service", level="INFO") as logs:
            asyncio.run(LoggingNotificationSink().send("secret-user-42", "price moved"))
        self.assertIn("price moved", logs.output[0])
        self.assertNotIn("secret-user-42", logs.output[0])


class TestBuildNotificationSink(unittest.TestCase):
    def test_defaults_to_logging_sink(self):
        self.assertIsInstance(build_notification_sink(None), LoggingNotificationSink)
        self.assertIsInstance(build_notification_sink(""), LoggingNotificationSink)

    def test_webhook_when_url_set(self):
        sink = build_notification_sink("https://hooks.test/x", timeout=3.0)
        self.assertIsInstance(sink, WebhookNotificationSink)
        self.assertEqual(sink.url, "https://hooks.test/x")
        self.assertEqual(sink.timeout, 3.0)


if __name__ == "__main__":
    unittest.main()
