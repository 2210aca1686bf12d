# apps/utils/tests.py
import json
import logging
from django.test import SimpleTestCase, TestCase
from django.urls import reverse
from rest_framework import status

from .exceptions import BusinessLogicException, custom_exception_handler
from .logging import JSONFormatter


class ExceptionHandlerTests(SimpleTestCase):
    def test_business_exception_uses_its_status_and_code(self):
        exc = BusinessLogicException("Out of stock", code="out_of_stock", status_code=409)
        response = custom_exception_handler(exc, {})

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data, {"error": "Out of stock", "code": "out_of_stock"})

    def test_business_exception_defaults_to_400(self):
        response = custom_exception_handler(BusinessLogicException("Nope"), {})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["code"], "business_error")

    def test_unhandled_exception_becomes_500(self):
        with self.assertLogs("apps.utils.exceptions", level="ERROR"):
            response = custom_exception_handler(RuntimeError("boom"), {})
        self.assertEqual(response.status_code, status.HTTP_500_INTERNAL_SERVER_ERROR)
        self.assertEqual(response.data["code"], "server_error")


class JSONFormatterTests(SimpleTestCase):
    def _record(self, msg, **extra):
        record = logging.LogRecord("apps.orders", logging.INFO, __file__, 10, msg, None, None)
        for key, value in extra.items():
            setattr(record, key, value)
        return record

    def test_scrubs_sensitive_keys(self):
        payload = json.loads(JSONFormatter().format(
            self._record({"email": "a@b.c", "password": "hunter2", "nested": {"token": "x"}})
        ))
        self.assertIn("***REDACTED***", payload["msg"])
        self.assertNotIn("hunter2", payload["msg"])
        self.assertIn("a@b.c", payload["msg"])

    def test_lifts_order_context(self):
        payload = json.loads(JSONFormatter().format(
            self._record("Order moved", order_id="abc", actor="SYSTEM")
        ))
        self.assertEqual(payload["order_id"], "abc")
        self.assertEqual(payload["actor"], "SYSTEM")
        self.assertEqual(payload["lvl"], "INFO")


class HealthCheckTests(TestCase):
    def test_health_ok(self):
        response = self.client.get(reverse("health-check"))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["components"], {"db": "ok", "cache": "ok"})


class ServerInfoTests(TestCase):
    def test_info_is_public(self):
        response = self.client.get(reverse("server-info"))

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["name"], "PerfumeShop")
        self.assertEqual(body["api_prefix"], "/api/v1/")
        self.assertIn("server_time", body)
