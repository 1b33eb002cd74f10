#   Copyright 2026 UCP Authors
#
#   Licensed under the Apache License, Version 2.0 (the "License");
#   you may not use this file except in compliance with the License.
#   You may obtain a copy of the License at
#
#       http://www.apache.org/licenses/LICENSE-2.0
#
#   Unless required by applicable law or agreed to in writing, software
#   distributed under the License is distributed on an "AS IS" BASIS,
#   WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
#   See the License for the specific language governing permissions and
#   limitations under the License.

"""Tests for the provider gateway, payment service and provider config."""

import asyncio
import base64
from decimal import Decimal
import json
from typing import Any, Callable

from absl.testing import absltest
import config
from config import ProviderConfig
from exceptions import ProviderConfigError
from exceptions import ProviderError
import httpx
from services.payment_gateway import RazorpayGateway
from services.payment_service import PaymentService
import signatures

_CONFIG = ProviderConfig(
    key_id="rzp_test_key", key_secret="key_secret", webhook_secret="whsec"
)


def _run(
    handler: Callable[[httpx.Request], httpx.Response],
    call: Callable[[PaymentService], Any],
) -> Any:
  async def run() -> Any:
    async with httpx.AsyncClient(
        transport=httpx.MockTransport(handler),
        base_url="https://provider.test/v1",
    ) as client:
      gateway = RazorpayGateway(_CONFIG.key_id, _CONFIG.key_secret, client)
      return await call(PaymentService(gateway, _CONFIG))

  return asyncio.run(run())


class CreateProviderOrderTest(absltest.TestCase):

  def test_sends_minor_units_with_auto_capture(self) -> None:
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
      requests.append(request)
      body = json.loads(request.content)
      return httpx.Response(
          200,
          json={
              "id": "order_1",
              "entity": "order",
              "amount": body["amount"],
              "currency": body["currency"],
              "receipt": body["receipt"],
              "notes": [],
              "status": "created",
          },
      )

    order = _run(
        handler,
        lambda service: service.create_provider_order(
            149.99, "INR", "receipt_1"
        ),
    )

    self.assertEqual(order.id, "order_1")
    self.assertEqual(order.amount, 14999)
    self.assertEqual(order.notes, {})
    request = requests[0]
    self.assertEqual(request.method, "POST")
    self.assertEqual(request.url.path, "/v1/orders")
    body = json.loads(request.content)
    self.assertEqual(body["amount"], 14999)
    self.assertEqual(body["payment_capture"], 1)
    self.assertEqual(body["receipt"], "receipt_1")
    expected_auth = base64.b64encode(b"rzp_test_key:key_secret").decode()
    self.assertEqual(
        request.headers["Authorization"], f"Basic {expected_auth}"
    )

  def test_provider_rejection_keeps_description(self) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
      del request  # Unused.
      return httpx.Response(
          401,
          json={
              "error": {
                  "code": "BAD_REQUEST_ERROR",
                  "description": "Authentication failed",
              }
          },
      )

    with self.assertRaises(ProviderError) as cm:
      _run(
          handler,
          lambda service: service.create_provider_order(Decimal(100)),
      )
    self.assertEqual(
        str(cm.exception), "Failed to create order: Authentication failed"
    )
    self.assertEqual(cm.exception.provider_code, "BAD_REQUEST_ERROR")
    self.assertEqual(cm.exception.http_status, 401)
    self.assertEqual(cm.exception.status_code, 502)

  def test_transport_failure(self) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
      raise httpx.ConnectTimeout("timed out", request=request)

    with self.assertRaises(ProviderError) as cm:
      _run(handler, lambda service: service.create_provider_order(10))
    self.assertEqual(cm.exception.operation, "create order")
    self.assertEqual(cm.exception.reason, "timed out")

  def test_undecodable_body(self) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
      del request  # Unused.
      return httpx.Response(200, content=b"<html>oops</html>")

    with self.assertRaises(ProviderError):
      _run(handler, lambda service: service.create_provider_order(10))

  def test_error_without_body(self) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
      del request  # Unused.
      return httpx.Response(500)

    with self.assertRaises(ProviderError) as cm:
      _run(handler, lambda service: service.create_provider_order(10))
    self.assertEqual(cm.exception.reason, "HTTP 500")


class RefundTest(absltest.TestCase):

  def _handler(self, requests: list) -> Callable:
    def handler(request: httpx.Request) -> httpx.Response:
      requests.append(request)
      body = json.loads(request.content)
      return httpx.Response(
          200,
          json={
              "id": "rfnd_1",
              "payment_id": "pay_1",
              "amount": body.get("amount", 120000),
              "currency": "INR",
              "status": "processed",
          },
      )

    return handler

  def test_full_refund_omits_amount(self) -> None:
    requests = []
    refund = _run(
        self._handler(requests),
        lambda service: service.initiate_refund("pay_1"),
    )
    self.assertEqual(refund.status, "processed")
    self.assertEqual(requests[0].url.path, "/v1/payments/pay_1/refund")
    self.assertNotIn("amount", json.loads(requests[0].content))

  def test_partial_refund_in_minor_units(self) -> None:
    requests = []
    refund = _run(
        self._handler(requests),
        lambda service: service.initiate_refund(
            "pay_1", Decimal("250.50"), speed="optimum"
        ),
    )
    body = json.loads(requests[0].content)
    self.assertEqual(body["amount"], 25050)
    self.assertEqual(body["speed"], "optimum")
    self.assertEqual(refund.amount, 25050)

  def test_refund_exceeding_capture(self) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
      del request  # Unused.
      return httpx.Response(
          400,
          json={
              "error": {
                  "description": (
                      "The refund amount provided is greater than amount"
                      " captured"
                  )
              }
          },
      )

    with self.assertRaises(ProviderError) as cm:
      _run(
          handler,
          lambda service: service.initiate_refund("pay_1", Decimal(99999)),
      )
    self.assertTrue(str(cm.exception).startswith("Failed to process refund: "))


class FetchTest(absltest.TestCase):

  def test_fetch_payment_and_order_payments(self) -> None:
    payment = {
        "id": "pay_1",
        "order_id": "order_1",
        "amount": 120000,
        "currency": "INR",
        "status": "captured",
        "method": "upi",
        "captured": True,
    }

    def handler(request: httpx.Request) -> httpx.Response:
      if request.url.path == "/v1/payments/pay_1":
        return httpx.Response(200, json=payment)
      if request.url.path == "/v1/orders/order_1/payments":
        return httpx.Response(
            200, json={"entity": "collection", "count": 1, "items": [payment]}
        )
      if request.url.path == "/v1/payments/pay_1/refunds/rfnd_1":
        return httpx.Response(
            200, json={"id": "rfnd_1", "payment_id": "pay_1", "amount": 100}
        )
      return httpx.Response(
          404,
          json={"error": {"description": "The id provided does not exist"}},
      )

    async def calls(service: PaymentService) -> tuple:
      return (
          await service.fetch_payment("pay_1"),
          await service.get_order_payments("order_1"),
          await service.fetch_refund("pay_1", "rfnd_1"),
      )

    fetched, payments, refund = _run(handler, calls)
    self.assertEqual(fetched.order_id, "order_1")
    self.assertTrue(fetched.captured)
    self.assertLen(payments, 1)
    self.assertEqual(payments[0].status, "captured")
    self.assertEqual(refund.status, "pending")

    with self.assertRaises(ProviderError) as cm:
      _run(handler, lambda service: service.fetch_payment("pay_2"))
    self.assertEqual(
        str(cm.exception),
        "Failed to fetch payment: The id provided does not exist",
    )


class SignatureTest(absltest.TestCase):

  def setUp(self) -> None:
    super().setUp()
    self.service = PaymentService(None, _CONFIG)

  def test_payment_signature_uses_key_secret(self) -> None:
    good = signatures.compute_signature("key_secret", "order_1|pay_1")
    self.assertTrue(
        self.service.verify_payment_signature("order_1", "pay_1", good)
    )
    self.assertFalse(
        self.service.verify_payment_signature("order_1", "pay_1", "<wrong>")
    )

  def test_webhook_signature_uses_webhook_secret(self) -> None:
    body = b'{"event":"payment.captured"}'
    good = signatures.compute_signature("whsec", body)
    self.assertTrue(self.service.verify_webhook_signature(body, good))
    self.assertFalse(
        self.service.verify_webhook_signature(
            body, signatures.compute_signature("key_secret", body)
        )
    )
    self.assertTrue(
        self.service.verify_webhook_signature(
            body, signatures.compute_signature("other", body), "other"
        )
    )


class ProviderConfigTest(absltest.TestCase):

  def test_reads_credentials(self) -> None:
    provider_config = config.validate_provider_config({
        "PROVIDER_KEY_ID": "id",
        "PROVIDER_KEY_SECRET": "secret",
        "PROVIDER_WEBHOOK_SECRET": "whsec",
    })
    self.assertEqual(provider_config, ProviderConfig("id", "secret", "whsec"))

  def test_accepts_legacy_names(self) -> None:
    provider_config = config.validate_provider_config(
        {"RAZORPAY_KEY_ID": "id", "RAZORPAY_KEY_SECRET": "secret"}
    )
    self.assertEqual(provider_config.key_id, "id")
    self.assertIsNone(provider_config.webhook_secret)

  def test_missing_credentials(self) -> None:
    with self.assertRaises(ProviderConfigError) as cm:
      config.validate_provider_config({"PROVIDER_KEY_ID": "id"})
    self.assertEqual(cm.exception.missing, ["PROVIDER_KEY_SECRET"])

    with self.assertRaises(ProviderConfigError) as cm:
      config.validate_provider_config({})
    self.assertLen(cm.exception.missing, 2)


if __name__ == "__main__":
  absltest.main()
