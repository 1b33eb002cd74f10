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

"""Tests for HMAC signature verification."""

import hashlib
import hmac

from absl.testing import absltest
import signatures

_SECRET = "key_secret"


def _sign(message: str, secret: str = _SECRET) -> str:
  return hmac.new(
      secret.encode(), message.encode(), hashlib.sha256
  ).hexdigest()


class PaymentSignatureTest(absltest.TestCase):

  def test_valid_signature(self) -> None:
    signature = _sign("order_1|pay_1")
    self.assertTrue(
        signatures.verify_payment_signature(
            "order_1", "pay_1", signature, _SECRET
        )
    )

  def test_wrong_signature_is_false(self) -> None:
    self.assertFalse(
        signatures.verify_payment_signature(
            "order_1", "pay_1", "<wrong>", _SECRET
        )
    )

  def test_repeated_checks_agree(self) -> None:
    signature = _sign("order_1|pay_1")
    results = {
        signatures.verify_payment_signature(
            "order_1", "pay_1", signature, _SECRET
        )
        for _ in range(3)
    }
    self.assertEqual(results, {True})

  def test_swapped_ids_do_not_verify(self) -> None:
    signature = _sign("order_1|pay_1")
    self.assertFalse(
        signatures.verify_payment_signature(
            "pay_1", "order_1", signature, _SECRET
        )
    )

  def test_malformed_input_is_false(self) -> None:
    signature = _sign("order_1|pay_1")
    self.assertFalse(
        signatures.verify_payment_signature("", "pay_1", signature, _SECRET)
    )
    self.assertFalse(
        signatures.verify_payment_signature("order_1", "pay_1", "", _SECRET)
    )
    self.assertFalse(
        signatures.verify_payment_signature(
            "order_1", "pay_1", "ünïcode", _SECRET
        )
    )

  def test_other_secret_does_not_verify(self) -> None:
    signature = _sign("order_1|pay_1", secret="another")
    self.assertFalse(
        signatures.verify_payment_signature(
            "order_1", "pay_1", signature, _SECRET
        )
    )


class WebhookSignatureTest(absltest.TestCase):

  def test_signature_over_raw_body(self) -> None:
    body = b'{"event":"payment.captured","payload":{}}'
    signature = _sign(body.decode(), secret="whsec")
    self.assertTrue(
        signatures.verify_webhook_signature(body, signature, "whsec")
    )
    # Re-serialized JSON with different spacing is a different body.
    self.assertFalse(
        signatures.verify_webhook_signature(
            b'{"event": "payment.captured", "payload": {}}', signature, "whsec"
        )
    )

  def test_missing_secret_rejects(self) -> None:
    body = b"{}"
    self.assertFalse(
        signatures.verify_webhook_signature(body, _sign("{}", ""), "")
    )

  def test_missing_signature_rejects(self) -> None:
    self.assertFalse(signatures.verify_webhook_signature(b"{}", None, "whsec"))


if __name__ == "__main__":
  absltest.main()
