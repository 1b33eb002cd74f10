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

"""HMAC-SHA256 signature helpers for provider callbacks.

A mismatch is a normal negative result: these helpers return False for any
signature that does not verify, including empty or non-ASCII input, and never
raise for it.
"""

import hashlib
import hmac
import logging
from typing import Union

logger = logging.getLogger(__name__)


def _to_bytes(value: Union[str, bytes]) -> bytes:
  if isinstance(value, bytes):
    return value
  return value.encode("utf-8")


def compute_signature(secret: str, message: Union[str, bytes]) -> str:
  """Returns the lowercase hex HMAC-SHA256 of `message` keyed by `secret`."""
  return hmac.new(
      _to_bytes(secret), _to_bytes(message), hashlib.sha256
  ).hexdigest()


def signatures_match(expected: str, provided: Union[str, bytes, None]) -> bool:
  """Compares two hex signatures in constant time."""
  if not provided:
    return False
  return hmac.compare_digest(_to_bytes(expected), _to_bytes(provided))


def verify_payment_signature(
    order_id: str, payment_id: str, signature: str, secret: str
) -> bool:
  """Verifies the signature returned by the checkout redirect.

  Args:
    order_id: The provider order id the payment was made against.
    payment_id: The provider payment id.
    signature: The signature supplied by the client.
    secret: The server-held provider key secret.

  Returns:
    True if `signature` is the HMAC of `order_id|payment_id`.
  """
  if not order_id or not payment_id:
    return False
  expected = compute_signature(secret, f"{order_id}|{payment_id}")
  is_valid = signatures_match(expected, signature)
  logger.info(
      "Payment verification: order_id=%s payment_id=%s valid=%s",
      order_id,
      payment_id,
      is_valid,
  )
  return is_valid


def verify_webhook_signature(
    raw_body: Union[str, bytes], signature: str, secret: str
) -> bool:
  """Verifies a webhook signature computed over the raw request body."""
  if not secret:
    logger.error("Webhook secret is not configured; rejecting signature")
    return False
  expected = compute_signature(secret, raw_body)
  return signatures_match(expected, signature)
