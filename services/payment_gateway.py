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

"""HTTP client for the Razorpay REST API.

Only the calls the storefront needs are wrapped. Every failure (transport
error, timeout, non-2xx status or an undecodable body) is raised as
`ProviderError`, keeping the provider's own error description as the reason.
"""

import logging
from typing import Any, Dict, Optional

from exceptions import ProviderError
import httpx
from models import ProviderOrder
from models import ProviderPayment
from models import ProviderRefund
import pydantic

logger = logging.getLogger(__name__)


class RazorpayGateway:
  """Thin async wrapper over the provider's orders, payments and refunds."""

  def __init__(self, key_id: str, key_secret: str, client: httpx.AsyncClient):
    self.key_id = key_id
    self.client = client
    self._auth = httpx.BasicAuth(key_id, key_secret)

  async def _request(
      self,
      operation: str,
      method: str,
      path: str,
      body: Optional[Dict[str, Any]] = None,
  ) -> Dict[str, Any]:
    try:
      response = await self.client.request(
          method, path, json=body, auth=self._auth
      )
    except httpx.HTTPError as e:
      logger.error("Provider request %s %s failed: %s", method, path, e)
      raise ProviderError(operation, str(e) or type(e).__name__) from e

    try:
      data = response.json()
    except ValueError:
      data = None

    if not response.is_success:
      error = data.get("error") if isinstance(data, dict) else None
      error = error if isinstance(error, dict) else {}
      reason = error.get("description") or f"HTTP {response.status_code}"
      logger.error(
          "Provider rejected %s %s (%s): %s",
          method,
          path,
          response.status_code,
          reason,
      )
      raise ProviderError(
          operation,
          reason,
          provider_code=error.get("code"),
          http_status=response.status_code,
      )
    if not isinstance(data, dict):
      raise ProviderError(operation, "unexpected response from provider")
    return data

  async def create_order(
      self,
      amount: int,
      currency: str,
      receipt: Optional[str] = None,
      notes: Optional[Dict[str, Any]] = None,
  ) -> ProviderOrder:
    """Creates an order for `amount` minor units with automatic capture."""
    body = {
        "amount": amount,
        "currency": currency,
        "receipt": receipt,
        "notes": notes or {},
        "payment_capture": 1,
    }
    data = await self._request("create order", "POST", "/orders", body)
    return _parse("create order", ProviderOrder, data)

  async def fetch_payment(self, payment_id: str) -> ProviderPayment:
    data = await self._request(
        "fetch payment", "GET", f"/payments/{payment_id}"
    )
    return _parse("fetch payment", ProviderPayment, data)

  async def refund_payment(
      self,
      payment_id: str,
      amount: Optional[int] = None,
      **options: Any,
  ) -> ProviderRefund:
    """Refunds a captured payment; a missing `amount` refunds it in full."""
    body = dict(options)
    if amount is not None:
      body["amount"] = amount
    data = await self._request(
        "process refund", "POST", f"/payments/{payment_id}/refund", body
    )
    return _parse("process refund", ProviderRefund, data)

  async def fetch_refund(
      self, payment_id: str, refund_id: str
  ) -> ProviderRefund:
    data = await self._request(
        "fetch refund", "GET", f"/payments/{payment_id}/refunds/{refund_id}"
    )
    return _parse("fetch refund", ProviderRefund, data)

  async def fetch_order_payments(
      self, provider_order_id: str
  ) -> list[ProviderPayment]:
    data = await self._request(
        "fetch order payments", "GET", f"/orders/{provider_order_id}/payments"
    )
    return [
        _parse("fetch order payments", ProviderPayment, item)
        for item in data.get("items") or []
    ]


def _parse(operation: str, model: type[pydantic.BaseModel], data: Any) -> Any:
  try:
    return model.model_validate(data)
  except pydantic.ValidationError as e:
    raise ProviderError(operation, "unexpected response from provider") from e
