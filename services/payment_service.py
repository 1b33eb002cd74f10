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

"""Payment service: provider orders, signature checks and refunds.

Callers work in major units; conversion to the provider's integer minor units
happens here and nowhere else.
"""

from decimal import Decimal
import logging
from typing import Any, Dict, Optional, Union

from config import ProviderConfig
import money
from models import ProviderOrder
from models import ProviderPayment
from models import ProviderRefund
from services.payment_gateway import RazorpayGateway
import signatures

logger = logging.getLogger(__name__)


class PaymentService:
  """Wraps the provider gateway with the storefront's money conventions."""

  def __init__(self, gateway: RazorpayGateway, provider_config: ProviderConfig):
    self.gateway = gateway
    self.provider_config = provider_config

  @property
  def key_id(self) -> str:
    return self.provider_config.key_id

  async def create_provider_order(
      self,
      amount: Decimal,
      currency: str = money.DEFAULT_CURRENCY,
      receipt: Optional[str] = None,
      notes: Optional[Dict[str, Any]] = None,
  ) -> ProviderOrder:
    """Creates a provider order for `amount` major units.

    Args:
      amount: Amount to collect, in major units.
      currency: ISO currency code.
      receipt: Merchant reference stored on the provider order.
      notes: Free-form key/value notes.

    Returns:
      The created `ProviderOrder` (amount in minor units).

    Raises:
      ProviderError: If the provider rejects the order or is unreachable.
    """
    minor = money.to_minor_units(amount)
    logger.info(
        "Creating provider order: amount=%s currency=%s receipt=%s",
        minor,
        currency,
        receipt,
    )
    return await self.gateway.create_order(minor, currency, receipt, notes)

  def verify_payment_signature(
      self, order_id: str, payment_id: str, signature: str
  ) -> bool:
    return signatures.verify_payment_signature(
        order_id, payment_id, signature, self.provider_config.key_secret
    )

  def verify_webhook_signature(
      self,
      raw_body: Union[str, bytes],
      signature: str,
      secret: Optional[str] = None,
  ) -> bool:
    """Checks a webhook signature, by default against the configured secret."""
    if secret is None:
      secret = self.provider_config.webhook_secret
    return signatures.verify_webhook_signature(raw_body, signature, secret)

  async def initiate_refund(
      self,
      payment_id: str,
      amount: Optional[Decimal] = None,
      **options: Any,
  ) -> ProviderRefund:
    """Refunds `amount` major units of a payment, or all of it if None."""
    minor = None if amount is None else money.to_minor_units(amount)
    logger.info("Initiating refund: payment_id=%s amount=%s", payment_id, minor)
    return await self.gateway.refund_payment(payment_id, minor, **options)

  async def fetch_payment(self, payment_id: str) -> ProviderPayment:
    return await self.gateway.fetch_payment(payment_id)

  async def fetch_refund(
      self, payment_id: str, refund_id: str
  ) -> ProviderRefund:
    return await self.gateway.fetch_refund(payment_id, refund_id)

  async def get_order_payments(
      self, provider_order_id: str
  ) -> list[ProviderPayment]:
    return await self.gateway.fetch_order_payments(provider_order_id)
