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

"""Payment provider webhook route."""

import logging
from typing import Optional

import dependencies
from exceptions import InvalidRequestError
from fastapi import APIRouter
from fastapi import Depends
from fastapi import Header
from fastapi import Request
from models import WebhookEnvelope
import pydantic
from services.order_service import OrderService
from services.payment_service import PaymentService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "/api/payments/webhook",
    operation_id="payment_webhook",
)
async def payment_webhook(
    request: Request,
    signature: Optional[str] = Header(None, alias="X-Razorpay-Signature"),
    payment_service: PaymentService = Depends(
        dependencies.get_payment_service
    ),
    order_service: OrderService = Depends(dependencies.get_order_service),
) -> dict[str, str]:
  """Apply a provider event after checking its signature over the raw body."""
  raw_body = await request.body()
  if not payment_service.verify_webhook_signature(raw_body, signature):
    logger.warning("Rejected webhook with invalid signature")
    raise InvalidRequestError("Invalid webhook signature")

  try:
    envelope = WebhookEnvelope.model_validate_json(raw_body)
  except pydantic.ValidationError as e:
    raise InvalidRequestError("Malformed webhook payload") from e

  await order_service.handle_webhook_event(envelope.event, envelope.payload)
  return {"status": "ok"}
