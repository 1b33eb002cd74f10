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

"""Order routes: checkout, payment verification and order management."""

from typing import Optional

import dependencies
from fastapi import APIRouter
from fastapi import Body
from fastapi import Depends
from fastapi import Path
from fastapi import Query
from models import CheckoutRequest
from models import CheckoutResponse
from models import Order
from models import OrderList
from models import OrderTracking
from models import PaymentVerification
from models import RefundRequest
from models import StatusUpdateRequest
from models import VerifyPaymentResult
from services.order_service import OrderService

router = APIRouter()


@router.post(
    "/api/orders/checkout",
    response_model=CheckoutResponse,
    status_code=201,
    operation_id="checkout",
)
async def checkout(
    request: CheckoutRequest = Body(...),
    user_id: str = Depends(dependencies.get_current_user),
    idempotency_key: Optional[str] = Depends(dependencies.idempotency_header),
    order_service: OrderService = Depends(dependencies.get_order_service),
) -> CheckoutResponse:
  """Place an order and open a provider order for it."""
  return await order_service.checkout(user_id, request, idempotency_key)


@router.post(
    "/api/orders/verify-payment",
    response_model=VerifyPaymentResult,
    operation_id="verify_payment",
)
async def verify_payment(
    verification: PaymentVerification = Body(...),
    user_id: str = Depends(dependencies.get_current_user),
    order_service: OrderService = Depends(dependencies.get_order_service),
) -> VerifyPaymentResult:
  """Verify the checkout redirect and confirm the order."""
  return await order_service.verify_payment(user_id, verification)


@router.get(
    "/api/orders",
    response_model=OrderList,
    operation_id="list_orders",
)
async def list_orders(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    user_id: str = Depends(dependencies.get_current_user),
    order_service: OrderService = Depends(dependencies.get_order_service),
) -> OrderList:
  return await order_service.list_orders(user_id, page, limit)


@router.get(
    "/api/orders/{id}",
    response_model=Order,
    operation_id="get_order",
)
async def get_order(
    order_id: str = Path(..., alias="id"),
    user_id: str = Depends(dependencies.get_current_user),
    order_service: OrderService = Depends(dependencies.get_order_service),
) -> Order:
  return await order_service.get_order(user_id, order_id)


@router.get(
    "/api/orders/{id}/track",
    response_model=OrderTracking,
    operation_id="track_order",
)
async def track_order(
    order_id: str = Path(..., alias="id"),
    user_id: str = Depends(dependencies.get_current_user),
    order_service: OrderService = Depends(dependencies.get_order_service),
) -> OrderTracking:
  """Get the order with its status timeline."""
  return await order_service.track_order(user_id, order_id)


@router.post(
    "/api/orders/{id}/cancel",
    response_model=Order,
    operation_id="cancel_order",
)
async def cancel_order(
    order_id: str = Path(..., alias="id"),
    user_id: str = Depends(dependencies.get_current_user),
    order_service: OrderService = Depends(dependencies.get_order_service),
) -> Order:
  """Cancel an order, refunding it if it was paid."""
  return await order_service.cancel_order(user_id, order_id)


@router.post(
    "/api/orders/{id}/refund",
    response_model=Order,
    operation_id="refund_order",
)
async def refund_order(
    order_id: str = Path(..., alias="id"),
    body: Optional[RefundRequest] = Body(None),
    user_id: str = Depends(dependencies.get_current_user),
    order_service: OrderService = Depends(dependencies.get_order_service),
) -> Order:
  """Refund a paid order, in full unless an amount is given."""
  amount = body.amount if body else None
  return await order_service.refund_order(user_id, order_id, amount)


@router.patch(
    "/api/orders/{id}/status",
    response_model=Order,
    operation_id="update_order_status",
    dependencies=[Depends(dependencies.require_admin)],
)
async def update_order_status(
    order_id: str = Path(..., alias="id"),
    body: StatusUpdateRequest = Body(...),
    order_service: OrderService = Depends(dependencies.get_order_service),
) -> Order:
  """Move an order forward through fulfillment (admin only)."""
  return await order_service.update_order_status(order_id, body.status)
