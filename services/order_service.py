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

"""Order service for checkout and payment reconciliation.

This module provides the `OrderService` class, which turns a cart into an
order backed by a provider order and then reconciles the order's payment
state from two independent sources: the client redirect (signature
verification) and the provider's webhooks.

Key responsibilities include:
- Repricing the cart from the catalog and freezing the totals into the order.
- Creating the provider order before any order record exists.
- Applying payment transitions exactly once. Each transition is a conditional
  update on the current state; only the caller whose update succeeds applies
  side effects (stock changes, notifications). Redirect and webhook handlers
  may race freely.
- Cancellation, refunds, fulfillment status updates and order tracking.
"""

import collections
import datetime
from decimal import Decimal
import hashlib
import json
import logging
import math
from typing import Any, Dict, Optional
import uuid

import db
from enums import CANCELLABLE_ORDER_STATUSES
from enums import ORDER_STATUS_TIMELINE
from enums import OrderStatus
from enums import PaymentStatus
from enums import WebhookEvent
from exceptions import IdempotencyConflictError
from exceptions import InvalidRequestError
from exceptions import OrderNotModifiableError
from exceptions import OutOfStockError
from exceptions import ResourceNotFoundError
import httpx
import money
from models import CheckoutRequest
from models import CheckoutResponse
from models import Order
from models import OrderLineItem
from models import OrderList
from models import OrderTracking
from models import Pagination
from models import PaymentVerification
from models import ProviderRefund
from models import TimelineEntry
from models import VerifyPaymentResult
from models import WebhookEnvelope
import pricing
from pydantic import BaseModel
from services.coupon_service import CouponService
from services.payment_service import PaymentService
from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

# Provider refund status once money has been returned.
REFUND_PROCESSED = "processed"

# Fulfillment steps an operator may move a confirmed order through.
_FULFILLMENT_TRANSITIONS = {
    OrderStatus.PROCESSING: OrderStatus.CONFIRMED,
    OrderStatus.SHIPPED: OrderStatus.PROCESSING,
    OrderStatus.DELIVERED: OrderStatus.SHIPPED,
}

# Order columns kept outside the frozen `data` document.
_COLUMN_FIELDS = {
    "id",
    "order_number",
    "user_id",
    "provider_order_id",
    "payment_id",
    "refund_id",
    "order_status",
    "payment_status",
    "created_at",
    "updated_at",
}


class OrderNotifier:
  """Posts order events to a webhook (confirmation emails, fulfillment)."""

  def __init__(
      self,
      webhook_url: Optional[str] = None,
      client: Optional[httpx.AsyncClient] = None,
  ):
    self.webhook_url = webhook_url
    self.client = client

  async def notify(self, order: Order, event_type: str) -> None:
    """Sends `event_type` for `order`. Delivery failures are only logged."""
    if not self.webhook_url:
      logger.info("Order %s: %s", order.id, event_type)
      return

    payload = {
        "event_type": event_type,
        "order": order.model_dump(mode="json", by_alias=True),
    }
    try:
      if self.client is not None:
        await self.client.post(self.webhook_url, json=payload, timeout=5.0)
      else:
        async with httpx.AsyncClient() as client:
          await client.post(self.webhook_url, json=payload, timeout=5.0)
    except httpx.HTTPError as e:
      logger.error("Failed to notify webhook at %s: %s", self.webhook_url, e)


def _new_order_number() -> str:
  today = datetime.datetime.now(datetime.timezone.utc).strftime("%Y%m%d")
  return f"ORD-{today}-{uuid.uuid4().hex[:8].upper()}"


def to_order(row: db.Order) -> Order:
  """Builds the order model from its row."""
  data = dict(row.data or {})
  data.update({field: getattr(row, field) for field in _COLUMN_FIELDS})
  return Order.model_validate(data)


def _frozen_data(order: Order) -> Dict[str, Any]:
  return order.model_dump(mode="json", by_alias=True, exclude=_COLUMN_FIELDS)


def _awaiting_cancellation_refund(row: db.Order) -> bool:
  """True for a cancelled order whose captured payment was never refunded."""
  return (
      row.order_status == OrderStatus.CANCELLED.value
      and row.payment_status == PaymentStatus.COMPLETED.value
      and not row.refund_id
  )


class OrderService:
  """Service for placing orders and reconciling their payments."""

  def __init__(
      self,
      payment_service: PaymentService,
      products_session: AsyncSession,
      transactions_session: AsyncSession,
      notifier: Optional[OrderNotifier] = None,
      tax_rate: Decimal = pricing.TAX_RATE,
      free_shipping_threshold: Decimal = (
          pricing.DEFAULT_FREE_SHIPPING_THRESHOLD
      ),
      flat_shipping_cost: Decimal = pricing.DEFAULT_FLAT_SHIPPING_COST,
  ):
    self.payment_service = payment_service
    self.products_session = products_session
    self.transactions_session = transactions_session
    self.notifier = notifier or OrderNotifier()
    self.tax_rate = tax_rate
    self.free_shipping_threshold = free_shipping_threshold
    self.flat_shipping_cost = flat_shipping_cost

  def _compute_hash(self, data: Any) -> str:
    """Computes SHA256 hash of the JSON-serialized data."""
    if isinstance(data, BaseModel):
      json_str = json.dumps(data.model_dump(mode="json"), sort_keys=True)
    else:
      json_str = json.dumps(data, sort_keys=True)
    return hashlib.sha256(json_str.encode("utf-8")).hexdigest()

  async def _get_row(
      self, order_id: str, user_id: Optional[str] = None
  ) -> db.Order:
    row = await db.get_order(self.transactions_session, order_id)
    if row is None or (user_id is not None and row.user_id != user_id):
      raise ResourceNotFoundError("Order not found")
    return row

  # --- Checkout ---

  async def _price_lines(self, request: CheckoutRequest) -> list[OrderLineItem]:
    """Reprices the requested lines from the catalog and checks stock."""
    products = await db.get_products_by_ids(
        self.products_session, {line.product_id for line in request.items}
    )
    requested = collections.Counter()
    line_items = []
    for line in request.items:
      product = products.get(line.product_id)
      if product is None:
        raise InvalidRequestError(f"Product {line.product_id} not found")
      unit_price = money.from_minor_units(product.price)
      requested[line.product_id] += line.quantity
      line_items.append(
          OrderLineItem(
              product_id=product.id,
              name=product.name,
              unit_price=unit_price,
              quantity=line.quantity,
              selected_options=line.selected_options,
              line_total=unit_price * line.quantity,
          )
      )

    for product_id, quantity in requested.items():
      stock = await db.get_inventory(self.transactions_session, product_id)
      if stock is None or stock < quantity:
        raise OutOfStockError(f"Item {product_id} is out of stock")
    return line_items

  async def checkout(
      self,
      user_id: str,
      request: CheckoutRequest,
      idempotency_key: Optional[str] = None,
  ) -> CheckoutResponse:
    """Places an order for the cart and creates its provider order.

    The provider order is created first; if the provider rejects it, no order
    record is written.

    Args:
      user_id: The shopper placing the order.
      request: Cart lines, coupon code and billing address.
      idempotency_key: Replays with the same key return the first response.

    Returns:
      The pending order, the provider order and the public key id the client
      needs to open the provider's checkout.

    Raises:
      InvalidRequestError: Empty cart, unknown product or invalid coupon.
      OutOfStockError: If a line exceeds available inventory.
      IdempotencyConflictError: If the key was used for a different request.
      ProviderError: If the provider order cannot be created.
    """
    logger.info("Creating order for user %s", user_id)

    request_hash = self._compute_hash(
        {"user_id": user_id, "request": request.model_dump(mode="json")}
    )
    if idempotency_key:
      existing_record = await db.get_idempotency_record(
          self.transactions_session, idempotency_key
      )
      if existing_record:
        if existing_record.request_hash != request_hash:
          raise IdempotencyConflictError(
              "Idempotency key reused with different parameters"
          )
        return CheckoutResponse.model_validate(existing_record.response_body)

    if not request.items:
      raise InvalidRequestError("Cart is empty")

    line_items = await self._price_lines(request)
    subtotal = pricing.compute_subtotal(line_items)

    coupon = None
    if request.coupon_code:
      validation = await CouponService(self.transactions_session).validate(
          request.coupon_code, subtotal
      )
      if not validation.valid:
        raise InvalidRequestError(validation.message or "Invalid coupon code")
      coupon = validation.coupon

    shipping_cost = pricing.quote_shipping(
        subtotal, self.free_shipping_threshold, self.flat_shipping_cost
    )
    totals = pricing.calculate_totals(
        line_items, coupon, shipping_cost, self.tax_rate
    )

    order_id = str(uuid.uuid4())
    order_number = _new_order_number()
    total_amount = money.round_money(totals.total_amount)

    provider_order = await self.payment_service.create_provider_order(
        total_amount,
        request.currency,
        receipt=order_number,
        notes={"order_id": order_id, "user_id": user_id},
    )

    order = Order(
        id=order_id,
        order_number=order_number,
        user_id=user_id,
        provider_order_id=provider_order.id,
        payment_method=request.payment_method,
        currency=request.currency,
        line_items=line_items,
        subtotal=money.round_money(totals.subtotal),
        discount_amount=money.round_money(totals.discount_amount),
        tax_amount=money.round_money(totals.tax_amount),
        shipping_cost=money.round_money(shipping_cost),
        total_amount=total_amount,
        coupon_code=coupon.code if coupon else None,
        billing_address=request.billing_address,
    )
    row = db.Order(
        id=order.id,
        order_number=order.order_number,
        user_id=user_id,
        provider_order_id=provider_order.id,
        order_status=OrderStatus.PENDING.value,
        payment_status=PaymentStatus.PENDING.value,
        data=_frozen_data(order),
    )
    await db.add_order(self.transactions_session, row)

    await db.log_request(
        self.transactions_session,
        method="POST",
        url="/api/orders/checkout",
        order_id=order_id,
        payload=request.model_dump(mode="json"),
    )

    response = CheckoutResponse(
        order=to_order(row),
        provider_order=provider_order,
        key_id=self.payment_service.key_id,
    )
    if idempotency_key:
      await db.save_idempotency_record(
          self.transactions_session,
          idempotency_key,
          request_hash,
          201,
          response.model_dump(mode="json", by_alias=True),
      )

    await self.transactions_session.commit()
    logger.info(
        "Created order %s (provider order %s, total %s)",
        order_id,
        provider_order.id,
        total_amount,
    )
    return response

  # --- Payment transitions ---

  async def verify_payment(
      self, user_id: Optional[str], verification: PaymentVerification
  ) -> VerifyPaymentResult:
    """Confirms an order from the checkout redirect parameters.

    A signature that does not verify is a normal negative result: the order
    is left untouched and reported as pending payment, since the provider may
    still confirm it by webhook.
    """
    provider_order_id = verification.order_id
    payment_id = verification.payment_id
    row = await db.get_order_by_provider_order_id(
        self.transactions_session, provider_order_id
    )
    if row is None or (user_id is not None and row.user_id != user_id):
      raise ResourceNotFoundError("Order not found")

    if not self.payment_service.verify_payment_signature(
        provider_order_id, payment_id, verification.signature
    ):
      logger.warning(
          "Payment signature mismatch for order %s (payment %s)",
          row.id,
          payment_id,
      )
      return VerifyPaymentResult(
          verified=False,
          status="pending_payment",
          order=to_order(row),
          message="Payment could not be verified",
      )

    order = await self.mark_payment_completed(row, payment_id)
    if order.order_status == OrderStatus.CANCELLED or (
        order.payment_status == PaymentStatus.REFUNDED
    ):
      return VerifyPaymentResult(
          verified=True,
          status="refunded",
          order=order,
          message="Order was cancelled; the payment is being refunded",
      )
    return VerifyPaymentResult(
        verified=True,
        status="confirmed",
        order=order,
        message="Payment verified successfully",
    )

  async def mark_payment_completed(
      self, row: db.Order, payment_id: Optional[str]
  ) -> Order:
    """Records a captured payment and confirms the order, once.

    The payment may move to completed from pending, or from failed when the
    shopper retried on the same provider order. A payment captured for a
    cancelled order is refunded; if that refund did not go through, a
    repeated call retries it.

    Returns:
      The order as it stands after the call. Repeated calls, and calls that
      lose a race with another handler, change nothing else.
    """
    won = await db.transition_payment_status(
        self.transactions_session,
        row.id,
        [PaymentStatus.PENDING.value, PaymentStatus.FAILED.value],
        PaymentStatus.COMPLETED.value,
        payment_id=payment_id,
    )
    if not won:
      await self.transactions_session.commit()
      await self.transactions_session.refresh(row)
      if _awaiting_cancellation_refund(row):
        logger.warning(
            "Retrying refund of payment %s for cancelled order %s",
            row.payment_id,
            row.id,
        )
        return await self._refund_cancelled(row)
      logger.info(
          "Order %s payment already %s; nothing to do",
          row.id,
          row.payment_status,
      )
      return to_order(row)

    confirmed = await db.transition_order_status(
        self.transactions_session,
        row.id,
        [OrderStatus.PENDING.value],
        OrderStatus.CONFIRMED.value,
    )
    order = to_order(row)
    if confirmed:
      for line in order.line_items:
        if not await db.reserve_stock(
            self.transactions_session, line.product_id, line.quantity
        ):
          logger.error(
              "Insufficient stock for %s on paid order %s",
              line.product_id,
              row.id,
          )
    await self.transactions_session.commit()
    await self.transactions_session.refresh(row)
    order = to_order(row)

    if confirmed:
      logger.info("Order %s confirmed (payment %s)", row.id, payment_id)
      await self.notifier.notify(order, "order_confirmed")
      return order

    # Paid after the shopper cancelled: return the money.
    logger.warning(
        "Payment %s captured for %s order %s; refunding",
        payment_id,
        row.order_status,
        row.id,
    )
    return await self._refund_cancelled(row)

  async def _refund_cancelled(self, row: db.Order) -> Order:
    await self._refund(row, None, reason="order_cancelled")
    await self.transactions_session.commit()
    await self.transactions_session.refresh(row)
    return to_order(row)

  async def mark_payment_failed(
      self, row: db.Order, reason: Optional[str] = None
  ) -> Order:
    """Moves payment pending -> failed, once."""
    won = await db.transition_payment_status(
        self.transactions_session,
        row.id,
        [PaymentStatus.PENDING.value],
        PaymentStatus.FAILED.value,
    )
    await self.transactions_session.commit()
    await self.transactions_session.refresh(row)
    order = to_order(row)
    if won:
      logger.info("Order %s payment failed: %s", row.id, reason)
      await self.notifier.notify(order, "payment_failed")
    return order

  async def mark_refunded(
      self, row: db.Order, refund_id: Optional[str] = None
  ) -> Order:
    """Moves payment completed -> refunded, once."""
    won = await self._apply_refunded(row, refund_id)
    await self.transactions_session.commit()
    await self.transactions_session.refresh(row)
    order = to_order(row)
    if won:
      logger.info("Order %s refunded (refund %s)", row.id, refund_id)
      await self.notifier.notify(order, "order_refunded")
    return order

  async def _apply_refunded(
      self, row: db.Order, refund_id: Optional[str]
  ) -> bool:
    values = {"refund_id": refund_id} if refund_id else {}
    return await db.transition_payment_status(
        self.transactions_session,
        row.id,
        [PaymentStatus.COMPLETED.value],
        PaymentStatus.REFUNDED.value,
        **values,
    )

  async def _refund(
      self, row: db.Order, amount: Optional[Decimal], reason: str
  ) -> ProviderRefund:
    """Requests a refund and records it without committing.

    A full refund that the provider reports as processed moves the payment to
    refunded right away; otherwise only the refund id is stored and the
    refund webhook finishes the transition.
    """
    paid = row.payment_status == PaymentStatus.COMPLETED.value
    if not paid or not row.payment_id:
      raise OrderNotModifiableError("Only completed payments can be refunded")

    total = to_order(row).total_amount
    if amount is not None and amount > total:
      raise InvalidRequestError("Refund amount exceeds the amount paid")
    full = amount is None or amount == total

    refund = await self.payment_service.initiate_refund(
        row.payment_id,
        None if full else amount,
        notes={"order_id": row.id, "reason": reason},
    )
    if full and refund.status == REFUND_PROCESSED:
      await self._apply_refunded(row, refund.id)
    else:
      row.refund_id = refund.id
      row.updated_at = db.utc_now()
    return refund

  async def refund_order(
      self,
      user_id: Optional[str],
      order_id: str,
      amount: Optional[Decimal] = None,
  ) -> Order:
    """Refunds a paid order, fully unless `amount` is given."""
    row = await self._get_row(order_id, user_id)
    refund = await self._refund(row, amount, reason="requested_by_customer")
    await self.transactions_session.commit()
    await self.transactions_session.refresh(row)
    order = to_order(row)
    if order.payment_status == PaymentStatus.REFUNDED:
      await self.notifier.notify(order, "order_refunded")
    else:
      logger.info(
          "Refund %s for order %s is %s", refund.id, row.id, refund.status
      )
    return order

  async def cancel_order(self, user_id: Optional[str], order_id: str) -> Order:
    """Cancels a pending or confirmed order.

    A completed payment is refunded in full, and stock taken by a confirmed
    order is returned.
    """
    row = await self._get_row(order_id, user_id)
    if row.order_status not in {s.value for s in CANCELLABLE_ORDER_STATUSES}:
      raise OrderNotModifiableError(
          f"Order cannot be cancelled as it is already {row.order_status}"
      )
    was_confirmed = row.order_status == OrderStatus.CONFIRMED.value

    cancelled = await db.transition_order_status(
        self.transactions_session,
        row.id,
        [s.value for s in CANCELLABLE_ORDER_STATUSES],
        OrderStatus.CANCELLED.value,
    )
    if not cancelled:
      await self.transactions_session.rollback()
      raise OrderNotModifiableError("Order status changed; please retry")

    try:
      if row.payment_status == PaymentStatus.COMPLETED.value:
        await self._refund(row, None, reason="order_cancelled")
      if was_confirmed:
        for line in to_order(row).line_items:
          await db.restore_stock(
              self.transactions_session, line.product_id, line.quantity
          )
      await self.transactions_session.commit()
    except Exception:
      await self.transactions_session.rollback()
      raise

    await self.transactions_session.refresh(row)
    order = to_order(row)
    logger.info("Order %s cancelled", row.id)
    await self.notifier.notify(order, "order_cancelled")
    return order

  async def update_order_status(
      self, order_id: str, status: OrderStatus
  ) -> Order:
    """Moves a confirmed order forward through fulfillment."""
    status = OrderStatus(status)
    previous = _FULFILLMENT_TRANSITIONS.get(status)
    if previous is None:
      raise InvalidRequestError(f"Cannot set order status to {status.value}")

    row = await self._get_row(order_id)
    current = row.order_status
    moved = await db.transition_order_status(
        self.transactions_session, row.id, [previous.value], status.value
    )
    if not moved:
      # Rolling back expires `row`.
      await self.transactions_session.rollback()
      raise OrderNotModifiableError(
          f"Cannot change status from {current} to {status.value}"
      )
    await self.transactions_session.commit()
    await self.transactions_session.refresh(row)
    order = to_order(row)
    await self.notifier.notify(order, f"order_{status.value}")
    return order

  # --- Webhooks ---

  async def handle_webhook_event(
      self, event: str, payload: Dict[str, Any]
  ) -> None:
    """Applies a verified provider webhook to the matching order.

    Unknown events, and events for orders this store does not know, are
    logged and ignored.
    """
    envelope = WebhookEnvelope(event=event, payload=payload)
    try:
      kind = WebhookEvent(event)
    except ValueError:
      logger.info("Ignoring unhandled webhook event %s", event)
      return

    payment = envelope.entity("payment")
    if kind == WebhookEvent.PAYMENT_AUTHORIZED:
      logger.info(
          "Payment %s authorized for provider order %s",
          payment.get("id"),
          payment.get("order_id"),
      )
      return

    if kind in (WebhookEvent.PAYMENT_CAPTURED, WebhookEvent.ORDER_PAID):
      provider_order_id = (
          payment.get("order_id") or envelope.entity("order").get("id")
      )
      row = await self._row_for_provider_order(provider_order_id, event)
      if row is not None:
        await self.mark_payment_completed(row, payment.get("id"))
      return

    if kind == WebhookEvent.PAYMENT_FAILED:
      row = await self._row_for_provider_order(payment.get("order_id"), event)
      if row is not None:
        await self.mark_payment_failed(row, payment.get("error_description"))
      return

    refund = envelope.entity("refund")
    payment_id = refund.get("payment_id")
    row = None
    if payment_id:
      row = await db.get_order_by_payment_id(
          self.transactions_session, payment_id
      )
    if row is None:
      logger.warning("No order for refunded payment %s", payment_id)
      return
    if kind == WebhookEvent.REFUND_CREATED and (
        refund.get("status") != REFUND_PROCESSED
    ):
      logger.info("Refund %s created for order %s", refund.get("id"), row.id)
      return
    total = money.to_minor_units(to_order(row).total_amount)
    if refund.get("amount", 0) < total:
      logger.info(
          "Partial refund %s processed for order %s", refund.get("id"), row.id
      )
      return
    await self.mark_refunded(row, refund.get("id"))

  async def _row_for_provider_order(
      self, provider_order_id: Optional[str], event: str
  ) -> Optional[db.Order]:
    row = None
    if provider_order_id:
      row = await db.get_order_by_provider_order_id(
          self.transactions_session, provider_order_id
      )
    if row is None:
      logger.warning(
          "Ignoring %s for unknown provider order %s", event, provider_order_id
      )
    return row

  # --- Queries ---

  async def get_order(self, user_id: Optional[str], order_id: str) -> Order:
    return to_order(await self._get_row(order_id, user_id))

  async def list_orders(
      self, user_id: str, page: int = 1, limit: int = 10
  ) -> OrderList:
    """Lists a user's orders, newest first, with pagination metadata."""
    page = max(1, page)
    limit = max(1, limit)
    total = await db.count_orders(self.transactions_session, user_id)
    rows = await db.list_orders(
        self.transactions_session, user_id, (page - 1) * limit, limit
    )
    total_pages = math.ceil(total / limit)
    return OrderList(
        orders=[to_order(row) for row in rows],
        pagination=Pagination(
            current_page=page,
            total_pages=total_pages,
            total_orders=total,
            has_next=page < total_pages,
            has_prev=page > 1,
        ),
    )

  async def track_order(
      self, user_id: Optional[str], order_id: str
  ) -> OrderTracking:
    """Returns the order with its fulfillment timeline.

    Steps up to the current status are completed. A cancelled order has no
    current step on the timeline.
    """
    order = await self.get_order(user_id, order_id)
    if order.order_status in ORDER_STATUS_TIMELINE:
      current = ORDER_STATUS_TIMELINE.index(order.order_status)
    else:
      current = -1
    timeline = [
        TimelineEntry(
            status=status,
            label=status.value.capitalize(),
            completed=index <= current,
            current=index == current,
            date=order.updated_at if index <= current else None,
        )
        for index, status in enumerate(ORDER_STATUS_TIMELINE)
    ]
    return OrderTracking(order=order, timeline=timeline)
