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

"""Enumerations for the storefront server.

This module defines the enums used throughout the cart engine and the payment
reconciliation flow: coupon kinds, the order lifecycle, the payment sub-state
and the provider webhook events the server understands.
"""

import enum


class CouponType(str, enum.Enum):
  PERCENTAGE = "percentage"
  FIXED = "fixed"


class OrderStatus(str, enum.Enum):
  PENDING = "pending"
  CONFIRMED = "confirmed"
  PROCESSING = "processing"
  SHIPPED = "shipped"
  DELIVERED = "delivered"
  CANCELLED = "cancelled"


class PaymentStatus(str, enum.Enum):
  PENDING = "pending"
  COMPLETED = "completed"
  FAILED = "failed"
  REFUNDED = "refunded"


class PaymentMethod(str, enum.Enum):
  RAZORPAY = "razorpay"


class WebhookEvent(str, enum.Enum):
  PAYMENT_AUTHORIZED = "payment.authorized"
  PAYMENT_CAPTURED = "payment.captured"
  PAYMENT_FAILED = "payment.failed"
  ORDER_PAID = "order.paid"
  REFUND_CREATED = "refund.created"
  REFUND_PROCESSED = "refund.processed"


class CartAction(str, enum.Enum):
  LOAD_CART = "LOAD_CART"
  ADD_ITEM = "ADD_ITEM"
  REMOVE_ITEM = "REMOVE_ITEM"
  UPDATE_QUANTITY = "UPDATE_QUANTITY"
  CLEAR_CART = "CLEAR_CART"
  TOGGLE_CART = "TOGGLE_CART"
  APPLY_COUPON = "APPLY_COUPON"
  REMOVE_COUPON = "REMOVE_COUPON"
  UPDATE_SHIPPING = "UPDATE_SHIPPING"
  CLEAR_ERROR = "CLEAR_ERROR"


# Forward fulfillment path; cancellation is handled separately.
ORDER_STATUS_TIMELINE = (
    OrderStatus.PENDING,
    OrderStatus.CONFIRMED,
    OrderStatus.PROCESSING,
    OrderStatus.SHIPPED,
    OrderStatus.DELIVERED,
)

CANCELLABLE_ORDER_STATUSES = (OrderStatus.PENDING, OrderStatus.CONFIRMED)
