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

"""Wire and domain models for the storefront server and cart client.

All models serialize with camelCase aliases (`productId`, `appliedCoupon`) and
accept either the alias or the Python field name on input. Money is `Decimal`
in major units; provider amounts are integers in minor units.
"""

import datetime
from decimal import Decimal
from typing import Any, Literal, Optional

from enums import CouponType
from enums import OrderStatus
from enums import PaymentMethod
from enums import PaymentStatus
import pricing
from pydantic import AliasChoices
from pydantic import BaseModel
from pydantic import computed_field
from pydantic import ConfigDict
from pydantic import Field
from pydantic import field_validator
from pydantic import model_validator
from pydantic.alias_generators import to_camel

CART_SCHEMA_VERSION = 1


class WireModel(BaseModel):
  """Base model with camelCase aliases."""

  model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class FrozenWireModel(WireModel):
  model_config = ConfigDict(
      alias_generator=to_camel, populate_by_name=True, frozen=True
  )


def _stringify_options(value: Any) -> Any:
  if value is None:
    return {}
  if isinstance(value, dict):
    return {str(k): str(v) for k, v in value.items()}
  return value


def identity_key(
    product_id: str, selected_options: Optional[dict[str, str]]
) -> tuple[str, frozenset]:
  """Returns the line-item identity key, independent of option order."""
  return product_id, frozenset((selected_options or {}).items())


# --- Cart ---


class CartItem(FrozenWireModel):
  """A cart line item."""

  product_id: str = Field(
      alias="productId",
      validation_alias=AliasChoices("productId", "product_id", "id"),
      min_length=1,
  )
  name: str = ""
  unit_price: Decimal = Field(
      alias="unitPrice",
      validation_alias=AliasChoices("unitPrice", "unit_price", "price"),
      ge=0,
  )
  image: Optional[str] = None
  quantity: int = Field(1, ge=1)
  selected_options: dict[str, str] = Field(default_factory=dict)
  max_quantity: int = Field(999, ge=1)

  @field_validator("selected_options", mode="before")
  @classmethod
  def stringify_options(cls, value: Any) -> Any:
    return _stringify_options(value)

  @property
  def identity_key(self) -> tuple[str, frozenset]:
    return identity_key(self.product_id, self.selected_options)


class Coupon(FrozenWireModel):
  """A validated coupon as applied to a cart."""

  code: str = ""
  type: CouponType
  value: Decimal = Field(ge=0)
  description: Optional[str] = None

  @model_validator(mode="after")
  def check_percentage(self) -> "Coupon":
    if self.type == CouponType.PERCENTAGE and self.value > 100:
      raise ValueError("percentage coupons cannot exceed 100")
    return self


class CartState(FrozenWireModel):
  """Cart contents plus UI-transient flags.

  `computed` is derived from items, coupon and shipping on every access and is
  never stored; a `computed` key in serialized input is ignored.
  """

  items: tuple[CartItem, ...] = ()
  applied_coupon: Optional[Coupon] = None
  shipping_cost: Decimal = Decimal(0)
  is_open: bool = False
  error: Optional[str] = None

  @computed_field
  @property
  def computed(self) -> pricing.CartTotals:
    return pricing.calculate_totals(
        self.items, self.applied_coupon, self.shipping_cost
    )


class CartSnapshot(WireModel):
  """Versioned persisted cart shape, shared by local storage and the API."""

  version: Literal[1] = CART_SCHEMA_VERSION
  items: list[CartItem] = Field(default_factory=list)
  applied_coupon: Optional[Coupon] = None
  shipping_cost: Decimal = Field(Decimal(0), ge=0)

  @classmethod
  def from_state(cls, state: CartState) -> "CartSnapshot":
    return cls(
        items=list(state.items),
        applied_coupon=state.applied_coupon,
        shipping_cost=state.shipping_cost,
    )


class CouponValidationRequest(WireModel):
  code: str = Field(min_length=1)
  cart_total: Decimal = Field(Decimal(0), ge=0)


class CouponValidationResponse(WireModel):
  valid: bool
  coupon: Optional[Coupon] = None
  message: Optional[str] = None


class ShippingQuote(WireModel):
  subtotal: Decimal
  shipping_cost: Decimal
  free_shipping_threshold: Decimal


# --- Payment provider ---


def _empty_notes(value: Any) -> Any:
  # The provider encodes empty notes as [] rather than {}.
  if value is None or value == []:
    return {}
  return value


class ProviderOrder(FrozenWireModel):
  """Provider-side order, immutable once created."""

  id: str
  amount: int
  currency: str
  receipt: Optional[str] = None
  notes: dict[str, Any] = Field(default_factory=dict)
  status: str = "created"

  @field_validator("notes", mode="before")
  @classmethod
  def normalize_notes(cls, value: Any) -> Any:
    return _empty_notes(value)


class ProviderPayment(FrozenWireModel):
  id: str
  order_id: Optional[str] = None
  amount: int = 0
  currency: Optional[str] = None
  status: str
  method: Optional[str] = None
  captured: bool = False
  error_description: Optional[str] = None


class ProviderRefund(FrozenWireModel):
  id: str
  payment_id: Optional[str] = None
  amount: int = 0
  currency: Optional[str] = None
  status: str = "pending"


class PaymentVerification(WireModel):
  """Checkout redirect parameters. Never stored."""

  order_id: str = Field(
      alias="orderId",
      validation_alias=AliasChoices(
          "orderId", "order_id", "razorpay_order_id"
      ),
  )
  payment_id: str = Field(
      alias="paymentId",
      validation_alias=AliasChoices(
          "paymentId", "payment_id", "razorpay_payment_id"
      ),
  )
  signature: str = Field(
      validation_alias=AliasChoices("signature", "razorpay_signature"),
  )


class WebhookEnvelope(WireModel):
  """Provider webhook body: `{"event": ..., "payload": {...}}`."""

  event: str
  payload: dict[str, Any] = Field(default_factory=dict)
  created_at: Optional[int] = None

  def entity(self, name: str) -> dict[str, Any]:
    """Returns `payload[name]["entity"]`, or an empty dict."""
    wrapper = self.payload.get(name) or {}
    return wrapper.get("entity") or {}


# --- Orders ---


class BillingAddress(WireModel):
  street: str = Field(min_length=5, max_length=200)
  city: str = Field(min_length=1)
  state: str = Field(min_length=1)
  zip_code: str = Field(pattern=r"^\d{6}$")
  country: str = Field(min_length=1)


class CheckoutLine(WireModel):
  product_id: str = Field(
      alias="productId",
      validation_alias=AliasChoices("productId", "product_id", "id"),
      min_length=1,
  )
  quantity: int = Field(ge=1)
  selected_options: dict[str, str] = Field(default_factory=dict)

  @field_validator("selected_options", mode="before")
  @classmethod
  def stringify_options(cls, value: Any) -> Any:
    return _stringify_options(value)


class CheckoutRequest(WireModel):
  items: list[CheckoutLine] = Field(default_factory=list)
  coupon_code: Optional[str] = None
  billing_address: BillingAddress
  payment_method: PaymentMethod = PaymentMethod.RAZORPAY
  currency: str = "INR"


class OrderLineItem(FrozenWireModel):
  product_id: str
  name: str
  unit_price: Decimal
  quantity: int
  selected_options: dict[str, str] = Field(default_factory=dict)
  line_total: Decimal


class Order(WireModel):
  """Internal order record. Money fields are frozen at checkout."""

  id: str
  order_number: str
  user_id: str
  provider_order_id: Optional[str] = None
  payment_id: Optional[str] = None
  refund_id: Optional[str] = None
  order_status: OrderStatus = OrderStatus.PENDING
  payment_status: PaymentStatus = PaymentStatus.PENDING
  payment_method: PaymentMethod = PaymentMethod.RAZORPAY
  currency: str = "INR"
  line_items: list[OrderLineItem] = Field(default_factory=list)
  subtotal: Decimal
  discount_amount: Decimal = Decimal(0)
  tax_amount: Decimal = Decimal(0)
  shipping_cost: Decimal = Decimal(0)
  total_amount: Decimal
  coupon_code: Optional[str] = None
  billing_address: Optional[BillingAddress] = None
  created_at: Optional[datetime.datetime] = None
  updated_at: Optional[datetime.datetime] = None


class CheckoutResponse(WireModel):
  order: Order
  provider_order: ProviderOrder
  key_id: str


class VerifyPaymentResult(WireModel):
  """Outcome of a redirect verification.

  `verified=False` is not an error: the order stays pending and may still be
  completed by a webhook.
  """

  verified: bool
  status: Literal["confirmed", "pending_payment", "refunded"]
  order: Optional[Order] = None
  message: Optional[str] = None


class RefundRequest(WireModel):
  amount: Optional[Decimal] = Field(None, gt=0)
  notes: dict[str, str] = Field(default_factory=dict)


class StatusUpdateRequest(WireModel):
  status: OrderStatus


class Pagination(WireModel):
  current_page: int
  total_pages: int
  total_orders: int
  has_next: bool
  has_prev: bool


class OrderList(WireModel):
  orders: list[Order]
  pagination: Pagination


class TimelineEntry(WireModel):
  status: OrderStatus
  label: str
  completed: bool
  current: bool
  date: Optional[datetime.datetime] = None


class OrderTracking(WireModel):
  order: Order
  timeline: list[TimelineEntry]
