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

"""Cart pricing: the single authoritative totals computation.

The client cart engine and the server checkout both call `calculate_totals`,
so the figures a shopper sees before checkout are the figures frozen into the
order (given the same catalog prices).
"""

from decimal import Decimal
from typing import Any, Iterable, Optional

from enums import CouponType
from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic.alias_generators import to_camel

TAX_RATE = Decimal("0.10")

DEFAULT_FREE_SHIPPING_THRESHOLD = Decimal(5000)
DEFAULT_FLAT_SHIPPING_COST = Decimal(100)

_ZERO = Decimal(0)


class CartTotals(BaseModel):
  """Totals derived from cart items, coupon and shipping."""

  model_config = ConfigDict(
      alias_generator=to_camel, populate_by_name=True, frozen=True
  )

  subtotal: Decimal = _ZERO
  discount_amount: Decimal = _ZERO
  tax_amount: Decimal = _ZERO
  total_amount: Decimal = _ZERO
  total_items: int = 0


def compute_subtotal(items: Iterable[Any]) -> Decimal:
  return sum((item.unit_price * item.quantity for item in items), _ZERO)


def compute_discount(subtotal: Decimal, coupon: Optional[Any]) -> Decimal:
  """Returns the discount a coupon grants on `subtotal`.

  Fixed coupons are capped at the subtotal so the taxable amount never goes
  negative.
  """
  if coupon is None:
    return _ZERO
  if coupon.type == CouponType.PERCENTAGE:
    return subtotal * coupon.value / 100
  if coupon.type == CouponType.FIXED:
    return min(coupon.value, subtotal)
  return _ZERO


def calculate_totals(
    items: Iterable[Any],
    coupon: Optional[Any] = None,
    shipping_cost: Decimal = _ZERO,
    tax_rate: Decimal = TAX_RATE,
) -> CartTotals:
  """Computes cart totals.

  Args:
    items: Line items exposing `unit_price` and `quantity`.
    coupon: The applied coupon, exposing `type` and `value`, or None.
    shipping_cost: Shipping charge in major units.
    tax_rate: Tax rate applied to the discounted subtotal.

  Returns:
    The derived `CartTotals`. The total is clamped at zero.
  """
  items = list(items)
  subtotal = compute_subtotal(items)
  discount = compute_discount(subtotal, coupon)
  taxable = subtotal - discount
  tax = taxable * tax_rate
  total = subtotal - discount + shipping_cost + tax
  return CartTotals(
      subtotal=subtotal,
      discount_amount=discount,
      tax_amount=tax,
      total_amount=max(_ZERO, total),
      total_items=sum(item.quantity for item in items),
  )


def quote_shipping(
    subtotal: Decimal,
    free_threshold: Decimal = DEFAULT_FREE_SHIPPING_THRESHOLD,
    flat_cost: Decimal = DEFAULT_FLAT_SHIPPING_COST,
) -> Decimal:
  """Flat-rate shipping, free above `free_threshold`. Empty carts ship free."""
  if subtotal <= 0 or subtotal > free_threshold:
    return _ZERO
  return flat_cost
