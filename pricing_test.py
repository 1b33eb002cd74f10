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

"""Tests for cart totals and the shipping policy."""

from decimal import Decimal

from absl.testing import absltest
from enums import CouponType
from models import CartItem
from models import Coupon
import pricing


def _item(product_id: str, price: int, quantity: int) -> CartItem:
  return CartItem(product_id=product_id, unit_price=price, quantity=quantity)


class CalculateTotalsTest(absltest.TestCase):

  def test_empty_cart(self) -> None:
    totals = pricing.calculate_totals([])
    self.assertEqual(totals.subtotal, 0)
    self.assertEqual(totals.total_amount, 0)
    self.assertEqual(totals.total_items, 0)

  def test_single_item(self) -> None:
    totals = pricing.calculate_totals([_item("p1", 100, 2)])
    self.assertEqual(totals.subtotal, Decimal(200))
    self.assertEqual(totals.total_items, 2)
    self.assertEqual(totals.tax_amount, Decimal(20))
    self.assertEqual(totals.total_amount, Decimal(220))

  def test_fixed_coupon_is_capped_at_subtotal(self) -> None:
    coupon = Coupon(code="FLAT500", type=CouponType.FIXED, value=500)
    totals = pricing.calculate_totals([_item("p1", 100, 2)], coupon)
    self.assertEqual(totals.discount_amount, Decimal(200))
    self.assertEqual(totals.tax_amount, 0)
    self.assertEqual(totals.total_amount, 0)

  def test_percentage_coupon_with_shipping(self) -> None:
    coupon = Coupon(code="TEN", type=CouponType.PERCENTAGE, value=10)
    totals = pricing.calculate_totals(
        [_item("p1", 1000, 1)], coupon, shipping_cost=Decimal(50)
    )
    self.assertEqual(totals.discount_amount, Decimal(100))
    self.assertEqual(totals.tax_amount, Decimal(90))
    self.assertEqual(totals.total_amount, Decimal(1040))

  def test_total_is_never_negative(self) -> None:
    coupon = Coupon(code="ALL", type=CouponType.PERCENTAGE, value=100)
    for shipping in (Decimal(0), Decimal(10)):
      totals = pricing.calculate_totals(
          [_item("p1", 30, 3)], coupon, shipping_cost=shipping
      )
      self.assertGreaterEqual(totals.total_amount, 0)
      self.assertEqual(totals.total_amount, shipping)

  def test_custom_tax_rate(self) -> None:
    totals = pricing.calculate_totals(
        [_item("p1", 1000, 1)], tax_rate=Decimal("0.03")
    )
    self.assertEqual(totals.tax_amount, Decimal(30))
    self.assertEqual(totals.total_amount, Decimal(1030))

  def test_fractional_prices_stay_exact(self) -> None:
    totals = pricing.calculate_totals([_item("p1", Decimal("0.1"), 3)])
    self.assertEqual(totals.subtotal, Decimal("0.3"))

  def test_serializes_with_camel_case_keys(self) -> None:
    totals = pricing.calculate_totals([_item("p1", 100, 1)])
    data = totals.model_dump(by_alias=True)
    self.assertIn("discountAmount", data)
    self.assertIn("totalItems", data)


class QuoteShippingTest(absltest.TestCase):

  def test_flat_rate_below_threshold(self) -> None:
    self.assertEqual(pricing.quote_shipping(Decimal(1000)), Decimal(100))

  def test_threshold_itself_is_charged(self) -> None:
    self.assertEqual(pricing.quote_shipping(Decimal(5000)), Decimal(100))

  def test_free_above_threshold(self) -> None:
    self.assertEqual(pricing.quote_shipping(Decimal("5000.01")), 0)

  def test_empty_cart_ships_free(self) -> None:
    self.assertEqual(pricing.quote_shipping(Decimal(0)), 0)

  def test_custom_policy(self) -> None:
    self.assertEqual(
        pricing.quote_shipping(Decimal(300), Decimal(200), Decimal(40)), 0
    )
    self.assertEqual(
        pricing.quote_shipping(Decimal(150), Decimal(200), Decimal(40)),
        Decimal(40),
    )


if __name__ == "__main__":
  absltest.main()
