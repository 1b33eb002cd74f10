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

"""Tests for currency conversion helpers."""

from decimal import Decimal

from absl.testing import absltest
import money


class MinorUnitsTest(absltest.TestCase):

  def test_float_amount_converts_exactly(self) -> None:
    self.assertEqual(money.to_minor_units(149.99), 14999)

  def test_decimal_and_string_amounts(self) -> None:
    self.assertEqual(money.to_minor_units(Decimal("1090")), 109000)
    self.assertEqual(money.to_minor_units("0.5"), 50)

  def test_rounds_half_up(self) -> None:
    self.assertEqual(money.to_minor_units(Decimal("10.005")), 1001)
    self.assertEqual(money.to_minor_units(Decimal("10.004")), 1000)

  def test_rejects_non_numbers(self) -> None:
    for value in (True, "abc", None, float("nan"), float("inf")):
      with self.assertRaises(ValueError, msg=repr(value)):
        money.to_minor_units(value)

  def test_from_minor_units(self) -> None:
    self.assertEqual(money.from_minor_units(14999), Decimal("149.99"))

  def test_format_amount(self) -> None:
    self.assertEqual(str(money.format_amount(50000)), "500.00")

  def test_round_money(self) -> None:
    self.assertEqual(money.round_money(Decimal("90.125")), Decimal("90.13"))


if __name__ == "__main__":
  absltest.main()
