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

"""Currency helpers shared by the cart engine and the payment flow.

Amounts inside the storefront are `Decimal` values in major units (rupees).
Payment providers and the catalog tables work in integer minor units (paise).
"""

from decimal import Decimal
from decimal import InvalidOperation
from decimal import ROUND_HALF_UP
from typing import Union

MINOR_UNITS_PER_MAJOR = 100
DEFAULT_CURRENCY = "INR"

_CENT = Decimal("0.01")

Number = Union[Decimal, int, float, str]


def to_decimal(value: Number) -> Decimal:
  """Converts a number to `Decimal` without binary float artifacts.

  Args:
    value: The amount to convert. Floats go through `str()` so that 149.99
      stays 149.99.

  Returns:
    The amount as a finite `Decimal`.

  Raises:
    ValueError: If the value is not a finite number.
  """
  if isinstance(value, bool):
    raise ValueError(f"Not a monetary amount: {value!r}")
  if isinstance(value, Decimal):
    result = value
  elif isinstance(value, float):
    result = Decimal(str(value))
  else:
    try:
      result = Decimal(value)
    except (InvalidOperation, TypeError) as e:
      raise ValueError(f"Not a monetary amount: {value!r}") from e
  if not result.is_finite():
    raise ValueError(f"Not a monetary amount: {value!r}")
  return result


def to_minor_units(amount: Number) -> int:
  """Converts a major-unit amount to the provider's minor unit.

  Multiplies by 100 and rounds to the nearest integer, halves away from zero.
  """
  scaled = to_decimal(amount) * MINOR_UNITS_PER_MAJOR
  return int(scaled.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def from_minor_units(amount: int) -> Decimal:
  """Converts a minor-unit amount (e.g. paise) back to major units."""
  return Decimal(amount) / MINOR_UNITS_PER_MAJOR


def format_amount(amount_in_minor_units: int) -> Decimal:
  """Formats a provider amount for display, in major units."""
  return from_minor_units(amount_in_minor_units).quantize(_CENT)


def round_money(amount: Number) -> Decimal:
  """Rounds an amount to two decimal places, halves up."""
  return to_decimal(amount).quantize(_CENT, rounding=ROUND_HALF_UP)
