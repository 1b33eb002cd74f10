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

"""Coupon lookup and validation against the coupons table."""

from decimal import Decimal
import logging

import db
from enums import CouponType
import money
from models import Coupon
from models import CouponValidationResponse
from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)


def to_coupon(row: db.Coupon) -> Coupon:
  """Converts a coupon row; fixed values are stored in minor units."""
  coupon_type = CouponType(row.type)
  if coupon_type == CouponType.FIXED:
    value = money.from_minor_units(row.value)
  else:
    value = Decimal(row.value)
  return Coupon(
      code=row.code,
      type=coupon_type,
      value=value,
      description=row.description,
  )


class CouponService:
  """Validates coupon codes for a cart total."""

  def __init__(self, transactions_session: AsyncSession):
    self.transactions_session = transactions_session

  async def validate(
      self, code: str, cart_total: Decimal
  ) -> CouponValidationResponse:
    row = await db.get_coupon(self.transactions_session, code)
    if row is None or not row.active:
      logger.info("Rejected coupon %r: unknown or inactive", code)
      return CouponValidationResponse(
          valid=False, message="Invalid coupon code"
      )
    if row.min_cart_total is not None:
      minimum = money.from_minor_units(row.min_cart_total)
      if cart_total < minimum:
        return CouponValidationResponse(
            valid=False,
            message=f"Minimum cart total of {minimum} required",
        )
    return CouponValidationResponse(
        valid=True,
        coupon=to_coupon(row),
        message="Coupon applied successfully!",
    )
