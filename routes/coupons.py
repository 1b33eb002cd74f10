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

"""Coupon and shipping quote routes used by the cart before checkout."""

from decimal import Decimal

import config
import dependencies
from fastapi import APIRouter
from fastapi import Body
from fastapi import Depends
from fastapi import Query
from models import CouponValidationRequest
from models import CouponValidationResponse
from models import ShippingQuote
import pricing
from services.coupon_service import CouponService

router = APIRouter()


@router.post(
    "/api/coupons/validate",
    response_model=CouponValidationResponse,
    response_model_exclude_none=True,
    operation_id="validate_coupon",
)
async def validate_coupon(
    body: CouponValidationRequest = Body(...),
    coupon_service: CouponService = Depends(dependencies.get_coupon_service),
) -> CouponValidationResponse:
  """Check a coupon code against a cart total."""
  return await coupon_service.validate(body.code, body.cart_total)


@router.get(
    "/api/shipping/quote",
    response_model=ShippingQuote,
    operation_id="quote_shipping",
)
async def quote_shipping(
    subtotal: Decimal = Query(..., ge=0),
) -> ShippingQuote:
  """Quote shipping for a cart subtotal."""
  free_shipping_threshold, flat_shipping_cost = config.get_shipping_policy()
  return ShippingQuote(
      subtotal=subtotal,
      shipping_cost=pricing.quote_shipping(
          subtotal, free_shipping_threshold, flat_shipping_cost
      ),
      free_shipping_threshold=free_shipping_threshold,
  )
