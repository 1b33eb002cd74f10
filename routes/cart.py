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

"""Cart mirror routes: the backend copy of a signed-in shopper's cart."""

import db
import dependencies
from exceptions import ResourceNotFoundError
from fastapi import APIRouter
from fastapi import Body
from fastapi import Depends
from models import CartSnapshot
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter()


@router.get(
    "/api/cart",
    response_model=CartSnapshot,
    operation_id="get_cart",
)
async def get_cart(
    user_id: str = Depends(dependencies.get_current_user),
    session: AsyncSession = Depends(dependencies.get_transactions_db),
) -> CartSnapshot:
  """Get the stored cart; 404 if the shopper has none yet."""
  data = await db.get_cart(session, user_id)
  if data is None:
    raise ResourceNotFoundError("Cart not found")
  return CartSnapshot.model_validate(data)


@router.put(
    "/api/cart",
    response_model=CartSnapshot,
    operation_id="save_cart",
)
async def save_cart(
    cart: CartSnapshot = Body(...),
    user_id: str = Depends(dependencies.get_current_user),
    session: AsyncSession = Depends(dependencies.get_transactions_db),
) -> CartSnapshot:
  """Upsert the shopper's cart."""
  await db.save_cart(
      session, user_id, cart.model_dump(mode="json", by_alias=True)
  )
  await session.commit()
  return cart
