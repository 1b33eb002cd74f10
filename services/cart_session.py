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

"""Client-side cart session.

Wraps the pure cart engine with persistence. Each mutation is applied
atomically to the in-memory state, written to the local store, and then
mirrored to the backend by a fire-and-forget task. Backend failures are
logged and collected in `sync_errors`, as are local write failures. Neither
blocks nor rolls back the in-memory mutation. Mirror tasks are not ordered,
so the backend ends up with whichever snapshot was written last.
"""

import asyncio
import dataclasses
from decimal import Decimal
import logging
from typing import Any, Mapping, Optional

from enums import CartAction
from exceptions import SyncError
from models import CartItem
from models import CartSnapshot
from models import CartState
from models import Coupon
import pricing
from services import cart_engine
from services.cart_store import CartStore
from services.cart_store import CouponClient
from services.cart_store import RemoteCartStore

logger = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class CartResult:
  success: bool
  message: str


class CartSession:
  """A shopper's cart with local persistence and best-effort backend sync."""

  def __init__(
      self,
      local_store: CartStore,
      remote_store: Optional[RemoteCartStore] = None,
      coupon_client: Optional[CouponClient] = None,
  ):
    self.local_store = local_store
    self.remote_store = remote_store
    self.coupon_client = coupon_client
    self.state: CartState = cart_engine.EMPTY_CART
    self.sync_errors: list[SyncError] = []
    self._pending: set[asyncio.Task] = set()

  @property
  def authenticated(self) -> bool:
    return self.remote_store is not None

  @property
  def totals(self) -> pricing.CartTotals:
    return self.state.computed

  async def start(self) -> CartState:
    """Loads the cart: from the backend when signed in, else locally.

    A signed-in shopper whose backend cart is missing or unreachable falls
    back to the locally stored cart.
    """
    snapshot = None
    if self.remote_store is not None:
      try:
        snapshot = await self.remote_store.load()
      except SyncError as e:
        logger.warning("Failed to load cart from backend: %s", e.message)
        self.sync_errors.append(e)
    if snapshot is None:
      snapshot = self.local_store.load()
    self.state = cart_engine.load_cart(
        self.state, snapshot or CartSnapshot()
    )
    return self.state

  def _apply(self, action: CartAction, payload: Any = None) -> CartState:
    next_state = cart_engine.dispatch(self.state, action, payload)
    self.state = next_state
    if next_state.error is None:
      self._persist(CartSnapshot.from_state(next_state))
    return next_state

  def _persist(self, snapshot: CartSnapshot) -> None:
    try:
      self.local_store.save(snapshot)
    except OSError as e:
      error = SyncError(f"Failed to save cart locally: {e}")
      logger.warning(error.message)
      self.sync_errors.append(error)
    if self.remote_store is None:
      return
    try:
      loop = asyncio.get_running_loop()
    except RuntimeError:
      error = SyncError("No running event loop; cart kept locally")
      logger.warning(error.message)
      self.sync_errors.append(error)
      return
    task = loop.create_task(self._sync(snapshot))
    self._pending.add(task)
    task.add_done_callback(self._pending.discard)

  async def _sync(self, snapshot: CartSnapshot) -> None:
    try:
      await self.remote_store.save(snapshot)
    except SyncError as e:
      logger.warning("Failed to sync cart with server: %s", e.message)
      self.sync_errors.append(e)

  async def wait_for_sync(self) -> None:
    """Waits for all scheduled backend syncs to finish."""
    while self._pending:
      await asyncio.gather(*list(self._pending))

  def _result(self, success_message: str) -> CartResult:
    if self.state.error is not None:
      return CartResult(False, self.state.error)
    return CartResult(True, success_message)

  def add_item(self, item: CartItem | Mapping[str, Any]) -> CartResult:
    self._apply(CartAction.ADD_ITEM, item)
    return self._result("Item added to cart!")

  def remove_item(
      self, product_id: str, selected_options: Optional[dict[str, str]] = None
  ) -> CartResult:
    self._apply(
        CartAction.REMOVE_ITEM,
        {"productId": product_id, "selectedOptions": selected_options or {}},
    )
    return self._result("Item removed from cart")

  def update_quantity(
      self,
      product_id: str,
      quantity: int,
      selected_options: Optional[dict[str, str]] = None,
  ) -> CartResult:
    self._apply(
        CartAction.UPDATE_QUANTITY,
        {
            "productId": product_id,
            "quantity": quantity,
            "selectedOptions": selected_options or {},
        },
    )
    return self._result("Cart updated")

  def apply_coupon(self, coupon: Coupon | Mapping[str, Any]) -> CartResult:
    self._apply(CartAction.APPLY_COUPON, coupon)
    return self._result("Coupon applied successfully!")

  async def apply_coupon_code(self, code: str) -> CartResult:
    """Validates `code` with the backend and applies the returned coupon."""
    if self.coupon_client is None:
      self.state = cart_engine.set_error(
          self.state, "Coupon validation is unavailable"
      )
      return CartResult(False, self.state.error)
    try:
      response = await self.coupon_client.validate(
          code, self.state.computed.total_amount
      )
    except SyncError as e:
      logger.warning("Coupon validation failed: %s", e.message)
      self.state = cart_engine.set_error(self.state, "Failed to apply coupon")
      return CartResult(False, self.state.error)
    if not response.valid or response.coupon is None:
      self.state = cart_engine.set_error(
          self.state, response.message or "Invalid coupon code"
      )
      return CartResult(False, self.state.error)
    return self.apply_coupon(response.coupon)

  def remove_coupon(self) -> CartResult:
    self._apply(CartAction.REMOVE_COUPON)
    return self._result("Coupon removed")

  def update_shipping(self, cost: Decimal) -> CartResult:
    self._apply(CartAction.UPDATE_SHIPPING, cost)
    return self._result("Shipping updated")

  def clear(self) -> CartResult:
    self._apply(CartAction.CLEAR_CART)
    return self._result("Cart cleared")

  def toggle_cart(self, is_open: Optional[bool] = None) -> CartState:
    # Drawer state is not part of the persisted cart.
    self.state = cart_engine.toggle_cart(self.state, is_open)
    return self.state

  def clear_error(self) -> CartState:
    self.state = cart_engine.clear_error(self.state)
    return self.state

  def get_item_quantity(
      self, product_id: str, selected_options: Optional[dict[str, str]] = None
  ) -> int:
    return cart_engine.get_item_quantity(
        self.state, product_id, selected_options
    )

  def is_in_cart(
      self, product_id: str, selected_options: Optional[dict[str, str]] = None
  ) -> bool:
    return cart_engine.is_in_cart(self.state, product_id, selected_options)
