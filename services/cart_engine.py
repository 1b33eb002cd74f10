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

"""Cart state engine: pure transitions on an immutable `CartState`.

Every function takes a state and returns a new one; totals are derived from
the returned state (`state.computed`) so they can never drift from its items,
coupon and shipping. Nothing here performs I/O; persistence is layered on top
by `services.cart_session`.

`dispatch` is the entry point for untrusted payloads. It never raises for
malformed input: the prior state is returned with `error` set instead.
"""

from decimal import Decimal
import logging
from typing import Any, Mapping, Optional

from enums import CartAction
from exceptions import ValidationError
from models import CartItem
from models import CartSnapshot
from models import CartState
from models import Coupon
from models import identity_key
import money
import pydantic

logger = logging.getLogger(__name__)

EMPTY_CART = CartState()


def _matches(
    item: CartItem, product_id: str, selected_options: Optional[dict[str, str]]
) -> bool:
  return item.identity_key == identity_key(product_id, selected_options)


def add_item(state: CartState, item: CartItem) -> CartState:
  """Adds `item`, merging quantities with an existing line of the same key."""
  items = list(state.items)
  for index, existing in enumerate(items):
    if existing.identity_key == item.identity_key:
      items[index] = existing.model_copy(
          update={"quantity": existing.quantity + item.quantity}
      )
      break
  else:
    items.append(item)
  return state.model_copy(update={"items": tuple(items), "error": None})


def remove_item(
    state: CartState,
    product_id: str,
    selected_options: Optional[dict[str, str]] = None,
) -> CartState:
  items = tuple(
      item
      for item in state.items
      if not _matches(item, product_id, selected_options)
  )
  return state.model_copy(update={"items": items, "error": None})


def update_quantity(
    state: CartState,
    product_id: str,
    selected_options: Optional[dict[str, str]],
    quantity: int,
) -> CartState:
  """Sets a line's quantity, clamped at zero. Zero removes the line."""
  quantity = max(0, quantity)
  items = []
  for item in state.items:
    if _matches(item, product_id, selected_options):
      if quantity == 0:
        continue
      item = item.model_copy(update={"quantity": quantity})
    items.append(item)
  return state.model_copy(update={"items": tuple(items), "error": None})


def apply_coupon(state: CartState, coupon: Coupon) -> CartState:
  return state.model_copy(update={"applied_coupon": coupon, "error": None})


def remove_coupon(state: CartState) -> CartState:
  return state.model_copy(update={"applied_coupon": None, "error": None})


def update_shipping(state: CartState, cost: Decimal) -> CartState:
  return state.model_copy(
      update={"shipping_cost": max(Decimal(0), cost), "error": None}
  )


def clear(state: CartState) -> CartState:
  """Empties the cart, keeping only the drawer-open flag."""
  return CartState(is_open=state.is_open)


def toggle_cart(state: CartState, is_open: Optional[bool] = None) -> CartState:
  if is_open is None:
    is_open = not state.is_open
  return state.model_copy(update={"is_open": is_open})


def load_cart(state: CartState, snapshot: CartSnapshot) -> CartState:
  """Replaces cart contents with a persisted snapshot."""
  return state.model_copy(
      update={
          "items": tuple(snapshot.items),
          "applied_coupon": snapshot.applied_coupon,
          "shipping_cost": snapshot.shipping_cost,
          "error": None,
      }
  )


def set_error(state: CartState, message: str) -> CartState:
  return state.model_copy(update={"error": message})


def clear_error(state: CartState) -> CartState:
  return state.model_copy(update={"error": None})


def get_item_quantity(
    state: CartState,
    product_id: str,
    selected_options: Optional[dict[str, str]] = None,
) -> int:
  for item in state.items:
    if _matches(item, product_id, selected_options):
      return item.quantity
  return 0


def is_in_cart(
    state: CartState,
    product_id: str,
    selected_options: Optional[dict[str, str]] = None,
) -> bool:
  return any(
      _matches(item, product_id, selected_options) for item in state.items
  )


# --- Untrusted input ---


def _describe(error: pydantic.ValidationError) -> str:
  first = error.errors()[0]
  location = ".".join(str(part) for part in first.get("loc", ()))
  if location:
    return f"{location}: {first['msg']}"
  return first["msg"]


def parse_item(raw: Any) -> CartItem:
  """Validates a raw cart item payload.

  Raises:
    ValidationError: If the payload is not a valid cart item.
  """
  if isinstance(raw, CartItem):
    return raw
  try:
    return CartItem.model_validate(raw)
  except pydantic.ValidationError as e:
    raise ValidationError(f"Invalid cart item: {_describe(e)}", "item") from e


def parse_coupon(raw: Any) -> Coupon:
  """Validates a raw coupon payload.

  Raises:
    ValidationError: If the payload is not a valid coupon.
  """
  if isinstance(raw, Coupon):
    return raw
  try:
    return Coupon.model_validate(raw)
  except pydantic.ValidationError as e:
    raise ValidationError(f"Invalid coupon: {_describe(e)}", "coupon") from e


def parse_quantity(raw: Any) -> int:
  if isinstance(raw, bool):
    raise ValidationError("Quantity must be an integer", "quantity")
  try:
    return int(raw)
  except (TypeError, ValueError) as e:
    raise ValidationError("Quantity must be an integer", "quantity") from e


def parse_amount(raw: Any) -> Decimal:
  try:
    return money.to_decimal(raw)
  except ValueError as e:
    raise ValidationError(str(e), "amount") from e


def _mapping(action: CartAction, payload: Any) -> Mapping[str, Any]:
  if not isinstance(payload, Mapping):
    raise ValidationError(f"{action.value} expects an object payload")
  return payload


def _options(payload: Mapping[str, Any]) -> dict[str, str]:
  options = payload.get("selectedOptions", payload.get("selected_options"))
  if options is None:
    return {}
  if not isinstance(options, Mapping):
    raise ValidationError("selectedOptions must be an object", "options")
  return {str(k): str(v) for k, v in options.items()}


def _product_id(payload: Mapping[str, Any]) -> str:
  product_id = payload.get("productId", payload.get("id"))
  if not product_id:
    raise ValidationError("productId is required", "productId")
  return str(product_id)


def _reduce(state: CartState, action: CartAction, payload: Any) -> CartState:
  if action == CartAction.ADD_ITEM:
    return add_item(state, parse_item(payload))
  if action == CartAction.REMOVE_ITEM:
    payload = _mapping(action, payload)
    return remove_item(state, _product_id(payload), _options(payload))
  if action == CartAction.UPDATE_QUANTITY:
    payload = _mapping(action, payload)
    return update_quantity(
        state,
        _product_id(payload),
        _options(payload),
        parse_quantity(payload.get("quantity")),
    )
  if action == CartAction.APPLY_COUPON:
    return apply_coupon(state, parse_coupon(payload))
  if action == CartAction.REMOVE_COUPON:
    return remove_coupon(state)
  if action == CartAction.UPDATE_SHIPPING:
    return update_shipping(state, parse_amount(payload))
  if action == CartAction.CLEAR_CART:
    return clear(state)
  if action == CartAction.TOGGLE_CART:
    if payload is not None and not isinstance(payload, bool):
      raise ValidationError("TOGGLE_CART expects a boolean", "isOpen")
    return toggle_cart(state, payload)
  if action == CartAction.CLEAR_ERROR:
    return clear_error(state)
  if action == CartAction.LOAD_CART:
    try:
      snapshot = CartSnapshot.model_validate(payload or {})
    except pydantic.ValidationError as e:
      raise ValidationError(f"Invalid cart: {_describe(e)}", "cart") from e
    return load_cart(state, snapshot)
  return state


def dispatch(
    state: CartState, action: CartAction | str, payload: Any = None
) -> CartState:
  """Applies an action with a raw payload, recovering from bad input.

  Args:
    state: The current cart state.
    action: A `CartAction` (or its string value).
    payload: The action payload, as received from the caller.

  Returns:
    The next state. Malformed payloads leave the cart unchanged and set
    `error`; unknown actions return `state` as is.
  """
  try:
    action = CartAction(action)
  except ValueError:
    logger.warning("Ignoring unknown cart action %r", action)
    return state
  try:
    return _reduce(state, action, payload)
  except ValidationError as e:
    logger.info("Rejected %s: %s", action.value, e.message)
    return set_error(state, e.message)
