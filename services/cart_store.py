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

"""Persistence adapters for the client-side cart.

Local stores are synchronous and authoritative. The remote store mirrors the
cart to the storefront's `/api/cart` endpoint; every failure there surfaces as
`SyncError` so the caller can degrade to local-only persistence.
"""

from decimal import Decimal
import logging
import os
import tempfile
from typing import Optional, Protocol

from exceptions import SyncError
import httpx
from models import CartSnapshot
from models import CouponValidationRequest
from models import CouponValidationResponse
import pydantic

logger = logging.getLogger(__name__)


class CartStore(Protocol):
  """Local durable storage for a cart snapshot."""

  def load(self) -> Optional[CartSnapshot]:
    ...

  def save(self, snapshot: CartSnapshot) -> None:
    ...


class MemoryCartStore:
  """Keeps the serialized snapshot in memory."""

  def __init__(self, initial: Optional[CartSnapshot] = None):
    self._data: Optional[str] = None
    self.saves = 0
    if initial is not None:
      self._data = initial.model_dump_json(by_alias=True)

  def load(self) -> Optional[CartSnapshot]:
    if self._data is None:
      return None
    return CartSnapshot.model_validate_json(self._data)

  def save(self, snapshot: CartSnapshot) -> None:
    self._data = snapshot.model_dump_json(by_alias=True)
    self.saves += 1


class FileCartStore:
  """Stores the snapshot as a JSON file, replaced atomically on save."""

  def __init__(self, path: str):
    self.path = path

  def load(self) -> Optional[CartSnapshot]:
    if not os.path.exists(self.path):
      return None
    try:
      with open(self.path, "r", encoding="utf-8") as f:
        return CartSnapshot.model_validate_json(f.read())
    except (OSError, pydantic.ValidationError) as e:
      logger.warning("Discarding unreadable cart at %s: %s", self.path, e)
      return None

  def save(self, snapshot: CartSnapshot) -> None:
    directory = os.path.dirname(os.path.abspath(self.path))
    fd, tmp_path = tempfile.mkstemp(dir=directory, suffix=".tmp")
    try:
      with os.fdopen(fd, "w", encoding="utf-8") as f:
        f.write(snapshot.model_dump_json(by_alias=True))
      os.replace(tmp_path, self.path)
    except OSError:
      if os.path.exists(tmp_path):
        os.remove(tmp_path)
      raise


class RemoteCartStore:
  """Mirrors the cart to the storefront backend for a signed-in shopper."""

  def __init__(self, client: httpx.AsyncClient, token: str):
    self.client = client
    self.token = token

  def _headers(self) -> dict[str, str]:
    return {
        "Authorization": f"Bearer {self.token}",
        "Content-Type": "application/json",
    }

  async def load(self) -> Optional[CartSnapshot]:
    """Fetches the stored cart.

    Returns:
      The stored snapshot, or None if the backend has no cart for the user.

    Raises:
      SyncError: If the backend is unreachable or returns an unexpected
        response.
    """
    try:
      response = await self.client.get("/api/cart", headers=self._headers())
    except httpx.HTTPError as e:
      raise SyncError(f"Failed to load cart: {e}") from e
    if response.status_code == 404:
      return None
    if response.status_code != 200:
      raise SyncError(f"Failed to load cart: HTTP {response.status_code}")
    try:
      return CartSnapshot.model_validate_json(response.content)
    except pydantic.ValidationError as e:
      raise SyncError(f"Failed to load cart: unexpected response {e}") from e

  async def save(self, snapshot: CartSnapshot) -> None:
    """Upserts the cart.

    Raises:
      SyncError: If the backend is unreachable or rejects the cart.
    """
    try:
      response = await self.client.put(
          "/api/cart",
          headers=self._headers(),
          content=snapshot.model_dump_json(by_alias=True),
      )
    except httpx.HTTPError as e:
      raise SyncError(f"Failed to sync cart: {e}") from e
    if response.status_code not in (200, 204):
      raise SyncError(f"Failed to sync cart: HTTP {response.status_code}")


class CouponClient:
  """Client for the storefront coupon validation endpoint."""

  def __init__(self, client: httpx.AsyncClient, token: Optional[str] = None):
    self.client = client
    self.token = token

  async def validate(
      self, code: str, cart_total: Decimal
  ) -> CouponValidationResponse:
    """Asks the backend whether `code` applies to a cart of `cart_total`.

    Raises:
      SyncError: If the backend is unreachable or the response is malformed.
    """
    headers = {"Content-Type": "application/json"}
    if self.token:
      headers["Authorization"] = f"Bearer {self.token}"
    body = CouponValidationRequest(code=code, cart_total=cart_total)
    try:
      response = await self.client.post(
          "/api/coupons/validate",
          headers=headers,
          content=body.model_dump_json(by_alias=True),
      )
    except httpx.HTTPError as e:
      raise SyncError(f"Failed to validate coupon: {e}") from e
    try:
      return CouponValidationResponse.model_validate_json(response.content)
    except pydantic.ValidationError as e:
      raise SyncError(
          f"Failed to validate coupon: HTTP {response.status_code}"
      ) from e
