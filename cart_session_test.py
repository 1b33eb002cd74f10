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

"""Tests for the cart session, its stores and backend sync."""

import asyncio
from decimal import Decimal
import json
import os
from typing import Optional

from absl.testing import absltest
import httpx
from models import CartItem
from models import CartSnapshot
from services.cart_session import CartSession
from services.cart_store import CouponClient
from services.cart_store import FileCartStore
from services.cart_store import MemoryCartStore
from services.cart_store import RemoteCartStore

_TOKEN = "token_1"

_RING = {
    "productId": "ring",
    "name": "Solitaire Ring",
    "unitPrice": 100,
    "quantity": 1,
    "selectedOptions": {"size": "7"},
}


class FakeStorefront:
  """In-memory stand-in for the cart and coupon endpoints."""

  def __init__(self, stored: Optional[dict] = None, down: bool = False):
    self.stored = stored
    self.down = down
    self.puts: list[dict] = []

  def handler(self, request: httpx.Request) -> httpx.Response:
    if request.headers.get("Authorization") != f"Bearer {_TOKEN}":
      return httpx.Response(401, json={"detail": "Authentication required"})
    if self.down:
      return httpx.Response(503, json={"detail": "unavailable"})
    if request.url.path == "/api/cart" and request.method == "GET":
      if self.stored is None:
        return httpx.Response(404, json={"detail": "Cart not found"})
      return httpx.Response(200, json=self.stored)
    if request.url.path == "/api/cart" and request.method == "PUT":
      self.stored = json.loads(request.content)
      self.puts.append(self.stored)
      return httpx.Response(200, json=self.stored)
    if request.url.path == "/api/coupons/validate":
      body = json.loads(request.content)
      if body["code"] == "WELCOME10":
        return httpx.Response(
            200,
            json={
                "valid": True,
                "coupon": {
                    "code": "WELCOME10",
                    "type": "percentage",
                    "value": "10",
                },
                "message": "Coupon applied successfully!",
            },
        )
      return httpx.Response(
          200, json={"valid": False, "message": "Invalid coupon code"}
      )
    return httpx.Response(404, json={"detail": "Not found"})

  def client(self) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        transport=httpx.MockTransport(self.handler), base_url="http://shop.test"
    )


def _snapshot(*items: dict) -> CartSnapshot:
  return CartSnapshot(items=[CartItem.model_validate(i) for i in items])


class LocalSessionTest(absltest.TestCase):

  def test_each_mutation_is_saved_locally(self) -> None:
    store = MemoryCartStore()
    session = CartSession(store)
    asyncio.run(session.start())

    result = session.add_item(_RING)
    self.assertTrue(result.success)
    self.assertEqual(result.message, "Item added to cart!")
    session.update_quantity("ring", 3, {"size": "7"})

    self.assertEqual(store.saves, 2)
    self.assertEqual(store.load().items[0].quantity, 3)
    self.assertEqual(session.totals.subtotal, Decimal(300))

  def test_rejected_mutation_is_not_saved(self) -> None:
    store = MemoryCartStore()
    session = CartSession(store)

    result = session.add_item({"productId": "ring", "unitPrice": "free"})

    self.assertFalse(result.success)
    self.assertEqual(result.message, session.state.error)
    self.assertEqual(store.saves, 0)

  def test_start_loads_local_cart(self) -> None:
    store = MemoryCartStore(_snapshot(_RING))
    session = CartSession(store)

    state = asyncio.run(session.start())

    self.assertTrue(session.is_in_cart("ring", {"size": "7"}))
    self.assertEqual(state.computed.total_items, 1)

  def test_toggle_is_not_persisted(self) -> None:
    store = MemoryCartStore()
    session = CartSession(store)
    session.toggle_cart()
    self.assertTrue(session.state.is_open)
    self.assertEqual(store.saves, 0)

  def test_local_write_failure_keeps_mutation(self) -> None:
    missing_dir = os.path.join(self.create_tempdir().full_path, "missing")
    session = CartSession(FileCartStore(os.path.join(missing_dir, "cart.json")))

    result = session.add_item(_RING)

    self.assertTrue(result.success)
    self.assertTrue(session.is_in_cart("ring", {"size": "7"}))
    self.assertLen(session.sync_errors, 1)
    self.assertStartsWith(
        session.sync_errors[0].message, "Failed to save cart locally"
    )
    self.assertFalse(os.path.exists(missing_dir))

  def test_coupon_code_without_backend(self) -> None:
    session = CartSession(MemoryCartStore())
    result = asyncio.run(session.apply_coupon_code("WELCOME10"))
    self.assertFalse(result.success)
    self.assertEqual(result.message, "Coupon validation is unavailable")


class SyncedSessionTest(absltest.TestCase):

  def test_mutations_are_mirrored_to_backend(self) -> None:
    backend = FakeStorefront()

    async def run() -> CartSession:
      async with backend.client() as client:
        session = CartSession(
            MemoryCartStore(), RemoteCartStore(client, _TOKEN)
        )
        await session.start()
        session.add_item(_RING)
        session.add_item(_RING)
        await session.wait_for_sync()
        return session

    session = asyncio.run(run())
    self.assertEmpty(session.sync_errors)
    self.assertLen(backend.puts, 2)
    # Syncs are unordered; each carries the full cart at its mutation.
    quantities = sorted(put["items"][0]["quantity"] for put in backend.puts)
    self.assertEqual(quantities, [1, 2])
    self.assertEqual(backend.stored["items"][0]["productId"], "ring")

  def test_backend_failure_degrades_to_local(self) -> None:
    backend = FakeStorefront(down=True)
    store = MemoryCartStore(_snapshot(_RING))

    async def run() -> CartSession:
      async with backend.client() as client:
        session = CartSession(store, RemoteCartStore(client, _TOKEN))
        await session.start()
        result = session.add_item({**_RING, "selectedOptions": {"size": "8"}})
        self.assertTrue(result.success)
        await session.wait_for_sync()
        return session

    session = asyncio.run(run())
    # One failure loading the cart, one mirroring the mutation.
    self.assertLen(session.sync_errors, 2)
    self.assertEqual(session.sync_errors[0].code, "SYNC_FAILED")
    self.assertLen(store.load().items, 2)
    self.assertLen(session.state.items, 2)

  def test_start_prefers_backend_cart(self) -> None:
    earring = {"productId": "earring", "unitPrice": "50", "quantity": 2}
    backend = FakeStorefront(
        stored=_snapshot(earring).model_dump(mode="json", by_alias=True)
    )

    async def run() -> CartSession:
      async with backend.client() as client:
        session = CartSession(
            MemoryCartStore(_snapshot(_RING)), RemoteCartStore(client, _TOKEN)
        )
        await session.start()
        return session

    session = asyncio.run(run())
    self.assertFalse(session.is_in_cart("ring", {"size": "7"}))
    self.assertEqual(session.get_item_quantity("earring"), 2)

  def test_malformed_backend_cart_falls_back(self) -> None:
    backend = FakeStorefront(stored={"version": 99, "items": "nope"})

    async def run() -> CartSession:
      async with backend.client() as client:
        session = CartSession(
            MemoryCartStore(_snapshot(_RING)), RemoteCartStore(client, _TOKEN)
        )
        await session.start()
        return session

    session = asyncio.run(run())
    self.assertLen(session.sync_errors, 1)
    self.assertTrue(session.is_in_cart("ring", {"size": "7"}))

  def test_mutation_outside_event_loop_stays_local(self) -> None:
    store = MemoryCartStore()
    client = FakeStorefront().client()
    session = CartSession(store, RemoteCartStore(client, _TOKEN))

    result = session.add_item(_RING)

    self.assertTrue(result.success)
    self.assertEqual(store.saves, 1)
    self.assertLen(session.sync_errors, 1)
    asyncio.run(client.aclose())

  def test_apply_coupon_code(self) -> None:
    backend = FakeStorefront()

    async def run() -> tuple:
      async with backend.client() as client:
        session = CartSession(
            MemoryCartStore(),
            RemoteCartStore(client, _TOKEN),
            CouponClient(client, _TOKEN),
        )
        session.add_item({**_RING, "unitPrice": 1000})
        rejected = await session.apply_coupon_code("BOGUS")
        accepted = await session.apply_coupon_code("WELCOME10")
        await session.wait_for_sync()
        return session, rejected, accepted

    session, rejected, accepted = asyncio.run(run())
    self.assertFalse(rejected.success)
    self.assertEqual(rejected.message, "Invalid coupon code")
    self.assertTrue(accepted.success)
    self.assertEqual(session.state.applied_coupon.code, "WELCOME10")
    self.assertEqual(session.totals.discount_amount, Decimal(100))
    self.assertIsNone(session.state.error)


class FileCartStoreTest(absltest.TestCase):

  def test_save_and_load(self) -> None:
    path = os.path.join(self.create_tempdir().full_path, "cart.json")
    store = FileCartStore(path)
    self.assertIsNone(store.load())

    store.save(_snapshot(_RING))

    loaded = store.load()
    self.assertEqual(loaded.items[0].product_id, "ring")
    self.assertEqual(loaded.items[0].selected_options, {"size": "7"})

  def test_unreadable_file_loads_as_empty(self) -> None:
    path = self.create_tempfile("cart.json", content="{not json").full_path
    self.assertIsNone(FileCartStore(path).load())


if __name__ == "__main__":
  absltest.main()
