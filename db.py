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

"""Database management and persistence layer for the storefront server.

This module provides the schema definitions, database session management, and
asynchronous data access helpers used by the server. It utilizes SQLAlchemy with
SQLite (via aiosqlite) and separates the product catalog from transactional
data (inventory, carts, coupons, orders).

Key features include:
- `DatabaseManager`: Handles asynchronous engine initialization and session
  factory setup for both 'Products' and 'Transactions' databases.
- WAL Mode: Enables SQLite Write-Ahead Logging so the redirect handler and the
  webhook handler can touch the same order concurrently.
- Conditional transitions: order and payment state changes are single
  `UPDATE ... WHERE status = <expected>` statements, so only one of several
  racing callers observes a successful transition.
"""

import datetime
import logging
from typing import Any
from typing import Dict
from typing import Iterable
from typing import List
from typing import Optional

from sqlalchemy import Boolean
from sqlalchemy import Column
from sqlalchemy import func
from sqlalchemy import Integer
from sqlalchemy import JSON
from sqlalchemy import select
from sqlalchemy import String
from sqlalchemy import text
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncEngine
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.orm import sessionmaker

logger = logging.getLogger(__name__)

ProductBase = declarative_base()
TransactionBase = declarative_base()


def utc_now() -> str:
  return datetime.datetime.now(datetime.timezone.utc).isoformat()


class DatabaseManager:
  """Manages database engines and sessions without using global variables."""

  def __init__(self) -> None:
    self.products_engine: Optional[AsyncEngine] = None
    self.transactions_engine: Optional[AsyncEngine] = None
    self.products_session_factory: Optional[sessionmaker] = None
    self.transactions_session_factory: Optional[sessionmaker] = None

  async def init_dbs(self, products_path: str, transactions_path: str) -> None:
    """Initializes database engines and creates tables."""
    self.products_engine, self.products_session_factory = await _open(
        products_path, ProductBase
    )
    # Transactions DB includes inventory, carts and orders.
    self.transactions_engine, self.transactions_session_factory = await _open(
        transactions_path, TransactionBase
    )

  async def close(self) -> None:
    """Closes all database engines."""
    if self.products_engine:
      await self.products_engine.dispose()
    if self.transactions_engine:
      await self.transactions_engine.dispose()


async def _open(path: str, base) -> tuple[AsyncEngine, sessionmaker]:
  engine = create_async_engine(f"sqlite+aiosqlite:///{path}", echo=False)

  async with engine.connect() as conn:
    await conn.execute(text("PRAGMA journal_mode=WAL"))

  session_factory = sessionmaker(
      engine, expire_on_commit=False, class_=AsyncSession
  )

  async with engine.begin() as conn:
    await conn.run_sync(base.metadata.create_all)
  return engine, session_factory


# Global manager instance (to be initialized via lifespan)
manager = DatabaseManager()


class Product(ProductBase):
  __tablename__ = "products"

  id = Column(String, primary_key=True)
  name = Column(String)
  price = Column(Integer)  # Price in paise
  image_url = Column(String, nullable=True)
  category = Column(String, nullable=True)
  metal_type = Column(String, nullable=True)


class Inventory(TransactionBase):
  __tablename__ = "inventory"

  product_id = Column(String, primary_key=True)
  quantity = Column(Integer, default=0)


class Coupon(TransactionBase):
  __tablename__ = "coupons"

  code = Column(String, primary_key=True)  # Stored upper-case
  type = Column(String)  # 'percentage' or 'fixed'
  value = Column(Integer)  # Percentage (e.g., 10) or amount in paise
  description = Column(String, nullable=True)
  min_cart_total = Column(Integer, nullable=True)  # In paise
  active = Column(Boolean, default=True)


class Cart(TransactionBase):
  __tablename__ = "carts"

  user_id = Column(String, primary_key=True)
  # Versioned CartSnapshot document
  data = Column(JSON)
  updated_at = Column(String)


class Order(TransactionBase):
  __tablename__ = "orders"

  id = Column(String, primary_key=True)
  order_number = Column(String, unique=True)
  user_id = Column(String, index=True)
  provider_order_id = Column(String, unique=True, nullable=True)
  payment_id = Column(String, nullable=True, index=True)
  refund_id = Column(String, nullable=True)
  order_status = Column(String, index=True)
  payment_status = Column(String, index=True)
  # Frozen line items, money and billing address
  data = Column(JSON)
  created_at = Column(String)
  updated_at = Column(String)


class ApiToken(TransactionBase):
  __tablename__ = "api_tokens"

  token = Column(String, primary_key=True)
  user_id = Column(String, index=True)
  role = Column(String, default="customer")  # "customer" or "admin"


class RequestLog(TransactionBase):
  __tablename__ = "request_logs"

  id = Column(Integer, primary_key=True, autoincrement=True)
  timestamp = Column(String)
  method = Column(String)
  url = Column(String)
  order_id = Column(String, nullable=True)
  payload = Column(JSON, nullable=True)


class IdempotencyRecord(TransactionBase):
  __tablename__ = "idempotency_records"

  key = Column(String, primary_key=True)
  request_hash = Column(String)
  response_status = Column(Integer)
  response_body = Column(JSON)
  created_at = Column(String)


# --- Data Access Helpers ---


async def get_products_by_ids(
    session: AsyncSession, product_ids: Iterable[str]
) -> Dict[str, Product]:
  """Retrieves multiple products in a single query, keyed by ID."""
  result = await session.execute(
      select(Product).where(Product.id.in_(list(product_ids)))
  )
  return {p.id: p for p in result.scalars().all()}


async def get_inventory(
    session: AsyncSession, product_id: str
) -> Optional[int]:
  """Retrieves the inventory quantity for a product."""
  result = await session.execute(
      select(Inventory.quantity).where(Inventory.product_id == product_id)
  )
  return result.scalar_one_or_none()


async def reserve_stock(
    session: AsyncSession, product_id: str, quantity: int
) -> bool:
  """Atomically decrements inventory if sufficient stock exists."""
  stmt = (
      update(Inventory)
      .where(Inventory.product_id == product_id)
      .where(Inventory.quantity >= quantity)
      .values(quantity=Inventory.quantity - quantity)
  )
  result = await session.execute(stmt)
  return result.rowcount > 0


async def restore_stock(
    session: AsyncSession, product_id: str, quantity: int
) -> None:
  """Returns previously reserved units to inventory."""
  await session.execute(
      update(Inventory)
      .where(Inventory.product_id == product_id)
      .values(quantity=Inventory.quantity + quantity)
  )


async def get_coupon(session: AsyncSession, code: str) -> Optional[Coupon]:
  """Retrieves a coupon by code, case-insensitively.

  Args:
    session: The database session to use.
    code: The coupon code to look up.

  Returns:
    The Coupon object if found, otherwise None.
  """
  return await session.get(Coupon, code.strip().upper())


async def get_cart(
    session: AsyncSession, user_id: str
) -> Optional[Dict[str, Any]]:
  """Retrieves the stored cart document for a user."""
  result = await session.get(Cart, user_id)
  if result:
    return result.data
  return None


async def save_cart(
    session: AsyncSession, user_id: str, cart_obj: Dict[str, Any]
) -> None:
  """Saves or replaces the cart document for a user."""
  existing = await session.get(Cart, user_id)
  if existing:
    existing.data = cart_obj
    existing.updated_at = utc_now()
  else:
    session.add(Cart(user_id=user_id, data=cart_obj, updated_at=utc_now()))


async def get_order(session: AsyncSession, order_id: str) -> Optional[Order]:
  """Retrieves an order row by ID."""
  return await session.get(Order, order_id)


async def get_order_by_provider_order_id(
    session: AsyncSession, provider_order_id: str
) -> Optional[Order]:
  """Retrieves the order created for a provider order."""
  result = await session.execute(
      select(Order).where(Order.provider_order_id == provider_order_id)
  )
  return result.scalar_one_or_none()


async def get_order_by_payment_id(
    session: AsyncSession, payment_id: str
) -> Optional[Order]:
  """Retrieves the order a provider payment was recorded against."""
  result = await session.execute(
      select(Order).where(Order.payment_id == payment_id)
  )
  return result.scalars().first()


async def list_orders(
    session: AsyncSession, user_id: str, offset: int, limit: int
) -> List[Order]:
  """Lists a user's orders, newest first."""
  result = await session.execute(
      select(Order)
      .where(Order.user_id == user_id)
      .order_by(Order.created_at.desc())
      .offset(offset)
      .limit(limit)
  )
  return list(result.scalars().all())


async def count_orders(session: AsyncSession, user_id: str) -> int:
  result = await session.execute(
      select(func.count()).select_from(Order).where(Order.user_id == user_id)
  )
  return result.scalar_one()


async def add_order(session: AsyncSession, order: Order) -> None:
  """Adds a new order row."""
  now = utc_now()
  order.created_at = order.created_at or now
  order.updated_at = now
  session.add(order)


async def transition_payment_status(
    session: AsyncSession,
    order_id: str,
    from_statuses: Iterable[str],
    to_status: str,
    **values: Any,
) -> bool:
  """Moves an order's payment status if it is in one of `from_statuses`.

  Args:
    session: The database session to use.
    order_id: The order to update.
    from_statuses: The payment statuses the order may currently have.
    to_status: The new payment status.
    **values: Extra columns to set in the same statement.

  Returns:
    True if this call performed the transition, False if the order was in
    none of `from_statuses` (for example, another caller already moved it).
  """
  stmt = (
      update(Order)
      .where(Order.id == order_id)
      .where(Order.payment_status.in_(list(from_statuses)))
      .values(payment_status=to_status, updated_at=utc_now(), **values)
      .execution_options(synchronize_session=False)
  )
  result = await session.execute(stmt)
  return result.rowcount > 0


async def transition_order_status(
    session: AsyncSession,
    order_id: str,
    from_statuses: Iterable[str],
    to_status: str,
) -> bool:
  """Moves an order's lifecycle status if it is in one of `from_statuses`."""
  stmt = (
      update(Order)
      .where(Order.id == order_id)
      .where(Order.order_status.in_(list(from_statuses)))
      .values(order_status=to_status, updated_at=utc_now())
      .execution_options(synchronize_session=False)
  )
  result = await session.execute(stmt)
  return result.rowcount > 0


async def get_api_token(
    session: AsyncSession, token: str
) -> Optional[ApiToken]:
  """Retrieves the token record, including the user's role."""
  return await session.get(ApiToken, token)


async def log_request(
    session: AsyncSession,
    method: str,
    url: str,
    order_id: Optional[str] = None,
    payload: Optional[Dict[str, Any]] = None,
) -> None:
  """Logs an HTTP request to the database."""
  log_entry = RequestLog(
      timestamp=utc_now(),
      method=method,
      url=url,
      order_id=order_id,
      payload=payload,
  )
  session.add(log_entry)


async def get_idempotency_record(
    session: AsyncSession, key: str
) -> Optional[IdempotencyRecord]:
  """Retrieves an idempotency record by key."""
  return await session.get(IdempotencyRecord, key)


async def save_idempotency_record(
    session: AsyncSession,
    key: str,
    request_hash: str,
    response_status: int,
    response_body: Dict[str, Any],
) -> None:
  """Saves a new idempotency record."""
  record = IdempotencyRecord(
      key=key,
      request_hash=request_hash,
      response_status=response_status,
      response_body=response_body,
      created_at=utc_now(),
  )
  session.add(record)
