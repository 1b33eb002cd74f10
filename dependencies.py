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

"""FastAPI dependencies for the storefront server.

This module contains dependency injection logic for FastAPI endpoints,
including:
- Bearer token authentication (shopper and admin).
- The Idempotency-Key header.
- Service instantiation (PaymentService, OrderService, CouponService).
- Database session management (Products and Transactions DBs).
"""

from typing import AsyncGenerator, Optional

import config
from config import ProviderConfig
import db
from exceptions import AuthenticationError
from exceptions import PermissionDeniedError
from fastapi import Depends
from fastapi import Header
import httpx
from services.coupon_service import CouponService
from services.order_service import OrderNotifier
from services.order_service import OrderService
from services.payment_gateway import RazorpayGateway
from services.payment_service import PaymentService
from sqlalchemy.ext.asyncio import AsyncSession

ADMIN_ROLE = "admin"


async def get_products_db() -> AsyncGenerator[AsyncSession, None]:
  """Dependency provider for Products DB session."""
  async with db.manager.products_session_factory() as session:
    yield session


async def get_transactions_db() -> AsyncGenerator[AsyncSession, None]:
  """Dependency provider for Transactions DB session."""
  async with db.manager.transactions_session_factory() as session:
    yield session


async def idempotency_header(
    idempotency_key: Optional[str] = Header(None),
) -> Optional[str]:
  """Extracts the optional Idempotency-Key header."""
  return idempotency_key


async def get_api_token(
    authorization: Optional[str] = Header(None),
    session: AsyncSession = Depends(get_transactions_db),
) -> db.ApiToken:
  """Resolves the `Authorization: Bearer <token>` header.

  Raises:
    AuthenticationError: If the header is missing, malformed or unknown.
  """
  if not authorization:
    raise AuthenticationError()
  scheme, _, token = authorization.partition(" ")
  if scheme.lower() != "bearer" or not token.strip():
    raise AuthenticationError("Invalid authorization header")
  record = await db.get_api_token(session, token.strip())
  if record is None:
    raise AuthenticationError("Invalid or expired token")
  return record


async def get_current_user(
    token: db.ApiToken = Depends(get_api_token),
) -> str:
  """Returns the authenticated user id."""
  return token.user_id


async def require_admin(
    token: db.ApiToken = Depends(get_api_token),
) -> str:
  """Returns the authenticated user id if it belongs to an admin."""
  if token.role != ADMIN_ROLE:
    raise PermissionDeniedError("Admin access required")
  return token.user_id


def get_provider_config() -> ProviderConfig:
  """Provider credentials; missing ones fail the request with a 500."""
  return config.validate_provider_config()


async def get_provider_client() -> AsyncGenerator[httpx.AsyncClient, None]:
  """HTTP client for the payment provider's REST API."""
  async with httpx.AsyncClient(
      base_url=config.FLAGS.provider_base_url,
      timeout=config.FLAGS.provider_timeout,
  ) as client:
    yield client


def get_payment_service(
    provider_config: ProviderConfig = Depends(get_provider_config),
    client: httpx.AsyncClient = Depends(get_provider_client),
) -> PaymentService:
  """Dependency provider for PaymentService."""
  gateway = RazorpayGateway(
      provider_config.key_id, provider_config.key_secret, client
  )
  return PaymentService(gateway, provider_config)


def get_notifier() -> OrderNotifier:
  """Dependency provider for the order event notifier."""
  return OrderNotifier(config.FLAGS.notification_webhook_url)


def get_coupon_service(
    transactions_session: AsyncSession = Depends(get_transactions_db),
) -> CouponService:
  """Dependency provider for CouponService."""
  return CouponService(transactions_session)


def get_order_service(
    payment_service: PaymentService = Depends(get_payment_service),
    notifier: OrderNotifier = Depends(get_notifier),
    products_session: AsyncSession = Depends(get_products_db),
    transactions_session: AsyncSession = Depends(get_transactions_db),
) -> OrderService:
  """Dependency provider for OrderService."""
  free_shipping_threshold, flat_shipping_cost = config.get_shipping_policy()
  return OrderService(
      payment_service,
      products_session,
      transactions_session,
      notifier=notifier,
      tax_rate=config.get_tax_rate(),
      free_shipping_threshold=free_shipping_threshold,
      flat_shipping_cost=flat_shipping_cost,
  )
