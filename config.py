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

"""Shared configuration and startup logic for the storefront server.

Runtime knobs are absl flags. Payment provider credentials come from the
environment and are never given defaults.
"""

import contextlib
import dataclasses
from decimal import Decimal
import logging
import os
from typing import Mapping, Optional

from absl import flags
import db
from exceptions import ProviderConfigError
from fastapi import FastAPI
import pricing

FLAGS = flags.FLAGS

logger = logging.getLogger(__name__)

SERVER_VERSION = "1.0.0"

KEY_ID_ENV = "PROVIDER_KEY_ID"
KEY_SECRET_ENV = "PROVIDER_KEY_SECRET"
WEBHOOK_SECRET_ENV = "PROVIDER_WEBHOOK_SECRET"

# Names used by earlier deployments of the storefront.
_LEGACY_ENV_NAMES = {
    KEY_ID_ENV: "RAZORPAY_KEY_ID",
    KEY_SECRET_ENV: "RAZORPAY_KEY_SECRET",
    WEBHOOK_SECRET_ENV: "RAZORPAY_WEBHOOK_SECRET",
}

# Define flags only if they haven't been defined yet (to avoid duplicates
# during tests or re-imports)
try:
  flags.DEFINE_string("products_db_path", None, "Path to products DB")
  flags.DEFINE_string("transactions_db_path", None, "Path to transactions DB")
  flags.DEFINE_integer("port", None, "Port to run the server on")
  flags.DEFINE_string(
      "tax_rate", str(pricing.TAX_RATE), "Tax rate applied at checkout"
  )
  flags.DEFINE_string(
      "free_shipping_threshold",
      str(pricing.DEFAULT_FREE_SHIPPING_THRESHOLD),
      "Subtotal above which shipping is free",
  )
  flags.DEFINE_string(
      "flat_shipping_cost",
      str(pricing.DEFAULT_FLAT_SHIPPING_COST),
      "Shipping charged below the free shipping threshold",
  )
  flags.DEFINE_string(
      "provider_base_url",
      "https://api.razorpay.com/v1",
      "Base URL of the payment provider REST API",
  )
  flags.DEFINE_float(
      "provider_timeout", 30.0, "Timeout in seconds for provider requests"
  )
  flags.DEFINE_string(
      "notification_webhook_url",
      None,
      "URL notified of order events (confirmation emails, fulfillment)",
  )
except flags.DuplicateFlagError:
  pass


@dataclasses.dataclass(frozen=True)
class ProviderConfig:
  key_id: str
  key_secret: str
  webhook_secret: Optional[str] = None


def _get_env(env: Mapping[str, str], name: str) -> Optional[str]:
  return env.get(name) or env.get(_LEGACY_ENV_NAMES[name]) or None


def validate_provider_config(
    env: Optional[Mapping[str, str]] = None,
) -> ProviderConfig:
  """Reads and validates the payment provider credentials.

  Args:
    env: Environment mapping to read from; defaults to `os.environ`.

  Returns:
    The provider configuration.

  Raises:
    ProviderConfigError: If the key id or key secret is missing.
  """
  env = os.environ if env is None else env
  key_id = _get_env(env, KEY_ID_ENV)
  key_secret = _get_env(env, KEY_SECRET_ENV)
  missing = [
      name
      for name, value in ((KEY_ID_ENV, key_id), (KEY_SECRET_ENV, key_secret))
      if not value
  ]
  if missing:
    logger.error("Missing payment provider configuration: %s", missing)
    raise ProviderConfigError(missing)
  return ProviderConfig(
      key_id=key_id,
      key_secret=key_secret,
      webhook_secret=_get_env(env, WEBHOOK_SECRET_ENV),
  )


def get_tax_rate() -> Decimal:
  return Decimal(FLAGS.tax_rate)


def get_shipping_policy() -> tuple[Decimal, Decimal]:
  """Returns (free_shipping_threshold, flat_shipping_cost)."""
  return (
      Decimal(FLAGS.free_shipping_threshold),
      Decimal(FLAGS.flat_shipping_cost),
  )


@contextlib.asynccontextmanager
async def lifespan(app: FastAPI):
  """Shared lifespan manager for initializing databases."""
  del app  # Unused.
  # In tests or if flags aren't set, these might be None, handled by caller
  if FLAGS.products_db_path and FLAGS.transactions_db_path:
    await db.manager.init_dbs(
        FLAGS.products_db_path, FLAGS.transactions_db_path
    )
  yield
  await db.manager.close()
