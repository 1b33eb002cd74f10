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

"""Database initialization script for the storefront server.

This script imports the catalog, inventory, coupons and API tokens from CSV
files into the configured SQLite databases. It clears any existing data in
those tables before populating them with the new dataset. Prices and fixed
coupon values are in minor units (paise).

Usage:
  python import_csv.py --products_db_path=... --transactions_db_path=...
  --data_dir=...
"""

import asyncio
import csv
import logging
import os
from absl import app as absl_app
from absl import flags
import db
from db import ApiToken
from db import Coupon
from db import Inventory
from db import Product
from sqlalchemy import delete

FLAGS = flags.FLAGS
flags.DEFINE_string("products_db_path", "products.db", "Path to products DB")
flags.DEFINE_string(
    "transactions_db_path", "transactions.db", "Path to transactions DB"
)
flags.DEFINE_string(
    "data_dir",
    os.path.join(os.path.dirname(os.path.abspath(__file__)), "data"),
    "Directory containing the seed CSV files",
)

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def _read_rows(data_dir: str, name: str) -> list[dict[str, str]]:
  path = os.path.join(data_dir, name)
  if not os.path.exists(path):
    logger.info("No %s found; skipping", name)
    return []
  with open(path, "r") as f:
    return list(csv.DictReader(f))


def _optional_int(value: str) -> int | None:
  return int(value) if value else None


async def import_csv_data() -> None:
  """Reads CSV files and populates the database."""
  data_dir = FLAGS.data_dir
  # Ensure tables exist
  await db.manager.init_dbs(FLAGS.products_db_path, FLAGS.transactions_db_path)

  try:
    async with db.manager.products_session_factory() as session:
      logger.info("Clearing existing products...")
      await session.execute(delete(Product))

      logger.info("Importing Products from CSV...")
      session.add_all(
          Product(
              id=row["id"],
              name=row["name"],
              price=int(row["price"]),
              image_url=row.get("image_url") or None,
              category=row.get("category") or None,
              metal_type=row.get("metal_type") or None,
          )
          for row in _read_rows(data_dir, "products.csv")
      )
      await session.commit()

    async with db.manager.transactions_session_factory() as session:
      logger.info("Clearing existing inventory...")
      await session.execute(delete(Inventory))

      logger.info("Importing Inventory from CSV...")
      session.add_all(
          Inventory(product_id=row["product_id"], quantity=int(row["quantity"]))
          for row in _read_rows(data_dir, "inventory.csv")
      )

      logger.info("Clearing existing coupons...")
      await session.execute(delete(Coupon))

      logger.info("Importing Coupons from CSV...")
      session.add_all(
          Coupon(
              code=row["code"].strip().upper(),
              type=row["type"],
              value=int(row["value"]),
              description=row.get("description") or None,
              min_cart_total=_optional_int(row.get("min_cart_total")),
              active=row.get("active", "true").lower() != "false",
          )
          for row in _read_rows(data_dir, "coupons.csv")
      )

      logger.info("Clearing existing API tokens...")
      await session.execute(delete(ApiToken))

      logger.info("Importing API Tokens from CSV...")
      session.add_all(
          ApiToken(
              token=row["token"],
              user_id=row["user_id"],
              role=row.get("role") or "customer",
          )
          for row in _read_rows(data_dir, "api_tokens.csv")
      )
      await session.commit()

    logger.info("Database populated from CSVs.")
  finally:
    await db.manager.close()


def main(argv) -> None:
  """Main entry point for the CSV import script."""
  del argv
  asyncio.run(import_csv_data())


if __name__ == "__main__":
  absl_app.run(main)
