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


"""Utility script to dump inventory data.

This script reads the current product stock and crop listing quantities from
the configured SQLite database and outputs them to standard output in CSV
format.

Usage:
  python dump_inventory.py --database_path=...
"""

import asyncio
import csv
import sys

from absl import app as absl_app
from absl import flags
from db import CropListing
from db import Product
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.orm import sessionmaker

FLAGS = flags.FLAGS
flags.DEFINE_string("database_path", None, "Path to the marketplace DB")


async def dump_inventory():
  """Queries the database and prints current inventory levels."""
  if not FLAGS.database_path:
    print("Error: --database_path is required.")
    sys.exit(1)

  db_url = f"sqlite+aiosqlite:///{FLAGS.database_path}"
  engine = create_async_engine(db_url, echo=False)
  session_factory = sessionmaker(
      engine, expire_on_commit=False, class_=AsyncSession
  )

  async with session_factory() as session:
    writer = csv.writer(sys.stdout)
    writer.writerow(["kind", "id", "seller_id", "quantity", "active"])

    products = await session.execute(select(Product).order_by(Product.id))
    for product in products.scalars().all():
      writer.writerow([
          "product",
          product.id,
          product.supplier_id,
          product.stock_quantity,
          "",
      ])

    listings = await session.execute(
        select(CropListing).order_by(CropListing.id)
    )
    for listing in listings.scalars().all():
      writer.writerow([
          "crop_listing",
          listing.id,
          listing.farmer_id,
          listing.quantity_available,
          listing.is_active,
      ])

  await engine.dispose()


def main(argv):
  """Main entry point for the inventory dump script."""
  del argv
  asyncio.run(dump_inventory())


if __name__ == "__main__":
  absl_app.run(main)
