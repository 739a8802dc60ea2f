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


"""Database initialization script for the fulfillment server.

This script imports the marketplace catalog (users, products, crops, crop
listings) and the delivery drivers from CSV files into the configured SQLite
database. It clears any existing rows of those tables before populating them.
Orders, carts and delivery history are left untouched.

Usage:
  python import_csv.py --database_path=... --data_dir=...
"""

import asyncio
import csv
import logging
import os

from absl import app as absl_app
from absl import flags
import db
from db import Crop
from db import CropListing
from db import Driver
from db import Product
from db import User
from sqlalchemy import delete

FLAGS = flags.FLAGS
flags.DEFINE_string("database_path", "marketplace.db", "Path to the DB")
flags.DEFINE_string(
    "data_dir",
    os.path.join(os.path.dirname(os.path.abspath(__file__)), "data"),
    "Directory containing users.csv, products.csv, crops.csv,"
    " crop_listings.csv and drivers.csv",
)

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def _read_rows(name: str):
  path = os.path.join(FLAGS.data_dir, name)
  if not os.path.exists(path):
    logger.info("No %s found, skipping", name)
    return []
  with open(path, "r") as f:
    return list(csv.DictReader(f))


def _optional_float(value):
  return float(value) if value else None


async def import_csv_data() -> None:
  """Reads CSV files and populates the database."""
  await db.manager.init_db(FLAGS.database_path)

  try:
    async with db.manager.session_factory() as session:
      # Children first so foreign keys never dangle mid-import
      logger.info("Clearing existing catalog and drivers...")
      for model in (CropListing, Crop, Product, Driver, User):
        await session.execute(delete(model))

      logger.info("Importing Users from CSV...")
      session.add_all(
          User(id=row["id"], full_name=row["full_name"], email=row["email"])
          for row in _read_rows("users.csv")
      )

      logger.info("Importing Products from CSV...")
      session.add_all(
          Product(
              id=row["id"],
              name=row["name"],
              supplier_id=row["supplier_id"] or None,
              price=int(row["price"]),
              stock_quantity=int(row["stock_quantity"]),
              unit=row.get("unit") or "unit",
          )
          for row in _read_rows("products.csv")
      )

      logger.info("Importing Crops from CSV...")
      session.add_all(
          Crop(
              id=row["id"],
              name=row["name"],
              farmer_id=row["farmer_id"] or None,
              status=row.get("status") or "available",
          )
          for row in _read_rows("crops.csv")
      )

      logger.info("Importing Crop Listings from CSV...")
      session.add_all(
          CropListing(
              id=row["id"],
              crop_id=row["crop_id"],
              farmer_id=row["farmer_id"] or None,
              price_per_unit=int(row["price_per_unit"]),
              quantity_available=int(row["quantity_available"]),
              unit=row.get("unit") or "kg",
              is_active=int(row["quantity_available"]) > 0,
          )
          for row in _read_rows("crop_listings.csv")
      )

      logger.info("Importing Drivers from CSV...")
      session.add_all(
          Driver(
              id=row["id"],
              full_name=row["full_name"],
              phone=row.get("phone") or None,
              vehicle_type=row.get("vehicle_type") or None,
              vehicle_number=row.get("vehicle_number") or None,
              current_latitude=_optional_float(row.get("current_latitude")),
              current_longitude=_optional_float(row.get("current_longitude")),
          )
          for row in _read_rows("drivers.csv")
      )

      await session.commit()
    logger.info("Database populated from CSVs.")
  finally:
    await db.manager.close()


def main(argv):
  """Main entry point for the CSV import script."""
  del argv  # Unused
  asyncio.run(import_csv_data())


if __name__ == "__main__":
  absl_app.run(main)
