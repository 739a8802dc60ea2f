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


"""Utility script to dump processed payment events.

This script lists the payment event identifiers the server has claimed, in the
order they were processed. With --show_orders it also lists the most
recent orders with their payment references.

Usage:
  python dump_events.py --database_path=... [--show_orders]
"""

import asyncio
import sys

from absl import app as absl_app
from absl import flags
from db import Order
from db import ProcessedEvent
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.orm import sessionmaker

FLAGS = flags.FLAGS
flags.DEFINE_string("database_path", None, "Path to the marketplace DB")
flags.DEFINE_bool("show_orders", False, "Show the most recent orders as well")


async def dump_events():
  """Queries the database and prints processed events."""
  if not FLAGS.database_path:
    print("Error: --database_path is required.")
    sys.exit(1)

  db_url = f"sqlite+aiosqlite:///{FLAGS.database_path}"
  engine = create_async_engine(db_url, echo=False)
  session_factory = sessionmaker(
      engine, expire_on_commit=False, class_=AsyncSession
  )

  async with session_factory() as session:
    print("=== PROCESSED PAYMENT EVENTS ===")
    result = await session.execute(
        select(ProcessedEvent).order_by(ProcessedEvent.processed_at)
    )
    events = result.scalars().all()
    if not events:
      print("No processed events found.")
    for event in events:
      print(f"[{event.processed_at}] {event.event_id} ({event.event_type})")

    if FLAGS.show_orders:
      print("=== ORDERS ===")
      result = await session.execute(
          select(Order).order_by(Order.created_at.desc()).limit(50)
      )
      for order in result.scalars().all():
        print(
            f"[{order.created_at}] {order.id} buyer={order.buyer_id}"
            f" seller={order.seller_id} total={order.total_amount}"
            f" {order.currency} {order.status}/{order.payment_status}"
            f" ref={order.payment_reference}"
        )

  await engine.dispose()


def main(argv):
  """Main entry point for the event dump script."""
  del argv
  asyncio.run(dump_events())


if __name__ == "__main__":
  absl_app.run(main)
