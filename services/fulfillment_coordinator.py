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

"""Turns seller partitions into persisted orders.

This module provides the `FulfillmentCoordinator` class, which creates one
order per seller partition, one order item per cart line, applies the matching
inventory decrement and finally clears the fulfilled lines from the buyer's
cart.

Failures are contained at the smallest unit that can fail on its own:
- A failed order creation skips that seller's partition only.
- A failed order item or decrement rolls back that item only; the order and
  its other items stay.
Nothing here raises; every absorbed failure lands on the `FulfillmentReport`.
"""

import logging
from typing import Iterable, List, Sequence

from enums import CropStatus
from enums import OrderType
from exceptions import ItemFulfillmentError
from exceptions import OrderCreationError
from models import CartLine
from models import CropListingRef
from models import FulfillmentReport
from models import Outcome
from models import PaymentContext
from models import PlacedOrder
from models import ProductRef
from models import SellerPartition
from services.stores import InventoryStore
from services.stores import OrderStore

logger = logging.getLogger(__name__)


class FulfillmentCoordinator:
  """Creates orders, order items and inventory decrements for partitions."""

  def __init__(self, order_store: OrderStore, inventory_store: InventoryStore):
    self.order_store = order_store
    self.inventory_store = inventory_store

  def _order_type(
      self, partition: SellerPartition, context: PaymentContext
  ) -> OrderType:
    for line in partition.lines:
      if line.order_type is not None:
        return line.order_type
    return context.order_type or OrderType.PRODUCT

  async def _create_order(
      self, buyer_id: str, partition: SellerPartition, context: PaymentContext
  ) -> PlacedOrder:
    try:
      order = await self.order_store.create_order(
          buyer_id=buyer_id,
          seller_id=partition.seller_id,
          order_type=self._order_type(partition, context).value,
          total_amount=partition.total,
          currency=context.currency,
          status=context.status.value,
          payment_status=context.payment_status.value,
          payment_method=context.payment_method.value,
          payment_reference=context.payment_reference,
          shipping_address=context.shipping_address,
          billing_address=context.billing_address,
      )
      await self.order_store.commit()
      return order
    except Exception as e:  # pylint: disable=broad-exception-caught
      await self.order_store.rollback()
      raise OrderCreationError(
          f"Failed to create order for seller {partition.seller_id}: {e}",
          seller_id=partition.seller_id,
      ) from e

  async def _apply_decrement(self, line: CartLine) -> None:
    if isinstance(line.ref, ProductRef):
      remaining = await self.inventory_store.decrement_product_stock(
          line.ref.id, line.quantity
      )
      if remaining is None:
        raise ItemFulfillmentError(
            f"Product {line.ref.id} not found", line_id=line.id
        )
      logger.info(
          "Product %s stock decremented by %d to %d",
          line.ref.id,
          line.quantity,
          remaining,
      )
    elif isinstance(line.ref, CropListingRef):
      result = await self.inventory_store.decrement_crop_listing(
          line.ref.id, line.quantity
      )
      if result is None:
        raise ItemFulfillmentError(
            f"Crop listing {line.ref.id} not found", line_id=line.id
        )
      remaining, crop_id = result
      logger.info(
          "Crop listing %s decremented by %d to %d",
          line.ref.id,
          line.quantity,
          remaining,
      )
      if remaining == 0 and crop_id:
        await self.inventory_store.mark_crop_sold(crop_id)
        logger.info("Crop %s is now %s", crop_id, CropStatus.SOLD.value)

  async def _fulfill_line(self, order_id: str, line: CartLine) -> None:
    try:
      await self.order_store.create_order_item(order_id, line)
      await self._apply_decrement(line)
      await self.order_store.commit()
    except ItemFulfillmentError:
      await self.order_store.rollback()
      raise
    except Exception as e:  # pylint: disable=broad-exception-caught
      await self.order_store.rollback()
      raise ItemFulfillmentError(
          f"Failed to fulfill cart line {line.id}: {e}", line_id=line.id
      ) from e

  async def fulfill(
      self,
      buyer_id: str,
      partitions: Sequence[SellerPartition],
      context: PaymentContext,
      partition_warnings: Iterable[Outcome] = (),
  ) -> FulfillmentReport:
    """Fulfills every partition in order.

    Args:
      buyer_id: The buyer the orders are placed for.
      partitions: The seller partitions to fulfill.
      context: How the purchase was paid for.
      partition_warnings: Lines the partitioner excluded; they are kept in the
        cart and carried onto the report.

    Returns:
      The report of this run.
    """
    report = FulfillmentReport(
        buyer_id=buyer_id,
        partition_warnings=list(partition_warnings),
        partition_total=sum(p.total for p in partitions),
        expected_total=context.expected_total,
    )
    fulfilled_line_ids: List[str] = []
    retained_line_ids: List[str] = [
        w.line_id for w in report.partition_warnings if w.line_id
    ]

    for partition in partitions:
      line_ids = [line.id for line in partition.lines if line.id]
      try:
        order = await self._create_order(buyer_id, partition, context)
      except OrderCreationError as e:
        logger.error("Skipping partition of seller %s: %s", e.seller_id, e)
        report.skipped_partitions.append(
            Outcome.from_error(e, seller_id=partition.seller_id)
        )
        retained_line_ids.extend(line_ids)
        continue

      logger.info(
          "Created order %s for seller %s, total %d",
          order.id,
          order.seller_id,
          order.total_amount,
      )
      report.orders.append(order)
      report.item_counts[order.id] = 0
      fulfilled_line_ids.extend(line_ids)

      for line in partition.lines:
        if line.ref is None:
          continue
        try:
          await self._fulfill_line(order.id, line)
          report.item_counts[order.id] += 1
        except ItemFulfillmentError as e:
          logger.error("Order %s item failed: %s", order.id, e)
          report.item_failures.append(
              Outcome.from_error(e, order_id=order.id, line_id=line.id)
          )

    if context.cart_checkout:
      await self._clear_cart(buyer_id, fulfilled_line_ids, report)
    if retained_line_ids:
      logger.warning(
          "Retaining %d cart line(s) for buyer %s: %s",
          len(retained_line_ids),
          buyer_id,
          retained_line_ids,
      )
    report.retained_line_ids.extend(retained_line_ids)

    if report.amount_mismatch:
      logger.warning(
          "Partition total %d differs from charged amount %d for buyer %s",
          report.partition_total,
          report.expected_total,
          buyer_id,
      )
    return report

  async def _clear_cart(
      self, buyer_id: str, line_ids: List[str], report: FulfillmentReport
  ) -> None:
    if not line_ids:
      return
    try:
      report.cleared_line_count = await self.order_store.clear_cart_lines(
          buyer_id, line_ids
      )
      await self.order_store.commit()
      logger.info(
          "Cleared %d cart line(s) for buyer %s",
          report.cleared_line_count,
          buyer_id,
      )
    except Exception:  # pylint: disable=broad-exception-caught
      await self.order_store.rollback()
      report.cleared_line_count = 0
      report.retained_line_ids.extend(line_ids)
      logger.exception("Failed to clear cart for buyer %s", buyer_id)
