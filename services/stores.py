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

"""Storage interfaces used by the payment pipeline and their SQL versions.

The coordinator, dispatcher and idempotency guard only see these protocols, so
tests can run them against in-memory fakes. The SQL order store and inventory
store must share one `AsyncSession`: inventory writes join the order store's
transaction and are committed or rolled back through it.
"""

import logging
from typing import Optional, Protocol, Sequence

import db
from models import CartLine
from models import CropListingRef
from models import NotificationDraft
from models import PlacedOrder
from models import ProductRef
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import sessionmaker

logger = logging.getLogger(__name__)


class IdempotencyStore(Protocol):

  async def mark_processed(self, event_id: str, event_type: str) -> bool:
    """Atomically sets the processed marker; False if it already existed."""
    ...


class OrderStore(Protocol):

  async def list_cart_lines(
      self, buyer_id: str, line_ids: Optional[Sequence[str]] = None
  ) -> list[CartLine]:
    ...

  async def create_order(self, **fields) -> PlacedOrder:
    ...

  async def create_order_item(self, order_id: str, line: CartLine) -> str:
    ...

  async def clear_cart_lines(
      self, buyer_id: str, line_ids: Sequence[str]
  ) -> int:
    ...

  async def commit(self) -> None:
    ...

  async def rollback(self) -> None:
    ...


class InventoryStore(Protocol):

  async def decrement_product_stock(
      self, product_id: str, quantity: int
  ) -> Optional[int]:
    """Returns the new stock, or None if the product does not exist."""
    ...

  async def decrement_crop_listing(
      self, listing_id: str, quantity: int
  ) -> Optional[tuple[int, Optional[str]]]:
    """Returns (new quantity, crop id), or None if the listing is missing."""
    ...

  async def mark_crop_sold(self, crop_id: str) -> None:
    ...


class NotificationStore(Protocol):

  async def create_notification(self, draft: NotificationDraft) -> str:
    ...


def cart_line_from_row(row: db.CartItem) -> CartLine:
  """Resolves a stored cart line into its tagged reference and seller."""
  ref = None
  seller_id = None
  seller_name = None
  title = None
  if row.product_id:
    ref = ProductRef(id=row.product_id)
    if row.product is not None:
      seller_id = row.product.supplier_id
      title = row.product.name
      if row.product.supplier is not None:
        seller_name = row.product.supplier.full_name
  elif row.crop_listing_id:
    ref = CropListingRef(id=row.crop_listing_id)
    listing = row.crop_listing
    if listing is not None:
      seller_id = listing.farmer_id
      if listing.farmer is not None:
        seller_name = listing.farmer.full_name
      if listing.crop is not None:
        title = listing.crop.name

  return CartLine(
      id=row.id,
      buyer_id=row.buyer_id,
      ref=ref,
      quantity=row.quantity,
      unit_price=row.unit_price,
      seller_id=seller_id,
      seller_name=seller_name,
      title=title,
  )


class SqlIdempotencyStore:
  """Processed-event markers backed by a primary-key insert."""

  def __init__(self, session: AsyncSession):
    self.session = session

  async def mark_processed(self, event_id: str, event_type: str) -> bool:
    return await db.insert_processed_event(self.session, event_id, event_type)


class SqlOrderStore:
  """Orders, order items and cart lines in the marketplace database."""

  def __init__(self, session: AsyncSession):
    self.session = session

  async def list_cart_lines(
      self, buyer_id: str, line_ids: Optional[Sequence[str]] = None
  ) -> list[CartLine]:
    rows = await db.get_cart_items(self.session, buyer_id, line_ids)
    return [cart_line_from_row(row) for row in rows]

  async def create_order(self, **fields) -> PlacedOrder:
    order = await db.create_order(self.session, **fields)
    return PlacedOrder.model_validate(order)

  async def create_order_item(self, order_id: str, line: CartLine) -> str:
    product_id = line.ref.id if isinstance(line.ref, ProductRef) else None
    listing_id = line.ref.id if isinstance(line.ref, CropListingRef) else None
    item = await db.create_order_item(
        self.session,
        order_id,
        quantity=line.quantity,
        unit_price=line.unit_price,
        product_id=product_id,
        crop_listing_id=listing_id,
    )
    return item.id

  async def clear_cart_lines(
      self, buyer_id: str, line_ids: Sequence[str]
  ) -> int:
    return await db.delete_cart_items(self.session, buyer_id, line_ids)

  async def commit(self) -> None:
    await self.session.commit()

  async def rollback(self) -> None:
    await self.session.rollback()


class SqlInventoryStore:
  """Atomic stock decrements for products and crop listings."""

  def __init__(self, session: AsyncSession):
    self.session = session

  async def decrement_product_stock(
      self, product_id: str, quantity: int
  ) -> Optional[int]:
    return await db.decrement_product_stock(self.session, product_id, quantity)

  async def decrement_crop_listing(
      self, listing_id: str, quantity: int
  ) -> Optional[tuple[int, Optional[str]]]:
    return await db.decrement_crop_listing(self.session, listing_id, quantity)

  async def mark_crop_sold(self, crop_id: str) -> None:
    await db.mark_crop_sold(self.session, crop_id)


class SqlNotificationStore:
  """Writes each notification in its own short session.

  Notification writes may be cancelled by the dispatcher's timeout; a private
  session keeps a cancelled write from poisoning the caller's transaction.
  """

  def __init__(self, session_factory: sessionmaker):
    self.session_factory = session_factory

  async def create_notification(self, draft: NotificationDraft) -> str:
    async with self.session_factory() as session:
      notification = await db.create_notification(
          session,
          user_id=draft.user_id,
          title=draft.title,
          message=draft.message,
          type_=draft.type,
          action_url=draft.action_url,
      )
      await session.commit()
      return notification.id
