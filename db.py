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

"""Database management and persistence layer for the fulfillment server.

This module provides the schema definitions, database session management, and
asynchronous data access helpers used by the server. It utilizes SQLAlchemy with
SQLite (via aiosqlite).

Key features include:
- `DatabaseManager`: Handles asynchronous engine initialization and session
  factory setup.
- WAL Mode: Automatically enables SQLite Write-Ahead Logging so that webhook
  deliveries, checkouts and driver location updates can write concurrently.
- Declarative Models: Defines tables for the catalog (products, crops, crop
  listings), carts, orders, notifications, processed payment events and
  deliveries with their location history.
- Data Access Helpers: A suite of asynchronous functions for CRUD operations on
  the database models. Inventory decrements and idempotency markers are single
  atomic statements so concurrent requests cannot lose updates.
"""

import datetime
import logging
from typing import List
from typing import Optional
from typing import Sequence
import uuid

from sqlalchemy import Boolean
from sqlalchemy import case
from sqlalchemy import Column
from sqlalchemy import DateTime
from sqlalchemy import delete
from sqlalchemy import Float
from sqlalchemy import ForeignKey
from sqlalchemy import func
from sqlalchemy import Index
from sqlalchemy import Integer
from sqlalchemy import JSON
from sqlalchemy import select
from sqlalchemy import String
from sqlalchemy import text
from sqlalchemy import TypeDecorator
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncEngine
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.orm import relationship
from sqlalchemy.orm import selectinload
from sqlalchemy.orm import sessionmaker

logger = logging.getLogger(__name__)

Base = declarative_base()


def utcnow() -> datetime.datetime:
  return datetime.datetime.now(datetime.timezone.utc)


def new_id() -> str:
  return str(uuid.uuid4())


class UtcDateTime(TypeDecorator):
  """Stores timestamps as naive UTC and returns them timezone-aware."""

  impl = DateTime
  cache_ok = True

  def process_bind_param(self, value, dialect):
    if value is None:
      return None
    if value.tzinfo is None:
      value = value.replace(tzinfo=datetime.timezone.utc)
    return value.astimezone(datetime.timezone.utc).replace(tzinfo=None)

  def process_result_value(self, value, dialect):
    if value is None:
      return None
    return value.replace(tzinfo=datetime.timezone.utc)


class DatabaseManager:
  """Manages the database engine and sessions without using global state."""

  def __init__(self) -> None:
    self.engine: Optional[AsyncEngine] = None
    self.session_factory: Optional[sessionmaker] = None

  async def init_db(self, database_path: str) -> None:
    """Initializes the database engine and creates tables."""
    url = f"sqlite+aiosqlite:///{database_path}"
    self.engine = create_async_engine(url, echo=False)

    # Enable WAL mode so concurrent handlers do not block readers
    async with self.engine.connect() as conn:
      await conn.execute(text("PRAGMA journal_mode=WAL"))

    self.session_factory = sessionmaker(
        self.engine, expire_on_commit=False, class_=AsyncSession
    )

    async with self.engine.begin() as conn:
      await conn.run_sync(Base.metadata.create_all)

  async def close(self) -> None:
    """Closes the database engine."""
    if self.engine:
      await self.engine.dispose()


# Global manager instance (to be initialized via lifespan)
manager = DatabaseManager()


class User(Base):
  __tablename__ = "users"

  id = Column(String, primary_key=True)
  full_name = Column(String)
  email = Column(String, index=True)


class Product(Base):
  __tablename__ = "products"

  id = Column(String, primary_key=True)
  name = Column(String)
  supplier_id = Column(String, ForeignKey("users.id"), nullable=True)
  price = Column(Integer)  # Minor units
  stock_quantity = Column(Integer, default=0)
  unit = Column(String, default="unit")

  supplier = relationship("User")


class Crop(Base):
  __tablename__ = "crops"

  id = Column(String, primary_key=True)
  name = Column(String)
  farmer_id = Column(String, ForeignKey("users.id"), nullable=True)
  status = Column(String, default="available")


class CropListing(Base):
  __tablename__ = "crop_listings"

  id = Column(String, primary_key=True)
  crop_id = Column(String, ForeignKey("crops.id"), nullable=True)
  farmer_id = Column(String, ForeignKey("users.id"), nullable=True)
  price_per_unit = Column(Integer)  # Minor units
  quantity_available = Column(Integer, default=0)
  unit = Column(String, default="kg")
  is_active = Column(Boolean, default=True)

  crop = relationship("Crop")
  farmer = relationship("User")


class CartItem(Base):
  __tablename__ = "cart_items"

  id = Column(String, primary_key=True, default=new_id)
  buyer_id = Column(String, index=True)
  product_id = Column(String, ForeignKey("products.id"), nullable=True)
  crop_listing_id = Column(
      String, ForeignKey("crop_listings.id"), nullable=True
  )
  quantity = Column(Integer)
  unit_price = Column(Integer)  # Price snapshot taken when the line was added
  created_at = Column(UtcDateTime, default=utcnow)

  product = relationship("Product")
  crop_listing = relationship("CropListing")


class Order(Base):
  __tablename__ = "orders"

  id = Column(String, primary_key=True, default=new_id)
  buyer_id = Column(String, index=True)
  seller_id = Column(String, index=True)
  order_type = Column(String)
  total_amount = Column(Integer)
  currency = Column(String)
  status = Column(String)
  payment_status = Column(String)
  payment_method = Column(String)
  payment_reference = Column(String, nullable=True)
  shipping_address = Column(JSON, nullable=True)
  billing_address = Column(JSON, nullable=True)
  created_at = Column(UtcDateTime, default=utcnow)
  updated_at = Column(UtcDateTime, default=utcnow, onupdate=utcnow)

  items = relationship("OrderItem", back_populates="order")


class OrderItem(Base):
  __tablename__ = "order_items"

  id = Column(String, primary_key=True, default=new_id)
  order_id = Column(String, ForeignKey("orders.id"), index=True)
  product_id = Column(String, nullable=True)
  crop_listing_id = Column(String, nullable=True)
  equipment_id = Column(String, nullable=True)
  quantity = Column(Integer)
  unit_price = Column(Integer)
  # Written once at creation, never recomputed from the live catalog
  total_price = Column(Integer)

  order = relationship("Order", back_populates="items")


class Notification(Base):
  __tablename__ = "notifications"

  id = Column(String, primary_key=True, default=new_id)
  user_id = Column(String, index=True)
  title = Column(String)
  message = Column(String)
  type = Column(String, default="info")
  action_url = Column(String, nullable=True)
  is_read = Column(Boolean, default=False)
  created_at = Column(UtcDateTime, default=utcnow)


class ProcessedEvent(Base):
  __tablename__ = "processed_events"

  event_id = Column(String, primary_key=True)
  event_type = Column(String)
  processed_at = Column(UtcDateTime, default=utcnow)


class Driver(Base):
  __tablename__ = "drivers"

  id = Column(String, primary_key=True)
  full_name = Column(String)
  phone = Column(String, nullable=True)
  vehicle_type = Column(String, nullable=True)
  vehicle_number = Column(String, nullable=True)
  current_latitude = Column(Float, nullable=True)
  current_longitude = Column(Float, nullable=True)
  last_location_update = Column(UtcDateTime, nullable=True)


class Delivery(Base):
  __tablename__ = "deliveries"

  id = Column(String, primary_key=True, default=new_id)
  order_id = Column(String, ForeignKey("orders.id"), index=True)
  driver_id = Column(String, ForeignKey("drivers.id"), nullable=True)
  status = Column(String, default="assigned")
  # Most recently received fix; history lives in delivery_locations
  current_location_id = Column(Integer, nullable=True)
  created_at = Column(UtcDateTime, default=utcnow)
  updated_at = Column(UtcDateTime, default=utcnow, onupdate=utcnow)

  driver = relationship("Driver")


class DeliveryLocation(Base):
  __tablename__ = "delivery_locations"
  __table_args__ = (
      Index("ix_delivery_locations_delivery_ts", "delivery_id", "timestamp"),
  )

  id = Column(Integer, primary_key=True, autoincrement=True)
  delivery_id = Column(String, ForeignKey("deliveries.id"))
  latitude = Column(Float)
  longitude = Column(Float)
  accuracy = Column(Float, nullable=True)
  speed = Column(Float, nullable=True)
  heading = Column(Float, nullable=True)
  address = Column(String, nullable=True)
  timestamp = Column(UtcDateTime)
  received_at = Column(UtcDateTime, default=utcnow)


class DeliveryStatusEvent(Base):
  __tablename__ = "delivery_status_events"

  id = Column(Integer, primary_key=True, autoincrement=True)
  delivery_id = Column(String, ForeignKey("deliveries.id"), index=True)
  status = Column(String)
  description = Column(String)
  latitude = Column(Float, nullable=True)
  longitude = Column(Float, nullable=True)
  created_at = Column(UtcDateTime, default=utcnow)


# --- Data Access Helpers ---


async def get_product(
    session: AsyncSession, product_id: str
) -> Optional[Product]:
  """Retrieves a product by ID."""
  return await session.get(Product, product_id)


async def get_crop_listing(
    session: AsyncSession, listing_id: str
) -> Optional[CropListing]:
  """Retrieves a crop listing by ID."""
  return await session.get(CropListing, listing_id)


async def get_cart_items(
    session: AsyncSession,
    buyer_id: str,
    line_ids: Optional[Sequence[str]] = None,
) -> List[CartItem]:
  """Retrieves a buyer's cart lines with their seller relationships loaded.

  Args:
    session: The database session to use.
    buyer_id: The buyer whose cart is loaded.
    line_ids: Optional subset of cart line IDs to restrict the result to.

  Returns:
    The cart lines in insertion order.
  """
  stmt = (
      select(CartItem)
      .where(CartItem.buyer_id == buyer_id)
      .options(
          selectinload(CartItem.product).selectinload(Product.supplier),
          selectinload(CartItem.crop_listing).selectinload(CropListing.farmer),
          selectinload(CartItem.crop_listing).selectinload(CropListing.crop),
      )
      .order_by(CartItem.created_at, CartItem.id)
  )
  if line_ids is not None:
    stmt = stmt.where(CartItem.id.in_(list(line_ids)))
  result = await session.execute(stmt)
  return list(result.scalars().all())


async def add_cart_item(
    session: AsyncSession,
    buyer_id: str,
    quantity: int,
    unit_price: int,
    product_id: Optional[str] = None,
    crop_listing_id: Optional[str] = None,
) -> CartItem:
  """Adds a line to a buyer's cart."""
  item = CartItem(
      id=new_id(),
      buyer_id=buyer_id,
      product_id=product_id,
      crop_listing_id=crop_listing_id,
      quantity=quantity,
      unit_price=unit_price,
  )
  session.add(item)
  await session.flush()
  return item


async def delete_cart_item(
    session: AsyncSession, buyer_id: str, line_id: str
) -> bool:
  """Removes a single cart line owned by the buyer."""
  result = await session.execute(
      delete(CartItem).where(
          CartItem.id == line_id, CartItem.buyer_id == buyer_id
      )
  )
  return result.rowcount > 0


async def delete_cart_items(
    session: AsyncSession, buyer_id: str, line_ids: Sequence[str]
) -> int:
  """Removes the given cart lines owned by the buyer in one statement."""
  if not line_ids:
    return 0
  result = await session.execute(
      delete(CartItem).where(
          CartItem.buyer_id == buyer_id, CartItem.id.in_(list(line_ids))
      )
  )
  return result.rowcount


async def create_order(session: AsyncSession, **fields) -> Order:
  """Creates an order row and flushes it to obtain defaults."""
  order = Order(id=new_id(), **fields)
  session.add(order)
  await session.flush()
  return order


async def create_order_item(
    session: AsyncSession,
    order_id: str,
    quantity: int,
    unit_price: int,
    product_id: Optional[str] = None,
    crop_listing_id: Optional[str] = None,
) -> OrderItem:
  """Creates an order item with its total fixed at creation time."""
  item = OrderItem(
      id=new_id(),
      order_id=order_id,
      product_id=product_id,
      crop_listing_id=crop_listing_id,
      quantity=quantity,
      unit_price=unit_price,
      total_price=unit_price * quantity,
  )
  session.add(item)
  await session.flush()
  return item


def _floor_at_zero(column, quantity: int):
  return case((column > quantity, column - quantity), else_=0)


async def decrement_product_stock(
    session: AsyncSession, product_id: str, quantity: int
) -> Optional[int]:
  """Atomically decrements product stock, flooring at zero.

  Returns:
    The new stock quantity, or None if the product does not exist.
  """
  stmt = (
      update(Product)
      .where(Product.id == product_id)
      .values(stock_quantity=_floor_at_zero(Product.stock_quantity, quantity))
      .returning(Product.stock_quantity)
      .execution_options(synchronize_session=False)
  )
  result = await session.execute(stmt)
  return result.scalar_one_or_none()


async def decrement_crop_listing(
    session: AsyncSession, listing_id: str, quantity: int
) -> Optional[tuple[int, Optional[str]]]:
  """Atomically decrements a crop listing and deactivates it when exhausted.

  Both assignments are evaluated against the pre-update row, so the listing
  stays active exactly when the remaining quantity is above zero.

  Returns:
    A (new quantity, crop id) tuple, or None if the listing does not exist.
  """
  stmt = (
      update(CropListing)
      .where(CropListing.id == listing_id)
      .values(
          quantity_available=_floor_at_zero(
              CropListing.quantity_available, quantity
          ),
          is_active=CropListing.quantity_available > quantity,
      )
      .returning(CropListing.quantity_available, CropListing.crop_id)
      .execution_options(synchronize_session=False)
  )
  result = await session.execute(stmt)
  row = result.one_or_none()
  if row is None:
    return None
  return row[0], row[1]


async def mark_crop_sold(session: AsyncSession, crop_id: str) -> None:
  """Transitions a crop to the terminal 'sold' status."""
  await session.execute(
      update(Crop)
      .where(Crop.id == crop_id)
      .values(status="sold")
      .execution_options(synchronize_session=False)
  )


async def get_order(session: AsyncSession, order_id: str) -> Optional[Order]:
  """Retrieves an order by ID with its items loaded."""
  result = await session.execute(
      select(Order)
      .where(Order.id == order_id)
      .options(selectinload(Order.items))
  )
  return result.scalar_one_or_none()


async def list_orders(
    session: AsyncSession,
    buyer_id: Optional[str] = None,
    seller_id: Optional[str] = None,
    limit: int = 50,
) -> List[Order]:
  """Lists orders, newest first, optionally filtered by buyer or seller."""
  stmt = select(Order).options(selectinload(Order.items))
  if buyer_id:
    stmt = stmt.where(Order.buyer_id == buyer_id)
  if seller_id:
    stmt = stmt.where(Order.seller_id == seller_id)
  stmt = stmt.order_by(Order.created_at.desc()).limit(limit)
  result = await session.execute(stmt)
  return list(result.scalars().all())


async def create_notification(
    session: AsyncSession,
    user_id: str,
    title: str,
    message: str,
    type_: str,
    action_url: Optional[str] = None,
) -> Notification:
  """Creates an unread notification."""
  notification = Notification(
      id=new_id(),
      user_id=user_id,
      title=title,
      message=message,
      type=type_,
      action_url=action_url,
      is_read=False,
  )
  session.add(notification)
  await session.flush()
  return notification


async def list_notifications(
    session: AsyncSession, user_id: str, limit: int = 10
) -> List[Notification]:
  """Retrieves a user's latest notifications."""
  result = await session.execute(
      select(Notification)
      .where(Notification.user_id == user_id)
      .order_by(Notification.created_at.desc())
      .limit(limit)
  )
  return list(result.scalars().all())


async def set_notification_read(
    session: AsyncSession, user_id: str, notification_id: str, is_read: bool
) -> bool:
  """Updates the read flag of one notification owned by the user."""
  result = await session.execute(
      update(Notification)
      .where(
          Notification.id == notification_id,
          Notification.user_id == user_id,
      )
      .values(is_read=is_read)
      .execution_options(synchronize_session=False)
  )
  return result.rowcount > 0


async def mark_all_notifications_read(
    session: AsyncSession, user_id: str
) -> int:
  """Marks every unread notification of the user as read."""
  result = await session.execute(
      update(Notification)
      .where(Notification.user_id == user_id, Notification.is_read.is_(False))
      .values(is_read=True)
      .execution_options(synchronize_session=False)
  )
  return result.rowcount


async def insert_processed_event(
    session: AsyncSession, event_id: str, event_type: str
) -> bool:
  """Atomically claims a payment event identifier.

  The primary key on `processed_events.event_id` makes the insert the
  test-and-set: exactly one concurrent caller commits, every other caller hits
  an IntegrityError.

  Returns:
    True if this call claimed the event, False if it was already claimed.
  """
  session.add(ProcessedEvent(event_id=event_id, event_type=event_type))
  try:
    await session.commit()
  except IntegrityError:
    await session.rollback()
    return False
  return True


async def list_processed_events(session: AsyncSession) -> List[ProcessedEvent]:
  """Retrieves all processed payment event markers, oldest first."""
  result = await session.execute(
      select(ProcessedEvent).order_by(ProcessedEvent.processed_at)
  )
  return list(result.scalars().all())


async def get_driver(session: AsyncSession, driver_id: str) -> Optional[Driver]:
  """Retrieves a driver by ID."""
  return await session.get(Driver, driver_id)


async def create_delivery(
    session: AsyncSession, order_id: str, driver_id: Optional[str] = None
) -> Delivery:
  """Creates a delivery in the 'assigned' status."""
  delivery = Delivery(
      id=new_id(), order_id=order_id, driver_id=driver_id, status="assigned"
  )
  session.add(delivery)
  await session.flush()
  return delivery


async def get_delivery(
    session: AsyncSession, delivery_id: str
) -> Optional[Delivery]:
  """Retrieves a delivery by ID."""
  return await session.get(Delivery, delivery_id)


async def get_latest_delivery_for_order(
    session: AsyncSession, order_id: str
) -> Optional[Delivery]:
  """Retrieves the most recently created delivery of an order."""
  result = await session.execute(
      select(Delivery)
      .where(Delivery.order_id == order_id)
      .order_by(Delivery.created_at.desc())
      .limit(1)
  )
  return result.scalar_one_or_none()


async def add_delivery_location(
    session: AsyncSession, delivery_id: str, **fields
) -> DeliveryLocation:
  """Appends a location fix to a delivery's history."""
  location = DeliveryLocation(delivery_id=delivery_id, **fields)
  session.add(location)
  await session.flush()
  return location


async def get_delivery_location(
    session: AsyncSession, location_id: int
) -> Optional[DeliveryLocation]:
  """Retrieves a single location fix by ID."""
  return await session.get(DeliveryLocation, location_id)


async def get_location_history(
    session: AsyncSession,
    delivery_id: str,
    limit: int = 100,
    since: Optional[datetime.datetime] = None,
) -> List[DeliveryLocation]:
  """Retrieves a delivery's location history, newest timestamp first."""
  stmt = select(DeliveryLocation).where(
      DeliveryLocation.delivery_id == delivery_id
  )
  if since is not None:
    stmt = stmt.where(DeliveryLocation.timestamp >= since)
  stmt = stmt.order_by(
      DeliveryLocation.timestamp.desc(), DeliveryLocation.id.desc()
  ).limit(limit)
  result = await session.execute(stmt)
  return list(result.scalars().all())


async def count_delivery_locations(
    session: AsyncSession, delivery_id: str
) -> int:
  """Counts the stored fixes of a delivery."""
  result = await session.execute(
      select(func.count())
      .select_from(DeliveryLocation)
      .where(DeliveryLocation.delivery_id == delivery_id)
  )
  return result.scalar_one()


async def add_delivery_status_event(
    session: AsyncSession, delivery_id: str, **fields
) -> DeliveryStatusEvent:
  """Appends a driver status change to the delivery's audit log."""
  event = DeliveryStatusEvent(delivery_id=delivery_id, **fields)
  session.add(event)
  await session.flush()
  return event


async def get_delivery_status_events(
    session: AsyncSession, delivery_id: str
) -> List[DeliveryStatusEvent]:
  """Retrieves a delivery's status changes, oldest first."""
  result = await session.execute(
      select(DeliveryStatusEvent)
      .where(DeliveryStatusEvent.delivery_id == delivery_id)
      .order_by(DeliveryStatusEvent.id)
  )
  return list(result.scalars().all())
