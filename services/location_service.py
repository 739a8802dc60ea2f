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

"""Driver location ingestion and delivery status tracking.

Location history is append-only. The delivery's current-location pointer always
moves to the most recently *received* fix, even if its device timestamp is
older than one already stored; consumers that need the true path read the
history, which is ordered by device timestamp.
"""

import datetime
import logging
from typing import List, Optional

import db
from enums import DELIVERY_STATUS_SEQUENCE
from enums import DeliveryStatus
from enums import ORDER_STATUS_SEQUENCE
from enums import OrderStatus
from exceptions import InvalidStatusTransitionError
from exceptions import ResourceNotFoundError
from models import DeliveryStatusEventView
from models import DeliverySummary
from models import DeliveryView
from models import LocationFix
from models import LocationUpdateRequest
from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 100

STATUS_DESCRIPTIONS = {
    DeliveryStatus.ASSIGNED: "Driver assigned to delivery",
    DeliveryStatus.PICKED_UP: "Package picked up from sender",
    DeliveryStatus.IN_TRANSIT: "Package is in transit",
    DeliveryStatus.OUT_FOR_DELIVERY: "Out for delivery",
    DeliveryStatus.DELIVERED: "Package delivered successfully",
}

# Order status implied by each delivery status.
ORDER_STATUS_FOR_DELIVERY = {
    DeliveryStatus.ASSIGNED: OrderStatus.PROCESSING,
    DeliveryStatus.PICKED_UP: OrderStatus.SHIPPED,
    DeliveryStatus.IN_TRANSIT: OrderStatus.SHIPPED,
    DeliveryStatus.OUT_FOR_DELIVERY: OrderStatus.SHIPPED,
    DeliveryStatus.DELIVERED: OrderStatus.DELIVERED,
}


def reconciled_order_status(
    order_status: OrderStatus, delivery_status: DeliveryStatus
) -> Optional[OrderStatus]:
  """Order status to apply after a delivery status change, if any.

  The order only ever moves forward, and a cancelled order is left alone.
  """
  if order_status == OrderStatus.CANCELLED:
    return None
  target = ORDER_STATUS_FOR_DELIVERY[delivery_status]
  if ORDER_STATUS_SEQUENCE.index(target) > ORDER_STATUS_SEQUENCE.index(
      order_status
  ):
    return target
  return None


class LocationService:
  """Service for deliveries, their location history and status log."""

  def __init__(self, session: AsyncSession):
    self.session = session

  async def _get_delivery(self, delivery_id: str) -> db.Delivery:
    delivery = await db.get_delivery(self.session, delivery_id)
    if not delivery:
      raise ResourceNotFoundError(f"Delivery {delivery_id} not found")
    return delivery

  async def _summary(self, delivery: db.Delivery) -> DeliverySummary:
    current = None
    if delivery.current_location_id is not None:
      location = await db.get_delivery_location(
          self.session, delivery.current_location_id
      )
      if location is not None:
        current = LocationFix.model_validate(location)
    return DeliverySummary(
        id=delivery.id,
        order_id=delivery.order_id,
        driver_id=delivery.driver_id,
        status=DeliveryStatus(delivery.status),
        current_location=current,
        created_at=delivery.created_at,
        updated_at=delivery.updated_at,
    )

  async def create_delivery(
      self, order_id: str, driver_id: Optional[str] = None
  ) -> DeliverySummary:
    """Creates an 'assigned' delivery for an order."""
    order = await db.get_order(self.session, order_id)
    if not order:
      raise ResourceNotFoundError(f"Order {order_id} not found")
    if driver_id and not await db.get_driver(self.session, driver_id):
      raise ResourceNotFoundError(f"Driver {driver_id} not found")

    delivery = await db.create_delivery(self.session, order_id, driver_id)
    await db.add_delivery_status_event(
        self.session,
        delivery.id,
        status=DeliveryStatus.ASSIGNED.value,
        description=STATUS_DESCRIPTIONS[DeliveryStatus.ASSIGNED],
    )
    self._reconcile_order(order, DeliveryStatus.ASSIGNED)
    await self.session.commit()
    logger.info(
        "Created delivery %s for order %s (driver %s)",
        delivery.id,
        order_id,
        driver_id,
    )
    return await self._summary(delivery)

  async def record_fix(
      self, delivery_id: str, fix: LocationUpdateRequest
  ) -> LocationFix:
    """Appends a location fix and makes it the delivery's current location.

    Fixes are accepted as reported: there is no plausibility check and no
    rate limit, and out-of-order timestamps are stored as is.

    Args:
      delivery_id: The delivery the fix belongs to.
      fix: The reported position.

    Returns:
      The stored fix.

    Raises:
      ResourceNotFoundError: If the delivery does not exist.
    """
    delivery = await self._get_delivery(delivery_id)
    now = db.utcnow()
    location = await db.add_delivery_location(
        self.session,
        delivery_id,
        latitude=fix.latitude,
        longitude=fix.longitude,
        accuracy=fix.accuracy,
        speed=fix.speed,
        heading=fix.heading,
        address=fix.address,
        timestamp=fix.timestamp or now,
        received_at=now,
    )
    delivery.current_location_id = location.id
    delivery.updated_at = now

    if delivery.driver_id:
      driver = await db.get_driver(self.session, delivery.driver_id)
      if driver:
        driver.current_latitude = fix.latitude
        driver.current_longitude = fix.longitude
        driver.last_location_update = now

    await self.session.commit()
    logger.debug(
        "Delivery %s at (%f, %f)", delivery_id, fix.latitude, fix.longitude
    )
    return LocationFix.model_validate(location)

  async def history(
      self,
      delivery_id: str,
      limit: int = DEFAULT_HISTORY_LIMIT,
      since: Optional[datetime.datetime] = None,
  ) -> List[LocationFix]:
    """Returns stored fixes, newest device timestamp first."""
    await self._get_delivery(delivery_id)
    locations = await db.get_location_history(
        self.session, delivery_id, limit=limit, since=since
    )
    return [LocationFix.model_validate(loc) for loc in locations]

  async def current_fix(self, delivery_id: str) -> Optional[LocationFix]:
    delivery = await self._get_delivery(delivery_id)
    return (await self._summary(delivery)).current_location

  async def get_delivery(self, delivery_id: str) -> DeliveryView:
    delivery = await self._get_delivery(delivery_id)
    summary = await self._summary(delivery)
    events = await db.get_delivery_status_events(self.session, delivery_id)
    return DeliveryView(
        **summary.model_dump(),
        status_events=[
            DeliveryStatusEventView.model_validate(e) for e in events
        ],
    )

  async def get_latest_for_order(
      self, order_id: str
  ) -> Optional[DeliverySummary]:
    delivery = await db.get_latest_delivery_for_order(self.session, order_id)
    if delivery is None:
      return None
    return await self._summary(delivery)

  def _reconcile_order(
      self, order: Optional[db.Order], delivery_status: DeliveryStatus
  ) -> None:
    if order is None:
      return
    target = reconciled_order_status(
        OrderStatus(order.status), delivery_status
    )
    if target is not None:
      logger.info(
          "Order %s moves from %s to %s after delivery %s",
          order.id,
          order.status,
          target.value,
          delivery_status.value,
      )
      order.status = target.value

  async def update_status(
      self, delivery_id: str, status: DeliveryStatus
  ) -> DeliveryView:
    """Moves a delivery forward and logs the change at the current position.

    Setting the current status again is a no-op.

    Raises:
      ResourceNotFoundError: If the delivery does not exist.
      InvalidStatusTransitionError: If the status would move backwards.
    """
    delivery = await self._get_delivery(delivery_id)
    current = DeliveryStatus(delivery.status)
    if status == current:
      return await self.get_delivery(delivery_id)
    if DELIVERY_STATUS_SEQUENCE.index(status) < DELIVERY_STATUS_SEQUENCE.index(
        current
    ):
      raise InvalidStatusTransitionError(
          f"Delivery {delivery_id} cannot move from {current.value} to "
          f"{status.value}"
      )

    location = None
    if delivery.current_location_id is not None:
      location = await db.get_delivery_location(
          self.session, delivery.current_location_id
      )
    await db.add_delivery_status_event(
        self.session,
        delivery_id,
        status=status.value,
        description=STATUS_DESCRIPTIONS[status],
        latitude=location.latitude if location else None,
        longitude=location.longitude if location else None,
    )
    delivery.status = status.value
    delivery.updated_at = db.utcnow()

    order = await db.get_order(self.session, delivery.order_id)
    self._reconcile_order(order, status)
    await self.session.commit()
    logger.info("Delivery %s is now %s", delivery_id, status.value)
    return await self.get_delivery(delivery_id)
