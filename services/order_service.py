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

"""Order read model and seller-driven status updates."""

import logging
from typing import List, Optional

import db
from enums import ORDER_STATUS_SEQUENCE
from enums import OrderStatus
from exceptions import InvalidStatusTransitionError
from exceptions import ResourceNotFoundError
from models import OrderDetail
from models import OrderView
from services.location_service import LocationService
from services.milestones import estimate_delivery
from services.milestones import synthesize_milestones
from services.notification_dispatcher import NotificationDispatcher
from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

TERMINAL_STATUSES = (OrderStatus.DELIVERED, OrderStatus.CANCELLED)


def check_transition(current: OrderStatus, target: OrderStatus) -> None:
  """Raises if an order may not move from `current` to `target`.

  Orders only move forward through the lifecycle, possibly skipping steps,
  and can be cancelled until they are delivered.
  """
  if current in TERMINAL_STATUSES:
    raise InvalidStatusTransitionError(
        f"Order is already {current.value} and cannot become {target.value}"
    )
  if target == OrderStatus.CANCELLED:
    return
  if ORDER_STATUS_SEQUENCE.index(target) <= ORDER_STATUS_SEQUENCE.index(
      current
  ):
    raise InvalidStatusTransitionError(
        f"Order cannot move back from {current.value} to {target.value}"
    )


class OrderService:
  """Service for reading orders and changing their status."""

  def __init__(
      self, session: AsyncSession, dispatcher: NotificationDispatcher
  ):
    self.session = session
    self.dispatcher = dispatcher

  async def _get_order(self, order_id: str) -> db.Order:
    order = await db.get_order(self.session, order_id)
    if not order:
      raise ResourceNotFoundError(f"Order {order_id} not found")
    return order

  async def get_order_view(self, order_id: str) -> OrderView:
    """Builds the buyer-facing view of an order.

    Args:
      order_id: The order to read.

    Returns:
      The order with its items, the synthesized delivery milestones, the
      estimated delivery date and the latest delivery with its current fix.

    Raises:
      ResourceNotFoundError: If the order does not exist.
    """
    order = await self._get_order(order_id)
    detail = OrderDetail.model_validate(order)
    delivery = await LocationService(self.session).get_latest_for_order(
        order_id
    )
    return OrderView(
        order=detail,
        milestones=synthesize_milestones(
            detail.status, detail.created_at, detail.payment_method
        ),
        estimated_delivery=estimate_delivery(
            detail.created_at, detail.payment_method
        ),
        delivery=delivery,
    )

  async def list_orders(
      self, buyer_id: Optional[str] = None, seller_id: Optional[str] = None
  ) -> List[OrderDetail]:
    orders = await db.list_orders(
        self.session, buyer_id=buyer_id, seller_id=seller_id
    )
    return [OrderDetail.model_validate(order) for order in orders]

  async def update_status(
      self, order_id: str, status: OrderStatus
  ) -> OrderDetail:
    """Moves an order to a new status and notifies buyer and seller.

    Setting the current status again is a no-op and sends nothing.

    Raises:
      ResourceNotFoundError: If the order does not exist.
      InvalidStatusTransitionError: If the transition is not allowed.
    """
    order = await self._get_order(order_id)
    current = OrderStatus(order.status)
    if current == status:
      return OrderDetail.model_validate(order)
    check_transition(current, status)

    order.status = status.value
    await self.session.commit()
    logger.info(
        "Order %s moved from %s to %s", order_id, current.value, status.value
    )

    detail = OrderDetail.model_validate(order)
    _, failures = await self.dispatcher.notify_status_change(detail, status)
    if failures:
      logger.warning(
          "%d status notification(s) for order %s failed",
          len(failures),
          order_id,
      )
    return detail
