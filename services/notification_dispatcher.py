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

"""Best-effort in-app notifications for sellers and buyers."""

import asyncio
import logging
from typing import List, Sequence, Tuple

from enums import NotificationType
from enums import OrderStatus
from enums import PaymentMethod
from exceptions import NotificationError
from models import NotificationDraft
from models import Outcome
from models import PlacedOrder
from services.stores import NotificationStore

logger = logging.getLogger(__name__)

SELLER_ORDERS_URL = "/dashboard/orders"


def format_amount(amount: int, currency: str) -> str:
  """Formats an amount in minor units, e.g. 150000 INR -> 'INR 1500.00'."""
  sign = "-" if amount < 0 else ""
  major, minor = divmod(abs(amount), 100)
  return f"{currency} {sign}{major}.{minor:02d}"


def short_order_id(order_id: str) -> str:
  return order_id[-8:]


def new_order_draft(
    order: PlacedOrder, currency: str, payment_method: PaymentMethod
) -> NotificationDraft:
  cod = "COD " if payment_method == PaymentMethod.CASH else ""
  return NotificationDraft(
      user_id=order.seller_id,
      title="New Order Received",
      message=(
          f"You have received a new {cod}order #{short_order_id(order.id)} "
          f"for {format_amount(order.total_amount, currency)}"
      ),
      type=NotificationType.ORDER.value,
      action_url=SELLER_ORDERS_URL,
  )


def status_change_drafts(
    order: PlacedOrder, status: OrderStatus
) -> List[NotificationDraft]:
  """Builds the buyer and seller notifications for an order status change."""
  title = f"Order {status.value.capitalize()}"
  short_id = short_order_id(order.id)
  return [
      NotificationDraft(
          user_id=order.buyer_id,
          title=title,
          message=f"Your order #{short_id} is now {status.value}",
          type=NotificationType.DELIVERY.value,
          action_url=f"{SELLER_ORDERS_URL}/{order.id}/track",
      ),
      NotificationDraft(
          user_id=order.seller_id,
          title=title,
          message=f"Order #{short_id} status updated to {status.value}",
          type=NotificationType.ORDER.value,
          action_url=SELLER_ORDERS_URL,
      ),
  ]


class NotificationDispatcher:
  """Writes notifications without ever failing the caller.

  Each write is bounded by `timeout_seconds`; errors and timeouts are logged
  and returned as outcomes.
  """

  def __init__(self, store: NotificationStore, timeout_seconds: float = 2.0):
    self.store = store
    self.timeout_seconds = timeout_seconds

  async def _send(self, draft: NotificationDraft) -> None:
    try:
      await asyncio.wait_for(
          self.store.create_notification(draft), timeout=self.timeout_seconds
      )
    except asyncio.TimeoutError as e:
      raise NotificationError(
          f"Notification for user {draft.user_id} timed out after "
          f"{self.timeout_seconds}s"
      ) from e
    except Exception as e:  # pylint: disable=broad-exception-caught
      raise NotificationError(
          f"Notification for user {draft.user_id} failed: {e}"
      ) from e

  async def send_all(
      self, drafts: Sequence[Tuple[NotificationDraft, dict]]
  ) -> Tuple[int, List[Outcome]]:
    """Sends drafts one at a time; returns (sent count, failures)."""
    sent = 0
    failures = []
    for draft, context in drafts:
      try:
        await self._send(draft)
        sent += 1
      except NotificationError as e:
        logger.warning(e.message)
        failures.append(Outcome.from_error(e, **context))
    return sent, failures

  async def dispatch(
      self,
      orders: Sequence[PlacedOrder],
      currency: str,
      payment_method: PaymentMethod,
  ) -> Tuple[int, List[Outcome]]:
    """Notifies the seller of each newly created order.

    Returns:
      The number of notifications written and the failures.
    """
    drafts = [
        (
            new_order_draft(order, currency, payment_method),
            {"seller_id": order.seller_id, "order_id": order.id},
        )
        for order in orders
    ]
    sent, failures = await self.send_all(drafts)
    logger.info(
        "Sent %d new-order notification(s), %d failed", sent, len(failures)
    )
    return sent, failures

  async def notify_status_change(
      self, order: PlacedOrder, status: OrderStatus
  ) -> Tuple[int, List[Outcome]]:
    """Tells the buyer and the seller that an order changed status."""
    drafts = [
        (draft, {"order_id": order.id})
        for draft in status_change_drafts(order, status)
    ]
    return await self.send_all(drafts)
