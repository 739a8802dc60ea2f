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

"""Buyer-facing delivery milestones derived from the order status.

Everything in this module is a pure function of (status, created_at, payment
method): the same inputs always produce the same timeline, and nothing is
stored.
"""

import datetime
from typing import List, NamedTuple, Optional

from enums import Milestone
from enums import MilestoneState
from enums import OrderStatus
from enums import PaymentMethod
from models import DeliveryMilestone


class _MilestoneTemplate(NamedTuple):
  tag: Milestone
  title: str
  description: str
  # Days after order creation used as the completion timestamp
  day_offset: int
  eta_hint: Optional[str] = None


_MILESTONES = (
    _MilestoneTemplate(
        Milestone.ORDER_PLACED,
        "Order Placed",
        "Your order has been successfully placed",
        0,
    ),
    _MilestoneTemplate(
        Milestone.PAYMENT_CONFIRMED,
        "Payment Confirmed",
        "Payment via {method} confirmed",
        0,
    ),
    _MilestoneTemplate(
        Milestone.ORDER_CONFIRMED,
        "Order Confirmed",
        "Seller confirmed your order",
        0,
        "Within 2 hours",
    ),
    _MilestoneTemplate(
        Milestone.PREPARING,
        "Preparing for Dispatch",
        "Your order is being prepared for dispatch",
        1,
        "Within 24 hours",
    ),
    _MilestoneTemplate(
        Milestone.DISPATCHED,
        "Dispatched",
        "Your order has left our facility",
        2,
    ),
    _MilestoneTemplate(
        Milestone.IN_TRANSIT,
        "In Transit",
        "Your order is on the way to your location",
        3,
        "2-3 days",
    ),
    _MilestoneTemplate(
        Milestone.OUT_FOR_DELIVERY,
        "Out for Delivery",
        "Your order is out for delivery in your area",
        4,
    ),
    _MilestoneTemplate(
        Milestone.DELIVERED,
        "Delivered",
        "Your order has been delivered successfully",
        4,
    ),
)

# Placement and payment are implied by the order existing.
_ALWAYS_COMPLETED = 2

# Index of the current milestone per status. Delivered points past the end so
# every milestone is completed.
_CURRENT_INDEX = {
    OrderStatus.PENDING: 2,
    OrderStatus.CONFIRMED: 2,
    OrderStatus.PROCESSING: 3,
    OrderStatus.SHIPPED: 5,
    OrderStatus.DELIVERED: len(_MILESTONES),
}

OUT_FOR_DELIVERY_HINT = "Today by 8 PM"

CASH_DELIVERY_DAYS = 5
DEFAULT_DELIVERY_DAYS = 4


def _payment_label(payment_method: PaymentMethod) -> str:
  if payment_method == PaymentMethod.CASH:
    return "cash on delivery"
  return payment_method.value


def synthesize_milestones(
    status: OrderStatus,
    created_at: datetime.datetime,
    payment_method: PaymentMethod,
) -> List[DeliveryMilestone]:
  """Builds the eight-step delivery timeline for an order.

  Args:
    status: The current order status.
    created_at: When the order was created.
    payment_method: How the order was paid, shown on the payment milestone.

  Returns:
    The milestones in their fixed order. Milestones before the current one
    are completed and carry a timestamp, the current one carries an ETA hint,
    and later ones are pending. A cancelled order only has the first two
    milestones completed.
  """
  if status == OrderStatus.CANCELLED:
    current = None
    completed_until = _ALWAYS_COMPLETED
  else:
    current = _CURRENT_INDEX[status]
    completed_until = current

  milestones = []
  for index, template in enumerate(_MILESTONES):
    timestamp = None
    eta_hint = None
    if index < completed_until:
      state = MilestoneState.COMPLETED
      timestamp = created_at + datetime.timedelta(days=template.day_offset)
    elif index == current:
      state = MilestoneState.CURRENT
      eta_hint = template.eta_hint
    else:
      state = MilestoneState.PENDING
      if (
          template.tag == Milestone.OUT_FOR_DELIVERY
          and status == OrderStatus.SHIPPED
      ):
        eta_hint = OUT_FOR_DELIVERY_HINT

    milestones.append(
        DeliveryMilestone(
            tag=template.tag,
            title=template.title,
            description=template.description.format(
                method=_payment_label(payment_method)
            ),
            state=state,
            timestamp=timestamp,
            eta_hint=eta_hint,
        )
    )
  return milestones


def estimate_delivery(
    created_at: datetime.datetime, payment_method: PaymentMethod
) -> datetime.datetime:
  """Estimated delivery date; cash orders take one day longer."""
  days = (
      CASH_DELIVERY_DAYS
      if payment_method == PaymentMethod.CASH
      else DEFAULT_DELIVERY_DAYS
  )
  return created_at + datetime.timedelta(days=days)
