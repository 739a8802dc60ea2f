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

"""Enumerations for the fulfillment coordinator.

This module defines the standard enums used throughout the server application
to represent the state of orders, payments, deliveries and the synthesized
delivery milestones.
"""

import enum


class OrderType(str, enum.Enum):
  PRODUCT = "product"
  CROP = "crop"


class OrderStatus(str, enum.Enum):
  PENDING = "pending"
  CONFIRMED = "confirmed"
  PROCESSING = "processing"
  SHIPPED = "shipped"
  DELIVERED = "delivered"
  CANCELLED = "cancelled"


# Forward order of the non-terminal order lifecycle. CANCELLED is a separate
# branch and never appears here.
ORDER_STATUS_SEQUENCE = (
    OrderStatus.PENDING,
    OrderStatus.CONFIRMED,
    OrderStatus.PROCESSING,
    OrderStatus.SHIPPED,
    OrderStatus.DELIVERED,
)


class PaymentStatus(str, enum.Enum):
  PENDING = "pending"
  PAID = "paid"


class PaymentMethod(str, enum.Enum):
  CARD = "card"
  CASH = "cash"


class CropStatus(str, enum.Enum):
  AVAILABLE = "available"
  SOLD = "sold"


class NotificationType(str, enum.Enum):
  ORDER = "order"
  DELIVERY = "delivery"
  INFO = "info"


class DeliveryStatus(str, enum.Enum):
  ASSIGNED = "assigned"
  PICKED_UP = "picked_up"
  IN_TRANSIT = "in_transit"
  OUT_FOR_DELIVERY = "out_for_delivery"
  DELIVERED = "delivered"


DELIVERY_STATUS_SEQUENCE = (
    DeliveryStatus.ASSIGNED,
    DeliveryStatus.PICKED_UP,
    DeliveryStatus.IN_TRANSIT,
    DeliveryStatus.OUT_FOR_DELIVERY,
    DeliveryStatus.DELIVERED,
)


class MilestoneState(str, enum.Enum):
  COMPLETED = "completed"
  CURRENT = "current"
  PENDING = "pending"


class Milestone(str, enum.Enum):
  ORDER_PLACED = "order_placed"
  PAYMENT_CONFIRMED = "payment_confirmed"
  ORDER_CONFIRMED = "order_confirmed"
  PREPARING = "preparing"
  DISPATCHED = "dispatched"
  IN_TRANSIT = "in_transit"
  OUT_FOR_DELIVERY = "out_for_delivery"
  DELIVERED = "delivered"


class PaymentEventOutcome(str, enum.Enum):
  PROCESSED = "processed"
  DUPLICATE = "duplicate"
  IGNORED = "ignored"
  FAILED = "failed"
