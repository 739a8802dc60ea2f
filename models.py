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

"""Pydantic models for the fulfillment server.

The first group models the values flowing through the payment pipeline (cart
lines, seller partitions, the per-run fulfillment report). The second group
models the inbound payment processor event, and the rest are the request and
response bodies of the HTTP surface.
"""

import datetime
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from enums import DeliveryStatus
from enums import Milestone
from enums import MilestoneState
from enums import OrderStatus
from enums import OrderType
from enums import PaymentEventOutcome
from enums import PaymentMethod
from enums import PaymentStatus
from exceptions import CoordinatorError
from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import Field
from pydantic import field_validator
from pydantic import model_validator

# --- Pipeline values ---


class ProductRef(BaseModel):
  kind: Literal["product"] = "product"
  id: str


class CropListingRef(BaseModel):
  kind: Literal["crop_listing"] = "crop_listing"
  id: str


CartLineRef = Annotated[
    Union[ProductRef, CropListingRef], Field(discriminator="kind")
]


class CartLine(BaseModel):
  """A cart line with its seller resolved.

  `id` is None for the synthetic line built for a direct (non-cart) purchase,
  and `ref` is None when such a purchase names no catalog entity.
  """

  id: Optional[str] = None
  buyer_id: str
  ref: Optional[CartLineRef] = None
  quantity: int
  unit_price: int
  seller_id: Optional[str] = None
  seller_name: Optional[str] = None
  title: Optional[str] = None

  @property
  def line_total(self) -> int:
    return self.unit_price * self.quantity

  @property
  def order_type(self) -> Optional[OrderType]:
    if isinstance(self.ref, ProductRef):
      return OrderType.PRODUCT
    if isinstance(self.ref, CropListingRef):
      return OrderType.CROP
    return None


class SellerPartition(BaseModel):
  seller_id: str
  seller_name: Optional[str] = None
  lines: List[CartLine] = []
  total: int = 0


class Outcome(BaseModel):
  """One absorbed pipeline error, kept on the report instead of raised."""

  code: str
  message: str
  seller_id: Optional[str] = None
  order_id: Optional[str] = None
  line_id: Optional[str] = None

  @classmethod
  def from_error(cls, error: CoordinatorError, **context: Any) -> "Outcome":
    return cls(code=error.code, message=error.message, **context)


class PartitionResult(BaseModel):
  partitions: List[SellerPartition] = []
  warnings: List[Outcome] = []


class PaymentContext(BaseModel):
  """How the partitions being fulfilled were paid for."""

  payment_method: PaymentMethod
  currency: str
  status: OrderStatus = OrderStatus.CONFIRMED
  payment_status: PaymentStatus = PaymentStatus.PAID
  payment_reference: Optional[str] = None
  # Used when a synthetic line carries no catalog reference
  order_type: Optional[OrderType] = None
  shipping_address: Optional[Dict[str, Any]] = None
  billing_address: Optional[Dict[str, Any]] = None
  # Amount charged by the payment processor, when known
  expected_total: Optional[int] = None
  cart_checkout: bool = True


class PlacedOrder(BaseModel):
  model_config = ConfigDict(from_attributes=True)

  id: str
  buyer_id: str
  seller_id: str
  order_type: OrderType
  total_amount: int
  currency: Optional[str] = None
  status: OrderStatus
  payment_status: PaymentStatus
  payment_method: PaymentMethod
  payment_reference: Optional[str] = None
  created_at: Optional[datetime.datetime] = None


class NotificationDraft(BaseModel):
  user_id: str
  title: str
  message: str
  type: str
  action_url: Optional[str] = None


class FulfillmentReport(BaseModel):
  """Everything one fulfillment run did, including what it skipped."""

  buyer_id: str
  orders: List[PlacedOrder] = []
  # Order id -> number of order items actually created
  item_counts: Dict[str, int] = {}
  partition_warnings: List[Outcome] = []
  skipped_partitions: List[Outcome] = []
  item_failures: List[Outcome] = []
  notifications_sent: int = 0
  notification_failures: List[Outcome] = []
  cleared_line_count: int = 0
  retained_line_ids: List[str] = []
  partition_total: int = 0
  expected_total: Optional[int] = None

  @property
  def amount_mismatch(self) -> bool:
    return (
        self.expected_total is not None
        and self.expected_total != self.partition_total
    )


# --- Payment processor event ---


class PaymentEventMetadata(BaseModel):
  model_config = ConfigDict(extra="allow")

  buyer_id: Optional[str] = None
  cart_checkout: bool = False
  seller_id: Optional[str] = None
  order_type: Optional[OrderType] = None
  item_id: Optional[str] = None
  line_ids: Optional[List[str]] = None

  @field_validator("line_ids", mode="before")
  @classmethod
  def _split_line_ids(cls, value: Any) -> Any:
    # Processor metadata values are flat strings.
    if isinstance(value, str):
      return [line_id for line_id in value.split(",") if line_id]
    return value


class CheckoutSessionObject(BaseModel):
  model_config = ConfigDict(extra="allow")

  id: str
  payment_status: str
  amount_total: int = 0
  currency: Optional[str] = None
  payment_intent: Optional[str] = None
  metadata: PaymentEventMetadata = Field(
      default_factory=PaymentEventMetadata
  )
  shipping_details: Optional[Dict[str, Any]] = None
  customer_details: Optional[Dict[str, Any]] = None


class PaymentEventData(BaseModel):
  object: Dict[str, Any] = {}


class PaymentEvent(BaseModel):
  model_config = ConfigDict(extra="allow")

  id: str
  type: str
  created: Optional[int] = None
  data: PaymentEventData = Field(default_factory=PaymentEventData)


class ProcessingResult(BaseModel):
  event_id: Optional[str] = None
  outcome: PaymentEventOutcome
  report: Optional[FulfillmentReport] = None


# --- HTTP request and response bodies ---


class CartItemCreateRequest(BaseModel):
  product_id: Optional[str] = None
  crop_listing_id: Optional[str] = None
  quantity: int = Field(gt=0)

  @model_validator(mode="after")
  def _exactly_one_reference(self) -> "CartItemCreateRequest":
    if bool(self.product_id) == bool(self.crop_listing_id):
      raise ValueError(
          "Exactly one of product_id or crop_listing_id must be provided"
      )
    return self


class CheckoutRequest(BaseModel):
  buyer_id: str
  payment_method: PaymentMethod = PaymentMethod.CARD
  cart_line_ids: Optional[List[str]] = None


class GatewaySession(BaseModel):
  model_config = ConfigDict(extra="allow")

  id: str
  url: str


class CheckoutResponse(BaseModel):
  checkout_type: Literal["redirect", "direct"]
  redirect_url: Optional[str] = None
  session_id: Optional[str] = None
  orders: List[PlacedOrder] = []
  report: Optional[FulfillmentReport] = None


class OrderItemView(BaseModel):
  model_config = ConfigDict(from_attributes=True)

  id: str
  product_id: Optional[str] = None
  crop_listing_id: Optional[str] = None
  equipment_id: Optional[str] = None
  quantity: int
  unit_price: int
  total_price: int


class OrderDetail(PlacedOrder):
  shipping_address: Optional[Dict[str, Any]] = None
  billing_address: Optional[Dict[str, Any]] = None
  updated_at: Optional[datetime.datetime] = None
  items: List[OrderItemView] = []


class DeliveryMilestone(BaseModel):
  tag: Milestone
  title: str
  description: str
  state: MilestoneState
  timestamp: Optional[datetime.datetime] = None
  eta_hint: Optional[str] = None


class LocationFix(BaseModel):
  model_config = ConfigDict(from_attributes=True)

  id: int
  delivery_id: str
  latitude: float
  longitude: float
  accuracy: Optional[float] = None
  speed: Optional[float] = None
  heading: Optional[float] = None
  address: Optional[str] = None
  timestamp: datetime.datetime
  received_at: Optional[datetime.datetime] = None


class DeliveryStatusEventView(BaseModel):
  model_config = ConfigDict(from_attributes=True)

  status: DeliveryStatus
  description: str
  latitude: Optional[float] = None
  longitude: Optional[float] = None
  created_at: Optional[datetime.datetime] = None


class DeliverySummary(BaseModel):
  model_config = ConfigDict(from_attributes=True)

  id: str
  order_id: str
  driver_id: Optional[str] = None
  status: DeliveryStatus
  current_location: Optional[LocationFix] = None
  created_at: Optional[datetime.datetime] = None
  updated_at: Optional[datetime.datetime] = None


class DeliveryView(DeliverySummary):
  status_events: List[DeliveryStatusEventView] = []


class OrderView(BaseModel):
  order: OrderDetail
  milestones: List[DeliveryMilestone]
  estimated_delivery: Optional[datetime.datetime] = None
  delivery: Optional[DeliverySummary] = None


class OrderStatusUpdateRequest(BaseModel):
  status: OrderStatus


class LocationUpdateRequest(BaseModel):
  latitude: float
  longitude: float
  accuracy: Optional[float] = None
  speed: Optional[float] = None
  heading: Optional[float] = None
  address: Optional[str] = None
  # Device-reported time of the fix; the server clock is used when absent
  timestamp: Optional[datetime.datetime] = None


class DeliveryCreateRequest(BaseModel):
  order_id: str
  driver_id: Optional[str] = None


class DeliveryStatusUpdateRequest(BaseModel):
  status: DeliveryStatus


class NotificationView(BaseModel):
  model_config = ConfigDict(from_attributes=True)

  id: str
  user_id: str
  title: str
  message: str
  type: str
  action_url: Optional[str] = None
  is_read: bool
  created_at: Optional[datetime.datetime] = None


class NotificationUpdateRequest(BaseModel):
  notification_id: Optional[str] = None
  is_read: bool = True
  mark_all_as_read: bool = False
