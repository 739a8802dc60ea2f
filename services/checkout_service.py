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

"""Checkout initiation for a buyer's cart.

Card checkouts hand the buyer over to the payment processor; the orders are
created later, when the processor's completion event arrives at the webhook.
Cash-on-delivery checkouts create the orders immediately with payment still
pending.
"""

import logging
from typing import Optional, Sequence

from enums import OrderStatus
from enums import PaymentMethod
from enums import PaymentStatus
from exceptions import InvalidRequestError
from models import CheckoutResponse
from models import PaymentContext
from services.cart_partitioner import partition_cart
from services.fulfillment_coordinator import FulfillmentCoordinator
from services.notification_dispatcher import NotificationDispatcher
from services.payment_gateway import PaymentGatewayClient
from services.stores import OrderStore

logger = logging.getLogger(__name__)


class CheckoutService:
  """Service for starting card and cash checkouts."""

  def __init__(
      self,
      order_store: OrderStore,
      coordinator: FulfillmentCoordinator,
      dispatcher: NotificationDispatcher,
      gateway: PaymentGatewayClient,
      currency: str,
      base_url: str,
  ):
    self.order_store = order_store
    self.coordinator = coordinator
    self.dispatcher = dispatcher
    self.gateway = gateway
    self.currency = currency
    self.base_url = base_url.rstrip("/")

  async def checkout(
      self,
      buyer_id: str,
      payment_method: PaymentMethod,
      cart_line_ids: Optional[Sequence[str]] = None,
  ) -> CheckoutResponse:
    """Starts a checkout for the buyer's cart.

    Args:
      buyer_id: The buyer checking out.
      payment_method: Card redirects to the processor, cash fulfills now.
      cart_line_ids: Restricts the checkout to these cart lines.

    Returns:
      A redirect for card payments, or the created orders for cash.

    Raises:
      InvalidRequestError: If there is nothing to check out.
      PaymentGatewayError: If the processor cannot create a session.
    """
    lines = await self.order_store.list_cart_lines(buyer_id, cart_line_ids)
    if not lines:
      raise InvalidRequestError("Cart is empty")

    if payment_method == PaymentMethod.CARD:
      logger.info(
          "Starting card checkout for buyer %s (%d lines)", buyer_id, len(lines)
      )
      session = await self.gateway.create_checkout_session(
          lines,
          currency=self.currency,
          metadata={
              "buyer_id": buyer_id,
              "cart_checkout": "true",
              "line_ids": ",".join(line.id for line in lines if line.id),
          },
          success_url=f"{self.base_url}/dashboard/orders?payment=success",
          cancel_url=f"{self.base_url}/cart?payment=cancelled",
      )
      return CheckoutResponse(
          checkout_type="redirect",
          redirect_url=session.url,
          session_id=session.id,
      )

    logger.info(
        "Starting cash checkout for buyer %s (%d lines)", buyer_id, len(lines)
    )
    result = partition_cart(lines)
    context = PaymentContext(
        payment_method=PaymentMethod.CASH,
        currency=self.currency,
        status=OrderStatus.PENDING,
        payment_status=PaymentStatus.PENDING,
    )
    report = await self.coordinator.fulfill(
        buyer_id, result.partitions, context, result.warnings
    )
    sent, failures = await self.dispatcher.dispatch(
        report.orders, self.currency, PaymentMethod.CASH
    )
    report.notifications_sent = sent
    report.notification_failures = failures
    return CheckoutResponse(
        checkout_type="direct", orders=report.orders, report=report
    )
