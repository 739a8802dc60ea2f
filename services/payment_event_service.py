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

"""Handling of payment processor completion events.

This module provides the `PaymentEventService` class, which runs the whole
pipeline for one inbound event:
- Authenticates the raw body against its signature header.
- Ignores events that do not complete a paid checkout session.
- Claims the event identifier so a redelivery is never fulfilled twice.
- Loads the paid cart lines (or builds the single line of a direct
  purchase), partitions them by seller and fulfills every partition. A paid
  cart that yields no partition is recorded as a direct purchase.
- Notifies the sellers of their new orders.

Only authentication failures are raised. An authenticated body that does not
parse is logged and ignored, because a redelivery would carry the same body.
Once the event has been claimed, failures are logged and the event is still
acknowledged, since the processor's retry would be rejected as a duplicate
anyway.
"""

import logging
from typing import Optional

from enums import PaymentEventOutcome
from enums import PaymentMethod
from exceptions import AlreadyProcessed
from models import CheckoutSessionObject
from models import PartitionResult
from models import PaymentContext
from models import PaymentEvent
from models import ProcessingResult
from pydantic import ValidationError
from services.cart_partitioner import build_direct_purchase_line
from services.cart_partitioner import partition_cart
from services.event_authenticator import verify_event
from services.fulfillment_coordinator import FulfillmentCoordinator
from services.idempotency import IdempotencyGuard
from services.notification_dispatcher import NotificationDispatcher
from services.stores import OrderStore

logger = logging.getLogger(__name__)

CHECKOUT_COMPLETED = "checkout.session.completed"
PAID = "paid"


class PaymentEventService:
  """Service for authenticating and fulfilling payment events."""

  def __init__(
      self,
      guard: IdempotencyGuard,
      order_store: OrderStore,
      coordinator: FulfillmentCoordinator,
      dispatcher: NotificationDispatcher,
      webhook_secret: Optional[str],
      currency: str,
      tolerance_seconds: int = 300,
  ):
    self.guard = guard
    self.order_store = order_store
    self.coordinator = coordinator
    self.dispatcher = dispatcher
    self.webhook_secret = webhook_secret
    self.currency = currency
    self.tolerance_seconds = tolerance_seconds

  def _context(self, session: CheckoutSessionObject) -> PaymentContext:
    billing_address = None
    if session.customer_details:
      billing_address = session.customer_details.get("address")
    return PaymentContext(
        payment_method=PaymentMethod.CARD,
        currency=(session.currency or self.currency).upper(),
        payment_reference=session.payment_intent or session.id,
        order_type=session.metadata.order_type,
        shipping_address=session.shipping_details,
        billing_address=billing_address,
        expected_total=session.amount_total,
        cart_checkout=session.metadata.cart_checkout,
    )

  async def handle(
      self, raw_body: bytes, signature_header: Optional[str]
  ) -> ProcessingResult:
    """Processes one payment event delivery.

    Args:
      raw_body: The request body exactly as received.
      signature_header: The processor's signature header.

    Returns:
      What happened to the event.

    Raises:
      AuthenticationError: If the signature does not verify.
    """
    verify_event(
        raw_body,
        signature_header,
        self.webhook_secret,
        tolerance_seconds=self.tolerance_seconds,
    )
    try:
      event = PaymentEvent.model_validate_json(raw_body)
    except ValidationError as e:
      logger.warning("Ignoring malformed payment event: %s", e)
      return ProcessingResult(outcome=PaymentEventOutcome.IGNORED)

    if event.type != CHECKOUT_COMPLETED:
      logger.info("Ignoring event %s of type %s", event.id, event.type)
      return ProcessingResult(
          event_id=event.id, outcome=PaymentEventOutcome.IGNORED
      )

    try:
      session = CheckoutSessionObject.model_validate(event.data.object)
    except ValidationError as e:
      logger.warning(
          "Ignoring event %s: malformed checkout session: %s", event.id, e
      )
      return ProcessingResult(
          event_id=event.id, outcome=PaymentEventOutcome.IGNORED
      )

    buyer_id = session.metadata.buyer_id
    if session.payment_status != PAID or not buyer_id:
      logger.warning(
          "Ignoring event %s: payment status %s, buyer %s",
          event.id,
          session.payment_status,
          buyer_id,
      )
      return ProcessingResult(
          event_id=event.id, outcome=PaymentEventOutcome.IGNORED
      )

    try:
      await self.guard.claim(event.id, event.type)
    except AlreadyProcessed:
      return ProcessingResult(
          event_id=event.id, outcome=PaymentEventOutcome.DUPLICATE
      )

    try:
      return await self._fulfill(event.id, buyer_id, session)
    except Exception:  # pylint: disable=broad-exception-caught
      logger.exception("Fulfillment of event %s failed", event.id)
      return ProcessingResult(
          event_id=event.id, outcome=PaymentEventOutcome.FAILED
      )

  async def _fulfill(
      self, event_id: str, buyer_id: str, session: CheckoutSessionObject
  ) -> ProcessingResult:
    context = self._context(session)
    if context.cart_checkout:
      lines = await self.order_store.list_cart_lines(
          buyer_id, session.metadata.line_ids
      )
    else:
      lines = [build_direct_purchase_line(buyer_id, session)]

    result = partition_cart(lines)
    if not result.partitions:
      logger.warning(
          "Event %s: no seller partition for buyer %s, recording a direct "
          "purchase of %d",
          event_id,
          buyer_id,
          session.amount_total,
      )
      fallback = partition_cart([build_direct_purchase_line(buyer_id, session)])
      result = PartitionResult(
          partitions=fallback.partitions, warnings=result.warnings
      )
    report = await self.coordinator.fulfill(
        buyer_id, result.partitions, context, result.warnings
    )
    sent, failures = await self.dispatcher.dispatch(
        report.orders, context.currency, context.payment_method
    )
    report.notifications_sent = sent
    report.notification_failures = failures

    logger.info(
        "Event %s fulfilled: %d order(s), %d item failure(s), "
        "%d skipped partition(s)",
        event_id,
        len(report.orders),
        len(report.item_failures),
        len(report.skipped_partitions),
    )
    return ProcessingResult(
        event_id=event_id,
        outcome=PaymentEventOutcome.PROCESSED,
        report=report,
    )
