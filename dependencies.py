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

"""FastAPI dependencies for the fulfillment server.

This module contains dependency injection logic for FastAPI endpoints,
including:
- Runtime settings projected from the command line flags.
- Database session management.
- Service instantiation (payment events, checkout, orders, deliveries).

Tests override `get_session_factory`, `get_settings` and
`get_payment_gateway`; everything else is derived from those.
"""

from typing import AsyncGenerator

import config
import db
from fastapi import Depends
from services.checkout_service import CheckoutService
from services.fulfillment_coordinator import FulfillmentCoordinator
from services.idempotency import IdempotencyGuard
from services.location_service import LocationService
from services.notification_dispatcher import NotificationDispatcher
from services.order_service import OrderService
from services.payment_event_service import PaymentEventService
from services.payment_gateway import PaymentGatewayClient
from services.stores import SqlIdempotencyStore
from services.stores import SqlInventoryStore
from services.stores import SqlNotificationStore
from services.stores import SqlOrderStore
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import sessionmaker


def get_settings() -> config.Settings:
  """Dependency provider for the runtime settings."""
  return config.get_settings()


def get_session_factory() -> sessionmaker:
  """Dependency provider for the session factory."""
  if db.manager.session_factory is None:
    raise RuntimeError("Database is not initialized")
  return db.manager.session_factory


async def get_db(
    session_factory: sessionmaker = Depends(get_session_factory),
) -> AsyncGenerator[AsyncSession, None]:
  """Dependency provider for a request-scoped DB session."""
  async with session_factory() as session:
    yield session


def get_payment_gateway(
    settings: config.Settings = Depends(get_settings),
) -> PaymentGatewayClient:
  """Dependency provider for the payment processor client."""
  return PaymentGatewayClient(
      settings.payment_gateway_url, settings.payment_gateway_api_key
  )


def get_notification_dispatcher(
    session_factory: sessionmaker = Depends(get_session_factory),
    settings: config.Settings = Depends(get_settings),
) -> NotificationDispatcher:
  """Dependency provider for NotificationDispatcher."""
  return NotificationDispatcher(
      SqlNotificationStore(session_factory),
      timeout_seconds=settings.notification_timeout_seconds,
  )


def get_fulfillment_coordinator(
    session: AsyncSession = Depends(get_db),
) -> FulfillmentCoordinator:
  """Dependency provider for FulfillmentCoordinator."""
  return FulfillmentCoordinator(
      SqlOrderStore(session), SqlInventoryStore(session)
  )


def get_payment_event_service(
    session: AsyncSession = Depends(get_db),
    coordinator: FulfillmentCoordinator = Depends(get_fulfillment_coordinator),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
    settings: config.Settings = Depends(get_settings),
) -> PaymentEventService:
  """Dependency provider for PaymentEventService."""
  return PaymentEventService(
      IdempotencyGuard(SqlIdempotencyStore(session)),
      SqlOrderStore(session),
      coordinator,
      dispatcher,
      webhook_secret=settings.webhook_secret,
      currency=settings.currency,
      tolerance_seconds=settings.signature_tolerance_seconds,
  )


def get_checkout_service(
    session: AsyncSession = Depends(get_db),
    coordinator: FulfillmentCoordinator = Depends(get_fulfillment_coordinator),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
    gateway: PaymentGatewayClient = Depends(get_payment_gateway),
    settings: config.Settings = Depends(get_settings),
) -> CheckoutService:
  """Dependency provider for CheckoutService."""
  return CheckoutService(
      SqlOrderStore(session),
      coordinator,
      dispatcher,
      gateway,
      currency=settings.currency,
      base_url=settings.public_base_url,
  )


def get_order_service(
    session: AsyncSession = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
) -> OrderService:
  """Dependency provider for OrderService."""
  return OrderService(session, dispatcher)


def get_location_service(
    session: AsyncSession = Depends(get_db),
) -> LocationService:
  """Dependency provider for LocationService."""
  return LocationService(session)
