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


"""Tests for the order read model and status transitions."""

import asyncio
import os
import shutil
import tempfile

from absl.testing import absltest
import db
from enums import Milestone
from enums import MilestoneState
from enums import OrderStatus
from exceptions import InvalidStatusTransitionError
from exceptions import ResourceNotFoundError
from models import LocationUpdateRequest
from services.location_service import LocationService
from services.notification_dispatcher import NotificationDispatcher
from services.order_service import check_transition
from services.order_service import OrderService
from services.stores import SqlNotificationStore


class CheckTransitionTest(absltest.TestCase):

  def test_forward_moves_are_allowed(self) -> None:
    check_transition(OrderStatus.PENDING, OrderStatus.CONFIRMED)
    check_transition(OrderStatus.CONFIRMED, OrderStatus.SHIPPED)
    check_transition(OrderStatus.SHIPPED, OrderStatus.DELIVERED)

  def test_cancel_from_non_terminal(self) -> None:
    for status in (
        OrderStatus.PENDING,
        OrderStatus.CONFIRMED,
        OrderStatus.PROCESSING,
        OrderStatus.SHIPPED,
    ):
      with self.subTest(status=status):
        check_transition(status, OrderStatus.CANCELLED)

  def test_rejected_moves(self) -> None:
    for current, target in (
        (OrderStatus.SHIPPED, OrderStatus.CONFIRMED),
        (OrderStatus.DELIVERED, OrderStatus.CANCELLED),
        (OrderStatus.CANCELLED, OrderStatus.CONFIRMED),
        (OrderStatus.DELIVERED, OrderStatus.SHIPPED),
    ):
      with self.subTest(current=current, target=target):
        with self.assertRaises(InvalidStatusTransitionError):
          check_transition(current, target)


class OrderServiceTest(absltest.TestCase):

  def setUp(self) -> None:
    super().setUp()
    self.test_dir = tempfile.mkdtemp()
    self.db_path = os.path.join(self.test_dir, "test_orders.db")

  def tearDown(self) -> None:
    shutil.rmtree(self.test_dir)
    super().tearDown()

  def _run(self, scenario):
    async def wrapper():
      manager = db.DatabaseManager()
      await manager.init_db(self.db_path)
      try:
        async with manager.session_factory() as session:
          order = await db.create_order(
              session,
              buyer_id="buyer-1",
              seller_id="seller-1",
              order_type="product",
              total_amount=2500,
              currency="INR",
              status="pending",
              payment_status="pending",
              payment_method="cash",
          )
          await db.create_order_item(
              session, order.id, quantity=5, unit_price=500, product_id="p1"
          )
          await session.commit()
          dispatcher = NotificationDispatcher(
              SqlNotificationStore(manager.session_factory)
          )
          service = OrderService(session, dispatcher)
          return await scenario(service, session, order.id)
      finally:
        await manager.close()

    return asyncio.run(wrapper())

  def test_order_view(self) -> None:
    async def scenario(service, session, order_id):
      del session  # Unused.
      return await service.get_order_view(order_id)

    view = self._run(scenario)

    self.assertEqual(view.order.total_amount, 2500)
    self.assertLen(view.order.items, 1)
    self.assertEqual(view.order.items[0].total_price, 2500)
    self.assertLen(view.milestones, 8)
    self.assertEqual(view.milestones[2].tag, Milestone.ORDER_CONFIRMED)
    self.assertEqual(view.milestones[2].state, MilestoneState.CURRENT)
    self.assertEqual((view.estimated_delivery - view.order.created_at).days, 5)
    self.assertIsNone(view.delivery)

  def test_order_view_includes_latest_delivery_and_fix(self) -> None:
    async def scenario(service, session, order_id):
      locations = LocationService(session)
      delivery = await locations.create_delivery(order_id)
      await locations.record_fix(
          delivery.id, LocationUpdateRequest(latitude=12.9, longitude=77.6)
      )
      return await service.get_order_view(order_id)

    view = self._run(scenario)

    self.assertEqual(view.order.status, OrderStatus.PROCESSING)
    self.assertEqual(view.delivery.status.value, "assigned")
    self.assertEqual(view.delivery.current_location.latitude, 12.9)
    self.assertEqual(view.milestones[3].state, MilestoneState.CURRENT)

  def test_unknown_order(self) -> None:
    async def scenario(service, session, order_id):
      del session, order_id  # Unused.
      await service.get_order_view("missing")

    with self.assertRaises(ResourceNotFoundError):
      self._run(scenario)

  def test_update_status_notifies_buyer_and_seller(self) -> None:
    async def scenario(service, session, order_id):
      updated = await service.update_status(order_id, OrderStatus.CONFIRMED)
      buyer = await db.list_notifications(session, "buyer-1")
      seller = await db.list_notifications(session, "seller-1")
      return updated, buyer, seller

    updated, buyer, seller = self._run(scenario)

    self.assertEqual(updated.status, OrderStatus.CONFIRMED)
    self.assertLen(buyer, 1)
    self.assertEqual(buyer[0].title, "Order Confirmed")
    self.assertLen(seller, 1)

  def test_same_status_is_noop(self) -> None:
    async def scenario(service, session, order_id):
      updated = await service.update_status(order_id, OrderStatus.PENDING)
      notifications = await db.list_notifications(session, "buyer-1")
      return updated, notifications

    updated, notifications = self._run(scenario)

    self.assertEqual(updated.status, OrderStatus.PENDING)
    self.assertEmpty(notifications)

  def test_backwards_update_is_rejected(self) -> None:
    async def scenario(service, session, order_id):
      del session  # Unused.
      await service.update_status(order_id, OrderStatus.SHIPPED)
      await service.update_status(order_id, OrderStatus.PROCESSING)

    with self.assertRaises(InvalidStatusTransitionError):
      self._run(scenario)

  def test_list_orders_filters(self) -> None:
    async def scenario(service, session, order_id):
      del session, order_id  # Unused.
      return (
          await service.list_orders(buyer_id="buyer-1"),
          await service.list_orders(seller_id="seller-2"),
      )

    by_buyer, by_other_seller = self._run(scenario)

    self.assertLen(by_buyer, 1)
    self.assertEmpty(by_other_seller)


if __name__ == "__main__":
  absltest.main()
