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


"""Tests for checkout initiation and the payment processor client."""

import asyncio
import json

from absl.testing import absltest
from enums import OrderStatus
from enums import PaymentMethod
from enums import PaymentStatus
from exceptions import InvalidRequestError
from exceptions import PaymentGatewayError
import httpx
from models import CartLine
from models import PlacedOrder
from models import ProductRef
from services.checkout_service import CheckoutService
from services.fulfillment_coordinator import FulfillmentCoordinator
from services.notification_dispatcher import NotificationDispatcher
from services.payment_gateway import PaymentGatewayClient


class CartOnlyStore:
  """Order store serving a fixed cart and recording created orders."""

  def __init__(self, lines):
    self.lines = lines
    self.created = []
    self.cleared = []

  async def list_cart_lines(self, buyer_id, line_ids=None):
    return [
        line
        for line in self.lines
        if line.buyer_id == buyer_id
        and (line_ids is None or line.id in line_ids)
    ]

  async def create_order(self, **fields):
    order = PlacedOrder(id=f"order-{len(self.created)}", **fields)
    self.created.append(order)
    return order

  async def create_order_item(self, order_id, line):
    return f"{order_id}-{line.id}"

  async def clear_cart_lines(self, buyer_id, line_ids):
    del buyer_id  # Unused.
    self.cleared.extend(line_ids)
    return len(line_ids)

  async def commit(self):
    pass

  async def rollback(self):
    pass


class UnlimitedInventory:

  async def decrement_product_stock(self, product_id, quantity):
    del product_id, quantity  # Unused.
    return 100

  async def decrement_crop_listing(self, listing_id, quantity):
    del listing_id, quantity  # Unused.
    return 100, None

  async def mark_crop_sold(self, crop_id):
    del crop_id  # Unused.


class NullNotificationStore:

  def __init__(self):
    self.drafts = []

  async def create_notification(self, draft):
    self.drafts.append(draft)
    return "n"


def _lines():
  return [
      CartLine(
          id="l1",
          buyer_id="buyer-1",
          ref=ProductRef(id="p1"),
          quantity=2,
          unit_price=1500,
          seller_id="seller-a",
          title="Sprayer",
      ),
      CartLine(
          id="l2",
          buyer_id="buyer-1",
          ref=ProductRef(id="p2"),
          quantity=1,
          unit_price=700,
          seller_id="seller-b",
      ),
  ]


class CheckoutServiceTest(absltest.TestCase):

  def setUp(self) -> None:
    super().setUp()
    self.requests = []
    self.gateway_status = 200

    def handler(request: httpx.Request) -> httpx.Response:
      self.requests.append(request)
      if self.gateway_status != 200:
        return httpx.Response(self.gateway_status, json={"error": "declined"})
      return httpx.Response(
          200, json={"id": "cs_test_1", "url": "https://pay.example/cs_test_1"}
      )

    self.gateway = PaymentGatewayClient(
        "https://pay.example/v1",
        api_key="sk_test",
        transport=httpx.MockTransport(handler),
    )
    self.store = CartOnlyStore(_lines())
    self.notifications = NullNotificationStore()
    self.service = CheckoutService(
        self.store,
        FulfillmentCoordinator(self.store, UnlimitedInventory()),
        NotificationDispatcher(self.notifications),
        self.gateway,
        currency="INR",
        base_url="https://market.example/",
    )

  def test_card_checkout_redirects(self) -> None:
    response = asyncio.run(
        self.service.checkout("buyer-1", PaymentMethod.CARD)
    )

    self.assertEqual(response.checkout_type, "redirect")
    self.assertEqual(response.redirect_url, "https://pay.example/cs_test_1")
    self.assertEqual(response.session_id, "cs_test_1")
    self.assertEmpty(self.store.created)

    request = self.requests[0]
    self.assertEqual(
        str(request.url), "https://pay.example/v1/checkout/sessions"
    )
    self.assertEqual(request.headers["Authorization"], "Bearer sk_test")
    body = json.loads(request.content)
    self.assertEqual(body["amount_total"], 3700)
    self.assertEqual(body["currency"], "inr")
    self.assertEqual(
        body["metadata"],
        {"buyer_id": "buyer-1", "cart_checkout": "true", "line_ids": "l1,l2"},
    )
    self.assertEqual(body["line_items"][0]["name"], "Sprayer")
    self.assertEqual(body["line_items"][1]["name"], "Item")
    self.assertTrue(body["success_url"].startswith("https://market.example/"))

  def test_gateway_rejection_raises(self) -> None:
    self.gateway_status = 402

    with self.assertRaises(PaymentGatewayError) as cm:
      asyncio.run(self.service.checkout("buyer-1", PaymentMethod.CARD))
    self.assertEqual(cm.exception.status_code, 502)

  def test_unreachable_gateway_raises(self) -> None:
    def refuse(request):
      raise httpx.ConnectError("connection refused", request=request)

    self.service.gateway = PaymentGatewayClient(
        "https://pay.example", transport=httpx.MockTransport(refuse)
    )

    with self.assertRaisesRegex(PaymentGatewayError, "unreachable"):
      asyncio.run(self.service.checkout("buyer-1", PaymentMethod.CARD))

  def test_cash_checkout_creates_pending_orders(self) -> None:
    response = asyncio.run(
        self.service.checkout("buyer-1", PaymentMethod.CASH)
    )

    self.assertEqual(response.checkout_type, "direct")
    self.assertLen(response.orders, 2)
    for order in response.orders:
      self.assertEqual(order.status, OrderStatus.PENDING)
      self.assertEqual(order.payment_status, PaymentStatus.PENDING)
      self.assertEqual(order.payment_method, PaymentMethod.CASH)
    self.assertEqual(response.report.notifications_sent, 2)
    self.assertIn("COD", self.notifications.drafts[0].message)
    self.assertEqual(self.store.cleared, ["l1", "l2"])
    self.assertEmpty(self.requests)

  def test_checkout_subset_of_cart(self) -> None:
    response = asyncio.run(
        self.service.checkout("buyer-1", PaymentMethod.CASH, ["l2"])
    )

    self.assertLen(response.orders, 1)
    self.assertEqual(response.orders[0].seller_id, "seller-b")

  def test_card_checkout_of_subset_names_charged_lines(self) -> None:
    asyncio.run(
        self.service.checkout("buyer-1", PaymentMethod.CARD, ["l2"])
    )

    body = json.loads(self.requests[0].content)
    self.assertEqual(body["amount_total"], 700)
    self.assertEqual(body["metadata"]["line_ids"], "l2")

  def test_empty_cart_is_rejected(self) -> None:
    with self.assertRaises(InvalidRequestError):
      asyncio.run(self.service.checkout("buyer-2", PaymentMethod.CARD))


if __name__ == "__main__":
  absltest.main()
