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


"""Integration tests for the fulfillment server."""

import asyncio
import json
import os
import shutil
import tempfile
from typing import Any, Dict, Optional

from absl.testing import absltest
import config
import db
import dependencies
from fastapi.testclient import TestClient
import httpx
from server import app
from services.event_authenticator import sign_payload
from services.payment_gateway import PaymentGatewayClient
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import NullPool

WEBHOOK_SECRET = "whsec_integration"


class IntegrationTest(absltest.TestCase):
  """Integration tests for the fulfillment server application."""

  def setUp(self) -> None:
    """Sets up a temporary DB, dependency overrides and the test client."""
    super().setUp()
    self.test_dir = tempfile.mkdtemp()
    self.db_path = os.path.join(self.test_dir, "test_marketplace.db")

    # NullPool keeps connections from leaking between event loops
    self.engine = create_async_engine(
        f"sqlite+aiosqlite:///{self.db_path}", echo=False, poolclass=NullPool
    )
    self.session_factory = sessionmaker(
        self.engine, expire_on_commit=False, class_=AsyncSession
    )

    async def init_schema() -> None:
      async with self.engine.begin() as conn:
        await conn.run_sync(db.Base.metadata.create_all)

    asyncio.run(init_schema())

    self.gateway_requests = []

    def gateway_handler(request: httpx.Request) -> httpx.Response:
      self.gateway_requests.append(request)
      return httpx.Response(
          200, json={"id": "cs_int_1", "url": "https://pay.example/cs_int_1"}
      )

    settings = config.Settings(
        webhook_secret=WEBHOOK_SECRET, order_cache_max_age_seconds=5
    )
    app.dependency_overrides[dependencies.get_session_factory] = (
        lambda: self.session_factory
    )
    app.dependency_overrides[dependencies.get_settings] = lambda: settings
    app.dependency_overrides[dependencies.get_payment_gateway] = (
        lambda: PaymentGatewayClient(
            "https://pay.example",
            transport=httpx.MockTransport(gateway_handler),
        )
    )

    self.client = TestClient(app)
    self._seed_data()

  def tearDown(self) -> None:
    """Cleans up the test environment."""
    app.dependency_overrides.clear()
    asyncio.run(self.engine.dispose())
    shutil.rmtree(self.test_dir)
    super().tearDown()

  def _seed_data(self) -> None:
    async def seed() -> None:
      async with self.session_factory() as session:
        session.add_all([
            db.User(id="buyer-1", full_name="Asha Rao"),
            db.User(id="supplier-1", full_name="Green Tools Co"),
            db.User(id="farmer-1", full_name="Ravi Kumar"),
            db.Product(
                id="prod-1",
                name="Knapsack Sprayer",
                supplier_id="supplier-1",
                price=1000,
                stock_quantity=10,
            ),
            db.Crop(id="crop-1", name="Rice", farmer_id="farmer-1"),
            db.CropListing(
                id="listing-1",
                crop_id="crop-1",
                farmer_id="farmer-1",
                price_per_unit=60,
                quantity_available=5,
            ),
            db.Driver(id="driver-1", full_name="Suresh Reddy"),
        ])
        await session.commit()

    asyncio.run(seed())

  def _fill_cart(self) -> None:
    for body in (
        {"product_id": "prod-1", "quantity": 2},
        {"crop_listing_id": "listing-1", "quantity": 5},
    ):
      response = self.client.post("/cart/buyer-1/items", json=body)
      self.assertEqual(response.status_code, 201, response.text)

  def _event(
      self,
      event_id: str = "evt_123",
      event_type: str = "checkout.session.completed",
      amount_total: int = 2300,
      metadata: Optional[Dict[str, Any]] = None,
      payment_status: str = "paid",
  ) -> bytes:
    if metadata is None:
      metadata = {"buyer_id": "buyer-1", "cart_checkout": "true"}
    return json.dumps({
        "id": event_id,
        "type": event_type,
        "data": {
            "object": {
                "id": "cs_int_1",
                "payment_status": payment_status,
                "amount_total": amount_total,
                "currency": "inr",
                "payment_intent": "pi_int_1",
                "metadata": metadata,
                "shipping_details": {"city": "Hyderabad"},
            }
        },
    }).encode("utf-8")

  def _post_event(self, body: bytes, signature: Optional[str] = None):
    if signature is None:
      signature = sign_payload(body, WEBHOOK_SECRET)
    return self.client.post(
        "/webhooks/payments",
        content=body,
        headers={
            "Content-Type": "application/json",
            "Payment-Signature": signature,
        },
    )

  def _orders(self, **params):
    response = self.client.get("/orders", params=params)
    self.assertEqual(response.status_code, 200, response.text)
    return response.json()

  def test_cart_lines_resolve_sellers(self) -> None:
    self._fill_cart()

    cart = self.client.get("/cart/buyer-1").json()

    self.assertLen(cart, 2)
    self.assertEqual(cart[0]["seller_id"], "supplier-1")
    self.assertEqual(cart[0]["seller_name"], "Green Tools Co")
    self.assertEqual(cart[0]["unit_price"], 1000)
    self.assertEqual(
        cart[1]["ref"], {"kind": "crop_listing", "id": "listing-1"}
    )
    self.assertEqual(cart[1]["title"], "Rice")

  def test_cart_line_needs_exactly_one_reference(self) -> None:
    response = self.client.post(
        "/cart/buyer-1/items",
        json={
            "product_id": "prod-1",
            "crop_listing_id": "listing-1",
            "quantity": 1,
        },
    )
    self.assertEqual(response.status_code, 422)

  def test_remove_cart_line(self) -> None:
    self._fill_cart()
    line_id = self.client.get("/cart/buyer-1").json()[0]["id"]

    response = self.client.delete(f"/cart/buyer-1/items/{line_id}")

    self.assertEqual(response.status_code, 200)
    self.assertLen(self.client.get("/cart/buyer-1").json(), 1)
    response = self.client.delete(f"/cart/buyer-1/items/{line_id}")
    self.assertEqual(response.status_code, 404)

  def test_paid_cart_creates_one_order_per_seller(self) -> None:
    self._fill_cart()

    response = self._post_event(self._event())

    self.assertEqual(response.status_code, 200, response.text)
    data = response.json()
    self.assertTrue(data["received"])
    self.assertEqual(data["outcome"], "processed")
    self.assertLen(data["report"]["orders"], 2)
    self.assertEqual(data["report"]["cleared_line_count"], 2)

    orders = self._orders(buyer_id="buyer-1")
    totals = {o["seller_id"]: o["total_amount"] for o in orders}
    self.assertEqual(totals, {"supplier-1": 2000, "farmer-1": 300})
    for order in orders:
      self.assertEqual(order["status"], "confirmed")
      self.assertEqual(order["payment_status"], "paid")
      self.assertEqual(order["payment_reference"], "pi_int_1")
      self.assertEqual(order["currency"], "INR")
      self.assertLen(order["items"], 1)
    self.assertEmpty(self.client.get("/cart/buyer-1").json())

    supplier_notes = self.client.get("/notifications/supplier-1").json()
    self.assertLen(supplier_notes, 1)
    self.assertEqual(supplier_notes[0]["title"], "New Order Received")
    self.assertIn("INR 20.00", supplier_notes[0]["message"])
    self.assertLen(self.client.get("/notifications/farmer-1").json(), 1)

    async def inventory():
      async with self.session_factory() as session:
        product = await db.get_product(session, "prod-1")
        listing = await db.get_crop_listing(session, "listing-1")
        crop = await session.get(db.Crop, "crop-1")
        return product.stock_quantity, listing, crop.status

    stock, listing, crop_status = asyncio.run(inventory())
    self.assertEqual(stock, 8)
    self.assertEqual(listing.quantity_available, 0)
    self.assertFalse(listing.is_active)
    self.assertEqual(crop_status, "sold")

  def test_duplicate_event_is_acknowledged_once(self) -> None:
    self._fill_cart()
    body = self._event()

    first = self._post_event(body)
    second = self._post_event(body)

    self.assertEqual(first.json()["outcome"], "processed")
    self.assertEqual(second.status_code, 200)
    self.assertEqual(second.json()["outcome"], "duplicate")
    self.assertLen(self._orders(buyer_id="buyer-1"), 2)
    self.assertLen(self.client.get("/notifications/supplier-1").json(), 1)

  def test_invalid_signature_is_rejected_without_side_effects(self) -> None:
    self._fill_cart()
    body = self._event()

    response = self._post_event(body, signature=sign_payload(body, "wrong"))

    self.assertEqual(response.status_code, 400)
    self.assertEqual(response.json()["code"], "AUTHENTICATION_FAILED")
    self.assertEmpty(self._orders(buyer_id="buyer-1"))
    self.assertLen(self.client.get("/cart/buyer-1").json(), 2)

    # The rejected delivery did not claim the event id
    self.assertEqual(self._post_event(body).json()["outcome"], "processed")

  def test_missing_signature_is_rejected(self) -> None:
    response = self.client.post("/webhooks/payments", content=self._event())
    self.assertEqual(response.status_code, 400)

  def test_unrelated_and_unpaid_events_are_ignored(self) -> None:
    self._fill_cart()

    other = self._post_event(self._event(event_type="charge.refunded"))
    unpaid = self._post_event(
        self._event(event_id="evt_unpaid", payment_status="unpaid")
    )

    self.assertEqual(other.json()["outcome"], "ignored")
    self.assertEqual(unpaid.json()["outcome"], "ignored")
    self.assertEmpty(self._orders(buyer_id="buyer-1"))

  def test_malformed_session_is_acknowledged_and_ignored(self) -> None:
    self._fill_cart()
    body = self._event(
        event_id="evt_bad_type",
        metadata={"buyer_id": "buyer-1", "order_type": "equipment"},
    )

    response = self._post_event(body)

    self.assertEqual(response.status_code, 200, response.text)
    self.assertEqual(response.json()["outcome"], "ignored")
    self.assertEmpty(self._orders(buyer_id="buyer-1"))
    self.assertLen(self.client.get("/cart/buyer-1").json(), 2)

  def test_unparseable_event_is_acknowledged_and_ignored(self) -> None:
    body = b'{"type": "checkout.session.completed"}'

    response = self._post_event(body)

    self.assertEqual(response.status_code, 200, response.text)
    self.assertEqual(response.json()["outcome"], "ignored")
    self.assertIsNone(response.json()["event_id"])

  def test_paid_empty_cart_records_direct_purchase(self) -> None:
    response = self._post_event(self._event(amount_total=2300))

    data = response.json()
    self.assertEqual(data["outcome"], "processed")
    orders = self._orders(buyer_id="buyer-1")
    self.assertLen(orders, 1)
    self.assertEqual(orders[0]["seller_id"], "buyer-1")
    self.assertEqual(orders[0]["total_amount"], 2300)
    self.assertEmpty(orders[0]["items"])

  def test_card_checkout_of_part_of_cart_fulfills_paid_lines_only(
      self,
  ) -> None:
    self._fill_cart()
    cart = self.client.get("/cart/buyer-1").json()

    response = self.client.post(
        "/checkout",
        json={
            "buyer_id": "buyer-1",
            "payment_method": "card",
            "cart_line_ids": [cart[0]["id"]],
        },
    )
    self.assertEqual(response.status_code, 200, response.text)
    metadata = json.loads(self.gateway_requests[0].content)["metadata"]
    self.assertEqual(metadata["line_ids"], cart[0]["id"])

    data = self._post_event(
        self._event(amount_total=2000, metadata=metadata)
    ).json()

    self.assertEqual(data["outcome"], "processed")
    orders = self._orders(buyer_id="buyer-1")
    self.assertEqual(
        [(o["seller_id"], o["total_amount"]) for o in orders],
        [("supplier-1", 2000)],
    )
    remaining = self.client.get("/cart/buyer-1").json()
    self.assertEqual([line["id"] for line in remaining], [cart[1]["id"]])

    async def listing_quantity():
      async with self.session_factory() as session:
        listing = await db.get_crop_listing(session, "listing-1")
        return listing.quantity_available

    self.assertEqual(asyncio.run(listing_quantity()), 5)

  def test_direct_purchase_creates_single_order(self) -> None:
    self._fill_cart()
    body = self._event(
        event_id="evt_direct",
        amount_total=1000,
        metadata={
            "buyer_id": "buyer-1",
            "seller_id": "supplier-1",
            "order_type": "product",
            "item_id": "prod-1",
        },
    )

    data = self._post_event(body).json()

    self.assertEqual(data["outcome"], "processed")
    orders = self._orders(buyer_id="buyer-1")
    self.assertLen(orders, 1)
    self.assertEqual(orders[0]["seller_id"], "supplier-1")
    self.assertEqual(orders[0]["total_amount"], 1000)
    self.assertEqual(orders[0]["items"][0]["product_id"], "prod-1")
    # Direct purchases leave the cart alone
    self.assertLen(self.client.get("/cart/buyer-1").json(), 2)

  def test_cash_checkout_creates_pending_orders(self) -> None:
    self._fill_cart()

    response = self.client.post(
        "/checkout", json={"buyer_id": "buyer-1", "payment_method": "cash"}
    )

    self.assertEqual(response.status_code, 200, response.text)
    data = response.json()
    self.assertEqual(data["checkout_type"], "direct")
    self.assertLen(data["orders"], 2)
    for order in data["orders"]:
      self.assertEqual(order["status"], "pending")
      self.assertEqual(order["payment_status"], "pending")
      self.assertEqual(order["payment_method"], "cash")
    notes = self.client.get("/notifications/farmer-1").json()
    self.assertIn("COD", notes[0]["message"])

  def test_card_checkout_redirects_to_processor(self) -> None:
    self._fill_cart()

    response = self.client.post(
        "/checkout", json={"buyer_id": "buyer-1", "payment_method": "card"}
    )

    self.assertEqual(response.status_code, 200, response.text)
    data = response.json()
    self.assertEqual(data["checkout_type"], "redirect")
    self.assertEqual(data["redirect_url"], "https://pay.example/cs_int_1")
    self.assertLen(self.gateway_requests, 1)
    self.assertEmpty(self._orders(buyer_id="buyer-1"))

  def test_checkout_of_empty_cart_is_rejected(self) -> None:
    response = self.client.post("/checkout", json={"buyer_id": "buyer-1"})
    self.assertEqual(response.status_code, 400)
    self.assertEqual(response.json()["code"], "INVALID_REQUEST")

  def _cash_order_id(self) -> str:
    self.client.post(
        "/cart/buyer-1/items", json={"product_id": "prod-1", "quantity": 1}
    )
    response = self.client.post(
        "/checkout", json={"buyer_id": "buyer-1", "payment_method": "cash"}
    )
    return response.json()["orders"][0]["id"]

  def test_delivery_tracking_flow(self) -> None:
    order_id = self._cash_order_id()

    delivery = self.client.post(
        "/deliveries", json={"order_id": order_id, "driver_id": "driver-1"}
    )
    self.assertEqual(delivery.status_code, 201, delivery.text)
    delivery_id = delivery.json()["id"]

    fixes = ((17.40, "2026-03-01T10:05:00Z"), (17.38, "2026-03-01T10:00:00Z"))
    for lat, ts in fixes:
      response = self.client.post(
          f"/deliveries/{delivery_id}/location",
          json={"latitude": lat, "longitude": 78.48, "timestamp": ts},
      )
      self.assertEqual(response.status_code, 201, response.text)

    history = self.client.get(
        f"/deliveries/{delivery_id}/location", params={"limit": 10}
    ).json()
    self.assertEqual([fix["latitude"] for fix in history], [17.40, 17.38])

    response = self.client.put(
        f"/deliveries/{delivery_id}", json={"status": "picked_up"}
    )
    self.assertEqual(response.status_code, 200, response.text)
    view = self.client.get(f"/deliveries/{delivery_id}").json()
    self.assertEqual(view["status"], "picked_up")
    self.assertEqual(view["current_location"]["latitude"], 17.38)
    self.assertLen(view["status_events"], 2)

    order = self.client.get(f"/orders/{order_id}")
    self.assertEqual(order.status_code, 200)
    self.assertEqual(order.headers["Cache-Control"], "private, max-age=5")
    data = order.json()
    self.assertEqual(data["order"]["status"], "shipped")
    current = [m["tag"] for m in data["milestones"] if m["state"] == "current"]
    self.assertEqual(current, ["in_transit"])
    self.assertEqual(data["delivery"]["id"], delivery_id)

    response = self.client.put(
        f"/deliveries/{delivery_id}", json={"status": "assigned"}
    )
    self.assertEqual(response.status_code, 409)

  def test_order_status_updates(self) -> None:
    order_id = self._cash_order_id()

    response = self.client.put(
        f"/orders/{order_id}/status", json={"status": "confirmed"}
    )
    self.assertEqual(response.status_code, 200, response.text)
    self.assertEqual(response.json()["status"], "confirmed")

    response = self.client.put(
        f"/orders/{order_id}/status", json={"status": "pending"}
    )
    self.assertEqual(response.status_code, 409)
    self.assertEqual(response.json()["code"], "INVALID_STATUS_TRANSITION")

    buyer_notes = self.client.get("/notifications/buyer-1").json()
    self.assertEqual(buyer_notes[0]["title"], "Order Confirmed")

  def test_unknown_order_is_not_found(self) -> None:
    response = self.client.get("/orders/missing")
    self.assertEqual(response.status_code, 404)
    self.assertEqual(response.json()["code"], "RESOURCE_NOT_FOUND")

  def test_mark_notifications_read(self) -> None:
    self._cash_order_id()
    notes = self.client.get("/notifications/supplier-1").json()
    self.assertFalse(notes[0]["is_read"])

    response = self.client.put(
        "/notifications/supplier-1", json={"notification_id": notes[0]["id"]}
    )
    self.assertEqual(response.json()["updated"], 1)
    self.assertTrue(
        self.client.get("/notifications/supplier-1").json()[0]["is_read"]
    )

    response = self.client.put(
        "/notifications/supplier-1", json={"mark_all_as_read": True}
    )
    self.assertEqual(response.status_code, 200)


if __name__ == "__main__":
  absltest.main()
