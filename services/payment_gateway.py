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

"""Client for the external payment processor's hosted checkout sessions."""

import logging
from typing import Any, Dict, List, Optional, Sequence

from exceptions import PaymentGatewayError
import httpx
from models import CartLine
from models import GatewaySession

logger = logging.getLogger(__name__)


class PaymentGatewayClient:
  """Creates hosted checkout sessions at the payment processor."""

  def __init__(
      self,
      base_url: str,
      api_key: Optional[str] = None,
      timeout: float = 10.0,
      transport: Optional[httpx.AsyncBaseTransport] = None,
  ):
    self.base_url = base_url.rstrip("/")
    self.api_key = api_key
    self.timeout = timeout
    self.transport = transport

  def _headers(self) -> Dict[str, str]:
    headers = {"Content-Type": "application/json"}
    if self.api_key:
      headers["Authorization"] = f"Bearer {self.api_key}"
    return headers

  async def create_checkout_session(
      self,
      lines: Sequence[CartLine],
      currency: str,
      metadata: Dict[str, Any],
      success_url: str,
      cancel_url: str,
  ) -> GatewaySession:
    """Creates a session the buyer is redirected to for payment.

    Args:
      lines: The cart lines being paid for.
      currency: ISO currency code; amounts are sent in minor units.
      metadata: Echoed back on the completion event.
      success_url: Where the processor sends the buyer after paying.
      cancel_url: Where the processor sends the buyer on cancel.

    Returns:
      The created session with its redirect URL.

    Raises:
      PaymentGatewayError: If the processor is unreachable or rejects the
        request.
    """
    line_items: List[Dict[str, Any]] = [
        {
            "name": line.title or "Item",
            "unit_amount": line.unit_price,
            "quantity": line.quantity,
        }
        for line in lines
    ]
    payload = {
        "mode": "payment",
        "currency": currency.lower(),
        "line_items": line_items,
        "amount_total": sum(line.line_total for line in lines),
        "metadata": metadata,
        "success_url": success_url,
        "cancel_url": cancel_url,
    }

    try:
      async with httpx.AsyncClient(
          base_url=self.base_url,
          timeout=self.timeout,
          transport=self.transport,
      ) as client:
        response = await client.post(
            "/checkout/sessions", json=payload, headers=self._headers()
        )
    except httpx.HTTPError as e:
      logger.error("Payment processor unreachable: %s", e)
      raise PaymentGatewayError(f"Payment processor unreachable: {e}") from e

    if response.status_code >= 400:
      logger.error(
          "Payment processor rejected session: %s %s",
          response.status_code,
          response.text,
      )
      raise PaymentGatewayError(
          f"Payment processor returned {response.status_code}"
      )

    try:
      return GatewaySession.model_validate(response.json())
    except ValueError as e:
      raise PaymentGatewayError(
          f"Malformed payment processor response: {e}"
      ) from e
