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


"""Checkout initiation route."""

import dependencies
from fastapi import APIRouter
from fastapi import Body
from fastapi import Depends
from models import CheckoutRequest
from models import CheckoutResponse
from services.checkout_service import CheckoutService

router = APIRouter()


@router.post(
    "/checkout",
    response_model=CheckoutResponse,
    operation_id="start_checkout",
)
async def start_checkout(
    checkout_req: CheckoutRequest = Body(...),
    checkout_service: CheckoutService = Depends(
        dependencies.get_checkout_service
    ),
) -> CheckoutResponse:
  """Starts a card (redirect) or cash (direct) checkout of a cart."""
  return await checkout_service.checkout(
      checkout_req.buyer_id,
      checkout_req.payment_method,
      checkout_req.cart_line_ids,
  )
