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


"""Payment processor webhook route."""

import logging
from typing import Any, Dict, Optional

import dependencies
from fastapi import APIRouter
from fastapi import Depends
from fastapi import Header
from fastapi import Request
from services.payment_event_service import PaymentEventService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "/webhooks/payments",
    response_model=Dict[str, Any],
    operation_id="receive_payment_event",
)
async def receive_payment_event(
    request: Request,
    payment_signature: Optional[str] = Header(None),
    service: PaymentEventService = Depends(
        dependencies.get_payment_event_service
    ),
) -> Dict[str, Any]:
  """Receives a signed payment event.

  The raw body is read before any parsing since the signature covers the exact
  bytes sent. Every authenticated event is acknowledged with 200, including
  duplicates and events whose fulfillment failed.
  """
  raw_body = await request.body()
  result = await service.handle(raw_body, payment_signature)
  logger.info("Event %s: %s", result.event_id, result.outcome.value)
  return {"received": True, **result.model_dump(mode="json")}
