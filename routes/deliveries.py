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


"""Delivery tracking routes used by drivers and the order tracker."""

import datetime
from typing import List, Optional

import dependencies
from fastapi import APIRouter
from fastapi import Body
from fastapi import Depends
from fastapi import Path
from fastapi import Query
from models import DeliveryCreateRequest
from models import DeliveryStatusUpdateRequest
from models import DeliverySummary
from models import DeliveryView
from models import LocationFix
from models import LocationUpdateRequest
from services.location_service import DEFAULT_HISTORY_LIMIT
from services.location_service import LocationService

router = APIRouter()


@router.post(
    "/deliveries",
    response_model=DeliverySummary,
    status_code=201,
    operation_id="create_delivery",
)
async def create_delivery(
    delivery_req: DeliveryCreateRequest = Body(...),
    service: LocationService = Depends(dependencies.get_location_service),
) -> DeliverySummary:
  return await service.create_delivery(
      delivery_req.order_id, delivery_req.driver_id
  )


@router.get(
    "/deliveries/{id}",
    response_model=DeliveryView,
    operation_id="get_delivery",
)
async def get_delivery(
    delivery_id: str = Path(..., alias="id"),
    service: LocationService = Depends(dependencies.get_location_service),
) -> DeliveryView:
  return await service.get_delivery(delivery_id)


@router.put(
    "/deliveries/{id}",
    response_model=DeliveryView,
    operation_id="update_delivery_status",
)
async def update_delivery_status(
    delivery_id: str = Path(..., alias="id"),
    status_req: DeliveryStatusUpdateRequest = Body(...),
    service: LocationService = Depends(dependencies.get_location_service),
) -> DeliveryView:
  return await service.update_status(delivery_id, status_req.status)


@router.post(
    "/deliveries/{id}/location",
    response_model=LocationFix,
    status_code=201,
    operation_id="record_location",
)
async def record_location(
    delivery_id: str = Path(..., alias="id"),
    fix: LocationUpdateRequest = Body(...),
    service: LocationService = Depends(dependencies.get_location_service),
) -> LocationFix:
  """Stores a driver's position fix."""
  return await service.record_fix(delivery_id, fix)


@router.get(
    "/deliveries/{id}/location",
    response_model=List[LocationFix],
    operation_id="get_location_history",
)
async def get_location_history(
    delivery_id: str = Path(..., alias="id"),
    limit: int = Query(DEFAULT_HISTORY_LIMIT, ge=1, le=1000),
    since: Optional[datetime.datetime] = Query(None),
    service: LocationService = Depends(dependencies.get_location_service),
) -> List[LocationFix]:
  """Returns the delivery's fixes, newest first."""
  return await service.history(delivery_id, limit=limit, since=since)
