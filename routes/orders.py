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


"""Order read model and status routes."""

from typing import List, Optional

import config
import dependencies
from fastapi import APIRouter
from fastapi import Body
from fastapi import Depends
from fastapi import Path
from fastapi import Query
from fastapi import Response
from models import OrderDetail
from models import OrderStatusUpdateRequest
from models import OrderView
from services.order_service import OrderService

router = APIRouter()


@router.get(
    "/orders",
    response_model=List[OrderDetail],
    operation_id="list_orders",
)
async def list_orders(
    buyer_id: Optional[str] = Query(None),
    seller_id: Optional[str] = Query(None),
    order_service: OrderService = Depends(dependencies.get_order_service),
) -> List[OrderDetail]:
  """Lists orders of a buyer or a seller, newest first."""
  return await order_service.list_orders(buyer_id=buyer_id, seller_id=seller_id)


@router.get(
    "/orders/{id}",
    response_model=OrderView,
    operation_id="get_order",
)
async def get_order(
    response: Response,
    order_id: str = Path(..., alias="id"),
    order_service: OrderService = Depends(dependencies.get_order_service),
    settings: config.Settings = Depends(dependencies.get_settings),
) -> OrderView:
  """Get an order with its delivery milestones."""
  view = await order_service.get_order_view(order_id)
  response.headers["Cache-Control"] = (
      f"private, max-age={settings.order_cache_max_age_seconds}"
  )
  return view


@router.put(
    "/orders/{id}/status",
    response_model=OrderDetail,
    operation_id="update_order_status",
)
async def update_order_status(
    order_id: str = Path(..., alias="id"),
    status_req: OrderStatusUpdateRequest = Body(...),
    order_service: OrderService = Depends(dependencies.get_order_service),
) -> OrderDetail:
  """Moves an order forward, or cancels it."""
  return await order_service.update_status(order_id, status_req.status)
