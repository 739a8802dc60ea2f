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


"""Buyer cart routes."""

import logging
from typing import Any, Dict, List

import db
import dependencies
from exceptions import InvalidRequestError
from exceptions import ResourceNotFoundError
from fastapi import APIRouter
from fastapi import Body
from fastapi import Depends
from fastapi import Path
from models import CartItemCreateRequest
from models import CartLine
from services.stores import SqlOrderStore
from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get(
    "/cart/{buyer_id}",
    response_model=List[CartLine],
    operation_id="get_cart",
)
async def get_cart(
    buyer_id: str = Path(...),
    session: AsyncSession = Depends(dependencies.get_db),
) -> List[CartLine]:
  """Lists the buyer's cart lines with their sellers resolved."""
  return await SqlOrderStore(session).list_cart_lines(buyer_id)


@router.post(
    "/cart/{buyer_id}/items",
    response_model=CartLine,
    status_code=201,
    operation_id="add_cart_item",
)
async def add_cart_item(
    buyer_id: str = Path(...),
    item_req: CartItemCreateRequest = Body(...),
    session: AsyncSession = Depends(dependencies.get_db),
) -> CartLine:
  """Adds a line, snapshotting the current catalog price."""
  if item_req.product_id:
    product = await db.get_product(session, item_req.product_id)
    if not product:
      raise ResourceNotFoundError(f"Product {item_req.product_id} not found")
    unit_price = product.price
  else:
    listing = await db.get_crop_listing(session, item_req.crop_listing_id)
    if not listing:
      raise ResourceNotFoundError(
          f"Crop listing {item_req.crop_listing_id} not found"
      )
    if not listing.is_active:
      raise InvalidRequestError(
          f"Crop listing {item_req.crop_listing_id} is no longer available"
      )
    unit_price = listing.price_per_unit

  item = await db.add_cart_item(
      session,
      buyer_id,
      quantity=item_req.quantity,
      unit_price=unit_price,
      product_id=item_req.product_id,
      crop_listing_id=item_req.crop_listing_id,
  )
  await session.commit()
  logger.info("Buyer %s added cart line %s", buyer_id, item.id)
  lines = await SqlOrderStore(session).list_cart_lines(buyer_id, [item.id])
  return lines[0]


@router.delete(
    "/cart/{buyer_id}/items/{line_id}",
    response_model=Dict[str, Any],
    operation_id="remove_cart_item",
)
async def remove_cart_item(
    buyer_id: str = Path(...),
    line_id: str = Path(...),
    session: AsyncSession = Depends(dependencies.get_db),
) -> Dict[str, Any]:
  """Removes a line from the buyer's cart."""
  if not await db.delete_cart_item(session, buyer_id, line_id):
    raise ResourceNotFoundError(f"Cart line {line_id} not found")
  await session.commit()
  return {"deleted": True, "id": line_id}
