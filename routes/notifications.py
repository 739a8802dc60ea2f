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


"""In-app notification routes."""

from typing import Any, Dict, List

import db
import dependencies
from exceptions import ResourceNotFoundError
from fastapi import APIRouter
from fastapi import Body
from fastapi import Depends
from fastapi import Path
from fastapi import Query
from models import NotificationUpdateRequest
from models import NotificationView
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter()


@router.get(
    "/notifications/{user_id}",
    response_model=List[NotificationView],
    operation_id="list_notifications",
)
async def list_notifications(
    user_id: str = Path(...),
    limit: int = Query(10, ge=1, le=100),
    session: AsyncSession = Depends(dependencies.get_db),
) -> List[NotificationView]:
  """Returns the user's latest notifications."""
  notifications = await db.list_notifications(session, user_id, limit=limit)
  return [NotificationView.model_validate(n) for n in notifications]


@router.put(
    "/notifications/{user_id}",
    response_model=Dict[str, Any],
    operation_id="update_notifications",
)
async def update_notifications(
    user_id: str = Path(...),
    update_req: NotificationUpdateRequest = Body(...),
    session: AsyncSession = Depends(dependencies.get_db),
) -> Dict[str, Any]:
  """Marks one notification, or all of them, as read."""
  if update_req.mark_all_as_read:
    updated = await db.mark_all_notifications_read(session, user_id)
  elif update_req.notification_id:
    if not await db.set_notification_read(
        session, user_id, update_req.notification_id, update_req.is_read
    ):
      raise ResourceNotFoundError(
          f"Notification {update_req.notification_id} not found"
      )
    updated = 1
  else:
    updated = 0
  await session.commit()
  return {"success": True, "updated": updated}
