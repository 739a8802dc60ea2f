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

"""At-most-once processing of payment events."""

import logging

from exceptions import AlreadyProcessed
from services.stores import IdempotencyStore

logger = logging.getLogger(__name__)


class IdempotencyGuard:
  """Claims payment event identifiers before any side effect happens."""

  def __init__(self, store: IdempotencyStore):
    self.store = store

  async def claim(self, event_id: str, event_type: str = "") -> None:
    """Marks an event as processed.

    Exactly one of any number of concurrent claims for the same identifier
    succeeds. The marker is never removed, so a processor retry after a failed
    run is acknowledged without being processed again.

    Args:
      event_id: The processor's unique event identifier.
      event_type: The event type, stored alongside the marker.

    Raises:
      AlreadyProcessed: If the identifier was claimed before.
    """
    if not await self.store.mark_processed(event_id, event_type):
      logger.info("Event %s already processed, skipping", event_id)
      raise AlreadyProcessed(event_id)
    logger.info("Claimed event %s (%s)", event_id, event_type)
