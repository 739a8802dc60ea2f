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


"""Marketplace Fulfillment Server (Python/FastAPI)."""

import logging
import sys
from typing import Sequence

from absl import app as absl_app
import config
from exceptions import CoordinatorError
from fastapi import FastAPI
from fastapi import Request
from fastapi.responses import JSONResponse
from routes.cart import router as cart_router
from routes.checkout import router as checkout_router
from routes.deliveries import router as deliveries_router
from routes.notifications import router as notifications_router
from routes.orders import router as orders_router
from routes.webhooks import router as webhooks_router
import uvicorn

# --- App Setup ---

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Marketplace Fulfillment Service",
    version=config.SERVER_VERSION,
    description=(
        "Turns payment events into per-seller orders and tracks their delivery"
    ),
    lifespan=config.lifespan,
)


@app.exception_handler(CoordinatorError)
async def coordinator_exception_handler(
    request: Request, exc: CoordinatorError
):
  """Converts coordinator exceptions to JSON responses."""
  del request  # Unused.
  return JSONResponse(
      status_code=exc.status_code,
      content={"detail": exc.message, "code": exc.code},
  )


app.include_router(webhooks_router)
app.include_router(checkout_router)
app.include_router(cart_router)
app.include_router(orders_router)
app.include_router(deliveries_router)
app.include_router(notifications_router)


def main(argv: Sequence[str]) -> None:
  """Main entry point for the Marketplace Fulfillment Server."""
  del argv  # Unused.

  if config.FLAGS.database_path is None or config.FLAGS.port is None:
    logger.error("Both --database_path and --port must be provided.")
    print("\nUsage:")
    print(config.FLAGS.main_module_help())
    sys.exit(1)

  if not config.FLAGS.webhook_secret:
    logger.warning(
        "--webhook_secret is not set; every payment event will be rejected"
    )

  uvicorn.run(app, host="0.0.0.0", port=config.FLAGS.port)


if __name__ == "__main__":
  absl_app.run(main)
