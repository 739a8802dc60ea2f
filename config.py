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

"""Shared configuration and startup logic for the fulfillment server."""

import contextlib
from typing import Optional

from absl import flags
import db
from fastapi import FastAPI
from pydantic import BaseModel

FLAGS = flags.FLAGS

SERVER_VERSION = "2026.10.0"

# Define flags only if they haven't been defined yet (to avoid duplicates
# during tests or re-imports)
try:
  flags.DEFINE_string("database_path", None, "Path to the marketplace DB")
  flags.DEFINE_integer("port", None, "Port to run the server on")
  flags.DEFINE_string(
      "webhook_secret",
      None,
      "Shared secret used to verify payment processor event signatures",
  )
  flags.DEFINE_integer(
      "signature_tolerance_seconds",
      300,
      "Maximum age of a signed payment event; 0 disables the check",
  )
  flags.DEFINE_string(
      "payment_gateway_url",
      "http://localhost:8787",
      "Base URL of the external payment processor",
  )
  flags.DEFINE_string(
      "payment_gateway_api_key", None, "API key for the payment processor"
  )
  flags.DEFINE_string(
      "public_base_url",
      "http://localhost:3000",
      "Public URL used to build checkout success and cancel links",
  )
  flags.DEFINE_string("currency", "INR", "ISO currency code for all amounts")
  flags.DEFINE_float(
      "notification_timeout_seconds",
      2.0,
      "Upper bound for a single best-effort notification write",
  )
  flags.DEFINE_integer(
      "order_cache_max_age_seconds",
      5,
      "Cache-Control max-age for the order read model",
  )
except flags.DuplicateFlagError:
  pass


class Settings(BaseModel):
  """Runtime settings consumed by the request handlers."""

  webhook_secret: Optional[str] = None
  signature_tolerance_seconds: int = 300
  payment_gateway_url: str = "http://localhost:8787"
  payment_gateway_api_key: Optional[str] = None
  public_base_url: str = "http://localhost:3000"
  currency: str = "INR"
  notification_timeout_seconds: float = 2.0
  order_cache_max_age_seconds: int = 5


def get_settings() -> Settings:
  """Builds the settings object from the parsed flags."""
  return Settings(
      webhook_secret=FLAGS.webhook_secret,
      signature_tolerance_seconds=FLAGS.signature_tolerance_seconds,
      payment_gateway_url=FLAGS.payment_gateway_url,
      payment_gateway_api_key=FLAGS.payment_gateway_api_key,
      public_base_url=FLAGS.public_base_url,
      currency=FLAGS.currency,
      notification_timeout_seconds=FLAGS.notification_timeout_seconds,
      order_cache_max_age_seconds=FLAGS.order_cache_max_age_seconds,
  )


@contextlib.asynccontextmanager
async def lifespan(app: FastAPI):
  """Shared lifespan manager for initializing the database."""
  del app  # Unused.
  # In tests the flag is unset and the session dependency is overridden
  if FLAGS.database_path:
    await db.manager.init_db(FLAGS.database_path)
  yield
  await db.manager.close()
