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

"""Signature verification for inbound payment processor events.

The processor signs every event it delivers. The `Payment-Signature` header has
the form `t=<unix seconds>,v1=<hex>[,v1=<hex>...]`, where each `v1` value is
HMAC-SHA256 over `"<t>." + raw body` keyed with the shared webhook secret.
Several `v1` entries may be present while the processor rotates secrets.
"""

import hashlib
import hmac
import logging
import time
from typing import List, Optional, Tuple

from exceptions import AuthenticationError

logger = logging.getLogger(__name__)

SIGNATURE_SCHEME = "v1"


def compute_signature(payload: bytes, timestamp: int, secret: str) -> str:
  """Computes the hex HMAC-SHA256 signature for a payload."""
  signed_payload = str(timestamp).encode("utf-8") + b"." + payload
  return hmac.new(
      secret.encode("utf-8"), signed_payload, digestmod=hashlib.sha256
  ).hexdigest()


def sign_payload(
    payload: bytes, secret: str, timestamp: Optional[int] = None
) -> str:
  """Builds a complete signature header value for a payload."""
  if timestamp is None:
    timestamp = int(time.time())
  signature = compute_signature(payload, timestamp, secret)
  return f"t={timestamp},{SIGNATURE_SCHEME}={signature}"


def _parse_header(header: str) -> Tuple[int, List[str]]:
  timestamp = None
  signatures = []
  for part in header.split(","):
    key, sep, value = part.strip().partition("=")
    if not sep:
      continue
    if key == "t":
      try:
        timestamp = int(value)
      except ValueError as e:
        raise AuthenticationError("Malformed signature timestamp") from e
    elif key == SIGNATURE_SCHEME:
      signatures.append(value)

  if timestamp is None:
    raise AuthenticationError("Signature header has no timestamp")
  if not signatures:
    raise AuthenticationError(
        f"Signature header has no {SIGNATURE_SCHEME} signature"
    )
  return timestamp, signatures


def verify_event(
    payload: bytes,
    header: Optional[str],
    secret: Optional[str],
    tolerance_seconds: int = 300,
    now: Optional[float] = None,
) -> None:
  """Verifies the authenticity of a raw payment event.

  Args:
    payload: The raw request body exactly as received.
    header: The value of the signature header, if any.
    secret: The shared webhook secret.
    tolerance_seconds: Maximum accepted age (and clock skew) of the signed
      timestamp. Zero disables the check.
    now: Current unix time, for tests.

  Raises:
    AuthenticationError: If the secret or header is missing, the header is
      malformed, the timestamp is outside the tolerance window, or no
      signature matches.
  """
  if not secret:
    logger.error("Webhook secret is not configured; rejecting event")
    raise AuthenticationError("Webhook secret not configured")
  if not header:
    raise AuthenticationError("No signature provided")

  timestamp, signatures = _parse_header(header)

  if tolerance_seconds > 0:
    current = time.time() if now is None else now
    if abs(current - timestamp) > tolerance_seconds:
      raise AuthenticationError("Signature timestamp outside tolerance")

  expected = compute_signature(payload, timestamp, secret)
  if not any(
      hmac.compare_digest(expected.encode("utf-8"), candidate.encode("utf-8"))
      for candidate in signatures
  ):
    raise AuthenticationError("No signature matches the payload")
