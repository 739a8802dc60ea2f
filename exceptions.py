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

"""Custom exceptions for the fulfillment coordinator.

Only `AuthenticationError` and the request-level errors (not found, invalid
request, invalid transition, gateway failure) ever reach an HTTP client. The
pipeline errors (`AlreadyProcessed`, `PartitionWarning`,
`ItemFulfillmentError`, `OrderCreationError`, `NotificationError`) are caught
where they occur and recorded on the per-run report.
"""


class CoordinatorError(Exception):
  """Base class for all coordinator exceptions."""

  def __init__(
      self, message: str, code: str = "INTERNAL_ERROR", status_code: int = 500
  ):
    self.message = message
    self.code = code
    self.status_code = status_code
    super().__init__(self.message)


class AuthenticationError(CoordinatorError):
  """Raised when an inbound payment event fails signature verification."""

  def __init__(self, message: str):
    super().__init__(message, code="AUTHENTICATION_FAILED", status_code=400)


class AlreadyProcessed(CoordinatorError):
  """Raised when a payment event identifier has already been claimed."""

  def __init__(self, event_id: str):
    self.event_id = event_id
    super().__init__(
        f"Event {event_id} was already processed",
        code="ALREADY_PROCESSED",
        status_code=200,
    )


class PartitionWarning(CoordinatorError):
  """A cart line could not be attributed to a seller."""

  def __init__(self, message: str, line_id: str | None = None):
    self.line_id = line_id
    super().__init__(message, code="PARTITION_WARNING", status_code=200)


class ItemFulfillmentError(CoordinatorError):
  """Creating one order item or applying its inventory decrement failed."""

  def __init__(self, message: str, line_id: str | None = None):
    self.line_id = line_id
    super().__init__(message, code="ITEM_FULFILLMENT_FAILED", status_code=500)


class OrderCreationError(CoordinatorError):
  """Creating the order for a whole seller partition failed."""

  def __init__(self, message: str, seller_id: str | None = None):
    self.seller_id = seller_id
    super().__init__(message, code="ORDER_CREATION_FAILED", status_code=500)


class NotificationError(CoordinatorError):
  """Creating a seller notification failed or timed out."""

  def __init__(self, message: str):
    super().__init__(message, code="NOTIFICATION_FAILED", status_code=500)


class ResourceNotFoundError(CoordinatorError):
  """Raised when a requested resource is not found."""

  def __init__(self, message: str):
    super().__init__(message, code="RESOURCE_NOT_FOUND", status_code=404)


class InvalidRequestError(CoordinatorError):
  """Raised when the request is invalid (e.g. missing fields)."""

  def __init__(self, message: str):
    super().__init__(message, code="INVALID_REQUEST", status_code=400)


class InvalidStatusTransitionError(CoordinatorError):
  """Raised when a status update would move an order or delivery backwards."""

  def __init__(self, message: str):
    super().__init__(message, code="INVALID_STATUS_TRANSITION", status_code=409)


class PaymentGatewayError(CoordinatorError):
  """Raised when the external payment processor rejects or fails a call."""

  def __init__(self, message: str, status_code: int = 502):
    super().__init__(
        message, code="PAYMENT_GATEWAY_ERROR", status_code=status_code
    )
