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

"""Custom exceptions for the storefront server and cart client.

User-facing messages are mapped from these once, at the HTTP boundary, by the
exception handler registered in `server.py`.
"""

from typing import Optional


class StorefrontError(Exception):
  """Base class for all storefront exceptions."""

  def __init__(
      self, message: str, code: str = "INTERNAL_ERROR", status_code: int = 500
  ):
    self.message = message
    self.code = code
    self.status_code = status_code
    super().__init__(self.message)


class ValidationError(StorefrontError):
  """Raised for malformed cart mutation input (bad item or coupon shape)."""

  def __init__(self, message: str, field: Optional[str] = None):
    super().__init__(message, code="VALIDATION_ERROR", status_code=400)
    self.field = field


class InvalidRequestError(StorefrontError):
  """Raised when the request is invalid (e.g. missing fields, empty cart)."""

  def __init__(self, message: str):
    super().__init__(message, code="INVALID_REQUEST", status_code=400)


class AuthenticationError(StorefrontError):
  """Raised when a bearer token is missing or unknown."""

  def __init__(self, message: str = "Authentication required"):
    super().__init__(message, code="UNAUTHENTICATED", status_code=401)


class PermissionDeniedError(StorefrontError):
  """Raised when an authenticated user may not perform an operation."""

  def __init__(self, message: str = "Permission denied"):
    super().__init__(message, code="PERMISSION_DENIED", status_code=403)


class ResourceNotFoundError(StorefrontError):
  """Raised when a requested resource is not found."""

  def __init__(self, message: str):
    super().__init__(message, code="RESOURCE_NOT_FOUND", status_code=404)


class IdempotencyConflictError(StorefrontError):
  """Raised when an idempotency key is reused with different parameters."""

  def __init__(self, message: str):
    super().__init__(message, code="IDEMPOTENCY_CONFLICT", status_code=409)


class OrderNotModifiableError(StorefrontError):
  """Raised when an order transition is not allowed from its current state."""

  def __init__(self, message: str):
    super().__init__(message, code="ORDER_NOT_MODIFIABLE", status_code=409)


class OutOfStockError(StorefrontError):
  """Raised when there is insufficient inventory for an item."""

  def __init__(self, message: str, status_code: int = 400):
    super().__init__(message, code="OUT_OF_STOCK", status_code=status_code)


class ProviderError(StorefrontError):
  """Raised when the payment provider rejects or fails a request.

  The message always reads `Failed to <operation>: <reason>` where `reason`
  is the provider's own description of the failure.
  """

  def __init__(
      self,
      operation: str,
      reason: str,
      provider_code: Optional[str] = None,
      http_status: Optional[int] = None,
  ):
    super().__init__(
        f"Failed to {operation}: {reason}",
        code="PROVIDER_ERROR",
        status_code=502,
    )
    self.operation = operation
    self.reason = reason
    self.provider_code = provider_code
    self.http_status = http_status


class ProviderConfigError(StorefrontError):
  """Raised when payment provider credentials are not configured."""

  def __init__(self, missing: list[str]):
    super().__init__(
        f"Missing payment provider configuration: {', '.join(missing)}",
        code="PROVIDER_NOT_CONFIGURED",
        status_code=500,
    )
    self.missing = missing


class SyncError(StorefrontError):
  """Raised when a cart cannot be saved or read, locally or on the backend."""

  def __init__(self, message: str):
    super().__init__(message, code="SYNC_FAILED", status_code=503)
