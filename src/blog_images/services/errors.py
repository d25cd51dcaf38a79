"""Error taxonomy for object store and cache operations.

Low-level botocore exceptions are converted into ``StoreError`` subclasses
at the transport boundary by ``classify_error``. Callers only ever see the
domain errors defined here.
"""

from enum import Enum
from typing import Optional

from botocore.exceptions import (
    ClientError,
    ConnectionClosedError,
    ConnectTimeoutError,
    EndpointConnectionError,
    ReadTimeoutError,
)

AUTH_CODES = {"Forbidden", "Unauthorized", "AccessDenied", "InvalidAccessKeyId", "SignatureDoesNotMatch"}
AUTH_STATUSES = {401, 403}
THROTTLE_CODES = {"TooManyRequests", "SlowDown", "Throttling", "RequestTimeout"}


class ErrorKind(str, Enum):
    """Classification of an object store failure."""

    AUTH = "auth"
    RETRYABLE = "retryable"
    NETWORK = "network"
    FATAL = "fatal"


class StoreError(Exception):
    """Error raised by the object store client.

    Attributes:
        kind: Error classification
        code: Store or transport error code, if any
        http_status: HTTP status reported by the store, if any
        retryable: Whether a caller-level retry policy may try again
    """

    kind = ErrorKind.FATAL

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        http_status: Optional[int] = None,
        retryable: Optional[bool] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.http_status = http_status
        self.retryable = self.kind is ErrorKind.RETRYABLE if retryable is None else retryable


class AuthError(StoreError):
    """Store rejected the credentials (401/403). Never retried."""

    kind = ErrorKind.AUTH


class RetryableTransportError(StoreError):
    """Throttling, server-side failure or transport timeout."""

    kind = ErrorKind.RETRYABLE


class NetworkUnreachableError(StoreError):
    """The endpoint could not be reached (DNS or connection failure)."""

    kind = ErrorKind.NETWORK

    def __init__(self, message: str, endpoint: Optional[str] = None, code: Optional[str] = None):
        super().__init__(message, code=code, retryable=True)
        self.endpoint = endpoint


class FatalStoreError(StoreError):
    """Any other store failure (bad request, missing bucket, ...)."""

    kind = ErrorKind.FATAL


class CacheUninitializedError(RuntimeError):
    """Cache operation invoked before the cache root was created."""

    pass


class ImageNotFoundError(Exception):
    """An image could not be fetched from its public URL."""

    def __init__(self, url: str, status_code: Optional[int] = None):
        detail = f" (HTTP {status_code})" if status_code is not None else ""
        super().__init__(f"Image not found: {url}{detail}")
        self.url = url
        self.status_code = status_code


class ImageParseError(ValueError):
    """A filename or URL does not identify an image."""

    pass


class OperationCancelledError(Exception):
    """A long-running listing or sweep was cancelled between steps."""

    pass


def is_auth_failure(code: Optional[str], http_status: Optional[int]) -> bool:
    return code in AUTH_CODES or http_status in AUTH_STATUSES


def is_retryable_failure(code: Optional[str], http_status: Optional[int]) -> bool:
    if code in THROTTLE_CODES or http_status == 429:
        return True
    return http_status is not None and 500 <= http_status < 600


def classify_error(error: Exception, endpoint: Optional[str] = None) -> StoreError:
    """Convert a transport exception into the domain error taxonomy.

    Args:
        error: Exception raised by botocore (or already a StoreError)
        endpoint: Configured endpoint URL, echoed back for network failures

    Returns:
        StoreError subclass describing the failure
    """
    if isinstance(error, StoreError):
        return error

    if isinstance(error, ClientError):
        err = error.response.get("Error", {})
        code = err.get("Code")
        http_status = error.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
        message = err.get("Message") or str(error)
        if is_auth_failure(code, http_status):
            return AuthError(message, code=code, http_status=http_status)
        if is_retryable_failure(code, http_status):
            return RetryableTransportError(message, code=code, http_status=http_status)
        return FatalStoreError(message, code=code, http_status=http_status)

    if isinstance(error, (ConnectTimeoutError, ReadTimeoutError)):
        return RetryableTransportError(str(error), code="RequestTimeout")

    if isinstance(error, (EndpointConnectionError, ConnectionClosedError)):
        return NetworkUnreachableError(str(error), endpoint=endpoint, code="NetworkingError")

    return FatalStoreError(str(error), code=type(error).__name__)


AUTH_FAILED_MESSAGE = "Authentication failed. Please check your access credentials."


def endpoint_unreachable_message(endpoint: Optional[str]) -> str:
    return f"Cannot connect to endpoint: {endpoint or '[default]'}. Please verify the URL is correct."


def describe_store_error(error: StoreError) -> str:
    """User-facing message that tells auth, connectivity and other failures apart.

    Auth failures point at the credentials, connectivity failures name the
    configured endpoint and anything else carries the store's error code.
    """
    if isinstance(error, AuthError):
        return AUTH_FAILED_MESSAGE
    if isinstance(error, NetworkUnreachableError):
        return endpoint_unreachable_message(error.endpoint)
    details = ", ".join(
        part
        for part in (
            f"code={error.code}" if error.code else "",
            f"status={error.http_status}" if error.http_status else "",
        )
        if part
    )
    return f"{error.message} ({details})" if details else error.message
