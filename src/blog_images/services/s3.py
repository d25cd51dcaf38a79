"""S3-compatible object store client.

Lists and writes objects in the images bucket. Every request goes through
``with_retry`` and every botocore failure is converted into the error
taxonomy of ``blog_images.services.errors`` before it reaches callers.

The boto3 client is built lazily and cached together with the connection
settings it was built from. It is rebuilt whenever those settings change
(compared by value) and can be dropped explicitly with ``invalidate()``.
"""

import asyncio
import functools
import logging
import threading
from typing import Any, Callable, Dict, List, Optional, Protocol

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from blog_images.config import BlogImagesConfig, ConnectionSettings
from blog_images.services.errors import (
    AUTH_FAILED_MESSAGE,
    AuthError,
    FatalStoreError,
    NetworkUnreachableError,
    OperationCancelledError,
    RetryableTransportError,
    StoreError,
    classify_error,
    endpoint_unreachable_message,
)
from blog_images.services.retry import with_retry

logger = logging.getLogger(__name__)

PAGE_SIZE = 1000
MAX_DIRECTORIES = 10000
CONNECTION_TEST_KEYS = 10
CONNECT_TIMEOUT_SECONDS = 5
REQUEST_TIMEOUT_SECONDS = 30


class CancelToken(Protocol):
    """Anything with ``is_set()``, e.g. ``asyncio.Event`` or ``threading.Event``."""

    def is_set(self) -> bool: ...


def check_cancelled(cancel: Optional[CancelToken], what: str) -> None:
    if cancel is not None and cancel.is_set():
        raise OperationCancelledError(f"{what} cancelled")


def create_s3_client(settings: ConnectionSettings):
    """Build a boto3 S3 client for the given connection settings.

    Retries are disabled at the botocore level; ``with_retry`` owns the
    retry policy. Timeouts are transport-level.
    """
    boto_config = BotoConfig(
        connect_timeout=CONNECT_TIMEOUT_SECONDS,
        read_timeout=REQUEST_TIMEOUT_SECONDS,
        retries={"total_max_attempts": 1, "mode": "standard"},
        s3={"addressing_style": "path" if settings.force_path_style else "auto"},
    )
    return boto3.client(
        "s3",
        endpoint_url=settings.endpoint_url or None,
        region_name=settings.region or None,
        aws_access_key_id=settings.access_key_id or None,
        aws_secret_access_key=settings.secret_access_key or None,
        config=boto_config,
    )


class ObjectStore:
    """Client for one S3-compatible bucket.

    Attributes:
        config_provider: Returns the current configuration on every call
        max_retries: Retries per request after the first attempt
        base_delay_ms: Base backoff delay in milliseconds
    """

    def __init__(
        self,
        config_provider: Callable[[], BlogImagesConfig],
        client_factory: Callable[[ConnectionSettings], Any] = create_s3_client,
        max_retries: int = 3,
        base_delay_ms: int = 1000,
        sleep: Callable[[float], Any] = asyncio.sleep,
    ):
        self.config_provider = config_provider
        self.client_factory = client_factory
        self.max_retries = max_retries
        self.base_delay_ms = base_delay_ms
        self._sleep = sleep
        self._lock = threading.Lock()
        self._client = None
        self._settings: Optional[ConnectionSettings] = None
        self._config: Optional[BlogImagesConfig] = None

    @property
    def config(self) -> BlogImagesConfig:
        """Configuration the current client was built from."""
        self.get_client()
        return self._config

    def get_client(self, force_new: bool = False):
        """Return the cached client, rebuilding it if the connection settings changed.

        Raises:
            NetworkUnreachableError: If the configured endpoint is not a valid URL
        """
        config = self.config_provider()
        settings = config.connection_settings()

        with self._lock:
            if not force_new and self._client is not None and self._settings == settings:
                self._config = config
                return self._client

            self._close_client()
            logger.debug(f"Creating S3 client for endpoint {settings.endpoint_url or '[default]'}")
            try:
                client = self.client_factory(settings)
            except ValueError as e:
                # botocore rejects malformed endpoint URLs at construction time
                raise NetworkUnreachableError(
                    str(e), endpoint=settings.endpoint_url, code="InvalidEndpoint"
                ) from e
            self._client = client
            self._settings = settings
            self._config = config
            return self._client

    def invalidate(self) -> None:
        """Drop the cached client; the next call builds a fresh one."""
        with self._lock:
            self._close_client()

    def on_config_change(
        self, old: Optional[BlogImagesConfig], new: BlogImagesConfig
    ) -> None:
        """ConfigManager listener: invalidate when connection settings changed."""
        if old is None or old.connection_settings() != new.connection_settings():
            self.invalidate()

    def _close_client(self) -> None:
        # Caller holds self._lock
        if self._client is not None:
            close = getattr(self._client, "close", None)
            if close is not None:
                close()
        self._client = None
        self._settings = None
        self._config = None

    async def _send(self, method: str, **params) -> Dict[str, Any]:
        """Issue one request in a worker thread, converting failures."""
        endpoint = self.config_provider().s3_endpoint_url
        loop = asyncio.get_running_loop()
        try:
            client = self.get_client()
            return await loop.run_in_executor(
                None, functools.partial(getattr(client, method), **params)
            )
        except (BotoCoreError, ClientError) as e:
            raise classify_error(e, endpoint) from e

    async def _request(self, method: str, **params) -> Dict[str, Any]:
        return await with_retry(
            functools.partial(self._send, method, **params),
            max_retries=self.max_retries,
            base_delay_ms=self.base_delay_ms,
            sleep=self._sleep,
        )

    async def _paginate(
        self,
        bucket: str,
        prefix: str,
        limit: int,
        extract: Callable[[Dict[str, Any]], List[str]],
        cancel: Optional[CancelToken],
    ) -> List[str]:
        items: List[str] = []
        token: Optional[str] = None

        while True:
            check_cancelled(cancel, "Listing")
            remaining = max(limit - len(items), 0)
            params = {
                "Bucket": bucket,
                "Delimiter": "/",
                "Prefix": prefix,
                "MaxKeys": min(remaining, PAGE_SIZE),
            }
            if token:
                params["ContinuationToken"] = token

            response = await self._request("list_objects_v2", **params)
            items.extend(extract(response))

            token = response.get("NextContinuationToken")
            if not token or len(items) >= limit:
                return items

    async def list_keys(
        self,
        bucket: str,
        prefix: str,
        max_keys: int,
        cancel: Optional[CancelToken] = None,
    ) -> List[str]:
        """List object keys directly under ``prefix`` (non-recursive).

        Pages are requested until the store reports no continuation token
        or at least ``max_keys`` keys have been collected. The last page
        is not sliced, so slightly more than ``max_keys`` may be returned.

        Args:
            bucket: Bucket name
            prefix: Key prefix, normally ending with "/"
            max_keys: Number of keys to collect
            cancel: Optional cancellation token, checked once per page

        Returns:
            Keys in store order
        """

        def extract(response):
            return [obj["Key"] for obj in response.get("Contents", []) if obj.get("Key")]

        return await self._paginate(bucket, prefix, max_keys, extract, cancel)

    async def list_directories(
        self,
        bucket: str,
        prefix: str,
        cancel: Optional[CancelToken] = None,
    ) -> List[str]:
        """List common prefixes ("directories") directly under ``prefix``.

        Collects at most around 10000 entries.

        Args:
            bucket: Bucket name
            prefix: Key prefix, normally ending with "/"
            cancel: Optional cancellation token, checked once per page

        Returns:
            Common prefixes in store order, each ending with "/"
        """

        def extract(response):
            return [p["Prefix"] for p in response.get("CommonPrefixes", []) if p.get("Prefix")]

        return await self._paginate(bucket, prefix, MAX_DIRECTORIES, extract, cancel)

    async def write_object(
        self,
        bucket: str,
        key: str,
        body: bytes,
        content_type: str,
        metadata: Optional[Dict[str, str]] = None,
    ) -> None:
        """Put one object. Repeating the put is harmless, so it is retried."""
        await self._request(
            "put_object",
            Bucket=bucket,
            Key=key,
            Body=body,
            ContentType=content_type,
            Metadata=metadata or {},
        )
        logger.info(f"Wrote s3://{bucket}/{key} ({len(body)} bytes)")

    async def test_connection(self) -> None:
        """Validate reachability and credentials with a small listing.

        Raises:
            AuthError: Credentials were rejected
            NetworkUnreachableError: Endpoint could not be reached
            RetryableTransportError: Transient failure persisted
            FatalStoreError: Any other failure
        """
        config = self.config_provider()
        try:
            await self.list_keys(config.images_bucket, config.images_prefix, CONNECTION_TEST_KEYS)
        except AuthError as e:
            raise AuthError(
                AUTH_FAILED_MESSAGE,
                code=e.code,
                http_status=e.http_status,
            ) from e
        except NetworkUnreachableError as e:
            raise NetworkUnreachableError(
                endpoint_unreachable_message(config.s3_endpoint_url),
                endpoint=config.s3_endpoint_url,
                code=e.code,
            ) from e
        except StoreError as e:
            error_cls = RetryableTransportError if e.retryable else FatalStoreError
            raise error_cls(
                f"Connection test failed: {e.message}",
                code=e.code,
                http_status=e.http_status,
            ) from e

    def close(self) -> None:
        """Release the cached client."""
        self.invalidate()
