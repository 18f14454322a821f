"""Object store used to publish coverage reports.

Usage:
    store = S3ObjectStore(bucket="my-bucket", region="eu-west-3",
                          access_key_id="AKIA...", secret_access_key="...")
    keys  = store.list_keys("repo/")
    store.put_object("repo/index.html", "/tmp/report/index.html")
    store.delete_object("repo/stale.html")

Failures are mapped onto the client exception hierarchy so the publisher can
tell retryable errors (``TransientError``) from permanent ones.
"""

import logging
import mimetypes
from contextlib import contextmanager
from typing import Iterator, Protocol

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import (
    BotoCoreError,
    ClientError as BotoClientError,
    ConnectionError as BotoConnectionError,
    HTTPClientError,
    NoCredentialsError,
)

from covgate.client import (
    AuthenticationError,
    ClientError,
    NetworkError,
    NotFoundError,
    TransientError,
)

logger = logging.getLogger(__name__)

_AUTH_CODES = {
    "AccessDenied",
    "InvalidAccessKeyId",
    "SignatureDoesNotMatch",
    "ExpiredToken",
    "InvalidToken",
}
_NOT_FOUND_CODES = {"NoSuchBucket", "NoSuchKey", "404"}
_TRANSIENT_CODES = {
    "InternalError",
    "ServiceUnavailable",
    "SlowDown",
    "RequestTimeout",
    "Throttling",
    "ThrottlingException",
}


class ObjectStore(Protocol):
    """Minimal object-store surface needed to mirror a directory."""

    def list_keys(self, prefix: str) -> list[str]:
        ...

    def put_object(self, key: str, path: str) -> None:
        ...

    def delete_object(self, key: str) -> None:
        ...


class S3ObjectStore:
    """``ObjectStore`` backed by an S3 (or S3-compatible) bucket."""

    def __init__(
        self,
        bucket: str,
        region: str,
        access_key_id: str | None = None,
        secret_access_key: str | None = None,
        endpoint_url: str | None = None,
        acl: str | None = "public-read",
        timeout: float = 30,
        client=None,
    ) -> None:
        self.bucket = bucket
        self.acl = acl
        if client is None:
            # One attempt per call: retries are driven by the publisher.
            boto_config = BotoConfig(
                connect_timeout=timeout,
                read_timeout=timeout,
                retries={"total_max_attempts": 1, "mode": "standard"},
                # S3-compatible endpoints often reject the default CRC32 trailers.
                request_checksum_calculation="when_required",
            )
            client = boto3.client(
                "s3",
                region_name=region,
                aws_access_key_id=access_key_id or None,
                aws_secret_access_key=secret_access_key or None,
                endpoint_url=endpoint_url or None,
                config=boto_config,
            )
        self._client = client

    # ------------------------------------------------------------------
    # ObjectStore
    # ------------------------------------------------------------------

    def list_keys(self, prefix: str) -> list[str]:
        keys: list[str] = []
        paginator = self._client.get_paginator("list_objects_v2")
        with _translate_errors(f"list s3://{self.bucket}/{prefix}"):
            for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix):
                keys.extend(obj["Key"] for obj in page.get("Contents", []))
        return keys

    def put_object(self, key: str, path: str) -> None:
        extra = {"ContentType": guess_content_type(path)}
        if self.acl:
            extra["ACL"] = self.acl
        logger.debug("PUT s3://%s/%s (%s)", self.bucket, key, extra["ContentType"])
        with _translate_errors(f"upload s3://{self.bucket}/{key}"):
            with open(path, "rb") as body:
                self._client.put_object(Bucket=self.bucket, Key=key, Body=body, **extra)

    def delete_object(self, key: str) -> None:
        logger.debug("DELETE s3://%s/%s", self.bucket, key)
        with _translate_errors(f"delete s3://{self.bucket}/{key}"):
            self._client.delete_object(Bucket=self.bucket, Key=key)


def guess_content_type(path: str) -> str:
    """Content type served by the website endpoint; SVG badges must be image/svg+xml."""
    content_type, _ = mimetypes.guess_type(path)
    if content_type is None and path.endswith(".svg"):
        return "image/svg+xml"
    return content_type or "application/octet-stream"


@contextmanager
def _translate_errors(action: str) -> Iterator[None]:
    """Convert botocore exceptions raised inside the block into client exceptions."""
    try:
        yield
    except BotoClientError as exc:
        raise _from_client_error(exc, action) from exc
    except NoCredentialsError as exc:
        raise AuthenticationError(f"Cannot {action}: no AWS credentials") from exc
    except (BotoConnectionError, HTTPClientError) as exc:
        raise NetworkError(f"Cannot {action}: {exc}") from exc
    except BotoCoreError as exc:
        raise ClientError(f"Cannot {action}: {exc}") from exc


def _from_client_error(exc: BotoClientError, action: str) -> ClientError:
    error = exc.response.get("Error", {})
    code = str(error.get("Code", ""))
    status = exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode") or 0
    message = f"Cannot {action}: {code or status} {error.get('Message', '')}".rstrip()

    if code in _AUTH_CODES or status in (401, 403):
        return AuthenticationError(message)
    if code in _NOT_FOUND_CODES:
        return NotFoundError(message)
    if code in _TRANSIENT_CODES or status >= 500 or status == 429:
        return TransientError(message)
    return ClientError(message)
