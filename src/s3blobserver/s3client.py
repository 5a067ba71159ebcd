from botocore.config import Config
from botocore.exceptions import ClientError
from s3blobserver.interfaces import IS3Client
from zope.interface import implementer

import base64
import boto3
import logging
import re


logger = logging.getLogger(__name__)


class S3OperationError(Exception):
    """Wraps boto3 ClientError to avoid leaking AWS infrastructure details."""


@implementer(IS3Client)
class S3Client:
    """Thin boto3 wrapper for S3-compatible object storage."""

    def __init__(
        self,
        prefix="",
        endpoint_url=None,
        region_name=None,
        aws_access_key_id=None,
        aws_secret_access_key=None,
        use_ssl=True,
        addressing_style="auto",
        connect_timeout=60,
        read_timeout=60,
        sse_customer_key=None,
    ):
        self._prefix = prefix.rstrip("/") if prefix else ""

        if self._prefix:
            if not re.fullmatch(r"[a-zA-Z0-9._/-]*", self._prefix):
                raise ValueError(
                    f"s3-prefix contains invalid characters: {self._prefix!r}. "
                    "Only alphanumeric characters, dots, hyphens, underscores, "
                    "and slashes are allowed."
                )
            if ".." in self._prefix:
                raise ValueError(f"s3-prefix must not contain '..': {self._prefix!r}")

        self._sse_extra_args = _sse_customer_args(sse_customer_key, use_ssl)

        # Content-MD5 is supplied by the caller; no extra flexible checksums.
        config = Config(
            s3={"addressing_style": addressing_style},
            connect_timeout=connect_timeout,
            read_timeout=read_timeout,
            request_checksum_calculation="when_required",
        )

        kwargs = {"config": config}
        if endpoint_url:
            kwargs["endpoint_url"] = endpoint_url
        if region_name:
            kwargs["region_name"] = region_name
        if aws_access_key_id:
            kwargs["aws_access_key_id"] = aws_access_key_id
        if aws_secret_access_key:
            kwargs["aws_secret_access_key"] = aws_secret_access_key
        kwargs["use_ssl"] = use_ssl
        if not use_ssl:
            logger.warning(
                "S3 SSL is disabled, data and credentials are transmitted in cleartext"
            )

        self._client = boto3.client("s3", **kwargs)

    def _full_key(self, s3_key):
        if self._prefix:
            return f"{self._prefix}/{s3_key}"
        return s3_key

    def _wrap_client_error(self, e, operation, s3_key):
        """Wrap ClientError in a generic error, logging the original at DEBUG."""
        logger.debug("S3 %s failed for key=%s: %s", operation, s3_key, e)
        raise S3OperationError(
            f"S3 {operation} failed for key={s3_key}: "
            f"{e.response['Error'].get('Code', 'Unknown')}"
        ) from e

    def put_object(self, s3_key, bucket_name, md5, size, body):
        full_key = self._full_key(s3_key)
        try:
            self._client.put_object(
                Bucket=bucket_name,
                Key=full_key,
                Body=body,
                ContentLength=size,
                ContentMD5=base64.b64encode(md5).decode("ascii"),
                **self._sse_extra_args,
            )
        except ClientError as e:
            self._wrap_client_error(e, "put", s3_key)

    def head_object(self, s3_key, bucket_name):
        full_key = self._full_key(s3_key)
        try:
            return self._client.head_object(
                Bucket=bucket_name, Key=full_key, **self._sse_extra_args
            )
        except ClientError as e:
            if e.response["Error"]["Code"] == "404":
                return None
            self._wrap_client_error(e, "head", s3_key)


def _sse_customer_args(sse_customer_key, use_ssl):
    """Build the SSE-C request arguments from a base64-encoded 256-bit key."""
    if not sse_customer_key:
        return {}
    if not use_ssl:
        raise ValueError("SSE-C requires SSL, set s3-use-ssl to true")
    raw_key = base64.b64decode(sse_customer_key)
    if len(raw_key) != 32:
        raise ValueError(f"SSE-C key must be 32 bytes (256-bit), got {len(raw_key)}")
    return {"SSECustomerAlgorithm": "AES256", "SSECustomerKey": raw_key}
