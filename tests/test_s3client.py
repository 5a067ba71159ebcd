import base64
import hashlib
import os

import boto3
import pytest
from moto import mock_aws

from s3blobserver.buffer import SpillBuffer
from s3blobserver.interfaces import IS3Client
from s3blobserver.s3client import S3Client
from s3blobserver.s3client import S3OperationError


@pytest.fixture
def s3_env():
    with mock_aws():
        boto3.client("s3", region_name="us-east-1").create_bucket(
            Bucket="test-bucket"
        )
        yield


@pytest.fixture
def client(s3_env):
    return S3Client(region_name="us-east-1")


@pytest.fixture
def prefixed_client(s3_env):
    return S3Client(prefix="myprefix", region_name="us-east-1")


def _buffer(data, tmp_path, threshold=1024):
    buf = SpillBuffer("blob", threshold=threshold, temp_dir=str(tmp_path))
    buf.write(data)
    return buf


def _get(key):
    s3 = boto3.client("s3", region_name="us-east-1")
    return s3.get_object(Bucket="test-bucket", Key=key)["Body"].read()


class TestS3ClientInterface:
    def test_interface_provided(self, client):
        assert IS3Client.providedBy(client)


class TestPutObject:
    def test_put_memory_buffer(self, client, tmp_path):
        data = b"hello blob data"
        with _buffer(data, tmp_path) as buf:
            client.put_object("sha1-1", "test-bucket", buf.digest(), len(data), buf)

        assert _get("sha1-1") == data

    def test_put_spilled_buffer(self, client, tmp_path):
        data = os.urandom(10 * 1024)
        with _buffer(data, tmp_path) as buf:
            assert buf.spilled
            client.put_object("sha1-2", "test-bucket", buf.digest(), len(data), buf)

        assert _get("sha1-2") == data

    def test_put_plain_file_object(self, client, tmp_path):
        src = tmp_path / "plain.bin"
        src.write_bytes(b"plain")
        with open(src, "rb") as f:
            client.put_object(
                "plain", "test-bucket", hashlib.md5(b"plain").digest(), 5, f
            )
        assert _get("plain") == b"plain"

    def test_content_md5_header(self, client, tmp_path):
        data = b"md5 header"
        seen = {}

        def capture(request, **kwargs):
            seen["md5"] = request.headers.get("Content-MD5")

        client._client.meta.events.register("before-sign.s3.PutObject", capture)
        with _buffer(data, tmp_path) as buf:
            client.put_object("md5", "test-bucket", buf.digest(), len(data), buf)

        expected = base64.b64encode(hashlib.md5(data).digest()).decode("ascii")
        assert seen["md5"] == expected

    def test_put_missing_bucket_raises(self, client, tmp_path):
        with _buffer(b"x", tmp_path) as buf:
            with pytest.raises(S3OperationError, match="NoSuchBucket"):
                client.put_object("k", "no-such-bucket", buf.digest(), 1, buf)

    def test_error_does_not_leak_client_error_type(self, client, tmp_path):
        from botocore.exceptions import ClientError

        with _buffer(b"x", tmp_path) as buf:
            with pytest.raises(S3OperationError) as exc_info:
                client.put_object("k", "no-such-bucket", buf.digest(), 1, buf)
        assert not isinstance(exc_info.value, ClientError)
        assert isinstance(exc_info.value.__cause__, ClientError)


class TestHeadObject:
    def test_head_object_exists(self, client, tmp_path):
        with _buffer(b"head test", tmp_path) as buf:
            client.put_object("head/key", "test-bucket", buf.digest(), 9, buf)

        result = client.head_object("head/key", "test-bucket")
        assert result is not None
        assert result["ContentLength"] == 9
        assert result["ETag"].strip('"') == hashlib.md5(b"head test").hexdigest()

    def test_head_object_missing(self, client):
        assert client.head_object("missing/key", "test-bucket") is None


class TestPrefix:
    def test_prefix_applied_to_put(self, prefixed_client, tmp_path):
        with _buffer(b"prefixed data", tmp_path) as buf:
            prefixed_client.put_object(
                "sha1-p", "test-bucket", buf.digest(), buf.size, buf
            )

        assert _get("myprefix/sha1-p") == b"prefixed data"
        assert prefixed_client.head_object("sha1-p", "test-bucket") is not None

    def test_prefix_isolation(self, s3_env, tmp_path):
        client_a = S3Client(prefix="ns_a", region_name="us-east-1")
        client_b = S3Client(prefix="ns_b", region_name="us-east-1")

        with _buffer(b"isolation test", tmp_path) as buf:
            client_a.put_object("key", "test-bucket", buf.digest(), buf.size, buf)

        assert client_a.head_object("key", "test-bucket") is not None
        assert client_b.head_object("key", "test-bucket") is None

    def test_trailing_slash_stripped(self, s3_env):
        assert S3Client(prefix="a/b/", region_name="us-east-1")._prefix == "a/b"

    @pytest.mark.parametrize("prefix", ["bad prefix", "a/../b", "x;y"])
    def test_invalid_prefix(self, s3_env, prefix):
        with pytest.raises(ValueError):
            S3Client(prefix=prefix, region_name="us-east-1")


class TestSSEC:
    def test_key_must_be_32_bytes(self, s3_env):
        with pytest.raises(ValueError, match="32 bytes"):
            S3Client(
                region_name="us-east-1",
                sse_customer_key=base64.b64encode(b"short").decode(),
            )

    def test_requires_ssl(self, s3_env):
        with pytest.raises(ValueError, match="SSL"):
            S3Client(
                region_name="us-east-1",
                use_ssl=False,
                sse_customer_key=base64.b64encode(b"k" * 32).decode(),
            )
