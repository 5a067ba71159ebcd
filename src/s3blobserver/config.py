import io
import logging
import os
import ZConfig


logger = logging.getLogger(__name__)

FAIL_PERCENT_ENV = "S3_BLOB_FAIL_PERCENT"

SCHEMA = """\
<schema>
  <sectiontype name="s3blobreceiver"
               datatype="s3blobserver.config.S3BlobReceiverFactory">
    <key name="bucket-name" required="yes"/>
    <key name="s3-prefix" default=""/>
    <key name="s3-endpoint-url"/>
    <key name="s3-region"/>
    <key name="s3-access-key"/>
    <key name="s3-secret-key"/>
    <key name="s3-use-ssl" datatype="boolean" default="true"/>
    <key name="s3-addressing-style" default="auto"/>
    <key name="s3-connect-timeout" datatype="integer" default="60"/>
    <key name="s3-read-timeout" datatype="integer" default="60"/>
    <key name="s3-sse-customer-key"/>
    <key name="temp-dir" datatype="existing-directory"/>
    <key name="fail-percent" datatype="s3blobserver.config.percentage"/>
  </sectiontype>
  <section type="s3blobreceiver" name="*" attribute="receiver" required="yes"/>
</schema>
"""

_schema = None


def percentage(value):
    """ZConfig datatype: an integer between 0 and 100."""
    n = int(value)
    if not 0 <= n <= 100:
        raise ValueError(f"percentage must be between 0 and 100, got {n}")
    return n


def fail_percent_from_environ(environ=None):
    """Read the fault injection percentage from the environment.

    Unset or unparsable values disable injection.
    """
    if environ is None:
        environ = os.environ
    raw = environ.get(FAIL_PERCENT_ENV, "").strip()
    if not raw:
        return 0
    try:
        n = int(raw)
    except ValueError:
        logger.warning("Ignoring non-integer %s=%r", FAIL_PERCENT_ENV, raw)
        return 0
    return min(max(n, 0), 100)


class S3BlobReceiverFactory:
    """ZConfig factory for S3BlobReceiver."""

    def __init__(self, config):
        self.config = config
        self.name = config.getSectionName()

    def open(self, environ=None):
        from s3blobserver.receiver import S3BlobReceiver
        from s3blobserver.s3client import S3Client

        config = self.config
        s3_client = S3Client(
            prefix=config.s3_prefix,
            endpoint_url=config.s3_endpoint_url,
            region_name=config.s3_region,
            aws_access_key_id=config.s3_access_key,
            aws_secret_access_key=config.s3_secret_key,
            use_ssl=config.s3_use_ssl,
            addressing_style=config.s3_addressing_style,
            connect_timeout=config.s3_connect_timeout,
            read_timeout=config.s3_read_timeout,
            sse_customer_key=config.s3_sse_customer_key,
        )
        fail_percent = config.fail_percent
        if fail_percent is None:
            fail_percent = fail_percent_from_environ(environ)
        return S3BlobReceiver(
            s3_client,
            config.bucket_name,
            fail_percent=fail_percent,
            temp_dir=config.temp_dir,
        )


def _get_schema():
    global _schema
    if _schema is None:
        _schema = ZConfig.loadSchemaFile(io.StringIO(SCHEMA))
    return _schema


def receiver_from_file(path, environ=None):
    config, _handler = ZConfig.loadConfig(_get_schema(), path)
    return config.receiver.open(environ)


def receiver_from_string(text, environ=None):
    config, _handler = ZConfig.loadConfigFile(_get_schema(), io.StringIO(text))
    return config.receiver.open(environ)
