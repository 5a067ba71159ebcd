from s3blobserver.buffer import SpillBuffer
from s3blobserver.interfaces import IBlobReceiver
from s3blobserver.s3client import S3OperationError
from zope.interface import implementer

import dataclasses
import logging
import random


logger = logging.getLogger(__name__)

COPY_CHUNK_SIZE = 64 * 1024


class InjectedFailureError(S3OperationError):
    """Synthetic upload failure raised when fault injection fires."""

    injected = True


@dataclasses.dataclass(frozen=True)
class SizedRef:
    """A blob reference paired with the number of bytes stored for it."""

    ref: object
    size: int

    def __str__(self):
        return f"{self.ref};{self.size}"


@implementer(IBlobReceiver)
class S3BlobReceiver:
    """Receives blob streams and uploads them to an S3 bucket.

    Each blob is buffered in a SpillBuffer so that its MD5 and length are
    known before the upload starts. ``fail_percent`` (0-100) makes that
    share of receives fail with InjectedFailureError after the stream has
    been buffered but before S3 is contacted.
    """

    def __init__(self, s3_client, bucket_name, fail_percent=0, temp_dir=None, rng=None):
        if not 0 <= fail_percent <= 100:
            raise ValueError(f"fail_percent must be between 0 and 100, got {fail_percent}")
        self._s3_client = s3_client
        self.bucket_name = bucket_name
        self.fail_percent = fail_percent
        self._temp_dir = temp_dir
        self._rng = rng or random.Random()

    def __repr__(self):
        return f"<S3BlobReceiver bucket={self.bucket_name!r}>"

    def receive_blob(self, ref, source):
        key = str(ref)
        logger.debug("Receiving blob %s", key)
        with SpillBuffer(key, temp_dir=self._temp_dir) as buf:
            size = _copy(source, buf)

            if self._should_fail():
                logger.warning("Injecting failure for blob %s", key)
                raise InjectedFailureError("fake injected error for testing")

            self._s3_client.put_object(key, self.bucket_name, buf.digest(), size, buf)

        logger.info("Stored blob %s (%d bytes) in %s", key, size, self.bucket_name)
        return SizedRef(ref, size)

    def _should_fail(self):
        return self.fail_percent > 0 and self.fail_percent > self._rng.randrange(100)


def _copy(source, dest):
    """Copy ``source`` into ``dest`` until EOF, returning the byte count.

    ``source`` must be blocking: a ``None`` read (no data available on a
    non-blocking stream) is an error, not end of file.
    """
    total = 0
    while True:
        chunk = source.read(COPY_CHUNK_SIZE)
        if chunk is None:
            raise BlockingIOError(
                f"source returned no data after {total} bytes; "
                "non-blocking streams are not supported"
            )
        if not chunk:
            return total
        total += dest.write(chunk)
