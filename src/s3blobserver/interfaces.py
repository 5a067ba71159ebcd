from zope.interface import Attribute
from zope.interface import Interface


class IS3Client(Interface):
    """Abstraction over S3-compatible object storage."""

    def put_object(s3_key, bucket_name, md5, size, body):
        """Upload ``size`` bytes read from ``body`` under ``s3_key``.

        ``md5`` is the raw 16-byte digest of the content; the remote side
        uses it to verify what it received.
        """

    def head_object(s3_key, bucket_name):
        """Return metadata dict for an S3 object, or None if not found."""


class ISpillBuffer(Interface):
    """Byte sink that keeps small blobs in memory and spills large ones."""

    size = Attribute("Total number of bytes written.")
    spilled = Attribute("True once the contents live in a temporary file.")

    def write(data):
        """Append bytes and fold them into the digest. Write phase only."""

    def read(size=-1):
        """Replay written bytes. The first call ends the write phase."""

    def digest():
        """Return the raw MD5 digest of everything written."""

    def release():
        """Remove any temporary file. Idempotent."""


class IBlobReceiver(Interface):
    """Receives blob streams and stores them remotely."""

    def receive_blob(ref, source):
        """Store the bytes read from ``source`` under ``ref``.

        Returns a SizedRef carrying the number of bytes stored.
        """
