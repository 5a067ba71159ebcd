from s3blobserver.interfaces import ISpillBuffer
from zope.interface import implementer

import contextlib
import enum
import hashlib
import io
import logging
import os
import re
import tempfile


logger = logging.getLogger(__name__)

MAX_IN_MEMORY = 4 << 20  # 4 MiB

_UNSAFE_PREFIX_RE = re.compile(r"[^A-Za-z0-9._-]")


class Phase(enum.Enum):
    WRITING = "writing"
    READING = "reading"


@implementer(ISpillBuffer)
class SpillBuffer:
    """Write-once, read-once byte sink that spills to disk.

    Writes accumulate in memory until the next chunk would push the total
    over ``threshold``; at that point everything written so far is moved to
    a temporary file and all later writes go there. Every chunk is also fed
    into an MD5 digest, which S3 wants as the Content-MD5 header.

    The first read-side call (read, readinto, seek, tell) ends the write
    phase and replays the bytes from whichever medium holds them.
    """

    def __init__(self, identity, threshold=MAX_IN_MEMORY, temp_dir=None):
        self.identity = str(identity)
        self.threshold = threshold
        self._temp_dir = temp_dir
        self._memory = io.BytesIO()
        self._file = None
        self._path = None
        self._md5 = hashlib.md5()
        self._size = 0
        self._phase = Phase.WRITING

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.release()

    def __repr__(self):
        return (
            f"<SpillBuffer {self.identity!r} size={self._size} "
            f"phase={self._phase.value} spilled={self.spilled}>"
        )

    @property
    def phase(self):
        return self._phase

    @property
    def size(self):
        return self._size

    @property
    def spilled(self):
        return self._file is not None

    @property
    def spill_path(self):
        return self._path

    # -- Write phase --

    def write(self, data):
        if self._phase is not Phase.WRITING:
            raise AssertionError("write after read")
        if self._file is None and self._memory is None:
            raise ValueError("I/O operation on released SpillBuffer")
        n = len(data)
        if self._file is None and self._memory.tell() + n > self.threshold:
            self._spill()
        if self._file is not None:
            self._file.write(data)
        else:
            self._memory.write(data)
        self._md5.update(data)
        self._size += n
        return n

    def _spill(self):
        """Move the in-memory bytes into a freshly allocated temp file."""
        prefix = _UNSAFE_PREFIX_RE.sub("_", self.identity) + "-"
        fd, path = tempfile.mkstemp(prefix=prefix, dir=self._temp_dir)
        try:
            f = os.fdopen(fd, "w+b")
        except BaseException:
            os.close(fd)
            with contextlib.suppress(OSError):
                os.unlink(path)
            raise
        logger.debug(
            "Spilling %s to %s after %d bytes", self.identity, path, self._size
        )
        try:
            f.write(self._memory.getvalue())
        except BaseException:
            with contextlib.suppress(OSError):
                f.close()
            with contextlib.suppress(OSError):
                os.unlink(path)
            raise
        self._file = f
        self._path = path
        self._memory = None

    def digest(self):
        return self._md5.digest()

    def hexdigest(self):
        return self._md5.hexdigest()

    # -- Read phase --

    def _source(self):
        source = self._file if self._file is not None else self._memory
        if source is None:
            raise ValueError("I/O operation on released SpillBuffer")
        if self._phase is Phase.WRITING:
            self._phase = Phase.READING
            source.flush()
            source.seek(0)
        return source

    def readable(self):
        return True

    def seekable(self):
        return True

    def writable(self):
        return self._phase is Phase.WRITING

    def read(self, size=-1):
        return self._source().read(size)

    def readinto(self, b):
        return self._source().readinto(b)

    def seek(self, offset, whence=os.SEEK_SET):
        return self._source().seek(offset, whence)

    def tell(self):
        return self._source().tell()

    # -- Cleanup --

    def release(self):
        """Close and remove the spill file, if any. Safe to call repeatedly."""
        f, path = self._file, self._path
        self._file = None
        self._path = None
        self._memory = None
        if f is not None:
            with contextlib.suppress(OSError):
                f.close()
        if path is not None:
            try:
                os.remove(path)
            except FileNotFoundError:
                pass
            except OSError:
                logger.warning("Failed to remove spill file %s", path, exc_info=True)
