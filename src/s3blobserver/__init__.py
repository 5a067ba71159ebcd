from s3blobserver.buffer import SpillBuffer
from s3blobserver.receiver import InjectedFailureError
from s3blobserver.receiver import S3BlobReceiver
from s3blobserver.receiver import SizedRef
from s3blobserver.s3client import S3Client
from s3blobserver.s3client import S3OperationError


__all__ = [
    "InjectedFailureError",
    "S3BlobReceiver",
    "S3Client",
    "S3OperationError",
    "SizedRef",
    "SpillBuffer",
]
