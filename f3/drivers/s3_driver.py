"""
S3 driver for f3.

Maps FTP file operations onto an S3 compatible bucket. Buckets have no
directories, no rename and no append, so the matching operations are
refused instead of being emulated.
"""

import io
import logging
from typing import Any, BinaryIO, Dict, Optional, Tuple, Union

from botocore.exceptions import BotoCoreError, ClientError

from f3.drivers.base import BaseDriver, Visitor
from f3.errors import (
    AppendNotSupported,
    BackendError,
    InvalidKey,
    ObjectNotFound,
    OperationNotSupported,
    OverwriteForbidden,
)
from f3.features import Feature, FeatureFlags
from f3.metrics import MetricsSender
from f3.models import UNKNOWN, BucketIdentity, ObjectMetadata, utcnow

logger = logging.getLogger(__name__)

NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound"}
INVALID_RANGE_CODES = {"416", "InvalidRange"}
PRECONDITION_FAILED_CODES = {"412", "PreconditionFailed"}


def normalize_key(key: str) -> str:
    """Object keys never start with a slash, FTP paths do."""
    return (key or "").lstrip("/")


def error_code(error: Union[ClientError, BotoCoreError]) -> str:
    if isinstance(error, ClientError):
        return str(error.response.get("Error", {}).get("Code", "Unknown"))
    return type(error).__name__


def into_backend_error(error: Union[ClientError, BotoCoreError], key: Optional[str] = None) -> BackendError:
    if isinstance(error, ClientError):
        message = error.response.get("Error", {}).get("Message") or str(error)
    else:
        message = str(error)
    return BackendError(error_code(error), message, key=key)


def total_size(response: Dict[str, Any]) -> int:
    """Total object size of a (possibly ranged) GetObject response."""
    content_range = response.get("ContentRange")
    if content_range and "/" in content_range:
        total = content_range.rsplit("/", 1)[1]
        if total.isdigit():
            return int(total)
    return int(response.get("ContentLength") or 0)


def stream_size(data: BinaryIO) -> int:
    """Bytes left in a seekable stream, its position is not changed."""
    start = data.tell()
    end = data.seek(0, io.SEEK_END)
    data.seek(start)
    return end - start


class S3Driver(BaseDriver):
    """Driver storing files as objects in an S3 bucket."""
    
    supports_append = False
    
    def __init__(
        self,
        features: FeatureFlags,
        client: Any,
        bucket: BucketIdentity,
        no_overwrite: bool = False,
        metrics: Optional[MetricsSender] = None,
    ):
        """
        Initialize the driver.
        
        Args:
            features: Enabled operations
            client: boto3 S3 client, shared between drivers
            bucket: Bucket the driver operates on
            no_overwrite: Refuse to replace existing objects
            metrics: Sender for GET/PUT metrics
        """
        super().__init__(features, no_overwrite=no_overwrite, metrics=metrics)
        self.client = client
        self.bucket = bucket
    
    def check_bucket(self) -> None:
        """
        Check that the bucket is accessible.
        
        Raises:
            BackendError: If the bucket can not be reached
        """
        try:
            self.client.head_bucket(Bucket=self.bucket.name)
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Bucket {self.bucket.url!r} is not accessible. Code: {error_code(e)}")
            raise into_backend_error(e) from e
    
    def stat(self, key: str) -> ObjectMetadata:
        key = normalize_key(key)
        if not key:
            return ObjectMetadata.prefix(key)
        
        try:
            resp = self.client.head_object(Bucket=self.bucket.name, Key=key)
        except ClientError as e:
            if error_code(e) in NOT_FOUND_CODES:
                # Clients stat a path before listing it. Keys that only exist
                # as a prefix of other keys must look like a directory.
                return ObjectMetadata.prefix(key)
            logger.error(f"Stat for {self.fqdn(key)!r} failed. Code: {error_code(e)}")
            raise into_backend_error(e, key) from e
        except BotoCoreError as e:
            logger.error(f"Stat for {self.fqdn(key)!r} failed: {e}")
            raise into_backend_error(e, key) from e
        
        return ObjectMetadata(
            key=key,
            size=resp.get("ContentLength") or 0,
            modified=resp.get("LastModified") or utcnow(),
            is_prefix=False,
        )
    
    def list_dir(self, key: str, visit: Visitor) -> None:
        self._require(Feature.LIST)
        
        prefix = normalize_key(key)
        kwargs: Dict[str, Any] = {
            "Bucket": self.bucket.name,
            "Prefix": prefix,
            "FetchOwner": True,
        }
        while True:
            try:
                resp = self.client.list_objects_v2(**kwargs)
            except (ClientError, BotoCoreError) as e:
                logger.error(f"Could not list {self.fqdn(prefix)!r}. Code: {error_code(e)}")
                raise into_backend_error(e, prefix) from e
            
            for obj in resp.get("Contents", []):
                owner = (obj.get("Owner") or {}).get("DisplayName") or UNKNOWN
                info = ObjectMetadata(
                    key=obj["Key"],
                    size=obj.get("Size") or 0,
                    modified=obj.get("LastModified") or utcnow(),
                    owner=owner,
                )
                self._visit(visit, info, self.fqdn(obj["Key"]))
            
            if not resp.get("IsTruncated"):
                break
            kwargs["ContinuationToken"] = resp["NextContinuationToken"]
    
    def change_dir(self, key: str) -> None:
        self._require(Feature.CHANGE_DIR)
        logger.warning("ChangeDir (CD) is not supported.")
        raise OperationNotSupported(Feature.CHANGE_DIR.operation)
    
    def make_dir(self, key: str) -> None:
        self._require(Feature.MAKE_DIR)
        logger.warning("MakeDir (MKDIR) is not supported.")
        raise OperationNotSupported(Feature.MAKE_DIR.operation)
    
    def delete_dir(self, key: str) -> None:
        self._require(Feature.REMOVE_DIR)
        logger.warning("RemoveDir (RMDIR) is not supported.")
        raise OperationNotSupported(Feature.REMOVE_DIR.operation)
    
    def rename(self, old_key: str, new_key: str) -> None:
        # TODO: could be emulated with copy_object + delete_object once a
        # partial failure between the two calls can be reported to clients.
        self._require(Feature.MOVE)
        logger.warning("Rename (MV) is not supported.")
        raise OperationNotSupported(Feature.MOVE.operation)
    
    def delete_file(self, key: str) -> None:
        self._require(Feature.REMOVE)
        
        key = normalize_key(key)
        # S3 reports success when deleting a missing key
        if not key or not self._object_exists(key):
            logger.error(f"Failed to delete object {self.fqdn(key)!r}: not found")
            raise ObjectNotFound(key)
        
        try:
            self.client.delete_object(Bucket=self.bucket.name, Key=key)
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to delete object {self.fqdn(key)!r}. Code: {error_code(e)}")
            raise into_backend_error(e, key) from e
        
        logger.info(f"Deleted object {self.fqdn(key)!r}")
    
    def get_file(self, key: str, offset: int = 0) -> Tuple[int, BinaryIO]:
        self._require(Feature.GET)
        if offset < 0:
            raise ValueError(f"Negative offset: {offset}")
        
        key = normalize_key(key)
        if not key:
            raise ObjectNotFound(key)
        
        kwargs: Dict[str, Any] = {"Bucket": self.bucket.name, "Key": key}
        if offset > 0:
            kwargs["Range"] = f"bytes={offset}-"
        
        try:
            resp = self.client.get_object(**kwargs)
        except ClientError as e:
            if error_code(e) in NOT_FOUND_CODES:
                logger.error(f"Failed to get object: {self.fqdn(key)!r}")
                raise ObjectNotFound(key) from e
            if offset > 0 and error_code(e) in INVALID_RANGE_CODES:
                return self._empty_tail(key, offset, e)
            logger.error(f"Failed to get object {self.fqdn(key)!r}. Code: {error_code(e)}")
            raise into_backend_error(e, key) from e
        except BotoCoreError as e:
            logger.error(f"Failed to get object {self.fqdn(key)!r}: {e}")
            raise into_backend_error(e, key) from e

        logger.info(f"Serving object {self.fqdn(key)!r}")
        return total_size(resp), self._metered(resp["Body"])

    def _empty_tail(self, key: str, offset: int, error: ClientError) -> Tuple[int, BinaryIO]:
        """Handle a restart offset at (or past) the end of the object."""
        info = self.stat(key)
        if info.is_prefix:
            raise ObjectNotFound(key) from error
        size = info.size
        if offset < size:
            # Range was valid after all, the object changed in between
            logger.error(f"Failed to get object {self.fqdn(key)!r}. Code: {error_code(error)}")
            raise into_backend_error(error, key) from error
        logger.info(f"Serving object {self.fqdn(key)!r} from its end")
        return size, self._metered(io.BytesIO())
    
    def put_file(self, key: str, data: BinaryIO, append: bool = False) -> int:
        self._require(Feature.PUT)
        
        key = normalize_key(key)
        if append:
            logger.error(f"Can not append to object {self.fqdn(key)!r} because the backend does not support appending")
            raise AppendNotSupported(key)
        if not key:
            raise InvalidKey(key)
        
        # Check-then-write is racy between sessions, IfNoneMatch below closes
        # the gap on backends supporting conditional writes.
        if self.no_overwrite and self._object_exists(key):
            logger.error(f"Object {self.fqdn(key)!r} already exists and overwriting is forbidden")
            raise OverwriteForbidden(key)
        
        try:
            size = stream_size(data)
        except OSError as e:
            logger.error(f"Failed to put object {self.fqdn(key)!r} because reading from source failed: {e}")
            raise

        # botocore streams the body, it is never loaded as a whole
        kwargs: Dict[str, Any] = {"Bucket": self.bucket.name, "Key": key, "Body": data}
        if self.no_overwrite:
            kwargs["IfNoneMatch"] = "*"
        
        try:
            self.client.put_object(**kwargs)
        except ClientError as e:
            if error_code(e) in PRECONDITION_FAILED_CODES:
                logger.error(f"Object {self.fqdn(key)!r} was created concurrently, overwriting is forbidden")
                raise OverwriteForbidden(key) from e
            logger.error(f"Failed to put object {self.fqdn(key)!r}. Code: {error_code(e)}")
            raise into_backend_error(e, key) from e
        except BotoCoreError as e:
            logger.error(f"Failed to put object {self.fqdn(key)!r}: {e}")
            raise into_backend_error(e, key) from e
        
        logger.info(f"Stored object {self.fqdn(key)!r} ({size} bytes)")
        self._report_put(size)
        return size
    
    def fqdn(self, key: str) -> str:
        """Fully qualified name of the object with key `key`."""
        return self.bucket.object_url(key)
    
    def _object_exists(self, key: str) -> bool:
        logger.debug(f"Trying to check if object {self.fqdn(key)!r} exists.")
        try:
            self.client.head_object(Bucket=self.bucket.name, Key=key)
        except ClientError as e:
            if error_code(e) in NOT_FOUND_CODES:
                return False
            logger.error(f"Failed to check object {self.fqdn(key)!r}. Code: {error_code(e)}")
            raise into_backend_error(e, key) from e
        except BotoCoreError as e:
            logger.error(f"Failed to check object {self.fqdn(key)!r}: {e}")
            raise into_backend_error(e, key) from e
        return True
