"""
Driver protocol for f3.

Defines the file-operation interface the FTP binding talks to. Each
connection gets its own driver; implementations exist for S3 buckets and
for the local filesystem.
"""

import logging
from datetime import datetime, timezone
from typing import BinaryIO, Callable, Optional, Protocol, Tuple

from f3.errors import OperationNotEnabled
from f3.features import Feature, FeatureFlags
from f3.metrics import MetricsSender, NopSender
from f3.models import ObjectMetadata

logger = logging.getLogger(__name__)

Visitor = Callable[[ObjectMetadata], None]


class DriverProtocol(Protocol):
    """Interface for storage drivers."""
    
    features: FeatureFlags
    no_overwrite: bool
    supports_append: bool
    
    def check_bucket(self) -> None:
        """Raise BackendError if the storage backend is not accessible."""
        ...
    
    def stat(self, key: str) -> ObjectMetadata:
        """Return metadata for the object (or directory) at `key`."""
        ...
    
    def list_dir(self, key: str, visit: Visitor) -> None:
        """Call `visit` once for every object located under `key`."""
        ...
    
    def change_dir(self, key: str) -> None:
        ...
    
    def make_dir(self, key: str) -> None:
        ...
    
    def delete_dir(self, key: str) -> None:
        ...
    
    def delete_file(self, key: str) -> None:
        ...
    
    def rename(self, old_key: str, new_key: str) -> None:
        ...
    
    def get_file(self, key: str, offset: int = 0) -> Tuple[int, BinaryIO]:
        """
        Open the object at `key` for reading.
        
        Returns:
            Total object size and a readable stream starting at `offset`.
            The GET metric is reported once the stream is read to the end.
        """
        ...
    
    def put_file(self, key: str, data: BinaryIO, append: bool = False) -> int:
        """
        Store the contents of `data` at `key`.
        
        Returns:
            Number of bytes written
        """
        ...


class BaseDriver:
    """Shared feature gate and metrics reporting."""
    
    supports_append = False
    
    def __init__(
        self,
        features: FeatureFlags,
        no_overwrite: bool = False,
        metrics: Optional[MetricsSender] = None,
    ):
        self.features = features
        self.no_overwrite = no_overwrite
        self.metrics = metrics or NopSender()
    
    def _require(self, feature: Feature) -> None:
        """
        Raises:
            OperationNotEnabled: If `feature` is not enabled
        """
        if not self.features.has(feature):
            logger.warning(f"{feature.operation} is not enabled.")
            raise OperationNotEnabled(feature.operation)
    
    def _report_get(self, size: int) -> None:
        try:
            self.metrics.send_get(size, datetime.now(timezone.utc))
        except Exception:
            logger.exception("Failed to report GET metric")
    
    def _report_put(self, size: int) -> None:
        try:
            self.metrics.send_put(size, datetime.now(timezone.utc))
        except Exception:
            logger.exception("Failed to report PUT metric")
    
    def _metered(self, stream: BinaryIO) -> "MeteredReader":
        return MeteredReader(stream, self._report_get)
    
    @staticmethod
    def _visit(visit: Visitor, info: ObjectMetadata, location: str) -> None:
        """Run a listing callback; failures are logged and do not abort the listing."""
        try:
            visit(info)
        except Exception as e:
            logger.error(f"Could not list {location!r}: {e}")


class MeteredReader:
    """
    Read-only stream wrapper counting the bytes read.
    
    The count is reported once, when the stream is exhausted. Streams closed
    before the end (aborted transfers) report nothing.
    """
    
    def __init__(self, stream: BinaryIO, report: Callable[[int], None]):
        self._stream = stream
        self._report = report
        self.bytes_read = 0
        self.finished = False
    
    def read(self, size: Optional[int] = -1) -> bytes:
        if size is None or size < 0:
            data = self._stream.read()
            exhausted = True
        else:
            data = self._stream.read(size)
            exhausted = not data and size > 0
        self.bytes_read += len(data)
        if exhausted and not self.finished:
            self.finished = True
            self._report(self.bytes_read)
        return data
    
    def close(self) -> None:
        self._stream.close()
    
    @property
    def closed(self) -> bool:
        return getattr(self._stream, "closed", False)
    
    def __enter__(self) -> "MeteredReader":
        return self
    
    def __exit__(self, *exc) -> None:
        self.close()
