"""
Local filesystem driver for f3.

Serves a directory tree instead of a bucket. Useful for local testing and
for deployments that front a mounted share.
"""

import logging
import os
import shutil
from datetime import datetime, timezone
from pathlib import Path
from typing import BinaryIO, Optional, Tuple, Union

from f3.drivers.base import BaseDriver, Visitor
from f3.errors import BackendError, InvalidKey, ObjectNotFound, OverwriteForbidden
from f3.features import Feature, FeatureFlags
from f3.metrics import MetricsSender
from f3.models import ObjectMetadata

logger = logging.getLogger(__name__)

COPY_BUFFER_SIZE = 1024 * 1024


def into_backend_error(error: OSError, key: str) -> BackendError:
    code = error.__class__.__name__
    return BackendError(code, error.strerror or str(error), key=key)


class FsDriver(BaseDriver):
    """Driver storing files below a local root directory."""
    
    supports_append = True
    
    def __init__(
        self,
        features: FeatureFlags,
        root: Union[str, Path],
        no_overwrite: bool = False,
        metrics: Optional[MetricsSender] = None,
    ):
        """
        Initialize the driver.
        
        Args:
            features: Enabled operations
            root: Directory all keys are resolved against
            no_overwrite: Refuse to replace existing files
            metrics: Sender for GET/PUT metrics
        """
        super().__init__(features, no_overwrite=no_overwrite, metrics=metrics)
        self.root = Path(root).resolve()
    
    def check_bucket(self) -> None:
        if not self.root.is_dir():
            logger.error(f"Root directory {str(self.root)!r} is not accessible.")
            raise BackendError("NotADirectory", f"{self.root} is not a directory")
    
    def build_path(self, key: str) -> Path:
        """
        Resolve a key below the root directory.
        
        Raises:
            InvalidKey: If the key points outside of the root
        """
        path = (self.root / (key or "").lstrip("/")).resolve()
        if path != self.root and self.root not in path.parents:
            raise InvalidKey(key)
        return path
    
    def stat(self, key: str) -> ObjectMetadata:
        path = self.build_path(key)
        try:
            info = path.stat()
        except FileNotFoundError as e:
            raise ObjectNotFound(key) from e
        except OSError as e:
            raise into_backend_error(e, key) from e
        return self._metadata(key, path, info)
    
    def list_dir(self, key: str, visit: Visitor) -> None:
        self._require(Feature.LIST)
        
        path = self.build_path(key)
        try:
            entries = sorted(path.iterdir())
        except FileNotFoundError as e:
            raise ObjectNotFound(key) from e
        except OSError as e:
            raise into_backend_error(e, key) from e
        
        for entry in entries:
            try:
                info = self._metadata(entry.name, entry, entry.stat())
            except OSError as e:
                logger.warning(f"Skipping {str(entry)!r}: {e}")
                continue
            self._visit(visit, info, str(entry))
    
    def change_dir(self, key: str) -> None:
        self._require(Feature.CHANGE_DIR)
        if not self.build_path(key).is_dir():
            raise ObjectNotFound(key)
    
    def make_dir(self, key: str) -> None:
        self._require(Feature.MAKE_DIR)
        try:
            self.build_path(key).mkdir(mode=0o755, parents=True, exist_ok=True)
        except OSError as e:
            raise into_backend_error(e, key) from e
    
    def delete_dir(self, key: str) -> None:
        self._require(Feature.REMOVE_DIR)
        path = self.build_path(key)
        if path == self.root:
            raise InvalidKey(key)
        if not path.is_dir():
            raise ObjectNotFound(key)
        try:
            shutil.rmtree(path)
        except OSError as e:
            raise into_backend_error(e, key) from e
    
    def delete_file(self, key: str) -> None:
        self._require(Feature.REMOVE)
        path = self.build_path(key)
        try:
            path.unlink()
        except FileNotFoundError as e:
            raise ObjectNotFound(key) from e
        except OSError as e:
            raise into_backend_error(e, key) from e
    
    def rename(self, old_key: str, new_key: str) -> None:
        self._require(Feature.MOVE)
        old_path = self.build_path(old_key)
        new_path = self.build_path(new_key)
        if not old_path.exists():
            raise ObjectNotFound(old_key)
        if self.no_overwrite and new_path.exists():
            raise OverwriteForbidden(new_key)
        try:
            os.replace(old_path, new_path)
        except OSError as e:
            raise into_backend_error(e, old_key) from e
    
    def get_file(self, key: str, offset: int = 0) -> Tuple[int, BinaryIO]:
        self._require(Feature.GET)
        if offset < 0:
            raise ValueError(f"Negative offset: {offset}")
        
        path = self.build_path(key)
        if path.is_dir():
            raise ObjectNotFound(key)
        try:
            file = open(path, "rb")
        except FileNotFoundError as e:
            raise ObjectNotFound(key) from e
        except OSError as e:
            raise into_backend_error(e, key) from e
        
        size = os.fstat(file.fileno()).st_size
        file.seek(offset)
        return size, self._metered(file)
    
    def put_file(self, key: str, data: BinaryIO, append: bool = False) -> int:
        self._require(Feature.PUT)
        
        path = self.build_path(key)
        if path.is_dir():
            raise OverwriteForbidden(key)
        if self.no_overwrite and path.exists():
            raise OverwriteForbidden(key)
        
        count = 0
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "ab" if append else "wb") as file:
                while True:
                    chunk = data.read(COPY_BUFFER_SIZE)
                    if not chunk:
                        break
                    file.write(chunk)
                    count += len(chunk)
        except OSError as e:
            raise into_backend_error(e, key) from e
        
        self._report_put(count)
        return count
    
    @staticmethod
    def _metadata(key: str, path: Path, info: os.stat_result) -> ObjectMetadata:
        is_dir = path.is_dir()
        return ObjectMetadata(
            key=key,
            size=0 if is_dir else info.st_size,
            modified=datetime.fromtimestamp(info.st_mtime, tz=timezone.utc),
            is_prefix=is_dir,
        )
