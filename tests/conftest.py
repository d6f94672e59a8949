"""
Shared pytest fixtures for f3 tests.
"""

import io
from datetime import datetime, timezone
from typing import Dict, List, Tuple
from unittest.mock import Mock

import pytest
from botocore.exceptions import ClientError

from f3.drivers.fs_driver import FsDriver
from f3.drivers.s3_driver import S3Driver
from f3.features import Feature, FeatureFlags
from f3.models import BucketIdentity

BUCKET_NAME = "test-bucket"
BUCKET_URL = f"https://{BUCKET_NAME}.my.s3.host.com"

ALL_FEATURES = FeatureFlags(Feature)


def client_error(code: str, operation: str, message: str = "") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": message or code}}, operation)


class FakeS3Client:
    """In-memory S3 client recording every call it receives."""
    
    def __init__(self, bucket: str = BUCKET_NAME, page_size: int = 1000):
        self.bucket = bucket
        self.page_size = page_size
        self.objects: Dict[str, Tuple[bytes, datetime]] = {}
        self.calls: List[Tuple[str, dict]] = []
    
    def add(self, key: str, data: bytes) -> None:
        self.objects[key] = (data, datetime.now(timezone.utc))
    
    def call_names(self) -> List[str]:
        return [name for name, _ in self.calls]
    
    def _record(self, operation: str, kwargs: dict) -> None:
        self.calls.append((operation, kwargs))
        if kwargs.get("Bucket") != self.bucket:
            raise client_error("NoSuchBucket", operation)
    
    def head_bucket(self, **kwargs):
        self._record("HeadBucket", kwargs)
        return {}
    
    def head_object(self, **kwargs):
        self._record("HeadObject", kwargs)
        if kwargs["Key"] not in self.objects:
            raise client_error("404", "HeadObject", "Not Found")
        data, modified = self.objects[kwargs["Key"]]
        return {"ContentLength": len(data), "LastModified": modified}
    
    def get_object(self, **kwargs):
        self._record("GetObject", kwargs)
        if kwargs["Key"] not in self.objects:
            raise client_error("NoSuchKey", "GetObject", "The specified key does not exist.")
        data, modified = self.objects[kwargs["Key"]]
        resp = {"LastModified": modified}
        if "Range" in kwargs:
            start = int(kwargs["Range"][len("bytes="):].rstrip("-"))
            if start >= len(data):
                raise client_error("InvalidRange", "GetObject")
            resp["ContentRange"] = f"bytes {start}-{len(data) - 1}/{len(data)}"
            data = data[start:]
        resp["ContentLength"] = len(data)
        resp["Body"] = io.BytesIO(data)
        return resp
    
    def put_object(self, **kwargs):
        self._record("PutObject", kwargs)
        if kwargs.get("IfNoneMatch") == "*" and kwargs["Key"] in self.objects:
            raise client_error("PreconditionFailed", "PutObject")
        body = kwargs["Body"]
        if hasattr(body, "read"):
            body = body.read()
        self.add(kwargs["Key"], bytes(body))
        return {}
    
    def delete_object(self, **kwargs):
        self._record("DeleteObject", kwargs)
        self.objects.pop(kwargs["Key"], None)
        return {}
    
    def list_objects_v2(self, **kwargs):
        self._record("ListObjectsV2", kwargs)
        prefix = kwargs.get("Prefix", "")
        keys = sorted(k for k in self.objects if k.startswith(prefix))
        start = int(kwargs.get("ContinuationToken", 0))
        page = keys[start:start + self.page_size]
        resp = {
            "Contents": [
                {
                    "Key": key,
                    "Size": len(self.objects[key][0]),
                    "LastModified": self.objects[key][1],
                    "Owner": {"DisplayName": "owner", "ID": "1234"},
                }
                for key in page
            ],
            "IsTruncated": start + self.page_size < len(keys),
        }
        if resp["IsTruncated"]:
            resp["NextContinuationToken"] = str(start + self.page_size)
        return resp


@pytest.fixture
def s3_client():
    """An empty in-memory bucket."""
    return FakeS3Client()


@pytest.fixture
def metrics():
    """A mock metrics sender."""
    sender = Mock()
    sender.send_get.return_value = None
    sender.send_put.return_value = None
    return sender


@pytest.fixture
def bucket():
    return BucketIdentity.from_url(BUCKET_URL)


@pytest.fixture
def make_s3_driver(s3_client, bucket, metrics):
    """Factory for S3 drivers on the in-memory bucket."""
    def make(features=ALL_FEATURES, no_overwrite=False):
        return S3Driver(
            features=features,
            client=s3_client,
            bucket=bucket,
            no_overwrite=no_overwrite,
            metrics=metrics,
        )
    return make


@pytest.fixture
def s3_driver(make_s3_driver):
    """An S3 driver with every feature enabled."""
    return make_s3_driver()


@pytest.fixture
def fs_root(tmp_path):
    root = tmp_path / "root"
    root.mkdir()
    return root


@pytest.fixture
def make_fs_driver(fs_root, metrics):
    """Factory for filesystem drivers rooted in a temp directory."""
    def make(features=ALL_FEATURES, no_overwrite=False):
        return FsDriver(features=features, root=fs_root, no_overwrite=no_overwrite, metrics=metrics)
    return make


@pytest.fixture
def fs_driver(make_fs_driver):
    """A filesystem driver with every feature enabled."""
    return make_fs_driver()
