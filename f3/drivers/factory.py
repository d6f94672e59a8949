"""
Driver factory for f3.

Validates the configuration once, creates the backend clients and hands
out one driver per FTP connection.
"""

import logging
from pathlib import Path
from typing import Any, Optional, Tuple
from urllib.parse import unquote, urlsplit

import boto3
from botocore.config import Config as BotoConfig

from f3.config import Config
from f3.drivers.base import DriverProtocol
from f3.drivers.fs_driver import FsDriver
from f3.drivers.s3_driver import S3Driver
from f3.errors import MalformedBucketURL, MalformedStoreCredentials
from f3.features import FeatureFlags, parse_feature_set
from f3.metrics import CloudWatchSender, MetricsSender, NopSender
from f3.models import BucketIdentity

logger = logging.getLogger(__name__)


def parse_store_credentials(credentials: str) -> Tuple[str, str]:
    """
    Split 'access_key:secret_key'.
    
    Raises:
        MalformedStoreCredentials: If the value is not exactly two non-empty
            colon separated fields
    """
    parts = (credentials or "").strip().split(":")
    if len(parts) != 2 or not all(parts):
        raise MalformedStoreCredentials()
    return parts[0], parts[1]


class DriverFactory:
    """Builds drivers sharing one validated configuration."""
    
    def __init__(
        self,
        features: FeatureFlags,
        no_overwrite: bool,
        metrics: MetricsSender,
        bucket: Optional[BucketIdentity] = None,
        s3_client: Any = None,
        root: Optional[Path] = None,
    ):
        if (bucket is None) == (root is None):
            raise ValueError("Exactly one of bucket or root is required")
        self.features = features
        self.no_overwrite = no_overwrite
        self.metrics = metrics
        self.bucket = bucket
        self.s3_client = s3_client
        self.root = root
    
    @classmethod
    def build(
        cls,
        config: Config,
        s3_client: Any = None,
        metrics: Optional[MetricsSender] = None,
    ) -> "DriverFactory":
        """
        Validate `config` and set up the storage backend.
        
        Args:
            config: f3 configuration
            s3_client: Use this S3 client instead of creating one
            metrics: Use this metrics sender instead of creating one
            
        Raises:
            InvalidFeatureSpec: If the feature set is invalid
            MalformedBucketURL: If the bucket URL is invalid
            MalformedStoreCredentials: If the S3 credentials are invalid
        """
        features = parse_feature_set(config.features)
        no_overwrite = config.no_overwrite
        
        if urlsplit(config.bucket_url or "").scheme == "file":
            root = Path(unquote(urlsplit(config.bucket_url).path))
            if not str(root).strip("/"):
                raise MalformedBucketURL(config.bucket_url, "a root directory is required")
            logger.info(f"Serving files from local directory {str(root)!r}")
            return cls(
                features=features,
                no_overwrite=no_overwrite,
                metrics=metrics or NopSender(),
                root=root,
            )
        
        bucket = BucketIdentity.from_url(
            config.bucket_url,
            region=config.s3_region,
            path_style=config.s3_path_style,
        )
        access_key, secret_key = parse_store_credentials(config.s3_credentials)
        
        session = None
        if s3_client is None or (metrics is None and not config.disable_cloudwatch):
            session = boto3.session.Session(
                aws_access_key_id=access_key,
                aws_secret_access_key=secret_key,
                region_name=bucket.region,
            )
        
        if s3_client is None:
            logger.debug(
                f"Trying to create an S3 client with: Region: {bucket.region!r}, "
                f"PathStyle: {bucket.path_style}, Endpoint: {bucket.endpoint!r}"
            )
            s3_client = session.client(
                "s3",
                endpoint_url=bucket.endpoint,
                config=BotoConfig(
                    s3={"addressing_style": "path" if bucket.path_style else "virtual"},
                ),
            )
        
        if metrics is None:
            if config.disable_cloudwatch:
                metrics = NopSender()
            else:
                metrics = CloudWatchSender(
                    session.client("cloudwatch"),
                    namespace=config.metrics_namespace,
                )
        
        logger.info(f"Using bucket {bucket.name!r} at {bucket.endpoint!r}")
        return cls(
            features=features,
            no_overwrite=no_overwrite,
            metrics=metrics,
            bucket=bucket,
            s3_client=s3_client,
        )
    
    def new_driver(self) -> DriverProtocol:
        """Return a new driver for one FTP connection."""
        if self.bucket is not None:
            return S3Driver(
                features=self.features,
                client=self.s3_client,
                bucket=self.bucket,
                no_overwrite=self.no_overwrite,
                metrics=self.metrics,
            )
        return FsDriver(
            features=self.features,
            root=self.root,
            no_overwrite=self.no_overwrite,
            metrics=self.metrics,
        )
    
    def check_bucket(self) -> None:
        """
        Check that the backing bucket (or root directory) is accessible.
        
        Raises:
            BackendError: If it is not
        """
        self.new_driver().check_bucket()
