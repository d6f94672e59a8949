"""
f3 - a bridge between FTP and an S3 bucket.

FTP clients see a file tree, the data is stored as objects in a bucket.
Every FTP operation can be enabled separately and overwriting existing
objects can be forbidden.
"""

from f3.auth import Credentials
from f3.config import Config
from f3.drivers.factory import DriverFactory
from f3.features import Feature, FeatureFlags, parse_feature_set
from f3.models import BucketIdentity, ObjectMetadata

__version__ = "0.3.0"
__all__ = [
    "Credentials",
    "Config",
    "DriverFactory",
    "Feature",
    "FeatureFlags",
    "parse_feature_set",
    "BucketIdentity",
    "ObjectMetadata",
]
