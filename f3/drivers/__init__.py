"""Storage drivers for f3."""

from f3.drivers.base import BaseDriver, DriverProtocol
from f3.drivers.factory import DriverFactory, parse_store_credentials
from f3.drivers.fs_driver import FsDriver
from f3.drivers.s3_driver import S3Driver

__all__ = [
    "BaseDriver",
    "DriverProtocol",
    "DriverFactory",
    "parse_store_credentials",
    "FsDriver",
    "S3Driver",
]
