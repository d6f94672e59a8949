"""
Configuration management for f3.

Settings come from (highest priority first) command line flags, an
optional YAML file, F3_* environment variables, a .env file and the
defaults below.
"""

from pathlib import Path
from typing import List, Optional, Tuple

import yaml
from pydantic import Field
from pydantic_settings import BaseSettings

from f3.features import DEFAULT_FEATURE_SET
from f3.models import DEFAULT_REGION
from f3.metrics import DEFAULT_NAMESPACE

DEFAULT_FTP_ADDR = "127.0.0.1:21"
DEFAULT_FTP_PORT = 21


def split_ftp_addr(addr: str) -> Tuple[str, int]:
    """
    Split 'host[:port]' into host and port, the port defaults to 21.
    
    Raises:
        ValueError: If the address is empty or the port is invalid
    """
    addr = (addr or "").strip()
    if not addr:
        raise ValueError("Empty FTP address")
    
    host, sep, port = addr.partition(":")
    if not sep:
        return host, DEFAULT_FTP_PORT
    
    if not port.isdigit() or not 0 < int(port) < 65536:
        raise ValueError(f"Invalid FTP port {port!r}")
    return host, int(port)


def parse_port_range(ports: str) -> Optional[List[int]]:
    """
    Parse a passive port range like '60000-60100'.
    
    Raises:
        ValueError: If the range is malformed
    """
    ports = (ports or "").strip()
    if not ports:
        return None
    
    start, sep, end = ports.partition("-")
    if not sep or not start.isdigit() or not end.isdigit() or int(start) > int(end):
        raise ValueError(f"Invalid passive port range {ports!r}")
    return list(range(int(start), int(end) + 1))


class Config(BaseSettings):
    """f3 configuration settings."""
    
    # FTP settings
    ftp_addr: str = Field(default=DEFAULT_FTP_ADDR)
    features: str = Field(default=DEFAULT_FEATURE_SET)
    no_overwrite: bool = False
    passive_ports: str = Field(default="")
    
    # S3 settings
    s3_credentials: str = Field(default="")
    bucket_url: str = Field(default="")
    s3_region: str = Field(default=DEFAULT_REGION)
    s3_path_style: bool = False
    
    # Metrics settings
    disable_cloudwatch: bool = False
    metrics_namespace: str = Field(default=DEFAULT_NAMESPACE)
    
    verbose: bool = False
    
    class Config:
        env_prefix = "F3_"
        env_file = ".env"
    
    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> "Config":
        """Load configuration from a YAML file, if given and present."""
        if config_path is not None and config_path.exists():
            with open(config_path, "r") as f:
                data = yaml.safe_load(f) or {}
            return cls(**data)
        
        return cls()
    
    @property
    def ftp_host_port(self) -> Tuple[str, int]:
        return split_ftp_addr(self.ftp_addr)
    
    @property
    def passive_port_range(self) -> Optional[List[int]]:
        return parse_port_range(self.passive_ports)
