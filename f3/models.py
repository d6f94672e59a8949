"""
Data models for f3.

These Pydantic models describe the values passed between the drivers and
the FTP binding.
"""

from datetime import datetime, timezone
from typing import Optional
from urllib.parse import urlsplit

from pydantic import BaseModel, Field

from f3.errors import MalformedBucketURL

UNKNOWN = "Unknown"
DEFAULT_REGION = "custom"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ObjectMetadata(BaseModel):
    """Metadata about a stored object (or a simulated directory)."""
    
    key: str
    size: int = Field(default=0, ge=0)
    modified: datetime = Field(default_factory=utcnow)
    is_prefix: bool = False  # True for simulated directories only
    owner: str = UNKNOWN
    
    class Config:
        frozen = True
    
    @classmethod
    def prefix(cls, key: str) -> "ObjectMetadata":
        """Zero-size record standing in for a key that only exists as a prefix."""
        return cls(key=key, size=0, modified=utcnow(), is_prefix=True)
    
    @property
    def name(self) -> str:
        return self.key
    
    @property
    def is_dir(self) -> bool:
        """Only meaningful for FTP compatibility."""
        return self.is_prefix
    
    @property
    def mode(self) -> int:
        return 0o755 if self.is_prefix else 0o644
    
    @property
    def group(self) -> str:
        # No group equivalent exists for objects
        return UNKNOWN


class BucketIdentity(BaseModel):
    """Bucket name and endpoint derived from a bucket URL."""
    
    name: str = Field(..., min_length=1)
    endpoint: str
    region: str = DEFAULT_REGION
    path_style: bool = False
    url: str
    
    class Config:
        frozen = True
    
    @classmethod
    def from_url(
        cls,
        url: str,
        region: str = DEFAULT_REGION,
        path_style: bool = False,
    ) -> "BucketIdentity":
        """
        Parse a bucket URL such as https://my-bucket.s3.example.com.
        
        The first DNS label of the host is the bucket name, the remainder
        (including an explicit port) plus the scheme is the endpoint.
        
        Raises:
            MalformedBucketURL: If scheme or host are missing or the host
                has fewer than two labels
        """
        if not url or not url.strip():
            raise MalformedBucketURL(url or "", "empty URL")
        
        parts = urlsplit(url.strip())
        if not parts.scheme or not parts.netloc:
            raise MalformedBucketURL(url, "scheme and host are required")
        
        name, sep, host = parts.netloc.partition(".")
        if not sep or not name or not host:
            raise MalformedBucketURL(url)
        
        return cls(
            name=name,
            endpoint=f"{parts.scheme}://{host}",
            region=region,
            path_style=path_style,
            url=url.strip().rstrip("/"),
        )
    
    def object_url(self, key: Optional[str] = None) -> str:
        """Fully qualified URL of an object, used in log messages."""
        if not key:
            return self.url
        return f"{self.url}/{key.lstrip('/')}"
