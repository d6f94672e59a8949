"""
Error taxonomy for f3.

Every failure the driver layer can surface has its own exception class so
the FTP binding (and tests) can tell them apart without parsing messages.
"""

from typing import Optional


class F3Error(Exception):
    """Base class for all f3 errors."""
    pass


class InvalidFeatureSpec(F3Error):
    """Raised when a feature specification cannot be parsed."""
    
    def __init__(self, spec: str, token: Optional[str] = None):
        self.spec = spec
        self.token = token
        if token is None:
            message = "Empty feature set"
        else:
            message = f"Unknown feature flag: {token!r} in {spec!r}"
        super().__init__(message)


class NoCredentialsFound(F3Error):
    """Raised when a credential source contains no username:password pair."""
    
    def __init__(self, source: str = "credentials"):
        self.source = source
        super().__init__(f"No credentials found in {source}")


class AuthenticationFailed(F3Error):
    """Raised when a username/password pair does not match."""
    
    def __init__(self, username: str):
        self.username = username
        super().__init__(f"Authentication failed for user {username!r}")


class MalformedBucketURL(F3Error):
    """Raised when the bucket URL is not of the form scheme://bucket.host."""
    
    def __init__(self, url: str, reason: str = "not a fully qualified bucket name (e.g. 'https://bucket.host.domain')"):
        self.url = url
        super().__init__(f"Malformed bucket URL {url!r}: {reason}")


class MalformedStoreCredentials(F3Error):
    """Raised when the backend credentials are not 'access_key:secret_key'."""
    
    def __init__(self):
        super().__init__("Malformed credentials, not in format: 'access_key:secret_key'")


class OperationNotEnabled(F3Error):
    """Raised when an operation is disabled by the feature flags."""
    
    def __init__(self, operation: str):
        self.operation = operation
        super().__init__(f"{operation!r} is not enabled")


class OperationNotSupported(F3Error):
    """Raised for operations the backend has no equivalent for."""
    
    def __init__(self, operation: str):
        self.operation = operation
        super().__init__(f"{operation!r} is not supported by the storage backend")


class AppendNotSupported(F3Error):
    """Raised when a client asks to append to an object."""
    
    def __init__(self, key: str):
        self.key = key
        super().__init__(f"Can not append to {key!r} because the backend does not support appending")


class OverwriteForbidden(F3Error):
    """Raised when the no-overwrite policy rejects a write."""
    
    def __init__(self, key: str):
        self.key = key
        super().__init__(f"{key!r} already exists and overwriting is forbidden")


class ObjectNotFound(F3Error):
    """Raised when the requested object does not exist."""
    
    def __init__(self, key: str):
        self.key = key
        super().__init__(f"Object {key!r} not found")


class InvalidKey(F3Error):
    """Raised when a key resolves outside of the filesystem driver's root."""
    
    def __init__(self, key: str):
        self.key = key
        super().__init__(f"Invalid key {key!r}")


class BackendError(F3Error):
    """Wraps any other failure reported by the storage backend."""
    
    def __init__(self, code: str, message: str, key: Optional[str] = None):
        self.code = code
        self.message = message
        self.key = key
        target = f" for {key!r}" if key else ""
        super().__init__(f"Backend error{target}: {code}: {message}")


class TelemetryError(F3Error):
    """Raised by a metrics sender when a metric could not be delivered."""
    pass
