"""
Credential store for FTP users.

Credentials are loaded once at startup from a plain text file with one
`username:password` pair per line and are read-only afterwards.
"""

import hmac
import logging
from pathlib import Path
from types import MappingProxyType
from typing import Dict, List, Mapping, Union

from f3.errors import AuthenticationFailed, NoCredentialsFound

logger = logging.getLogger(__name__)


class Credentials:
    """Immutable mapping of username to password."""
    
    def __init__(self, credentials: Mapping[str, str]):
        if not credentials:
            raise NoCredentialsFound()
        self._credentials = MappingProxyType(dict(credentials))
    
    @classmethod
    def from_text(cls, contents: str, source: str = "credentials") -> "Credentials":
        """
        Parse credentials from text.
        
        Blank lines and lines without a colon are skipped. The password is
        everything after the first colon.
        
        Raises:
            NoCredentialsFound: If no valid pair was found
        """
        credentials: Dict[str, str] = {}
        for line in contents.splitlines():
            line = line.strip()
            if not line:
                continue
            username, sep, password = line.partition(":")
            if not sep:
                continue
            credentials[username] = password
        
        if not credentials:
            raise NoCredentialsFound(source)
        
        logger.debug(f"Loaded {len(credentials)} credential(s) from {source}")
        return cls(credentials)
    
    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "Credentials":
        """Read credentials from a UTF-8 text file."""
        path = Path(path)
        logger.debug(f"Trying to read credentials file: {path}")
        return cls.from_text(path.read_text(encoding="utf-8"), source=str(path))
    
    def check_password(self, username: str, password: str) -> bool:
        """Return True if username and password match a stored pair."""
        expected = self._credentials.get(username)
        if expected is None:
            return False
        return hmac.compare_digest(expected.encode("utf-8"), password.encode("utf-8"))
    
    def authenticate(self, username: str, password: str) -> None:
        """
        Verify a username/password pair.
        
        Raises:
            AuthenticationFailed: If the pair does not match
        """
        if not self.check_password(username, password):
            logger.warning(f"Authentication failed for user {username!r}")
            raise AuthenticationFailed(username)
    
    @property
    def usernames(self) -> List[str]:
        return sorted(self._credentials)
    
    def __contains__(self, username: object) -> bool:
        return username in self._credentials
    
    def __len__(self) -> int:
        return len(self._credentials)
    
    def __repr__(self) -> str:
        return f"Credentials(users={self.usernames!r})"
