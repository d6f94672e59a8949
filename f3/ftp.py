"""
FTP binding for f3.

Glues the drivers to pyftpdlib:
- CredentialsAuthorizer: authenticates against the credential store
- DriverFilesystem: forwards filesystem calls to the connection's driver
- DriverHandler: creates one driver per connection
- create_ftp_server / run_ftp_server: threaded server, one thread per session
"""

import errno
import logging
import posixpath
import time
from tempfile import SpooledTemporaryFile
from typing import Callable, Dict, Iterable, Iterator, List, Optional

from pyftpdlib.authorizers import AuthenticationFailed as FTPAuthenticationFailed
from pyftpdlib.filesystems import AbstractedFS, FilesystemError
from pyftpdlib.handlers import FTPHandler
from pyftpdlib.servers import ThreadedFTPServer

from f3.auth import Credentials
from f3.config import Config
from f3.drivers.base import DriverProtocol
from f3.drivers.factory import DriverFactory
from f3.errors import (
    AppendNotSupported,
    AuthenticationFailed,
    F3Error,
    ObjectNotFound,
    OperationNotEnabled,
    OverwriteForbidden,
)
from f3.features import Feature
from f3.models import ObjectMetadata

logger = logging.getLogger(__name__)

APP_NAME = "f3"
# Operations are gated by the driver's feature flags, not by pyftpdlib
FULL_PERMISSIONS = "elradfmwMT"
SPOOL_MAX_SIZE = 8 * 1024 * 1024
SIX_MONTHS = 180 * 24 * 60 * 60


class CredentialsAuthorizer:
    """pyftpdlib authorizer backed by a Credentials store."""
    
    def __init__(
        self,
        credentials: Credentials,
        msg_login: str = f"{APP_NAME} says hello!",
        msg_quit: str = "Goodbye.",
    ):
        self.credentials = credentials
        self.msg_login = msg_login
        self.msg_quit = msg_quit
    
    def validate_authentication(self, username: str, password: str, handler) -> None:
        try:
            self.credentials.authenticate(username, password)
        except AuthenticationFailed as e:
            raise FTPAuthenticationFailed(str(e)) from e
    
    def has_user(self, username: str) -> bool:
        return username in self.credentials
    
    def get_home_dir(self, username: str) -> str:
        return "/"
    
    def has_perm(self, username: str, perm: str, path: Optional[str] = None) -> bool:
        return perm in FULL_PERMISSIONS
    
    def get_perms(self, username: str) -> str:
        return FULL_PERMISSIONS
    
    def get_msg_login(self, username: str) -> str:
        return self.msg_login
    
    def get_msg_quit(self, username: str) -> str:
        return self.msg_quit
    
    def impersonate_user(self, username: str, password: str) -> None:
        pass
    
    def terminate_impersonation(self, username: str) -> None:
        pass


class DriverReader:
    """
    Read-only file object streaming an object from a driver.
    
    The object is requested on the first read, so a restart offset set with
    seek() (REST + RETR) costs a single ranged request.
    """
    
    def __init__(self, driver: DriverProtocol, key: str, name: str):
        self.driver = driver
        self.key = key
        self.name = name
        self.offset = 0
        self.closed = False
        self._stream = None
    
    def _open(self) -> None:
        try:
            _, self._stream = self.driver.get_file(self.key, self.offset)
        except F3Error as e:
            raise FilesystemError(str(e)) from e
    
    def read(self, size: Optional[int] = None) -> bytes:
        if self._stream is None:
            self._open()
        if size is None or size < 0:
            return self._stream.read()
        return self._stream.read(size)
    
    def seek(self, offset: int, whence: int = 0) -> int:
        """Set the offset the transfer starts at."""
        if whence != 0 or offset < 0:
            raise FilesystemError("Only absolute seeks are supported")
        if self._stream is not None:
            raise FilesystemError("Can not seek once the transfer has started")
        self.offset = offset
        return offset
    
    def close(self) -> None:
        if not self.closed:
            self.closed = True
            if self._stream is not None:
                self._stream.close()


class DriverWriter:
    """Write-only file object; the data is handed to the driver on close."""
    
    def __init__(
        self,
        driver: DriverProtocol,
        key: str,
        name: str,
        append: bool = False,
        aborted: Optional[Callable[[], bool]] = None,
    ):
        self.driver = driver
        self.key = key
        self.name = name
        self.append = append
        self.closed = False
        self._aborted = aborted or (lambda: False)
        self._buffer = SpooledTemporaryFile(max_size=SPOOL_MAX_SIZE)
    
    def write(self, data: bytes) -> int:
        return self._buffer.write(data)
    
    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        try:
            if self._aborted():
                logger.warning(f"Upload of {self.name!r} was aborted, nothing stored")
                return
            self._buffer.seek(0)
            self.driver.put_file(self.key, self._buffer, append=self.append)
        except F3Error as e:
            logger.error(f"Upload of {self.name!r} failed: {e}")
            raise OSError(errno.EIO, str(e)) from e
        finally:
            self._buffer.close()


class DriverFilesystem(AbstractedFS):
    """
    pyftpdlib filesystem forwarding to a driver.
    
    FTP paths are used as filesystem paths; the driver sees them as keys
    without the leading slash. Driver errors become FilesystemError which
    pyftpdlib answers with a 550 reply.
    """
    
    def __init__(self, root: str, cmd_channel):
        super().__init__(root, cmd_channel)
        self.driver: DriverProtocol = cmd_channel.driver
        # Metadata of the last listdir() result, keyed by that very list
        self._listed: Optional[List[str]] = None
        self._listing: Dict[str, ObjectMetadata] = {}
    
    # --- path handling
    
    def ftp2fs(self, ftppath: str) -> str:
        return self.ftpnorm(ftppath)
    
    def fs2ftp(self, fspath: str) -> str:
        return self.ftpnorm(fspath)
    
    def validpath(self, path: str) -> bool:
        return True
    
    def realpath(self, path: str) -> str:
        return path
    
    @staticmethod
    def key(path: str) -> str:
        return path.lstrip("/")
    
    @classmethod
    def prefix(cls, path: str) -> str:
        key = cls.key(path)
        if key and not key.endswith("/"):
            key += "/"
        return key
    
    def _call(self, func, *args):
        try:
            return func(*args)
        except F3Error as e:
            raise FilesystemError(str(e)) from e
    
    # --- operations
    
    def open(self, filename: str, mode: str):
        key = self.key(filename)
        if "+" in mode:
            raise FilesystemError("Resuming uploads is not supported")
        if "r" in mode:
            if not self.driver.features.has(Feature.GET):
                raise FilesystemError(str(OperationNotEnabled(Feature.GET.operation)))
            if not self._exists(key):
                raise FilesystemError(str(ObjectNotFound(key)))
            return DriverReader(self.driver, key, filename)
        
        append = "a" in mode
        if not self.driver.features.has(Feature.PUT):
            raise FilesystemError(str(OperationNotEnabled(Feature.PUT.operation)))
        if append and not self.driver.supports_append:
            raise FilesystemError(str(AppendNotSupported(key)))
        if self.driver.no_overwrite and self._exists(key):
            raise FilesystemError(str(OverwriteForbidden(key)))
        return DriverWriter(self.driver, key, filename, append=append, aborted=self._transfer_aborted)
    
    def mkstemp(self, suffix="", prefix="", dir=None, mode="wb"):
        raise FilesystemError("Unique file names (STOU) are not supported")
    
    def chdir(self, path: str) -> None:
        if path == self.cwd:
            return
        self._call(self.driver.change_dir, self.key(path))
        self.cwd = path
    
    def mkdir(self, path: str) -> None:
        self._call(self.driver.make_dir, self.key(path))
    
    def rmdir(self, path: str) -> None:
        self._call(self.driver.delete_dir, self.key(path))
    
    def remove(self, path: str) -> None:
        self._call(self.driver.delete_file, self.key(path))
    
    def rename(self, src: str, dst: str) -> None:
        self._call(self.driver.rename, self.key(src), self.key(dst))
    
    def chmod(self, path: str, mode) -> None:
        raise FilesystemError("Changing file modes is not supported")
    
    def utime(self, path: str, timeval) -> None:
        raise FilesystemError("Changing modification times is not supported")
    
    def readlink(self, path: str) -> str:
        raise FilesystemError("Links are not supported")
    
    def listdir(self, path: str) -> List[str]:
        prefix = self.prefix(path)
        entries: Dict[str, ObjectMetadata] = {}
        
        def visit(info: ObjectMetadata) -> None:
            name = info.key
            if prefix and name.startswith(prefix):
                name = name[len(prefix):]
            if name:
                entries[name] = info
        
        self._call(self.driver.list_dir, prefix, visit)
        names = list(entries)
        self._listed, self._listing = names, entries
        return names
    
    def listdirinfo(self, path: str) -> List[str]:
        return self.listdir(path)
    
    # --- metadata
    
    def stat(self, path: str) -> ObjectMetadata:
        return self._call(self.driver.stat, self.key(path))
    
    lstat = stat
    
    def isdir(self, path: str) -> bool:
        try:
            return self.stat(path).is_dir
        except FilesystemError:
            return False
    
    def isfile(self, path: str) -> bool:
        try:
            return not self.stat(path).is_dir
        except FilesystemError:
            return False
    
    def islink(self, path: str) -> bool:
        return False
    
    def lexists(self, path: str) -> bool:
        try:
            self.stat(path)
        except FilesystemError:
            return False
        return True
    
    def getsize(self, path: str) -> int:
        return self.stat(path).size
    
    def getmtime(self, path: str) -> float:
        return self.stat(path).modified.timestamp()
    
    # --- listings
    
    def format_list(self, basedir: str, listing: Iterable[str], ignore_err: bool = True) -> Iterator[bytes]:
        known = self._take_listing(listing)
        
        def lines():
            now = time.time()
            for basename, info in self._entries(basedir, listing, known, ignore_err):
                perms = "drwxr-xr-x" if info.is_dir else "-rw-r--r--"
                mtime = info.modified.timestamp()
                fmt = "%b %d %H:%M" if now - mtime < SIX_MONTHS else "%b %d  %Y"
                mtimestr = time.strftime(fmt, self._timefunc(mtime))
                line = "%s %3s %-8s %-8s %8s %s %s\r\n" % (
                    perms, 1, info.owner, info.group, info.size, mtimestr, basename,
                )
                yield line.encode("utf8", self._unicode_errors)
        
        return lines()
    
    def format_mlsx(self, basedir: str, listing: Iterable[str], perms: str, facts: Iterable[str], ignore_err: bool = True) -> Iterator[bytes]:
        known = self._take_listing(listing)
        facts = list(facts)
        
        def lines():
            for basename, info in self._entries(basedir, listing, known, ignore_err):
                retfacts = {}
                if "type" in facts:
                    retfacts["type"] = "dir" if info.is_dir else "file"
                if "perm" in facts:
                    allowed = "el" if info.is_dir else "radfw"
                    retfacts["perm"] = "".join(p for p in allowed if p in perms)
                if "size" in facts and not info.is_dir:
                    retfacts["size"] = info.size
                if "modify" in facts:
                    retfacts["modify"] = time.strftime("%Y%m%d%H%M%S", time.gmtime(info.modified.timestamp()))
                factstring = "".join(f"{k}={v};" for k, v in retfacts.items())
                yield f"{factstring} {basename}\r\n".encode("utf8", self._unicode_errors)
        
        return lines()
    
    def _take_listing(self, listing: Iterable[str]) -> Dict[str, ObjectMetadata]:
        """Cached metadata, only valid for the list listdir() returned."""
        known = self._listing if listing is self._listed else {}
        self._listed, self._listing = None, {}
        return known
    
    def _entries(self, basedir, listing, known, ignore_err):
        for basename in listing:
            info = known.get(basename)
            if info is None:
                try:
                    info = self.stat(posixpath.join(basedir, basename))
                except FilesystemError:
                    if ignore_err:
                        continue
                    raise
            yield basename, info
    
    def _exists(self, key: str) -> bool:
        try:
            info = self.driver.stat(key)
        except ObjectNotFound:
            return False
        except F3Error as e:
            raise FilesystemError(str(e)) from e
        return not info.is_prefix
    
    def _transfer_aborted(self) -> bool:
        channel = getattr(self.cmd_channel, "data_channel", None)
        if channel is None:
            return False
        return not getattr(channel, "transfer_finished", True)
    
    def _timefunc(self, seconds: float):
        if getattr(self.cmd_channel, "use_gmt_times", True):
            return time.gmtime(seconds)
        return time.localtime(seconds)
    
    @property
    def _unicode_errors(self) -> str:
        return getattr(self.cmd_channel, "unicode_errors", "replace")


class DriverHandler(FTPHandler):
    """FTP handler creating a fresh driver for every connection."""
    
    driver_factory: Optional[DriverFactory] = None
    abstracted_fs = DriverFilesystem
    # Driver streams have no file descriptor
    use_sendfile = False
    
    def on_connect(self) -> None:
        self.driver = self.driver_factory.new_driver()
        logger.debug(f"New connection from {self.remote_ip}:{self.remote_port}")


def create_ftp_server(
    config: Config,
    factory: DriverFactory,
    credentials: Credentials,
) -> ThreadedFTPServer:
    """
    Create the FTP server.
    
    Args:
        config: f3 configuration (listen address, passive ports)
        factory: Driver factory shared by all connections
        credentials: FTP user credentials
        
    Returns:
        A ThreadedFTPServer, not yet serving
    """
    host, port = config.ftp_host_port
    
    class ConfiguredHandler(DriverHandler):
        pass
    
    ConfiguredHandler.driver_factory = factory
    ConfiguredHandler.authorizer = CredentialsAuthorizer(credentials)
    ConfiguredHandler.banner = f"{APP_NAME} says hello!"
    passive_ports = config.passive_port_range
    if passive_ports:
        ConfiguredHandler.passive_ports = passive_ports
    
    return ThreadedFTPServer((host, port), ConfiguredHandler)


def run_ftp_server(config: Config, factory: DriverFactory, credentials: Credentials) -> None:
    """Serve FTP until interrupted."""
    server = create_ftp_server(config, factory, credentials)
    host, port = config.ftp_host_port
    logger.info(f"FTP server starts listening on \"{host}:{port}\"")
    try:
        server.serve_forever()
    finally:
        server.close_all()
