"""Transport adapter over ftplib.

This is the only module that talks raw FTP. Every ftplib/socket failure is
classified here, once, into an ``ErrorKind`` and re-raised as the matching
``BackendError`` subclass. Callers above this layer never look at FTP reply
codes or message text.
"""

import ftplib
from contextlib import contextmanager
from typing import BinaryIO, Iterator, Protocol

import structlog

from ftp_s3_gateway.backend.list_parser import entry_from_mlsd, parse_list_line
from ftp_s3_gateway.backend.paths import ROOT
from ftp_s3_gateway.errors import (
    AlreadyExists,
    BackendAuthFailed,
    BackendError,
    BackendOperationError,
    BackendUnavailable,
    ErrorKind,
    NotFound,
    PermissionDenied,
    TransientConnectivity,
)
from ftp_s3_gateway.models import BackendEntry

logger = structlog.get_logger()

# Reply codes that mean the control or data connection went away
TRANSIENT_CODES = {"421", "425", "426"}

TRANSIENT_SIGNATURES = (
    "broken pipe",
    "connection reset",
    "reset by peer",
    "connection refused",
    "timed out",
    "timeout",
    "no connection",
    "closed",
)

# vsftpd answers MKD of an existing directory with "550 Create directory operation failed."
ALREADY_EXISTS_SIGNATURES = (
    "already exists",
    "file exists",
    "cannot create",
    "create directory operation failed",
)

PERMISSION_SIGNATURES = ("permission denied", "not permitted", "access denied", "privileges")

# MLSD / OPTS MLST not implemented by the server
UNSUPPORTED_CODES = ("500", "501", "502")

_ERROR_TYPES: dict[ErrorKind, type[BackendError]] = {
    ErrorKind.TRANSIENT: TransientConnectivity,
    ErrorKind.NOT_FOUND: NotFound,
    ErrorKind.PERMISSION_DENIED: PermissionDenied,
    ErrorKind.ALREADY_EXISTS: AlreadyExists,
    ErrorKind.OTHER: BackendOperationError,
}

FTP_ERRORS = (ftplib.Error, OSError, EOFError)


def _reply_code(message: str) -> str:
    code = message[:3]
    return code if code.isdigit() else ""


def classify_error(exc: BaseException) -> ErrorKind:
    """Map an ftplib or socket exception onto an ``ErrorKind``."""
    if isinstance(exc, (EOFError, ConnectionError, TimeoutError, ftplib.error_proto)):
        return ErrorKind.TRANSIENT

    message = str(exc)
    lowered = message.lower()

    if isinstance(exc, ftplib.Error):
        code = _reply_code(message)
        if code in TRANSIENT_CODES:
            return ErrorKind.TRANSIENT
        if code == "521" or (
            code in ("550", "553") and any(sig in lowered for sig in ALREADY_EXISTS_SIGNATURES)
        ):
            return ErrorKind.ALREADY_EXISTS
        if code == "530" or (
            code.startswith("5") and any(sig in lowered for sig in PERMISSION_SIGNATURES)
        ):
            return ErrorKind.PERMISSION_DENIED
        if code == "550":
            return ErrorKind.NOT_FOUND

    if any(sig in lowered for sig in TRANSIENT_SIGNATURES):
        return ErrorKind.TRANSIENT
    if isinstance(exc, OSError):
        return ErrorKind.TRANSIENT
    return ErrorKind.OTHER


def translate_error(exc: BaseException) -> BackendError:
    """Build the ``BackendError`` for a raw ftplib/socket exception."""
    kind = classify_error(exc)
    return _ERROR_TYPES[kind](str(exc) or type(exc).__name__)


class BackendAdapter(Protocol):
    """Operations the backend session needs from a connected FTP client."""

    def list_dir(self, path: str) -> list[BackendEntry]: ...

    def retrieve(self, path: str, sink: BinaryIO) -> None: ...

    def store(self, path: str, source: BinaryIO) -> None: ...

    def delete(self, path: str) -> None: ...

    def make_directory(self, path: str) -> None: ...

    def make_directory_if_absent(self, path: str) -> bool: ...

    def close(self) -> None: ...


class FTPAdapter:
    """A logged-in ftplib connection with classified errors."""

    def __init__(self, ftp: ftplib.FTP):
        self._ftp = ftp
        self._mlsd_supported = True

    @classmethod
    def open(
        cls,
        host: str,
        port: int,
        user: str,
        password: str,
        timeout: float | None = None,
    ) -> "FTPAdapter":
        """Connect and log in.

        Raises:
            BackendUnavailable: If the transport cannot be established
            BackendAuthFailed: If the server rejects the login
        """
        ftp = ftplib.FTP(timeout=timeout)
        try:
            ftp.connect(host, port)
        except FTP_ERRORS as exc:
            ftp.close()
            raise BackendUnavailable(f"failed to connect to FTP server: {exc}") from exc

        try:
            ftp.login(user, password)
        except ftplib.error_perm as exc:
            ftp.close()
            raise BackendAuthFailed(f"failed to login to FTP server: {exc}") from exc
        except FTP_ERRORS as exc:
            ftp.close()
            raise BackendUnavailable(f"failed to login to FTP server: {exc}") from exc

        return cls(ftp)

    @contextmanager
    def _translated(self, operation: str, path: str) -> Iterator[None]:
        try:
            yield
        except BackendError:
            raise
        except FTP_ERRORS as exc:
            error = translate_error(exc)
            logger.debug(
                "backend_command_failed",
                operation=operation,
                path=path,
                kind=error.kind.value,
                error=str(exc),
            )
            raise error from exc

    def list_dir(self, path: str) -> list[BackendEntry]:
        """List a directory, excluding the ``.`` and ``..`` pseudo-entries."""
        target = "" if path == ROOT else path

        with self._translated("list", path):
            if self._mlsd_supported:
                try:
                    rows = list(self._ftp.mlsd(target, facts=["type", "size", "modify"]))
                except ftplib.error_perm as exc:
                    if not str(exc).startswith(UNSUPPORTED_CODES):
                        raise
                    logger.info("backend_mlsd_unsupported", error=str(exc))
                    self._mlsd_supported = False
                else:
                    entries = (entry_from_mlsd(name, facts) for name, facts in rows)
                    return [entry for entry in entries if entry is not None]

            lines: list[str] = []
            command = f"LIST {target}" if target else "LIST"
            self._ftp.retrlines(command, lines.append)

        entries = (parse_list_line(line) for line in lines)
        return [entry for entry in entries if entry is not None]

    def retrieve(self, path: str, sink: BinaryIO) -> None:
        with self._translated("retrieve", path):
            self._ftp.retrbinary(f"RETR {path}", sink.write)

    def store(self, path: str, source: BinaryIO) -> None:
        with self._translated("store", path):
            self._ftp.storbinary(f"STOR {path}", source)

    def delete(self, path: str) -> None:
        with self._translated("delete", path):
            self._ftp.delete(path)

    def make_directory(self, path: str) -> None:
        with self._translated("make_directory", path):
            self._ftp.mkd(path)

    def _directory_exists(self, path: str) -> bool:
        """Whether ``path`` is an existing directory.

        MLSD fails with 550 for a missing directory. LIST does not: servers
        such as vsftpd answer it with an empty listing, so without MLSD the
        check changes into the directory and back instead.
        """
        if self._mlsd_supported:
            try:
                self.list_dir(path)
            except TransientConnectivity:
                raise
            except BackendError:
                return False
            # list_dir may have just switched this connection to LIST
            if self._mlsd_supported:
                return True

        with self._translated("pwd", path):
            start = self._ftp.pwd()
        try:
            with self._translated("cwd", path):
                self._ftp.cwd(path)
        except TransientConnectivity:
            raise
        except BackendError:
            return False
        with self._translated("cwd", start):
            self._ftp.cwd(start)
        return True

    def make_directory_if_absent(self, path: str) -> bool:
        """Create ``path`` unless it already exists.

        Existence is confirmed first (see ``_directory_exists``). A creation
        that loses a race against another writer (``ALREADY_EXISTS``) counts
        as success. Transient failures propagate so the session can
        reconnect.

        Returns:
            True if this call created the directory
        """
        if self._directory_exists(path):
            return False

        try:
            self.make_directory(path)
        except AlreadyExists:
            logger.debug("backend_directory_exists", path=path)
            return False

        logger.debug("backend_directory_created", path=path)
        return True

    def close(self) -> None:
        """Send QUIT and close the socket; failures of a dead connection are ignored."""
        try:
            self._ftp.quit()
        except FTP_ERRORS as exc:
            logger.debug("backend_quit_failed", error=str(exc))
        finally:
            self._ftp.close()
