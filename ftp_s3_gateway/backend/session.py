"""Backend session: one FTP connection behind a stateless request model.

FTP control connections are strictly serial (one command, one reply), so the
session owns a single connection and runs every operation that touches it
under one lock. Concurrent HTTP requests are therefore serialized here, one
backend round trip at a time.

Reconnect policy:
- A failure classified as transient closes and discards the connection,
  reconnects and retries the same operation exactly once.
- A second failure, transient or not, propagates unchanged.
- Non-transient failures (not found, permission denied, ...) propagate
  immediately without reconnecting.
"""

import tempfile
import threading
import time
from typing import BinaryIO, Callable, TypeVar

import structlog

from ftp_s3_gateway import metrics
from ftp_s3_gateway.backend import paths
from ftp_s3_gateway.backend.ftp_adapter import BackendAdapter, FTPAdapter
from ftp_s3_gateway.config import Settings
from ftp_s3_gateway.errors import BackendError, TransientConnectivity
from ftp_s3_gateway.models import BackendEntry

logger = structlog.get_logger()

T = TypeVar("T")

AdapterFactory = Callable[[], BackendAdapter]


def ftp_adapter_factory(config: Settings) -> AdapterFactory:
    """Return a factory opening logged-in FTP connections for ``config``."""

    def open_adapter() -> BackendAdapter:
        return FTPAdapter.open(
            host=config.ftp_host,
            port=config.ftp_port,
            user=config.ftp_user,
            password=config.ftp_password,
            timeout=config.ftp_timeout,
        )

    return open_adapter


class BackendSession:
    """
    Single logical seat on the FTP backend.

    Usage:
        session = BackendSession(ftp_adapter_factory(settings))
        entries = session.list("reports/2024")
        with session.get("reports/2024/q1.csv") as stream:
            data = stream.read()
    """

    def __init__(
        self,
        adapter_factory: AdapterFactory,
        spool_max_memory_bytes: int = 8 * 1024 * 1024,
        address: str = "",
    ):
        self._adapter_factory = adapter_factory
        self._spool_max_memory_bytes = spool_max_memory_bytes
        self._address = address
        self._adapter: BackendAdapter | None = None
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls, config: Settings) -> "BackendSession":
        return cls(
            ftp_adapter_factory(config),
            spool_max_memory_bytes=config.spool_max_memory_bytes,
            address=config.ftp_address,
        )

    @property
    def connected(self) -> bool:
        return self._adapter is not None

    # ------------------------------------------------------------------
    # Connection management (caller holds the lock)
    # ------------------------------------------------------------------

    def _connect_locked(self) -> BackendAdapter:
        if self._adapter is not None:
            return self._adapter

        logger.debug("backend_connecting", address=self._address)
        try:
            self._adapter = self._adapter_factory()
        except BackendError as e:
            logger.error("backend_connect_failed", address=self._address, error=str(e))
            metrics.BACKEND_CONNECTED.set(0)
            raise

        logger.info("backend_connected", address=self._address)
        metrics.BACKEND_CONNECTED.set(1)
        return self._adapter

    def _discard_locked(self) -> None:
        adapter, self._adapter = self._adapter, None
        metrics.BACKEND_CONNECTED.set(0)
        if adapter is not None:
            adapter.close()

    def _run_with_reconnect(self, operation: str, func: Callable[[BackendAdapter], T]) -> T:
        """Run ``func`` against the connection with one reconnect-and-retry."""
        adapter = self._connect_locked()
        start_time = time.perf_counter()
        try:
            result = func(adapter)
        except TransientConnectivity as e:
            logger.warning("backend_transient_failure", operation=operation, error=str(e))
            self._discard_locked()
            metrics.BACKEND_RECONNECTS_TOTAL.labels(operation=operation).inc()
            try:
                adapter = self._connect_locked()
                result = func(adapter)
            except BackendError as retry_error:
                if isinstance(retry_error, TransientConnectivity):
                    self._discard_locked()
                self._record(operation, "error", start_time)
                logger.error(
                    "backend_retry_failed",
                    operation=operation,
                    error=str(retry_error),
                    kind=retry_error.kind.value,
                )
                raise
        except BackendError as e:
            self._record(operation, "error", start_time)
            logger.debug("backend_operation_failed", operation=operation, kind=e.kind.value, error=str(e))
            raise

        self._record(operation, "success", start_time)
        return result

    @staticmethod
    def _record(operation: str, status: str, start_time: float) -> None:
        metrics.BACKEND_OPERATIONS_TOTAL.labels(operation=operation, status=status).inc()
        metrics.BACKEND_OPERATION_DURATION.labels(operation=operation).observe(
            time.perf_counter() - start_time
        )

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def connect(self) -> None:
        """Open and log in, unless a live connection already exists.

        Raises:
            BackendUnavailable: If the transport cannot be established
            BackendAuthFailed: If the login is rejected
        """
        with self._lock:
            self._connect_locked()

    def close(self) -> None:
        with self._lock:
            if self._adapter is not None:
                logger.info("backend_disconnecting", address=self._address)
            self._discard_locked()

    def list(self, path: str) -> list[BackendEntry]:
        """Return the entries of directory ``path``.

        Raises:
            NotFound: If the directory does not exist
        """
        path = paths.normalize(path)
        logger.debug("backend_list", path=path)
        with self._lock:
            return self._run_with_reconnect("list", lambda adapter: adapter.list_dir(path))

    def get(self, path: str) -> BinaryIO:
        """Return a readable stream positioned at the start of the file's bytes.

        The file is transferred while the lock is held and buffered in a
        spooled temporary file, so the connection is free again as soon as
        this returns. The caller owns (and must close) the stream.

        Raises:
            NotFound: If the file does not exist
        """
        path = paths.normalize(path)
        logger.debug("backend_get", path=path)

        buffer = tempfile.SpooledTemporaryFile(max_size=self._spool_max_memory_bytes)

        def retrieve(adapter: BackendAdapter) -> None:
            buffer.seek(0)
            buffer.truncate()
            adapter.retrieve(path, buffer)

        try:
            with self._lock:
                self._run_with_reconnect("get", retrieve)
        except BaseException:
            buffer.close()
            raise

        buffer.seek(0)
        return buffer

    def put(self, path: str, stream: BinaryIO) -> None:
        """Store ``stream`` at ``path``, creating ancestor directories first.

        Directory creation and the store itself each get their own
        reconnect-and-retry. The stream is rewound to its starting offset
        before a retried store, so it must be seekable for the retry to
        resend the full content.
        """
        path = paths.normalize(path)
        parent = paths.parent_of(path)
        logger.debug("backend_put", path=path, parent=parent)

        start_offset = stream.tell() if stream.seekable() else None

        def store(adapter: BackendAdapter) -> None:
            if start_offset is not None:
                stream.seek(start_offset)
            adapter.store(path, stream)

        with self._lock:
            if not paths.is_root(parent):
                self._run_with_reconnect(
                    "make_directories", lambda adapter: self._ensure_directories(adapter, parent)
                )
            self._run_with_reconnect("put", store)

    def delete(self, path: str) -> None:
        """Remove ``path``.

        Raises:
            NotFound: If the file does not exist
        """
        path = paths.normalize(path)
        logger.debug("backend_delete", path=path)
        with self._lock:
            self._run_with_reconnect("delete", lambda adapter: adapter.delete(path))

    @staticmethod
    def _ensure_directories(adapter: BackendAdapter, directory: str) -> None:
        """Walk ``directory`` left to right, creating each missing ancestor."""
        for prefix in paths.ancestors(directory):
            if adapter.make_directory_if_absent(prefix):
                logger.info("backend_directory_created", path=prefix)
