"""FTP backend: path handling, listing parsing, transport adapter and session."""

from .ftp_adapter import BackendAdapter, FTPAdapter, classify_error
from .session import BackendSession, ftp_adapter_factory

__all__ = [
    "BackendAdapter",
    "BackendSession",
    "FTPAdapter",
    "classify_error",
    "ftp_adapter_factory",
]
