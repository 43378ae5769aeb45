"""In-memory store of SigV4 credentials, keyed by access key id."""

import threading
from types import MappingProxyType
from typing import Iterable, Mapping

import structlog

from ftp_s3_gateway.models import Credential

logger = structlog.get_logger()


class CredentialStore:
    """
    Read-mostly map of access key id to credential.

    Readers see an immutable snapshot and never lock; writers build a new
    mapping under a lock and swap it in, so rotation never exposes a
    half-updated map.
    """

    def __init__(self, pairs: Iterable[tuple[str, str]] = ()):
        self._write_lock = threading.Lock()
        self._credentials: Mapping[str, Credential] = MappingProxyType({})
        for access_key_id, secret_key in pairs:
            self.add(access_key_id, secret_key)

    def add(self, access_key_id: str, secret_key: str) -> None:
        """Store a credential. An existing access key id is never overwritten."""
        with self._write_lock:
            if access_key_id in self._credentials:
                raise ValueError(f"Credential for access key {access_key_id!r} already exists")
            updated = dict(self._credentials)
            updated[access_key_id] = Credential(access_key_id=access_key_id, secret_key=secret_key)
            self._credentials = MappingProxyType(updated)
        logger.debug("credentials_added", access_key_id=access_key_id)

    def get(self, access_key_id: str) -> Credential | None:
        return self._credentials.get(access_key_id)

    def __len__(self) -> int:
        return len(self._credentials)

    def __contains__(self, access_key_id: object) -> bool:
        return access_key_id in self._credentials

    @property
    def is_empty(self) -> bool:
        return not self._credentials
