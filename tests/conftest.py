"""Pytest configuration and fixtures."""

import threading
from collections import defaultdict
from datetime import datetime, timezone
from typing import BinaryIO, Callable
from urllib.parse import quote

import pytest
from botocore.auth import S3SigV4Auth
from botocore.awsrequest import AWSRequest
from botocore.credentials import Credentials
from fastapi.testclient import TestClient

from ftp_s3_gateway.backend import paths
from ftp_s3_gateway.backend.session import BackendSession
from ftp_s3_gateway.config import Settings
from ftp_s3_gateway.credentials import CredentialStore
from ftp_s3_gateway.errors import (
    AlreadyExists,
    BackendAuthFailed,
    BackendError,
    BackendUnavailable,
    NotFound,
    TransientConnectivity,
)
from ftp_s3_gateway.main import create_app
from ftp_s3_gateway.models import BackendEntry

TEST_ACCESS_KEY = "test-access-key"
TEST_SECRET_KEY = "test-secret-key"
TEST_REGION = "us-east-1"

FIXED_MTIME = datetime(2024, 3, 15, 10, 30, 0, tzinfo=timezone.utc)


class FakeFTPServer:
    """In-memory FTP filesystem shared by every connection opened against it.

    Faults queued with ``inject`` are raised (or called, when callable) by
    the next matching adapter operation, one per call. Callables receive the
    path plus the sink or source stream of transfers.
    """

    def __init__(self):
        self.files: dict[str, bytes] = {}
        self.dirs: set[str] = {paths.ROOT}
        self.connects = 0
        self.closes = 0
        self.calls: list[tuple[str, str]] = []
        self.mkd_calls: list[str] = []
        self.faults: dict[str, list] = defaultdict(list)
        self.refuse_connections = False
        self.reject_login = False
        self.lock = threading.Lock()

    def inject(self, operation: str, *faults) -> None:
        self.faults[operation].extend(faults)

    def add_file(self, path: str, content: bytes = b"") -> None:
        path = paths.normalize(path)
        for directory in paths.ancestors(paths.parent_of(path)):
            self.dirs.add(directory)
        self.files[path] = content

    def add_dir(self, path: str) -> None:
        for directory in paths.ancestors(path):
            self.dirs.add(directory)

    def connect(self) -> "FakeFTPAdapter":
        if self.refuse_connections:
            raise BackendUnavailable("failed to connect to FTP server: [Errno 111] Connection refused")
        if self.reject_login:
            raise BackendAuthFailed("failed to login to FTP server: 530 Login incorrect.")
        self.connects += 1
        return FakeFTPAdapter(self)

    def count(self, operation: str) -> int:
        return sum(1 for name, _ in self.calls if name == operation)


class FakeFTPAdapter:
    """BackendAdapter over a FakeFTPServer."""

    def __init__(self, server: FakeFTPServer):
        self.server = server
        self.closed = False

    def _enter(self, operation: str, path: str, *args) -> None:
        server = self.server
        with server.lock:
            server.calls.append((operation, path))
            fault = server.faults[operation].pop(0) if server.faults[operation] else None
        if fault is None:
            return
        if isinstance(fault, BaseException):
            raise fault
        fault(path, *args)

    def list_dir(self, path: str) -> list[BackendEntry]:
        self._enter("list_dir", path)
        if path not in self.server.dirs:
            raise NotFound(f"550 {path}: No such file or directory.")

        entries = []
        for directory in sorted(self.server.dirs):
            if directory != paths.ROOT and paths.parent_of(directory) == path:
                entries.append(
                    BackendEntry(
                        name=paths.base_name(directory),
                        size=0,
                        modified_at=FIXED_MTIME,
                        is_directory=True,
                    )
                )
        for name, content in sorted(self.server.files.items()):
            if paths.parent_of(name) == path:
                entries.append(
                    BackendEntry(name=paths.base_name(name), size=len(content), modified_at=FIXED_MTIME)
                )
        return entries

    def retrieve(self, path: str, sink: BinaryIO) -> None:
        self._enter("retrieve", path, sink)
        if path not in self.server.files:
            raise NotFound(f"550 {path}: No such file or directory.")
        sink.write(self.server.files[path])

    def store(self, path: str, source: BinaryIO) -> None:
        self._enter("store", path, source)
        if paths.parent_of(path) not in self.server.dirs:
            raise NotFound(f"550 {path}: No such file or directory.")
        self.server.files[path] = source.read()

    def delete(self, path: str) -> None:
        self._enter("delete", path)
        if path not in self.server.files:
            raise NotFound(f"550 {path}: No such file or directory.")
        del self.server.files[path]

    def make_directory(self, path: str) -> None:
        self._enter("make_directory", path)
        self.server.mkd_calls.append(path)
        if path in self.server.dirs:
            raise AlreadyExists(f"550 {path}: File exists.")
        if paths.parent_of(path) not in self.server.dirs:
            raise NotFound(f"550 {path}: No such file or directory.")
        self.server.dirs.add(path)

    def make_directory_if_absent(self, path: str) -> bool:
        try:
            self.list_dir(path)
            return False
        except TransientConnectivity:
            raise
        except BackendError:
            pass

        try:
            self.make_directory(path)
        except AlreadyExists:
            return False
        return True

    def close(self) -> None:
        self.closed = True
        self.server.closes += 1


def transient(message: str = "[Errno 32] Broken pipe") -> TransientConnectivity:
    return TransientConnectivity(message)


@pytest.fixture
def ftp_server() -> FakeFTPServer:
    return FakeFTPServer()


@pytest.fixture
def session(ftp_server: FakeFTPServer) -> BackendSession:
    return BackendSession(ftp_server.connect, address="fake:21")


@pytest.fixture
def open_settings() -> Settings:
    """Settings without credentials: authentication disabled."""
    return Settings(
        _env_file=None,
        ftp_host="fake",
        ftp_user="user",
        ftp_password="pass",
        s3_access_key_id=None,
        s3_secret_key=None,
        log_format="console",
    )


@pytest.fixture
def auth_settings() -> Settings:
    return Settings(
        _env_file=None,
        ftp_host="fake",
        ftp_user="user",
        ftp_password="pass",
        s3_access_key_id=TEST_ACCESS_KEY,
        s3_secret_key=TEST_SECRET_KEY,
        s3_region=TEST_REGION,
        log_format="console",
    )


@pytest.fixture
def client(open_settings: Settings, session: BackendSession) -> TestClient:
    """Test client without authentication, backed by the fake FTP server."""
    app = create_app(open_settings, session=session, store=CredentialStore())
    return TestClient(app)


@pytest.fixture
def auth_client(auth_settings: Settings, session: BackendSession) -> TestClient:
    """Test client requiring SigV4 with the test credential pair."""
    app = create_app(
        auth_settings,
        session=session,
        store=CredentialStore(auth_settings.credential_pairs()),
    )
    return TestClient(app)


def sign_headers(
    method: str,
    path: str,
    query: str = "",
    body: bytes = b"",
    access_key: str = TEST_ACCESS_KEY,
    secret_key: str = TEST_SECRET_KEY,
    region: str = TEST_REGION,
) -> dict[str, str]:
    """Return SigV4 headers for a request against the test client host.

    ``path`` and ``query`` must already be percent-encoded exactly as they
    will be sent.
    """
    url = f"http://testserver{path}"
    if query:
        url = f"{url}?{query}"
    request = AWSRequest(method=method, url=url, data=body)
    S3SigV4Auth(Credentials(access_key, secret_key), "s3", region).add_auth(request)
    return {
        "Authorization": request.headers["Authorization"],
        "X-Amz-Date": request.headers["X-Amz-Date"],
        "X-Amz-Content-SHA256": request.headers["X-Amz-Content-SHA256"],
    }


def encode_query(params: dict[str, str]) -> str:
    return "&".join(f"{quote(k, safe='-_.~')}={quote(v, safe='-_.~')}" for k, v in params.items())


@pytest.fixture
def signer() -> Callable[..., dict[str, str]]:
    return sign_headers
