"""Value types passed between the backend session, listing translator and routes."""

from dataclasses import dataclass, field
from datetime import datetime

# MD5 of empty content. Used as the ETag of every object; no content hashing is done.
EMPTY_ETAG = '"d41d8cd98f00b204e9800998ecf8427e"'

STORAGE_CLASS = "STANDARD"


@dataclass(frozen=True)
class Credential:
    """A static SigV4 credential pair."""

    access_key_id: str
    secret_key: str


@dataclass(frozen=True)
class BackendEntry:
    """One row of an FTP directory listing."""

    name: str
    size: int
    modified_at: datetime
    is_directory: bool = False


@dataclass(frozen=True)
class VirtualObject:
    """S3-facing view of a backend entry."""

    key: str
    size: int
    last_modified: datetime
    etag: str = EMPTY_ETAG
    storage_class: str = STORAGE_CLASS


@dataclass(frozen=True)
class CommonPrefix:
    prefix: str


@dataclass(frozen=True)
class ListingRequest:
    """Parameters of a ListObjects / ListObjectsV2 call."""

    bucket: str
    prefix: str = ""
    delimiter: str = ""


@dataclass
class ListingResult:
    """Translated listing: content entries plus grouped common prefixes."""

    request: ListingRequest
    contents: list[VirtualObject] = field(default_factory=list)
    common_prefixes: list[CommonPrefix] = field(default_factory=list)

    @property
    def key_count(self) -> int:
        return len(self.contents) + len(self.common_prefixes)
