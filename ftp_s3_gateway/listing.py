"""Listing translator: FTP directory entries to S3 listing results.

Only the single directory named by the prefix is listed (no recursion).
Keys are built from the directory path plus the entry name; directories get
a trailing ``/``. With a delimiter, keys whose remainder after the prefix
contains the delimiter are folded into common prefixes.
"""

from typing import Iterable

import structlog

from ftp_s3_gateway.backend import paths
from ftp_s3_gateway.backend.session import BackendSession
from ftp_s3_gateway.errors import NotFound
from ftp_s3_gateway.models import (
    BackendEntry,
    CommonPrefix,
    ListingRequest,
    ListingResult,
    VirtualObject,
)

logger = structlog.get_logger()


def resolve_directory(prefix: str) -> str:
    """Backend directory to list for ``prefix`` (``"."`` for the root)."""
    return paths.normalize(prefix.removesuffix("/"))


def object_key(directory: str, entry: BackendEntry) -> str:
    """S3 key of ``entry`` found in ``directory``."""
    key = entry.name if paths.is_root(directory) else f"{directory}/{entry.name}"
    if entry.is_directory:
        key += "/"
    return key


def translate(request: ListingRequest, entries: Iterable[BackendEntry]) -> ListingResult:
    """Turn the entries of the prefix's directory into a listing result."""
    directory = resolve_directory(request.prefix)
    result = ListingResult(request=request)
    seen_prefixes: set[str] = set()

    for entry in entries:
        # Hidden entries, including the . and .. pseudo-entries
        if entry.name.startswith("."):
            continue

        key = object_key(directory, entry)

        if request.delimiter:
            rest = key.removeprefix(request.prefix)
            index = rest.find(request.delimiter)
            if index >= 0:
                common_prefix = request.prefix + rest[: index + len(request.delimiter)]
                if common_prefix not in seen_prefixes:
                    seen_prefixes.add(common_prefix)
                    result.common_prefixes.append(CommonPrefix(prefix=common_prefix))
                continue

        result.contents.append(
            VirtualObject(key=key, size=entry.size, last_modified=entry.modified_at)
        )

    return result


def list_objects(session: BackendSession, request: ListingRequest) -> ListingResult:
    """List the prefix's directory and translate it.

    A missing directory yields an empty result rather than an error.
    """
    directory = resolve_directory(request.prefix)
    logger.debug(
        "listing_directory",
        directory=directory,
        prefix=request.prefix,
        delimiter=request.delimiter,
    )

    try:
        entries = session.list(directory)
    except NotFound as e:
        logger.info("listing_directory_missing", directory=directory, error=str(e))
        return ListingResult(request=request)

    result = translate(request, entries)
    logger.debug(
        "listing_translated",
        directory=directory,
        entries=len(entries),
        contents=len(result.contents),
        common_prefixes=len(result.common_prefixes),
    )
    return result
