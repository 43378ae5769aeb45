"""S3-compatible API endpoints backed by the FTP server.

The FTP root directory is exposed as a single virtual bucket (``default``
unless configured otherwise).

Supported operations:
- ListBuckets (GET /)
- ListObjectsV2 (GET /?list-type=2, GET /{bucket}?list-type=2)
- ListObjects (GET /?prefix=..., GET /?list-type=1, GET /{bucket})
- HeadBucket (HEAD /{bucket})
- GetObject (GET /{bucket}/{key})
- HeadObject (HEAD /{bucket}/{key})
- PutObject (PUT /{bucket}/{key})
- DeleteObject (DELETE /{bucket}/{key})

Every other method answers 405. Backend calls are blocking and run in the
threadpool; the session serializes them onto the single FTP connection.
"""

import tempfile
import time
from datetime import datetime, timezone
from typing import BinaryIO, Iterator

import structlog
from fastapi import APIRouter, Request, Response
from fastapi.responses import StreamingResponse
from starlette.concurrency import run_in_threadpool
from starlette.datastructures import QueryParams

from ftp_s3_gateway import listing, metrics, responses
from ftp_s3_gateway.backend import paths
from ftp_s3_gateway.backend.session import BackendSession
from ftp_s3_gateway.config import Settings
from ftp_s3_gateway.dependencies import SessionDep, SettingsDep
from ftp_s3_gateway.errors import NoSuchBucket, NotFound, UnsupportedOperation
from ftp_s3_gateway.models import EMPTY_ETAG, ListingRequest

logger = structlog.get_logger()

router = APIRouter(tags=["s3"])

OCTET_STREAM = "application/octet-stream"

STREAM_CHUNK_SIZE = 64 * 1024


def _require_bucket(bucket: str, config: Settings) -> None:
    if bucket != config.bucket_name:
        raise NoSuchBucket("The specified bucket does not exist")


def _no_such_key(bucket: str, key: str) -> Response:
    return responses.error_response(
        "NoSuchKey",
        f'Key "{key}" does not exist',
        f"/{bucket}/{key}",
        status_code=404,
    )


def _record(operation: str, start_time: float, status: str = "success") -> None:
    metrics.S3_OPERATIONS_TOTAL.labels(operation=operation, status=status).inc()
    metrics.S3_OPERATION_DURATION.labels(operation=operation).observe(time.time() - start_time)


def _iter_stream(stream: BinaryIO) -> Iterator[bytes]:
    try:
        while chunk := stream.read(STREAM_CHUNK_SIZE):
            yield chunk
    finally:
        stream.close()


def _stream_size(stream: BinaryIO) -> int:
    stream.seek(0, 2)
    size = stream.tell()
    stream.seek(0)
    return size


async def _list_objects(
    session: BackendSession,
    bucket: str,
    params: QueryParams,
    v2: bool,
) -> Response:
    start_time = time.time()
    operation = "ListObjectsV2" if v2 else "ListObjects"
    request = ListingRequest(
        bucket=bucket,
        prefix=params.get("prefix", ""),
        # ListObjects (V1) is always flat; the delimiter only applies to V2
        delimiter=params.get("delimiter", "") if v2 else "",
    )

    logger.info(
        "s3_list_objects",
        operation=operation,
        bucket=bucket,
        prefix=request.prefix,
        delimiter=request.delimiter,
    )

    result = await run_in_threadpool(listing.list_objects, session, request)

    if v2:
        content = responses.build_list_objects_v2_xml(result)
    else:
        content = responses.build_list_objects_v1_xml(result)

    _record(operation, start_time)
    return responses.xml_response(content)


# ============================================================================
# Service / bucket level
# ============================================================================


@router.get(
    "/",
    summary="ListBuckets / ListObjects",
    description=(
        "Without listing parameters: list the single virtual bucket. "
        "With list-type=2: ListObjectsV2. With another list-type or a prefix: ListObjects."
    ),
)
async def list_root(request: Request, session: SessionDep, config: SettingsDep) -> Response:
    params = request.query_params
    list_type = params.get("list-type", "")

    if list_type == "2":
        return await _list_objects(session, config.bucket_name, params, v2=True)

    if list_type or params.get("prefix"):
        return await _list_objects(session, config.bucket_name, params, v2=False)

    logger.info("s3_list_buckets")
    metrics.S3_OPERATIONS_TOTAL.labels(operation="ListBuckets", status="success").inc()
    # Creation date is not persisted; it is "now" on every call
    return responses.xml_response(
        responses.build_list_buckets_xml([config.bucket_name], datetime.now(timezone.utc))
    )


@router.get(
    "/{bucket}",
    summary="ListObjectsV2 / ListObjects",
    responses={
        200: {"description": "XML list of objects"},
        404: {"description": "NoSuchBucket - Bucket not found"},
    },
)
async def list_bucket(
    bucket: str,
    request: Request,
    session: SessionDep,
    config: SettingsDep,
) -> Response:
    """List objects in the virtual bucket (V2 with list-type=2, V1 otherwise)."""
    _require_bucket(bucket, config)
    params = request.query_params
    return await _list_objects(session, bucket, params, v2=params.get("list-type") == "2")


@router.head(
    "/{bucket}",
    summary="HeadBucket",
    responses={404: {"description": "NoSuchBucket - Bucket not found"}},
)
async def head_bucket(bucket: str, config: SettingsDep) -> Response:
    _require_bucket(bucket, config)
    return Response(status_code=200)


# ============================================================================
# Object level
# ============================================================================


@router.get(
    "/{bucket}/{key:path}",
    summary="GetObject",
    description="Download an object from the FTP server.",
    responses={
        200: {"description": "Object content"},
        401: {"description": "Unauthorized - Missing or invalid signature"},
        404: {"description": "NoSuchKey - Object not found"},
    },
)
async def get_object(
    bucket: str,
    key: str,
    request: Request,
    session: SessionDep,
    config: SettingsDep,
) -> Response:
    """S3 GetObject - Stream a file from the backend."""
    _require_bucket(bucket, config)

    if not key:
        # "/{bucket}/" is the bucket itself
        params = request.query_params
        return await _list_objects(session, bucket, params, v2=params.get("list-type") == "2")

    start_time = time.time()
    logger.info("s3_get_object", bucket=bucket, key=key)

    try:
        stream = await run_in_threadpool(session.get, key)
    except NotFound as e:
        logger.info("s3_get_object_not_found", bucket=bucket, key=key, error=str(e))
        _record("GetObject", start_time, status="not_found")
        return _no_such_key(bucket, key)

    size = _stream_size(stream)

    _record("GetObject", start_time)
    metrics.S3_BYTES_OUT_TOTAL.inc(size)

    return StreamingResponse(
        _iter_stream(stream),
        media_type=OCTET_STREAM,
        headers={
            "ETag": EMPTY_ETAG,
            "Content-Length": str(size),
        },
    )


@router.head(
    "/{bucket}/{key:path}",
    summary="HeadObject",
    description="Get object metadata from the parent directory listing.",
    responses={
        200: {"description": "Object metadata"},
        404: {"description": "NoSuchKey - Object not found"},
    },
)
async def head_object(
    bucket: str,
    key: str,
    session: SessionDep,
    config: SettingsDep,
) -> Response:
    """S3 HeadObject - List the parent directory and look for the base name."""
    _require_bucket(bucket, config)

    if not key:
        return Response(status_code=200)

    start_time = time.time()
    directory = paths.parent_of(key)
    name = paths.base_name(key)

    logger.info("s3_head_object", bucket=bucket, key=key, directory=directory, name=name)

    try:
        entries = await run_in_threadpool(session.list, directory)
    except NotFound:
        entries = []

    for entry in entries:
        if entry.name == name:
            _record("HeadObject", start_time)
            return Response(
                status_code=200,
                headers={
                    "Content-Length": str(entry.size),
                    "Last-Modified": responses.format_http_date(entry.modified_at),
                    "ETag": EMPTY_ETAG,
                    "Accept-Ranges": "bytes",
                    "Content-Type": OCTET_STREAM,
                },
            )

    _record("HeadObject", start_time, status="not_found")
    return _no_such_key(bucket, key)


@router.put(
    "/{bucket}/{key:path}",
    summary="PutObject",
    description="Upload an object; missing parent directories are created.",
    responses={
        200: {"description": "Object stored"},
        401: {"description": "Unauthorized - Missing or invalid signature"},
    },
)
async def put_object(
    bucket: str,
    key: str,
    request: Request,
    session: SessionDep,
    config: SettingsDep,
) -> Response:
    """S3 PutObject - Store the request body verbatim."""
    _require_bucket(bucket, config)
    if not key:
        raise UnsupportedOperation("Bucket creation is not supported")

    start_time = time.time()
    logger.info("s3_put_object_start", bucket=bucket, key=key)

    size = 0
    body = tempfile.SpooledTemporaryFile(max_size=config.spool_max_memory_bytes)
    try:
        async for chunk in request.stream():
            body.write(chunk)
            size += len(chunk)
        body.seek(0)
        await run_in_threadpool(session.put, key, body)
    finally:
        body.close()

    duration_ms = int((time.time() - start_time) * 1000)
    logger.info(
        "s3_put_object_complete",
        bucket=bucket,
        key=key,
        size_bytes=size,
        duration_ms=duration_ms,
    )

    _record("PutObject", start_time)
    metrics.S3_BYTES_IN_TOTAL.inc(size)

    return Response(status_code=200, headers={"ETag": EMPTY_ETAG})


@router.delete(
    "/{bucket}/{key:path}",
    summary="DeleteObject",
    status_code=204,
    responses={
        204: {"description": "Object deleted"},
        404: {"description": "NoSuchKey - Object not found"},
    },
)
async def delete_object(
    bucket: str,
    key: str,
    session: SessionDep,
    config: SettingsDep,
) -> Response:
    """S3 DeleteObject - Remove the file from the backend."""
    _require_bucket(bucket, config)
    if not key:
        raise UnsupportedOperation("Bucket deletion is not supported")

    start_time = time.time()
    logger.info("s3_delete_object", bucket=bucket, key=key)

    try:
        await run_in_threadpool(session.delete, key)
    except NotFound as e:
        logger.info("s3_delete_object_not_found", bucket=bucket, key=key, error=str(e))
        _record("DeleteObject", start_time, status="not_found")
        return _no_such_key(bucket, key)

    _record("DeleteObject", start_time)
    return Response(status_code=204)
