"""S3 XML response builders."""

from datetime import datetime, timezone
from email.utils import format_datetime
from xml.etree import ElementTree as ET

import structlog
from fastapi import Response

from ftp_s3_gateway.models import ListingResult

XML_MEDIA_TYPE = "application/xml"

OWNER_ID = "ftp-s3-gateway"

DEFAULT_MAX_KEYS = 1000


def _get_request_id() -> str:
    """Get current request ID from context (if available)."""
    return structlog.contextvars.get_contextvars().get("request_id", "")


def _utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def format_s3_timestamp(dt: datetime) -> str:
    """Format datetime for S3 XML response."""
    return _utc(dt).strftime("%Y-%m-%dT%H:%M:%S.000Z")


def format_http_date(dt: datetime) -> str:
    """Format datetime as HTTP-date (RFC 7231)."""
    return format_datetime(_utc(dt), usegmt=True)


def _to_xml(root: ET.Element) -> str:
    return ET.tostring(root, encoding="unicode", xml_declaration=True)


def build_list_buckets_xml(bucket_names: list[str], creation_date: datetime) -> str:
    """Build S3 ListBuckets (ListAllMyBucketsResult) XML response."""
    root = ET.Element("ListAllMyBucketsResult")

    owner = ET.SubElement(root, "Owner")
    ET.SubElement(owner, "ID").text = OWNER_ID
    ET.SubElement(owner, "DisplayName").text = OWNER_ID

    buckets = ET.SubElement(root, "Buckets")
    for name in bucket_names:
        bucket = ET.SubElement(buckets, "Bucket")
        ET.SubElement(bucket, "Name").text = name
        ET.SubElement(bucket, "CreationDate").text = format_s3_timestamp(creation_date)

    return _to_xml(root)


def _append_contents(root: ET.Element, result: ListingResult) -> None:
    for obj in result.contents:
        contents = ET.SubElement(root, "Contents")
        ET.SubElement(contents, "Key").text = obj.key
        ET.SubElement(contents, "LastModified").text = format_s3_timestamp(obj.last_modified)
        ET.SubElement(contents, "ETag").text = obj.etag
        ET.SubElement(contents, "Size").text = str(obj.size)
        ET.SubElement(contents, "StorageClass").text = obj.storage_class


def build_list_objects_v2_xml(result: ListingResult, max_keys: int = DEFAULT_MAX_KEYS) -> str:
    """Build S3 ListObjectsV2 XML response. Pagination is not implemented."""
    request = result.request
    root = ET.Element("ListBucketResult")

    ET.SubElement(root, "Name").text = request.bucket
    ET.SubElement(root, "Prefix").text = request.prefix
    ET.SubElement(root, "KeyCount").text = str(result.key_count)
    ET.SubElement(root, "MaxKeys").text = str(max_keys)
    if request.delimiter:
        ET.SubElement(root, "Delimiter").text = request.delimiter
    ET.SubElement(root, "IsTruncated").text = "false"

    _append_contents(root, result)

    for common_prefix in result.common_prefixes:
        cp_elem = ET.SubElement(root, "CommonPrefixes")
        ET.SubElement(cp_elem, "Prefix").text = common_prefix.prefix

    return _to_xml(root)


def build_list_objects_v1_xml(result: ListingResult, max_keys: int = DEFAULT_MAX_KEYS) -> str:
    """Build legacy S3 ListObjects XML response: flat contents, no KeyCount."""
    request = result.request
    root = ET.Element("ListBucketResult")

    ET.SubElement(root, "Name").text = request.bucket
    ET.SubElement(root, "Prefix").text = request.prefix
    ET.SubElement(root, "Marker").text = ""
    ET.SubElement(root, "MaxKeys").text = str(max_keys)
    ET.SubElement(root, "IsTruncated").text = "false"

    _append_contents(root, result)

    return _to_xml(root)


def build_error_xml(code: str, message: str, resource: str = "", request_id: str = "") -> str:
    """Build S3 error XML response."""
    root = ET.Element("Error")
    ET.SubElement(root, "Code").text = code
    ET.SubElement(root, "Message").text = message
    ET.SubElement(root, "Resource").text = resource
    ET.SubElement(root, "RequestId").text = request_id
    return _to_xml(root)


def xml_response(content: str, status_code: int = 200) -> Response:
    return Response(content=content, status_code=status_code, media_type=XML_MEDIA_TYPE)


def error_response(code: str, message: str, resource: str = "", status_code: int = 500) -> Response:
    """S3-style XML error response carrying the current request ID."""
    return xml_response(
        build_error_xml(code, message, resource, _get_request_id()),
        status_code=status_code,
    )
