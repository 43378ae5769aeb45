"""AWS Signature Version 4 verification for the S3-compatible API.

Only header-based authentication is supported:

    Authorization: AWS4-HMAC-SHA256
        Credential={access_key}/{date}/{region}/{service}/aws4_request,
        SignedHeaders={header_list},
        Signature={signature}

The signature is recomputed with the stored secret and compared in constant
time. The payload is not hashed by the gateway: the value of the
``x-amz-content-sha256`` header is used as sent (or the empty-payload hash
when the header is absent).
"""

import hashlib
import hmac
import re
import urllib.parse
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Mapping

import structlog

from ftp_s3_gateway.credentials import CredentialStore
from ftp_s3_gateway.errors import (
    InvalidAuthHeader,
    MissingAuthHeader,
    SignatureInvalid,
    UnknownAccessKey,
)
from ftp_s3_gateway.models import Credential

logger = structlog.get_logger()

ALGORITHM = "AWS4-HMAC-SHA256"
SERVICE = "s3"
TERMINATOR = "aws4_request"

# SHA-256 of the empty string
EMPTY_PAYLOAD_HASH = "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"

AMZ_DATE_FORMAT = "%Y%m%dT%H%M%SZ"

_SIGNATURE_PATTERN = re.compile(r"[0-9a-fA-F]+")


@dataclass(frozen=True)
class SigV4Components:
    """Parsed AWS Signature V4 Authorization header."""

    access_key: str
    date: str
    region: str
    service: str
    signed_headers: list[str]
    signature: str


def parse_authorization_header(auth_header: str | None) -> SigV4Components:
    """Parse an AWS4-HMAC-SHA256 Authorization header.

    Raises:
        MissingAuthHeader: If the header is absent or empty
        InvalidAuthHeader: If the scheme token or field layout is wrong
    """
    if not auth_header:
        raise MissingAuthHeader("Authorization header required")

    parts = auth_header.strip().split(" ", 1)
    if len(parts) != 2 or parts[0] != ALGORITHM:
        raise InvalidAuthHeader("Invalid Authorization header format")

    fields: dict[str, str] = {}
    for item in parts[1].split(","):
        item = item.strip()
        if "=" in item:
            name, value = item.split("=", 1)
            fields[name.strip()] = value.strip()

    cred_parts = fields.get("Credential", "").split("/")
    if len(cred_parts) != 5 or cred_parts[4] != TERMINATOR or not cred_parts[0]:
        raise InvalidAuthHeader("Invalid credential format")

    signed_headers = [h.strip().lower() for h in fields.get("SignedHeaders", "").split(";") if h.strip()]
    if not signed_headers:
        raise InvalidAuthHeader("Missing SignedHeaders")

    signature = fields.get("Signature", "")
    if not _SIGNATURE_PATTERN.fullmatch(signature):
        raise InvalidAuthHeader("Missing or malformed Signature")

    return SigV4Components(
        access_key=cred_parts[0],
        date=cred_parts[1],  # YYYYMMDD format
        region=cred_parts[2],
        service=cred_parts[3],
        signed_headers=signed_headers,
        signature=signature.lower(),
    )


def derive_signing_key(secret_key: str, date: str, region: str, service: str) -> bytes:
    """Derive the SigV4 signing key.

    The signing key is derived as:
        kDate = HMAC("AWS4" + secret_key, date)
        kRegion = HMAC(kDate, region)
        kService = HMAC(kRegion, service)
        kSigning = HMAC(kService, "aws4_request")
    """
    k_date = hmac.new(f"AWS4{secret_key}".encode(), date.encode(), hashlib.sha256).digest()
    k_region = hmac.new(k_date, region.encode(), hashlib.sha256).digest()
    k_service = hmac.new(k_region, service.encode(), hashlib.sha256).digest()
    return hmac.new(k_service, TERMINATOR.encode(), hashlib.sha256).digest()


def canonical_query_string(query_string: str) -> str:
    """Sort parameters and re-encode them with the RFC 3986 unreserved set."""
    if not query_string:
        return ""
    params = urllib.parse.parse_qsl(query_string, keep_blank_values=True)
    encoded = [
        (urllib.parse.quote(name, safe="-_.~"), urllib.parse.quote(value, safe="-_.~"))
        for name, value in params
    ]
    return "&".join(f"{name}={value}" for name, value in sorted(encoded))


def build_canonical_request(
    method: str,
    uri: str,
    query_string: str,
    headers: Mapping[str, str],
    signed_headers: list[str],
    payload_hash: str,
) -> str:
    """Build the SigV4 canonical request.

    Format:
        {HTTP_METHOD}\\n
        {URI}\\n
        {QUERY_STRING}\\n
        {CANONICAL_HEADERS}\\n
        {SIGNED_HEADERS}\\n
        {HASHED_PAYLOAD}
    """
    sorted_headers = sorted(signed_headers)

    # Lowercase name, trimmed value with inner whitespace collapsed
    canonical_headers = "".join(
        f"{name}:{' '.join(headers.get(name, '').split())}\n" for name in sorted_headers
    )

    canonical_uri = uri if uri.startswith("/") else "/" + uri

    return "\n".join([
        method.upper(),
        canonical_uri,
        canonical_query_string(query_string),
        canonical_headers,
        ";".join(sorted_headers),
        payload_hash,
    ])


def build_string_to_sign(amz_date: str, scope: str, canonical_request: str) -> str:
    canonical_request_hash = hashlib.sha256(canonical_request.encode()).hexdigest()
    return f"{ALGORITHM}\n{amz_date}\n{scope}\n{canonical_request_hash}"


def compute_signature(
    secret_key: str, date: str, region: str, service: str, string_to_sign: str
) -> str:
    signing_key = derive_signing_key(secret_key, date, region, service)
    return hmac.new(signing_key, string_to_sign.encode(), hashlib.sha256).hexdigest()


def verify_request(
    *,
    method: str,
    path: str,
    query_string: str,
    headers: Mapping[str, str],
    store: CredentialStore,
    region: str,
    max_age_seconds: int,
    now: datetime | None = None,
) -> Credential:
    """Verify the SigV4 signature of a request.

    Args:
        method: HTTP method
        path: Raw (still percent-encoded) request path
        query_string: Raw query string
        headers: Request headers keyed by lowercase name
        store: Credentials to check the access key against
        region: Region the signature must be computed for
        max_age_seconds: Allowed distance between x-amz-date and now
        now: Current time (defaults to the wall clock)

    Returns:
        The matching credential

    Raises:
        InvalidAuthHeader: Malformed or missing Authorization/x-amz-date
        UnknownAccessKey: Access key id not in the store
        SignatureInvalid: Signature mismatch or request outside the time window
    """
    parsed = parse_authorization_header(headers.get("authorization"))

    credential = store.get(parsed.access_key)
    if credential is None:
        logger.debug("sigv4_unknown_access_key", access_key=parsed.access_key)
        raise UnknownAccessKey("Invalid access key ID")

    amz_date = headers.get("x-amz-date", "")
    try:
        request_time = datetime.strptime(amz_date, AMZ_DATE_FORMAT).replace(tzinfo=timezone.utc)
    except ValueError:
        logger.debug("sigv4_invalid_date", x_amz_date=amz_date)
        raise InvalidAuthHeader("Missing or malformed x-amz-date header") from None

    now = now or datetime.now(timezone.utc)
    age_seconds = abs((now - request_time).total_seconds())
    if age_seconds > max_age_seconds:
        logger.debug("sigv4_request_too_old", age_seconds=age_seconds)
        raise SignatureInvalid("Request time is outside the allowed window")

    if parsed.date != amz_date[:8]:
        raise SignatureInvalid("Credential date does not match x-amz-date")

    canonical_request = build_canonical_request(
        method=method,
        uri=path,
        query_string=query_string,
        headers=headers,
        signed_headers=parsed.signed_headers,
        payload_hash=headers.get("x-amz-content-sha256", EMPTY_PAYLOAD_HASH),
    )
    scope = f"{parsed.date}/{region}/{SERVICE}/{TERMINATOR}"
    string_to_sign = build_string_to_sign(amz_date, scope, canonical_request)
    expected = compute_signature(credential.secret_key, parsed.date, region, SERVICE, string_to_sign)

    if not hmac.compare_digest(expected, parsed.signature):
        logger.debug(
            "sigv4_signature_mismatch",
            access_key=parsed.access_key,
            expected=expected[:16] + "...",
            provided=parsed.signature[:16] + "...",
        )
        raise SignatureInvalid("Signature verification failed")

    return credential
