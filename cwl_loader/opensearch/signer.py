# cwl_loader/opensearch/signer.py
"""
AWS Signature Version 4 for the OpenSearch bulk endpoint.

Everything here is a pure function of its arguments: the caller passes the
current time, so the same inputs always produce the same Authorization header.
Only requests without a query string are supported (POST /_bulk never has one).
"""
import hashlib
import hmac
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Mapping, Optional, Tuple, Union

ALGORITHM = "AWS4-HMAC-SHA256"
TERMINATOR = "aws4_request"
BULK_PATH = "/_bulk"

# <domain-id>.<region>.<service>.amazonaws.com
_ENDPOINT_PATTERN = re.compile(r"^([^.]+)\.?([^.]*)\.?([^.]*)\.amazonaws\.com$")

Body = Union[str, bytes]


class SigningError(ValueError):
    """Raised when a request cannot be signed (e.g. unrecognised endpoint)."""
    pass


@dataclass(frozen=True)
class Credentials:
    access_key_id: str
    secret_access_key: str
    session_token: Optional[str] = None


@dataclass(frozen=True)
class SignedRequest:
    """A fully signed request, ready to hand to the HTTP client."""
    host: str
    method: str
    path: str
    headers: Dict[str, str]
    body: bytes


def _to_bytes(value: Body) -> bytes:
    return value.encode("utf-8") if isinstance(value, str) else value


def _hmac(key: bytes, msg: str) -> bytes:
    return hmac.new(key, msg.encode("utf-8"), hashlib.sha256).digest()


def _sha256_hex(data: Body) -> str:
    return hashlib.sha256(_to_bytes(data)).hexdigest()


def parse_endpoint(host: str) -> Tuple[str, str]:
    """
    Extracts the region and service from an AWS endpoint hostname.

    Args:
        host: e.g. "search-logs-abc123.us-east-1.es.amazonaws.com".

    Returns:
        A (region, service) tuple, e.g. ("us-east-1", "es").

    Raises:
        SigningError: If the host is not an amazonaws.com endpoint.
    """
    match = _ENDPOINT_PATTERN.match(host or "")
    if not match:
        raise SigningError(f"Cannot derive region/service from endpoint '{host}'")
    return match.group(2), match.group(3)


def amz_timestamp(now: datetime) -> Tuple[str, str]:
    """Returns the (YYYYMMDDTHHMMSSZ, YYYYMMDD) pair for the given instant in UTC."""
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    amz_date = now.astimezone(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
    return amz_date, amz_date[:8]


def derive_signing_key(secret_access_key: str, date_stamp: str, region: str, service: str) -> bytes:
    """Runs the four-step HMAC chain that scopes the secret to one day/region/service."""
    k_date = _hmac(("AWS4" + secret_access_key).encode("utf-8"), date_stamp)
    k_region = _hmac(k_date, region)
    k_service = _hmac(k_region, service)
    return _hmac(k_service, TERMINATOR)


def credential_scope(date_stamp: str, region: str, service: str) -> str:
    return "/".join([date_stamp, region, service, TERMINATOR])


def signed_header_names(headers: Mapping[str, object]) -> str:
    return ";".join(sorted(name.lower() for name in headers))


def canonical_request(method: str, path: str, headers: Mapping[str, object], body: Body) -> str:
    """
    Builds the canonical request string.

    Header values are used as-is (one value per header, no folding or trimming),
    and the query string line is always empty.
    """
    canonical_headers = "\n".join(
        f"{name.lower()}:{headers[name]}"
        for name in sorted(headers, key=lambda n: n.lower())
    )
    return "\n".join([
        method,
        path,
        "",
        canonical_headers,
        "",
        signed_header_names(headers),
        _sha256_hex(body),
    ])


def string_to_sign(amz_date: str, scope: str, canonical: str) -> str:
    return "\n".join([ALGORITHM, amz_date, scope, _sha256_hex(canonical)])


def sign(
    credentials: Credentials,
    method: str,
    path: str,
    headers: Mapping[str, object],
    body: Body,
    now: datetime,
    region: str,
    service: str,
) -> Dict[str, str]:
    """
    Signs a request and returns a new header mapping that includes Authorization.

    The headers passed in are exactly the headers that get signed; they must
    already contain the X-Amz-Date value matching `now`. The input mapping is
    never modified.
    """
    amz_date, date_stamp = amz_timestamp(now)
    scope = credential_scope(date_stamp, region, service)

    canonical = canonical_request(method, path, headers, body)
    to_sign = string_to_sign(amz_date, scope, canonical)
    signing_key = derive_signing_key(credentials.secret_access_key, date_stamp, region, service)
    signature = hmac.new(signing_key, to_sign.encode("utf-8"), hashlib.sha256).hexdigest()

    signed = {name: str(value) for name, value in headers.items()}
    signed["Authorization"] = ", ".join([
        f"{ALGORITHM} Credential={credentials.access_key_id}/{scope}",
        f"SignedHeaders={signed_header_names(headers)}",
        f"Signature={signature}",
    ])
    return signed


def build_signed_request(
    credentials: Credentials,
    host: str,
    body: Body,
    now: datetime,
    default_region: str = "",
) -> SignedRequest:
    """
    Builds a signed POST /_bulk request for the given OpenSearch host.

    Args:
        credentials: Static AWS credentials (the session token is optional).
        host: The OpenSearch domain endpoint, without scheme.
        body: The bulk request body.
        now: The signing instant.
        default_region: Used when the hostname carries no region part.

    Returns:
        The SignedRequest with Content-Type, Host, Content-Length,
        X-Amz-Date, X-Amz-Security-Token (when present) and Authorization.
    """
    region, service = parse_endpoint(host)
    region = region or default_region
    if not region or not service:
        raise SigningError(f"Endpoint '{host}' does not name both a region and a service")

    payload = _to_bytes(body)
    amz_date, _ = amz_timestamp(now)
    headers = {
        "Content-Type": "application/json",
        "Host": host,
        "Content-Length": str(len(payload)),
        "X-Amz-Date": amz_date,
    }
    if credentials.session_token:
        headers["X-Amz-Security-Token"] = credentials.session_token

    signed_headers = sign(credentials, "POST", BULK_PATH, headers, payload, now, region, service)
    return SignedRequest(host=host, method="POST", path=BULK_PATH, headers=signed_headers, body=payload)
