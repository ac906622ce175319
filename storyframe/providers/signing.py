"""
Request signing for the Volcengine visual API (HMAC-SHA256, SigV4 style).

The video submission call and the later status poll are independent
invocations of sign_request(); both must produce the same timestamp format,
and the X-Date header must carry exactly the timestamp that was signed.
"""
import hashlib
import hmac
from datetime import datetime, timezone
from typing import Dict, Optional, Union

ALGORITHM = "HMAC-SHA256"
SIGNED_HEADERS = "host;x-date"
DEFAULT_REGION = "cn-north-1"
DEFAULT_SERVICE = "cv"

Body = Union[bytes, str, None]


def format_timestamp(moment: Optional[datetime] = None) -> str:
    """Compact ISO-8601 UTC timestamp, to the second: 20240131T080910Z."""
    moment = moment or datetime.now(timezone.utc)
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc)
    return moment.strftime("%Y%m%dT%H%M%SZ")


def _to_bytes(body: Body) -> bytes:
    if body is None:
        return b""
    if isinstance(body, str):
        return body.encode("utf-8")
    return body


def _sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def _hmac(key: bytes, msg: str) -> bytes:
    return hmac.new(key, msg.encode("utf-8"), hashlib.sha256).digest()


def build_canonical_request(
    method: str,
    host: str,
    path: str,
    action: str,
    api_version: str,
    timestamp: str,
    body: Body = b"",
) -> str:
    canonical_headers = f"host:{host}\nx-date:{timestamp}\n"
    return "\n".join([
        method.upper(),
        path,
        f"Action={action}&Version={api_version}",
        canonical_headers,
        SIGNED_HEADERS,
        _sha256_hex(_to_bytes(body)),
    ])


def credential_scope(timestamp: str, region: str, service: str) -> str:
    return f"{timestamp[:8]}/{region}/{service}/request"


def build_string_to_sign(timestamp: str, scope: str, canonical_request: str) -> str:
    return "\n".join([
        ALGORITHM,
        timestamp,
        scope,
        _sha256_hex(canonical_request.encode("utf-8")),
    ])


def derive_signing_key(secret_key: str, date: str, region: str, service: str) -> bytes:
    """secret -> date -> region -> service -> "request"."""
    k_date = _hmac(secret_key.encode("utf-8"), date)
    k_region = _hmac(k_date, region)
    k_service = _hmac(k_region, service)
    return _hmac(k_service, "request")


def sign_request(
    method: str,
    host: str,
    path: str,
    action: str,
    api_version: str,
    access_key: str,
    secret_key: str,
    body: Body = b"",
    *,
    region: str = DEFAULT_REGION,
    service: str = DEFAULT_SERVICE,
    timestamp: Optional[Union[str, datetime]] = None,
) -> Dict[str, str]:
    """
    Produce authenticated headers for one request.

    Given identical inputs and timestamp the output is byte-identical.

    Args:
        method: HTTP method
        host: Target host, also signed as the `host` header
        path: Request path (usually "/")
        action: API action, part of the canonical query string
        api_version: API version, part of the canonical query string
        access_key: Access key id placed in the Credential field
        secret_key: Secret used to derive the signing key
        body: Exact request body bytes (str is UTF-8 encoded); empty hashes b""
        region: Signing region
        service: Signing service name
        timestamp: Fixed timestamp (datetime or preformatted string); defaults to now

    Returns:
        Header map with Authorization, Content-Type, Host and X-Date
    """
    if isinstance(timestamp, str):
        x_date = timestamp
    else:
        x_date = format_timestamp(timestamp)

    canonical_request = build_canonical_request(method, host, path, action, api_version, x_date, body)
    scope = credential_scope(x_date, region, service)
    string_to_sign = build_string_to_sign(x_date, scope, canonical_request)
    signing_key = derive_signing_key(secret_key, x_date[:8], region, service)
    signature = hmac.new(signing_key, string_to_sign.encode("utf-8"), hashlib.sha256).hexdigest()

    authorization = (
        f"{ALGORITHM} Credential={access_key}/{scope}, "
        f"SignedHeaders={SIGNED_HEADERS}, Signature={signature}"
    )

    return {
        "Authorization": authorization,
        "Content-Type": "application/json",
        "Host": host,
        "X-Date": x_date,
    }
