"""AWS Signature Version 4 for Secrets Manager requests.

Built from hashlib/hmac primitives. The signer is a pure function of its
inputs: the same credentials, request and timestamp give the same signature.
"""
import hashlib
import hmac
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Mapping, Optional, Tuple

ALGORITHM = "AWS4-HMAC-SHA256"
SERVICE = "secretsmanager"
TERMINATOR = "aws4_request"


@dataclass(frozen=True)
class AWSCredentials:
    """Static AWS credentials. Empty fields mean the ambient chain is used instead."""
    access_key: str = ""
    secret_key: str = ""
    session_token: str = ""

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "AWSCredentials":
        """Read the standard AWS_* credential variables."""
        env = os.environ if environ is None else environ
        return cls(
            access_key=env.get("AWS_ACCESS_KEY_ID", ""),
            secret_key=env.get("AWS_SECRET_ACCESS_KEY", ""),
            session_token=env.get("AWS_SESSION_TOKEN", ""),
        )

    @property
    def can_sign(self) -> bool:
        return bool(self.access_key and self.secret_key)

    def __repr__(self) -> str:
        return f"AWSCredentials(access_key={self.access_key!r}, secret_key='***')"


def sha256_hex(data: bytes) -> str:
    """Hex-encoded SHA-256 digest."""
    return hashlib.sha256(data).hexdigest()


def hmac_sha256(key: bytes, data: bytes) -> bytes:
    """Raw HMAC-SHA256 digest."""
    return hmac.new(key, data, hashlib.sha256).digest()


def timestamps(now: datetime) -> Tuple[str, str]:
    """Return (date_stamp, amz_date) for a moment, e.g. ('20240115', '20240115T103000Z')."""
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    now = now.astimezone(timezone.utc)
    return now.strftime("%Y%m%d"), now.strftime("%Y%m%dT%H%M%SZ")


def credential_scope(date_stamp: str, region: str, service: str = SERVICE) -> str:
    return f"{date_stamp}/{region}/{service}/{TERMINATOR}"


def derive_signing_key(secret_key: str, date_stamp: str, region: str, service: str = SERVICE) -> bytes:
    """kDate -> kRegion -> kService -> kSigning."""
    k_date = hmac_sha256(f"AWS4{secret_key}".encode("utf-8"), date_stamp.encode("utf-8"))
    k_region = hmac_sha256(k_date, region.encode("utf-8"))
    k_service = hmac_sha256(k_region, service.encode("utf-8"))
    return hmac_sha256(k_service, TERMINATOR.encode("utf-8"))


def canonical_headers(
    content_type: str,
    host: str,
    payload_hash: str,
    amz_date: str,
    target: str,
    session_token: str = "",
) -> Tuple[str, str]:
    """
    Build the canonical header block and the matching signed-header list.

    Header order is fixed (already sorted by lower-cased name); the security
    token header is only signed when a session token is present.
    """
    entries = [
        ("content-type", content_type),
        ("host", host),
        ("x-amz-content-sha256", payload_hash),
        ("x-amz-date", amz_date),
        ("x-amz-target", target),
    ]
    if session_token:
        entries.append(("x-amz-security-token", session_token))

    block = "".join(f"{name}:{value.strip()}\n" for name, value in entries)
    signed = ";".join(name for name, _ in entries)
    return block, signed


def canonical_request(method: str, headers_block: str, signed_headers: str, payload_hash: str) -> str:
    # Path is always "/" and the query string is always empty.
    return "\n".join([method.upper(), "/", "", headers_block, signed_headers, payload_hash])


def string_to_sign(amz_date: str, scope: str, canonical: str) -> str:
    return "\n".join([ALGORITHM, amz_date, scope, sha256_hex(canonical.encode("utf-8"))])


def sign_request(
    headers: Mapping[str, str],
    payload: bytes,
    *,
    credentials: AWSCredentials,
    region: str,
    host: str,
    method: str = "POST",
    now: Optional[datetime] = None,
    service: str = SERVICE,
) -> Dict[str, str]:
    """
    Sign a Secrets Manager request.

    Args:
        headers: Request headers; must carry Content-Type and X-Amz-Target
        payload: Exact body bytes that will be sent
        credentials: Access key, secret key and optional session token
        region: AWS region of the endpoint
        host: Host header value the request is sent with
        method: HTTP method
        now: Signing time (defaults to the current UTC time)
        service: Service name in the credential scope

    Returns:
        A new header dict. Without an access key and secret key it is an
        unmodified copy: the request goes out unsigned and relies on ambient
        credentials (e.g. an attached role), and no Authorization header is set.
    """
    signed = dict(headers)
    if not credentials.can_sign:
        return signed

    date_stamp, amz_date = timestamps(now or datetime.now(timezone.utc))
    payload_hash = sha256_hex(payload)

    lowered = {name.lower(): value for name, value in signed.items()}
    block, signed_headers = canonical_headers(
        content_type=lowered.get("content-type", ""),
        host=host,
        payload_hash=payload_hash,
        amz_date=amz_date,
        target=lowered.get("x-amz-target", ""),
        session_token=credentials.session_token,
    )
    canonical = canonical_request(method, block, signed_headers, payload_hash)
    scope = credential_scope(date_stamp, region, service)
    to_sign = string_to_sign(amz_date, scope, canonical)

    signing_key = derive_signing_key(credentials.secret_key, date_stamp, region, service)
    signature = hmac.new(signing_key, to_sign.encode("utf-8"), hashlib.sha256).hexdigest()

    signed["Host"] = host
    signed["X-Amz-Date"] = amz_date
    signed["X-Amz-Content-Sha256"] = payload_hash
    if credentials.session_token:
        signed["X-Amz-Security-Token"] = credentials.session_token
    signed["Authorization"] = (
        f"{ALGORITHM} Credential={credentials.access_key}/{scope}, "
        f"SignedHeaders={signed_headers}, Signature={signature}"
    )
    return signed
