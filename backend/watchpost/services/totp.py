"""
Time-Based One-Time Passwords
=============================

RFC 4226 (HOTP) and RFC 6238 (TOTP) with HMAC-SHA1, plus the
``otpauth://`` provisioning URI understood by authenticator apps.
"""

import base64
import hashlib
import hmac
import secrets
import struct
import time
from typing import Optional
from urllib.parse import quote, urlencode

DEFAULT_PERIOD = 30
DEFAULT_DIGITS = 6
SECRET_BYTES = 20


def generate_secret(num_bytes: int = SECRET_BYTES) -> str:
    """
    Generate a random Base32 secret.

    20 bytes (160 bits) encode to exactly 32 characters from ``[A-Z2-7]``.
    """
    return base64.b32encode(secrets.token_bytes(num_bytes)).decode("ascii").rstrip("=")


def _decode_secret(secret: str) -> bytes:
    normalised = secret.replace(" ", "").upper()
    padding = "=" * (-len(normalised) % 8)
    return base64.b32decode(normalised + padding, casefold=True)


def hotp(secret: str, counter: int, digits: int = DEFAULT_DIGITS) -> str:
    """Compute the HOTP value for a counter."""
    key = _decode_secret(secret)
    digest = hmac.new(key, struct.pack(">Q", counter), hashlib.sha1).digest()
    offset = digest[-1] & 0x0F
    code = struct.unpack(">I", digest[offset:offset + 4])[0] & 0x7FFFFFFF
    return str(code % (10 ** digits)).zfill(digits)


def totp_at(
    secret: str,
    for_time: float,
    period: int = DEFAULT_PERIOD,
    digits: int = DEFAULT_DIGITS,
) -> str:
    """Compute the TOTP value for a unix timestamp."""
    return hotp(secret, int(for_time // period), digits)


def verify_totp(
    secret: str,
    code: str,
    for_time: Optional[float] = None,
    period: int = DEFAULT_PERIOD,
    digits: int = DEFAULT_DIGITS,
    window: int = 1,
) -> bool:
    """
    Check a code against the current time step and ``window`` steps either side.

    Malformed codes, including non-ASCII digits, are rejected before any HMAC
    is computed. Comparison is constant time.
    """
    code = (code or "").strip().replace(" ", "")
    if len(code) != digits or not (code.isascii() and code.isdigit()):
        return False

    now = time.time() if for_time is None else for_time
    counter = int(now // period)
    for offset in range(-window, window + 1):
        if counter + offset < 0:
            continue
        if hmac.compare_digest(hotp(secret, counter + offset, digits), code):
            return True
    return False


def build_provisioning_uri(
    secret: str,
    account_name: str,
    issuer: str,
    period: int = DEFAULT_PERIOD,
    digits: int = DEFAULT_DIGITS,
) -> str:
    """Build the ``otpauth://totp/...`` URI encoded into the enrolment QR code."""
    label = quote(f"{issuer}:{account_name}", safe=":@")
    query = urlencode(
        {
            "secret": secret,
            "issuer": issuer,
            "algorithm": "SHA1",
            "digits": digits,
            "period": period,
        },
        quote_via=quote,
    )
    return f"otpauth://totp/{label}?{query}"
