# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0
import hmac
import re
import threading
from collections import OrderedDict
from hashlib import sha256

from .exceptions import SigningValueError
from .utils import validate_timestamp

SIGV4_ALGORITHM: str = "AWS4-HMAC-SHA256"
_DATE8 = re.compile(r"^\d{8}$")


def hmac_sha256(key: bytes, value: str | bytes) -> bytes:
    if isinstance(value, str):
        value = value.encode("utf-8")
    return hmac.new(key=key, msg=value, digestmod=sha256).digest()


def sign(key: bytes, string_to_sign: str) -> str:
    """Hex encoded HMAC-SHA256 of ``string_to_sign``."""
    return hmac_sha256(key, string_to_sign).hex()


def date_stamp(timestamp: str) -> str:
    """The ``YYYYMMDD`` portion of a ``YYYYMMDDTHHMMSSZ`` timestamp."""
    return validate_timestamp(timestamp)[0:8]


def scope(date8: str, region: str, service: str = "s3") -> str:
    _validate_date8(date8)
    # Scope format: <YYYYMMDD>/<Region>/<Service>/aws4_request
    return f"{date8}/{region}/{service}/aws4_request"


def derive_signing_key(
    secret_key: str, date8: str, region: str, service: str = "s3"
) -> bytes:
    """Derive the 32 byte signing key for a credential scope.

    Components of Signing Key Calculation::

        DateKey              = HMAC-SHA256("AWS4"+"<SecretAccessKey>", "<YYYYMMDD>")
        DateRegionKey        = HMAC-SHA256(<DateKey>, "<region>")
        DateRegionServiceKey = HMAC-SHA256(<DateRegionKey>, "<service>")
        SigningKey           = HMAC-SHA256(<DateRegionServiceKey>, "aws4_request")

    :raises SigningValueError: if ``date8`` is not exactly ``YYYYMMDD``. Keys derived
        from a full timestamp are valid HMACs but wrong signatures, so they are
        rejected here instead of failing on the server.
    """
    _validate_date8(date8)
    k_date = hmac_sha256(f"AWS4{secret_key}".encode("utf-8"), date8)
    k_region = hmac_sha256(k_date, region)
    k_service = hmac_sha256(k_region, service)
    return hmac_sha256(k_service, "aws4_request")


def string_to_sign(timestamp: str, credential_scope: str, canonical_hash: str) -> str:
    """Concatenate the algorithm, request time, scope and canonical request hash.

    The SigV4 specification defines the string to sign as::

        Algorithm \\n
        RequestDateTime \\n
        CredentialScope  \\n
        HashedCanonicalRequest
    """
    return (
        f"{SIGV4_ALGORITHM}\n"
        f"{timestamp}\n"
        f"{credential_scope}\n"
        f"{canonical_hash}"
    )


class SigningKeyCache:
    """Bounded cache of derived signing keys.

    Keys are looked up by scope and a digest of the secret, so rotating the
    secret never returns a stale key. Entries are evicted least recently used
    first. The cache is safe to share between threads.
    """

    def __init__(self, max_size: int = 64) -> None:
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self._max_size = max_size
        self._entries: OrderedDict[tuple[str, str, str, str], bytes] = OrderedDict()
        self._lock = threading.Lock()

    def get_signing_key(
        self, secret_key: str, date8: str, region: str, service: str = "s3"
    ) -> bytes:
        cache_key = (date8, region, service, sha256(secret_key.encode()).hexdigest())
        with self._lock:
            cached = self._entries.get(cache_key)
            if cached is not None:
                self._entries.move_to_end(cache_key)
                return cached

        signing_key = derive_signing_key(secret_key, date8, region, service)
        with self._lock:
            self._entries[cache_key] = signing_key
            self._entries.move_to_end(cache_key)
            while len(self._entries) > self._max_size:
                self._entries.popitem(last=False)
        return signing_key

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


def _validate_date8(date8: str) -> None:
    if not isinstance(date8, str) or _DATE8.match(date8) is None:
        raise SigningValueError(
            f"Credential scope date must be YYYYMMDD, got {date8!r}. "
            "Pass the date portion of the signing timestamp, not the full timestamp."
        )
