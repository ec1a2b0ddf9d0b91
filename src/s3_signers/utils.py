# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0
import datetime
import re
from collections.abc import Iterable
from hashlib import sha256
from urllib.parse import quote, unquote

from .exceptions import SigningValueError

SIGV4_TIMESTAMP_FORMAT: str = "%Y%m%dT%H%M%SZ"
SIGV4_DATE_FORMAT: str = "%Y%m%d"

_VALID_IP_ADDRESS = re.compile(r"^(\d+\.){3}\d+$")
_VALID_BUCKET_NAME = re.compile(r"^[a-z0-9][a-z0-9.-]{1,61}[a-z0-9]$")
_TIMESTAMP = re.compile(r"^\d{8}T\d{6}Z$")


def uri_encode(value: str | bytes, *, safe_slash: bool = False) -> str:
    """Percent-encode every byte except the unreserved characters.

    Unreserved characters are ``A-Z``, ``a-z``, ``0-9``, ``-``, ``.``, ``_`` and
    ``~``. Hex digits are uppercase. When ``safe_slash`` is set, ``/`` is kept as a
    path separator.
    """
    return quote(value, safe="/" if safe_slash else "")


def parse_query(query: str | None) -> list[tuple[str, str]]:
    """Split a raw query string into ordered ``(key, value)`` pairs.

    Pairs are split on the first ``=``. Keys without a value get ``""``. Empty
    segments are dropped. No decoding is performed.
    """
    if not query:
        return []
    pairs: list[tuple[str, str]] = []
    for part in query.split("&"):
        if not part:
            continue
        key, _, value = part.partition("=")
        pairs.append((key, value))
    return pairs


def decode_query(query: str | None) -> list[tuple[str, str]]:
    """Split a percent-encoded query string into decoded ``(key, value)`` pairs.

    ``+`` is kept as a literal plus sign.
    """
    return [(unquote(key), unquote(value)) for key, value in parse_query(query)]


def build_query(pairs: Iterable[tuple[str, str]]) -> str:
    """Join raw pairs into a query string, percent-encoding every component.

    Empty keys are skipped and keys with an empty value are emitted bare, which
    is how S3 subresources such as ``uploads`` or ``tagging`` are written.
    """
    parts: list[str] = []
    for key, value in pairs:
        if not key:
            continue
        key = uri_encode(key)
        if value:
            parts.append(f"{key}={uri_encode(value)}")
        else:
            parts.append(key)
    return "&".join(parts)


def sha256_hex(data: bytes | str) -> str:
    """Hex encoded SHA-256 of ``data``. Strings are hashed as UTF-8."""
    if isinstance(data, str):
        data = data.encode("utf-8")
    return sha256(data).hexdigest()


def format_timestamp(value: datetime.datetime) -> str:
    """Format an aware or naive-UTC datetime as ``YYYYMMDDTHHMMSSZ``."""
    if value.tzinfo is not None:
        value = value.astimezone(datetime.UTC)
    return value.strftime(SIGV4_TIMESTAMP_FORMAT)


def validate_timestamp(timestamp: str) -> str:
    if not isinstance(timestamp, str) or _TIMESTAMP.match(timestamp) is None:
        raise SigningValueError(
            f"Signing timestamp must use the format YYYYMMDDTHHMMSSZ, got {timestamp!r}"
        )
    try:
        datetime.datetime.strptime(timestamp, SIGV4_TIMESTAMP_FORMAT)
    except ValueError as e:
        raise SigningValueError(f"Invalid signing timestamp {timestamp!r}") from e
    return timestamp


def check_bucket_name(name: str) -> None:
    """Validate an S3 bucket name.

    :raises SigningValueError: if the name would not be accepted by S3.
    """
    if len(name) < 3 or len(name) > 63:
        raise SigningValueError(
            "Bucket name must be between 3 (min) and 63 (max) characters long."
        )
    if _VALID_BUCKET_NAME.match(name) is None:
        raise SigningValueError(
            "Bucket name can consist only of lowercase letters, numbers, dots (.), "
            "and hyphens (-), and must begin and end with a letter or number."
        )
    if ".." in name or ".-" in name or "-." in name:
        raise SigningValueError(
            "Bucket name cannot contain two adjacent periods, or a period adjacent "
            "to a hyphen."
        )
    if name.startswith("xn--"):
        raise SigningValueError("Bucket name cannot start with the prefix xn--.")
    if name.endswith("-s3alias"):
        raise SigningValueError("Bucket name cannot end with the suffix -s3alias.")
    if _VALID_IP_ADDRESS.match(name) is not None:
        raise SigningValueError("Bucket name cannot be an ip address.")


def check_object_name(name: str) -> None:
    if not name:
        raise SigningValueError("Object name cannot be empty.")
