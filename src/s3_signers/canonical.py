# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0
"""Canonical request construction for AWS Signature Version 4.

The canonical request is the deterministic byte form of a request that is hashed
and signed. Every function here is pure: the same inputs always produce the same
output and nothing reads the clock or shared state.

The SigV4 specification defines the canonical request to be::

    <HTTPMethod>\\n
    <CanonicalURI>\\n
    <CanonicalQueryString>\\n
    <CanonicalHeaders>\\n
    <SignedHeaders>\\n
    <HashedPayload>
"""

from collections.abc import Iterable, Mapping
from typing import TypeAlias

from ._http import Fields
from .exceptions import SigningValueError
from .interfaces.http import FieldPosition
from .utils import decode_query, sha256_hex, uri_encode

HEADERS_EXCLUDED_FROM_SIGNING: tuple[str, ...] = ("authorization", "user-agent")

QueryInput: TypeAlias = str | Iterable[tuple[str, str]] | None
HeaderInput: TypeAlias = Fields | Mapping[str, str]


def canonical_uri(path: str | None) -> str:
    """Percent-encode a raw path, keeping ``/`` as the separator.

    S3 object keys are signed verbatim: dot segments and repeated slashes are
    significant and are not normalized.
    """
    if not path:
        return "/"
    if not path.startswith("/"):
        path = f"/{path}"
    return uri_encode(path, safe_slash=True)


def canonical_query(query: QueryInput) -> str:
    """Canonicalize a query string or a sequence of ``(key, value)`` pairs.

    A string is the percent-encoded wire form, so each component is decoded
    before it is encoded again. Pairs hold raw values. Keys and values are
    encoded independently, then pairs are sorted by encoded key.
    The sort is stable, so repeated keys keep their original relative order.
    """
    if query is None:
        return ""
    pairs = decode_query(query) if isinstance(query, str) else list(query)
    encoded = [(uri_encode(key), uri_encode(value)) for key, value in pairs]
    encoded.sort(key=lambda pair: pair[0])
    return "&".join(f"{key}={value}" for key, value in encoded)


def signable_headers(headers: HeaderInput) -> dict[str, str]:
    """Normalize headers for signing.

    Names are lower-cased, excluded headers are dropped, values are trimmed with
    inner whitespace runs collapsed, and the result is sorted by name.

    :raises SigningValueError: if a value contains characters that cannot be sent
        in an HTTP header.
    """
    normalized: dict[str, str] = {}
    for name, value in _header_items(headers):
        lowered = name.lower()
        if lowered in HEADERS_EXCLUDED_FROM_SIGNING:
            continue
        if lowered in normalized:
            raise SigningValueError(f"Header {name!r} is present more than once.")
        _validate_header(lowered, value)
        normalized[lowered] = " ".join(value.split())
    return dict(sorted(normalized.items()))


def canonical_headers(headers: HeaderInput) -> tuple[str, list[str]]:
    """Return the canonical header block and the sorted signed header names."""
    normalized = signable_headers(headers)
    block = "".join(f"{name}:{value}\n" for name, value in normalized.items())
    return block, list(normalized)


def canonical_request(
    *,
    method: str,
    path: str | None,
    query: QueryInput,
    headers: HeaderInput,
    payload_hash: str,
) -> tuple[str, str]:
    """Build the canonical request.

    :returns: The canonical request and the ``;``-joined signed header names.
    """
    header_block, signed = canonical_headers(headers)
    signed_headers = ";".join(signed)
    request = (
        f"{method.upper()}\n"
        f"{canonical_uri(path)}\n"
        f"{canonical_query(query)}\n"
        f"{header_block}\n"
        f"{signed_headers}\n"
        f"{payload_hash}"
    )
    return request, signed_headers


def canonical_request_hash(
    *,
    method: str,
    path: str | None,
    query: QueryInput,
    headers: HeaderInput,
    payload_hash: str,
) -> tuple[str, str]:
    """Hex SHA-256 of the canonical request, and the signed header names."""
    request, signed_headers = canonical_request(
        method=method,
        path=path,
        query=query,
        headers=headers,
        payload_hash=payload_hash,
    )
    return sha256_hex(request), signed_headers


def _header_items(headers: HeaderInput) -> Iterable[tuple[str, str]]:
    if isinstance(headers, Fields):
        for field in headers:
            if field.kind is FieldPosition.HEADER:
                yield field.name, field.as_string()
    else:
        yield from headers.items()


def _validate_header(name: str, value: str) -> None:
    if not name or not name.isascii() or any(c in name for c in " :\r\n\t"):
        raise SigningValueError(f"Invalid header name {name!r}.")
    if not isinstance(value, str):
        raise SigningValueError(
            f"Header {name!r} must have a string value, got {type(value)}."
        )
    for char in value:
        if char == "\t":
            continue
        if not char.isascii() or not char.isprintable():
            raise SigningValueError(
                f"Header {name!r} contains a character that cannot be signed: "
                f"{char!r}."
            )
