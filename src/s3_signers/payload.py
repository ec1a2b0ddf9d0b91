# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0
import io
import re
import warnings
from collections.abc import Iterable
from enum import Enum, StrEnum
from hashlib import sha256
from typing import Any

from ._io import is_async_body
from .exceptions import S3SignersWarning, SigningValueError
from .interfaces.io import ByteStream, Seekable

EMPTY_SHA256_HASH = "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"
_HEX_SHA256 = re.compile(r"^[0-9a-f]{64}$")


class PayloadHash(StrEnum):
    """Fixed values of the ``x-amz-content-sha256`` header."""

    EMPTY_SHA256 = EMPTY_SHA256_HASH
    """SHA-256 of the empty string, for requests without a body."""

    UNSIGNED = "UNSIGNED-PAYLOAD"
    """The body is sent as-is and not covered by the signature."""

    STREAMING = "STREAMING-AWS4-HMAC-SHA256-PAYLOAD"
    """The body is sent as signed ``aws-chunked`` frames."""

    STREAMING_TRAILER = "STREAMING-AWS4-HMAC-SHA256-PAYLOAD-TRAILER"
    """Signed ``aws-chunked`` frames followed by signed trailing headers."""


class PayloadSigningMode(Enum):
    """How the request body will be transmitted and covered by the signature."""

    AUTO = "auto"
    SIGNED = "signed"
    UNSIGNED = "unsigned"
    STREAMING = "streaming"
    STREAMING_TRAILER = "streaming-trailer"


STREAMING_MODES = (PayloadSigningMode.STREAMING, PayloadSigningMode.STREAMING_TRAILER)


def select_payload_hash(
    body: Any,
    *,
    mode: PayloadSigningMode = PayloadSigningMode.AUTO,
    secure: bool = True,
) -> str:
    """Pick the ``x-amz-content-sha256`` token for a body.

    ``AUTO`` hashes bodies that are fully in memory and streams everything else.
    ``UNSIGNED`` only applies over TLS; plain HTTP requests always sign their
    payload, so it falls back to ``AUTO`` there.
    """
    match mode:
        case PayloadSigningMode.STREAMING:
            return PayloadHash.STREAMING
        case PayloadSigningMode.STREAMING_TRAILER:
            return PayloadHash.STREAMING_TRAILER
        case PayloadSigningMode.UNSIGNED if secure:
            return PayloadHash.UNSIGNED
        case PayloadSigningMode.SIGNED:
            return compute_payload_hash(body)
        case _:
            if body is None or isinstance(body, bytes | bytearray):
                return compute_payload_hash(body)
            return PayloadHash.STREAMING


def selected_mode(token: str) -> PayloadSigningMode:
    """Map a payload hash token back to the transmission mode it implies."""
    if token == PayloadHash.STREAMING:
        return PayloadSigningMode.STREAMING
    if token == PayloadHash.STREAMING_TRAILER:
        return PayloadSigningMode.STREAMING_TRAILER
    if token == PayloadHash.UNSIGNED:
        return PayloadSigningMode.UNSIGNED
    return PayloadSigningMode.SIGNED


def validate_payload_hash(token: str) -> str:
    """Accept a caller supplied ``x-amz-content-sha256`` value if it is well formed."""
    if token in PayloadHash.__members__.values() or _HEX_SHA256.match(token):
        return token
    raise SigningValueError(
        f"Invalid x-amz-content-sha256 value {token!r}. Expected a lowercase hex "
        "SHA-256 digest or one of: " + ", ".join(PayloadHash)
    )


def compute_payload_hash(body: Any) -> str:
    """Hex SHA-256 of a synchronous body.

    Seekable streams are rewound to their original position afterwards. Other
    iterables are consumed, so callers must use :func:`buffer_body` first when the
    body still has to be sent.
    """
    if body is None:
        return EMPTY_SHA256_HASH
    if isinstance(body, bytes | bytearray):
        return sha256(body).hexdigest() if body else EMPTY_SHA256_HASH
    if is_async_body(body):
        raise SigningValueError(
            "An async body cannot be hashed synchronously. Use a streaming payload "
            "signing mode or read the body into bytes first."
        )

    warnings.warn(
        "Payload signing is enabled. This may result in "
        "decreased performance for large request bodies.",
        S3SignersWarning,
    )
    checksum = sha256()
    if isinstance(body, ByteStream) and isinstance(body, Seekable):
        position = body.tell()
        while data := body.read(io.DEFAULT_BUFFER_SIZE):
            checksum.update(data)
        body.seek(position)
        return checksum.hexdigest()
    if not isinstance(body, Iterable):
        raise SigningValueError(f"Unsupported body type {type(body)}.")
    for chunk in body:
        checksum.update(chunk)
    return checksum.hexdigest()


def buffer_body(body: Any) -> Any:
    """Return a body that can be hashed and then still be sent.

    Bytes and seekable streams are returned unchanged, one-shot iterables are read
    into a :class:`io.BytesIO`.
    """
    if body is None or isinstance(body, bytes | bytearray):
        return body
    if isinstance(body, ByteStream) and isinstance(body, Seekable):
        return body
    if isinstance(body, Iterable):
        buffer = io.BytesIO()
        for chunk in body:
            buffer.write(chunk)
        buffer.seek(0)
        return buffer
    return body
