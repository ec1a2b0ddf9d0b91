# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0
"""Signing of ``aws-chunked`` request bodies.

A streamed body is sent as a sequence of frames, each carrying the signature of
its chunk. Every chunk signature covers the previous one, so the chain is seeded
by the signature of the request headers and any change to an earlier chunk
changes every later signature::

    <hex(len(chunk))>;chunk-signature=<signature>\\r\\n<chunk>\\r\\n

The chain is modelled as immutable states and a pure transition function,
:func:`advance`. :class:`ChunkSigner` wraps that function for sequential use by a
single upload; it has no internal locking and must not be shared.
"""

import base64
import logging
import zlib
from collections.abc import AsyncIterator, Iterator, Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from hashlib import sha256
from typing import Any, Final, TypeAlias

from ._io import aiter_slices, iter_slices
from .exceptions import ChunkSignerStateError, SigningValueError
from .keys import sign
from .payload import EMPTY_SHA256_HASH
from .utils import sha256_hex

logger: Final = logging.getLogger(__name__)

CHUNK_ALGORITHM: str = "AWS4-HMAC-SHA256-PAYLOAD"
TRAILER_ALGORITHM: str = "AWS4-HMAC-SHA256-TRAILER"
DEFAULT_CHUNK_SIZE: int = 64 * 1024
MIN_CHUNK_SIZE: int = 8 * 1024

_SIGNATURE_LENGTH = 64
_CHUNK_SIGNATURE_PREFIX = ";chunk-signature="
_TRAILER_SIGNATURE_PREFIX = "x-amz-trailer-signature:"
_CRLF = "\r\n"


class ChecksumAlgorithm(StrEnum):
    """Checksums that can be sent as a signed trailer."""

    CRC32 = "CRC32"
    SHA256 = "SHA256"

    @property
    def header_name(self) -> str:
        return f"x-amz-checksum-{self.value.lower()}"

    @property
    def encoded_length(self) -> int:
        digest_size = 4 if self is ChecksumAlgorithm.CRC32 else 32
        return 4 * ((digest_size + 2) // 3)


@dataclass(frozen=True)
class ChunkSigningContext:
    """Key material and scope shared by every chunk of one request."""

    signing_key: bytes = field(repr=False)
    scope: str
    timestamp: str


@dataclass(frozen=True)
class Idle:
    """No seed signature is known yet."""


@dataclass(frozen=True)
class Streaming:
    previous_signature: str
    chunks_signed: int = 0


@dataclass(frozen=True)
class AwaitingTrailer:
    """The terminal chunk was sent; only the signed trailer may follow."""

    previous_signature: str


@dataclass(frozen=True)
class Closed:
    final_signature: str


@dataclass(frozen=True)
class Aborted:
    """The stream failed part way. The chain cannot be resumed."""

    reason: str


ChunkSignerState: TypeAlias = Idle | Streaming | AwaitingTrailer | Closed | Aborted


def seed(state: ChunkSignerState, seed_signature: str) -> Streaming:
    """Start a chain from the signature of the request headers."""
    if not isinstance(state, Idle):
        raise ChunkSignerStateError(
            f"A chunk signer can only be seeded once, current state is {state!r}."
        )
    _validate_signature(seed_signature)
    return Streaming(previous_signature=seed_signature)


def chunk_string_to_sign(
    context: ChunkSigningContext, previous_signature: str, chunk: bytes
) -> str:
    return (
        f"{CHUNK_ALGORITHM}\n"
        f"{context.timestamp}\n"
        f"{context.scope}\n"
        f"{previous_signature}\n"
        f"{EMPTY_SHA256_HASH}\n"
        f"{sha256(chunk).hexdigest()}"
    )


def chunk_signature(
    context: ChunkSigningContext, previous_signature: str, chunk: bytes
) -> str:
    return sign(
        context.signing_key, chunk_string_to_sign(context, previous_signature, chunk)
    )


def advance(
    context: ChunkSigningContext,
    state: ChunkSignerState,
    chunk: bytes,
    *,
    trailer: bool = False,
) -> tuple[bytes, ChunkSignerState]:
    """Sign one chunk and return its wire frame with the next state.

    An empty ``chunk`` is the terminal chunk. It closes the chain, or moves it to
    :class:`AwaitingTrailer` when ``trailer`` is set, in which case the frame
    leaves out the final CRLF because the trailing headers follow it.

    :raises ChunkSignerStateError: unless ``state`` is :class:`Streaming`.
    """
    if not isinstance(state, Streaming):
        raise ChunkSignerStateError(
            f"Cannot sign a chunk in state {state!r}. Chunks can only be signed "
            "after the seed signature and before the terminal chunk."
        )
    signature = chunk_signature(context, state.previous_signature, chunk)
    header = f"{len(chunk):x}{_CHUNK_SIGNATURE_PREFIX}{signature}{_CRLF}".encode()

    if chunk:
        frame = header + chunk + _CRLF.encode()
        return frame, Streaming(signature, state.chunks_signed + 1)
    if trailer:
        return header, AwaitingTrailer(previous_signature=signature)
    return header + _CRLF.encode(), Closed(final_signature=signature)


def canonical_trailer(trailer_fields: Mapping[str, str]) -> str:
    return "".join(
        f"{name.lower()}:{value.strip()}\n" for name, value in trailer_fields.items()
    )


def trailer_string_to_sign(
    context: ChunkSigningContext,
    previous_signature: str,
    trailer_fields: Mapping[str, str],
) -> str:
    return (
        f"{TRAILER_ALGORITHM}\n"
        f"{context.timestamp}\n"
        f"{context.scope}\n"
        f"{previous_signature}\n"
        f"{sha256_hex(canonical_trailer(trailer_fields))}"
    )


def sign_trailer(
    context: ChunkSigningContext,
    state: ChunkSignerState,
    trailer_fields: Mapping[str, str],
) -> tuple[bytes, Closed]:
    """Sign the trailing headers that follow the terminal chunk."""
    if not isinstance(state, AwaitingTrailer):
        raise ChunkSignerStateError(
            f"Cannot sign trailing headers in state {state!r}. The terminal chunk "
            "must be signed with trailer=True first."
        )
    if not trailer_fields:
        raise SigningValueError("At least one trailing header is required.")
    signature = sign(
        context.signing_key,
        trailer_string_to_sign(context, state.previous_signature, trailer_fields),
    )
    lines = "".join(
        f"{name.lower()}:{value.strip()}{_CRLF}"
        for name, value in trailer_fields.items()
    )
    frame = f"{lines}{_TRAILER_SIGNATURE_PREFIX}{signature}{_CRLF}{_CRLF}".encode()
    return frame, Closed(final_signature=signature)


class ChunkSigner:
    """Sequential signer for the chunks of one streamed request body.

    The signer moves through ``Idle -> Streaming -> ... -> Closed``. Once closed
    or aborted it rejects further use, so a failed upload has to start again from
    a new header signature.
    """

    def __init__(
        self, context: ChunkSigningContext, *, seed_signature: str | None = None
    ) -> None:
        self._context = context
        self._state: ChunkSignerState = Idle()
        if seed_signature is not None:
            self.seed(seed_signature)

    @property
    def context(self) -> ChunkSigningContext:
        return self._context

    @property
    def state(self) -> ChunkSignerState:
        return self._state

    @property
    def closed(self) -> bool:
        return isinstance(self._state, Closed | Aborted)

    def seed(self, seed_signature: str) -> None:
        self._state = seed(self._state, seed_signature)

    def sign_chunk(self, chunk: bytes) -> bytes:
        """Sign a chunk and return its frame. An empty chunk ends the stream."""
        frame, self._state = advance(self._context, self._state, chunk)
        return frame

    def finish(self, trailer_fields: Mapping[str, str] | None = None) -> bytes:
        """Sign the terminal chunk, followed by the trailing headers if given."""
        if trailer_fields is None:
            return self.sign_chunk(b"")
        if not trailer_fields:
            raise SigningValueError("At least one trailing header is required.")
        frame, state = advance(self._context, self._state, b"", trailer=True)
        trailer, self._state = sign_trailer(self._context, state, trailer_fields)
        return frame + trailer

    def abort(self, reason: str) -> None:
        """Invalidate the chain after a failure mid-stream."""
        if not isinstance(self._state, Closed):
            self._state = Aborted(reason=reason)


class _Checksum:
    def __init__(self, algorithm: ChecksumAlgorithm) -> None:
        self.algorithm = algorithm
        self._crc = 0
        self._sha = sha256()

    def update(self, data: bytes) -> None:
        if self.algorithm is ChecksumAlgorithm.CRC32:
            self._crc = zlib.crc32(data, self._crc)
        else:
            self._sha.update(data)

    def trailer_fields(self) -> dict[str, str]:
        if self.algorithm is ChecksumAlgorithm.CRC32:
            digest = self._crc.to_bytes(4, "big")
        else:
            digest = self._sha.digest()
        return {self.algorithm.header_name: base64.b64encode(digest).decode("ascii")}


class _ChunkedBodyBase:
    def __init__(
        self,
        body: Any,
        signer: ChunkSigner,
        *,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        checksum_algorithm: ChecksumAlgorithm | None = None,
    ) -> None:
        validate_chunk_size(chunk_size)
        if not isinstance(signer.state, Streaming) or signer.state.chunks_signed:
            raise ChunkSignerStateError(
                "A chunked body needs a freshly seeded chunk signer, current state "
                f"is {signer.state!r}."
            )
        self._body = body
        self._signer = signer
        self._chunk_size = chunk_size
        self._checksum = (
            _Checksum(checksum_algorithm) if checksum_algorithm is not None else None
        )
        self._consumed = False

    @property
    def signer(self) -> ChunkSigner:
        return self._signer

    def _start(self) -> None:
        if self._consumed:
            raise ChunkSignerStateError(
                "An aws-chunked body can only be sent once. Sign the request again "
                "to retry the upload."
            )
        self._consumed = True

    def _frame(self, piece: bytes) -> bytes:
        if self._checksum is not None:
            self._checksum.update(piece)
        return self._signer.sign_chunk(piece)

    def _terminal_frame(self) -> bytes:
        trailer = self._checksum.trailer_fields() if self._checksum else None
        state = self._signer.state
        chunks = state.chunks_signed if isinstance(state, Streaming) else 0
        frame = self._signer.finish(trailer)
        logger.debug("Finished aws-chunked body after %s data chunk(s).", chunks)
        return frame

    def _stop(self, error: BaseException | None) -> None:
        if not self._signer.closed:
            reason = (
                f"body stream failed: {error!r}"
                if error is not None
                else "body iteration stopped before the terminal chunk"
            )
            self._signer.abort(reason)


class AWSChunkedBody(_ChunkedBodyBase):
    """Synchronous iterable of signed ``aws-chunked`` frames for a body."""

    def __iter__(self) -> Iterator[bytes]:
        self._start()
        error: BaseException | None = None
        try:
            for piece in iter_slices(self._body, self._chunk_size):
                yield self._frame(piece)
            yield self._terminal_frame()
        except Exception as e:
            error = e
            raise
        finally:
            self._stop(error)


class AsyncAWSChunkedBody(_ChunkedBodyBase):
    """Async iterable of signed ``aws-chunked`` frames for a body."""

    def __aiter__(self) -> AsyncIterator[bytes]:
        return self._frames()

    async def _frames(self) -> AsyncIterator[bytes]:
        self._start()
        error: BaseException | None = None
        try:
            async for piece in aiter_slices(self._body, self._chunk_size):
                yield self._frame(piece)
            yield self._terminal_frame()
        except Exception as e:
            error = e
            raise
        finally:
            self._stop(error)


def validate_chunk_size(chunk_size: int) -> int:
    if chunk_size < MIN_CHUNK_SIZE:
        raise SigningValueError(
            f"chunk_size must be at least {MIN_CHUNK_SIZE} bytes, got {chunk_size}."
        )
    return chunk_size


def encoded_content_length(
    decoded_length: int,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    checksum_algorithm: ChecksumAlgorithm | None = None,
) -> int:
    """Exact ``Content-Length`` of the framed body for ``decoded_length`` bytes."""
    if decoded_length < 0:
        raise SigningValueError("decoded_length cannot be negative.")
    full_chunks, remainder = divmod(decoded_length, chunk_size)
    length = full_chunks * _frame_length(chunk_size)
    if remainder:
        length += _frame_length(remainder)
    if checksum_algorithm is None:
        return length + _frame_length(0)

    # The terminal frame drops its closing CRLF when a trailer follows.
    length += _frame_length(0) - len(_CRLF)
    length += len(checksum_algorithm.header_name) + 1
    length += checksum_algorithm.encoded_length + len(_CRLF)
    length += len(_TRAILER_SIGNATURE_PREFIX) + _SIGNATURE_LENGTH + len(_CRLF)
    return length + len(_CRLF)


def _frame_length(size: int) -> int:
    return (
        len(f"{size:x}")
        + len(_CHUNK_SIGNATURE_PREFIX)
        + _SIGNATURE_LENGTH
        + len(_CRLF)
        + size
        + len(_CRLF)
    )


def _validate_signature(signature: str) -> None:
    if len(signature) != _SIGNATURE_LENGTH or any(
        c not in "0123456789abcdef" for c in signature
    ):
        raise SigningValueError(
            f"Seed signature must be {_SIGNATURE_LENGTH} lowercase hex characters."
        )
