# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0
import os
from collections.abc import AsyncIterable, AsyncIterator, Iterable, Iterator
from inspect import iscoroutinefunction
from io import BytesIO
from typing import Any, TypeAlias

from .interfaces.io import AsyncByteStream, ByteStream, Seekable

StreamingBody: TypeAlias = (
    bytes
    | bytearray
    | ByteStream
    | AsyncByteStream
    | Iterable[bytes]
    | AsyncIterable[bytes]
)


def body_length(body: Any) -> int | None:
    """Best-effort total length of a request body without consuming it.

    Returns ``None`` when the length cannot be known up front.
    """
    if body is None:
        return 0
    if isinstance(body, bytes | bytearray):
        return len(body)
    if isinstance(body, BytesIO):
        return len(body.getvalue()) - body.tell()
    fileno = getattr(body, "fileno", None)
    if callable(fileno):
        try:
            return os.fstat(fileno()).st_size - body.tell()
        except (OSError, AttributeError, ValueError):
            pass
    if isinstance(body, Seekable) and not iscoroutinefunction(body.seek):
        position = body.tell()
        end = body.seek(0, os.SEEK_END)
        body.seek(position)
        return end - position
    return None


def is_async_body(body: Any) -> bool:
    if isinstance(body, AsyncIterable):
        return True
    read = getattr(body, "read", None)
    return read is not None and iscoroutinefunction(read)


def iter_slices(body: Any, size: int) -> Iterator[bytes]:
    """Re-slice a synchronous body into pieces of exactly ``size`` bytes.

    Only the final piece may be shorter. Empty bodies yield nothing.
    """
    if body is None:
        return
    if isinstance(body, bytes | bytearray):
        body = BytesIO(body)

    if isinstance(body, ByteStream) and not iscoroutinefunction(body.read):
        while True:
            piece = _read_exactly(body, size)
            if not piece:
                return
            yield piece
            if len(piece) < size:
                return

    if not isinstance(body, Iterable):
        raise TypeError(
            "A synchronous body must be bytes, a readable file-like object or an "
            f"iterable of bytes, got {type(body)}."
        )
    buffer = bytearray()
    for element in body:
        buffer += element
        while len(buffer) >= size:
            yield bytes(buffer[:size])
            del buffer[:size]
    if buffer:
        yield bytes(buffer)


async def aiter_slices(body: Any, size: int) -> AsyncIterator[bytes]:
    """Async counterpart of :func:`iter_slices`.

    Accepts everything :func:`iter_slices` accepts plus async iterables and objects
    with an async ``read`` method.
    """
    if not is_async_body(body):
        for piece in iter_slices(body, size):
            yield piece
        return

    if not isinstance(body, AsyncIterable):
        while True:
            piece = await _aread_exactly(body, size)
            if not piece:
                return
            yield piece
            if len(piece) < size:
                return

    buffer = bytearray()
    async for element in body:
        buffer += element
        while len(buffer) >= size:
            yield bytes(buffer[:size])
            del buffer[:size]
    if buffer:
        yield bytes(buffer)


def _read_exactly(stream: ByteStream, size: int) -> bytes:
    # read() may legally return fewer bytes than requested before EOF.
    result = b""
    while len(result) < size:
        data = stream.read(size - len(result))
        if not data:
            break
        result += data
    return result


async def _aread_exactly(stream: AsyncByteStream, size: int) -> bytes:
    result = b""
    while len(result) < size:
        data = await stream.read(size - len(result))
        if not data:
            break
        result += data
    return result
