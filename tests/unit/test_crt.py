# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0
#  pyright: reportPrivateUsage=false
import asyncio
from collections.abc import AsyncIterator
from copy import deepcopy
from io import BytesIO
from unittest.mock import AsyncMock, Mock, patch

import pytest
from s3_signers import (
    URI,
    AWSChunkedBody,
    ChunkSigner,
    ChunkSigningContext,
    Field,
    Fields,
    S3Request,
    encoded_content_length,
)
from s3_signers.crt import AWSCRTHTTPClient, AWSCRTHTTPResponse, CRTHTTPError
from s3_signers.interfaces.http import FieldPosition


async def _collect(client: AWSCRTHTTPClient, body: object) -> list[bytes]:
    return [chunk async for chunk in client._create_body_generator(body)]


def test_deepcopy_client() -> None:
    client = AWSCRTHTTPClient()
    copied = deepcopy(client)
    assert copied is not client
    assert copied._eventloop is client._eventloop


def test_client_marshal_request() -> None:
    client = AWSCRTHTTPClient()
    request = S3Request(
        method="PUT",
        destination=URI(host="example.com", path="/bucket/test$file.text", query="a=1"),
        fields=Fields(
            [
                Field(name="x-amz-date", values=["20130524T000000Z"]),
                Field(name="x-amz-meta-tags", values=["a", "b"]),
                Field(
                    name="x-amz-checksum-crc32",
                    values=["AAAAAA=="],
                    kind=FieldPosition.TRAILER,
                ),
            ]
        ),
    )
    crt_request = client._marshal_request(request)
    assert crt_request.method == "PUT"
    assert crt_request.path == "/bucket/test%24file.text?a=1"
    assert crt_request.headers.get("host") == "example.com"
    assert crt_request.headers.get("x-amz-date") == "20130524T000000Z"
    assert list(crt_request.headers.get_values("x-amz-meta-tags")) == ["a", "b"]
    assert crt_request.headers.get("x-amz-checksum-crc32") is None


def test_marshal_keeps_signed_host() -> None:
    client = AWSCRTHTTPClient()
    request = S3Request(
        method="GET",
        destination=URI(host="example.com", port=9000),
        fields=Fields([Field(name="Host", values=["example.com:9000"])]),
    )
    crt_request = client._marshal_request(request)
    assert list(crt_request.headers.get_values("host")) == ["example.com:9000"]
    assert crt_request.path == "/"


@pytest.mark.parametrize(
    "host,expected",
    [
        ("example.com", "example.com:8443"),
        ("2001:db8::1", "[2001:db8::1]:8443"),
    ],
)
def test_port_included_in_host_header(host: str, expected: str) -> None:
    client = AWSCRTHTTPClient()
    request = S3Request(
        method="GET",
        destination=URI(host=host, path="/path", port=8443),
    )
    crt_request = client._marshal_request(request)
    assert crt_request.headers.get("host") == expected


@pytest.mark.asyncio
async def test_body_generator_none() -> None:
    assert await _collect(AWSCRTHTTPClient(), None) == []


@pytest.mark.asyncio
async def test_body_generator_bytes() -> None:
    client = AWSCRTHTTPClient()
    assert await _collect(client, b"Hello, World!") == [b"Hello, World!"]
    chunks = await _collect(client, bytearray(b"mutable data"))
    assert chunks == [b"mutable data"]
    assert all(isinstance(chunk, bytes) for chunk in chunks)


@pytest.mark.asyncio
async def test_body_generator_bytesio() -> None:
    client = AWSCRTHTTPClient()
    chunks = await _collect(client, BytesIO(b"x" * 20000))
    assert [len(chunk) for chunk in chunks] == [8192, 8192, 3616]


@pytest.mark.asyncio
async def test_body_generator_async_iterable() -> None:
    async def custom_generator() -> AsyncIterator[bytes]:
        yield b"chunk1"
        yield b"chunk2"

    client = AWSCRTHTTPClient()
    assert await _collect(client, custom_generator()) == [b"chunk1", b"chunk2"]


@pytest.mark.asyncio
async def test_body_generator_async_byte_stream() -> None:
    class CustomAsyncStream:
        def __init__(self, data: bytes):
            self._data = BytesIO(data)

        async def read(self, size: int = -1) -> bytes:
            await asyncio.sleep(0)
            return self._data.read(size)

    client = AWSCRTHTTPClient()
    chunks = await _collect(client, CustomAsyncStream(b"x" * 100000))
    assert b"".join(chunks) == b"x" * 100000


@pytest.mark.asyncio
async def test_body_generator_chunked_body() -> None:
    context = ChunkSigningContext(
        signing_key=b"k" * 32,
        scope="20130524/us-east-1/s3/aws4_request",
        timestamp="20130524T000000Z",
    )
    signer = ChunkSigner(context, seed_signature="0" * 64)
    data = b"a" * 70000
    body = AWSChunkedBody(BytesIO(data), signer)

    encoded = b"".join(await _collect(AWSCRTHTTPClient(), body))
    assert len(encoded) == encoded_content_length(len(data))
    assert encoded.startswith(b"10000;chunk-signature=")
    assert signer.closed


@pytest.mark.asyncio
async def test_body_generator_rejects_unknown_types() -> None:
    with pytest.raises(CRTHTTPError):
        await _collect(AWSCRTHTTPClient(), 42)


@pytest.mark.asyncio
async def test_build_connection_http() -> None:
    client = AWSCRTHTTPClient()
    url = URI(scheme="http", host="localhost", port=9000)

    with patch("s3_signers.crt.AIOHttpClientConnectionUnified.new") as mock_new:
        mock_connection = AsyncMock()
        mock_connection.is_open = Mock(return_value=True)
        mock_new.return_value = mock_connection

        connection = await client._build_new_connection(url)

        assert connection is mock_connection
        call_kwargs = mock_new.call_args[1]
        assert call_kwargs["host_name"] == "localhost"
        assert call_kwargs["port"] == 9000
        assert call_kwargs["tls_connection_options"] is None


@pytest.mark.asyncio
async def test_build_connection_https_default_port() -> None:
    client = AWSCRTHTTPClient()
    url = URI(scheme="https", host="s3.amazonaws.com")

    with patch("s3_signers.crt.AIOHttpClientConnectionUnified.new") as mock_new:
        mock_new.return_value = AsyncMock()
        await client._build_new_connection(url)

        call_kwargs = mock_new.call_args[1]
        assert call_kwargs["port"] == 443
        assert call_kwargs["tls_connection_options"] is not None


@pytest.mark.asyncio
async def test_build_connection_unsupported_scheme() -> None:
    client = AWSCRTHTTPClient()
    with pytest.raises(CRTHTTPError, match="does not support URL scheme ftp"):
        await client._build_new_connection(URI(scheme="ftp", host="example.com"))


@pytest.mark.asyncio
async def test_connection_pooling() -> None:
    client = AWSCRTHTTPClient()
    first = URI(scheme="http", host="localhost", port=9000)
    other_port = URI(scheme="http", host="localhost", port=9001)

    open_connection = AsyncMock()
    open_connection.is_open = Mock(return_value=True)
    other_connection = AsyncMock()
    other_connection.is_open = Mock(return_value=True)

    with patch("s3_signers.crt.AIOHttpClientConnectionUnified.new") as mock_new:
        mock_new.side_effect = [open_connection, other_connection]

        assert await client._get_connection(first) is open_connection
        assert await client._get_connection(first) is open_connection
        assert await client._get_connection(other_port) is other_connection
        assert mock_new.call_count == 2


@pytest.mark.asyncio
async def test_closed_connection_is_replaced() -> None:
    client = AWSCRTHTTPClient()
    url = URI(scheme="https", host="example.com")

    closed = AsyncMock()
    closed.is_open = Mock(return_value=False)
    fresh = AsyncMock()
    fresh.is_open = Mock(return_value=True)

    with patch("s3_signers.crt.AIOHttpClientConnectionUnified.new") as mock_new:
        mock_new.side_effect = [closed, fresh]
        assert await client._get_connection(url) is closed
        assert await client._get_connection(url) is fresh


@pytest.mark.asyncio
async def test_response_body() -> None:
    mock_stream = AsyncMock()
    mock_stream.get_next_response_chunk.side_effect = [b"<Error>", b"</Error>", b""]

    response = AWSCRTHTTPResponse(status=403, fields=Fields(), stream=mock_stream)

    assert await response.consume_body_async() == b"<Error></Error>"


def test_response_properties() -> None:
    fields = Fields([Field(name="etag", values=['"abc"'])])
    response = AWSCRTHTTPResponse(status=404, fields=fields, stream=Mock())

    assert response.status == 404
    assert response.fields == fields
    assert response.reason is None


def test_fallback_host_header_omits_userinfo() -> None:
    client = AWSCRTHTTPClient()
    request = S3Request(
        method="GET",
        destination=URI(
            host="example.com", port=9000, username="user", password="pass"
        ),
    )
    crt_request = client._marshal_request(request)
    assert crt_request.headers.get("host") == "example.com:9000"
