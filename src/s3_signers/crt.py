# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0
#  pyright: reportMissingTypeStubs=false,reportUnknownMemberType=false
import logging
from collections.abc import AsyncGenerator, AsyncIterable, Iterable
from copy import deepcopy
from dataclasses import dataclass
from inspect import iscoroutinefunction
from typing import Any, Final

from awscrt import http as crt_http
from awscrt import io as crt_io
from awscrt.aio.http import AIOHttpClientConnectionUnified, AIOHttpClientStreamUnified

from ._http import DEFAULT_PORTS, URI, Field, Fields
from .exceptions import BaseS3SignersException
from .interfaces import http as http_interfaces
from .interfaces.http import FieldPosition
from .interfaces.io import ByteStream

logger: Final = logging.getLogger(__name__)

# Default buffer size for reading from streams (8 KB)
DEFAULT_READ_BUFFER_SIZE = 8192


class CRTHTTPError(BaseS3SignersException):
    """The CRT transport could not send a request."""


class _AWSCRTEventLoop:
    def __init__(self) -> None:
        self.bootstrap = self._initialize_default_loop()

    def _initialize_default_loop(self) -> crt_io.ClientBootstrap:
        event_loop_group = crt_io.EventLoopGroup(1)
        host_resolver = crt_io.DefaultHostResolver(event_loop_group)
        return crt_io.ClientBootstrap(event_loop_group, host_resolver)


class AWSCRTHTTPResponse(http_interfaces.HTTPResponse):
    def __init__(
        self,
        *,
        status: int,
        fields: Fields,
        stream: AIOHttpClientStreamUnified,
    ) -> None:
        self._status = status
        self._fields = fields
        self._stream = stream

    @property
    def status(self) -> int:
        return self._status

    @property
    def fields(self) -> Fields:
        return self._fields

    @property
    def body(self) -> AsyncIterable[bytes]:
        return self.chunks()

    @property
    def reason(self) -> str | None:
        """CRT does not expose the reason phrase."""
        return None

    async def chunks(self) -> AsyncGenerator[bytes, None]:
        while True:
            chunk = await self._stream.get_next_response_chunk()
            if chunk:
                yield chunk
            else:
                break

    async def consume_body_async(self) -> bytes:
        body = b""
        async for chunk in self.chunks():
            body += chunk
        return body

    def __repr__(self) -> str:
        return (
            f"AWSCRTHTTPResponse("
            f"status={self.status}, "
            f"fields={self.fields!r}, body=...)"
        )


ConnectionPoolKey = tuple[str, str, int | None]
ConnectionPoolDict = dict[ConnectionPoolKey, AIOHttpClientConnectionUnified]


@dataclass(kw_only=True)
class AWSCRTHTTPClientConfig:
    """AWS CRT HTTP client configuration.

    :param read_buffer_size: The buffer size in bytes to use when reading from streams.
        Defaults to 8192 (8 KB).
    :param verify_tls: Whether to verify the server certificate. Self hosted S3
        compatible services often use self-signed certificates.
    """

    read_buffer_size: int = DEFAULT_READ_BUFFER_SIZE
    verify_tls: bool = True


class AWSCRTHTTPClient(http_interfaces.HTTPClient):
    """HTTP/1.1 client on top of ``awscrt``.

    Connections are cached per scheme, host and port. ``aws-chunked`` uploads are
    streamed frame by frame as the signed body produces them.
    """

    def __init__(
        self,
        eventloop: _AWSCRTEventLoop | None = None,
        client_config: AWSCRTHTTPClientConfig | None = None,
    ) -> None:
        """
        :param client_config: Configuration that applies to all requests made with this
        client.
        """
        self._config = client_config or AWSCRTHTTPClientConfig()
        if eventloop is None:
            eventloop = _AWSCRTEventLoop()
        self._eventloop = eventloop
        self._client_bootstrap = self._eventloop.bootstrap
        tls_options = crt_io.TlsContextOptions()
        tls_options.verify_peer = self._config.verify_tls
        self._tls_ctx = crt_io.ClientTlsContext(tls_options)
        self._socket_options = crt_io.SocketOptions()
        self._connections: ConnectionPoolDict = {}

    async def send(self, request: http_interfaces.Request) -> AWSCRTHTTPResponse:
        """Send HTTP request using awscrt client.

        :param request: The request including destination URI, fields, payload.
        """
        crt_request = self._marshal_request(request)
        connection = await self._get_connection(request.destination)

        body_generator = self._create_body_generator(request.body)

        crt_stream = connection.request(
            crt_request,
            request_body_generator=body_generator,
        )

        return await self._await_response(crt_stream)

    async def _await_response(
        self, stream: AIOHttpClientStreamUnified
    ) -> AWSCRTHTTPResponse:
        status_code = await stream.get_response_status_code()
        headers = await stream.get_response_headers()
        fields = Fields()
        for header_name, header_val in headers:
            try:
                fields[header_name].add(header_val)
            except KeyError:
                fields[header_name] = Field(
                    name=header_name,
                    values=[header_val],
                    kind=FieldPosition.HEADER,
                )
        return AWSCRTHTTPResponse(
            status=status_code,
            fields=fields,
            stream=stream,
        )

    async def _get_connection(self, url: URI) -> AIOHttpClientConnectionUnified:
        connection_key = (url.scheme, url.host, url.port)
        connection = self._connections.get(connection_key)

        if connection and connection.is_open():
            return connection

        connection = await self._build_new_connection(url)
        self._connections[connection_key] = connection
        return connection

    async def _build_new_connection(self, url: URI) -> AIOHttpClientConnectionUnified:
        if url.scheme not in DEFAULT_PORTS:
            raise CRTHTTPError(
                f"AWSCRTHTTPClient does not support URL scheme {url.scheme}"
            )
        port = url.port if url.port is not None else DEFAULT_PORTS[url.scheme]
        tls_connection_options = None
        if url.scheme == "https":
            tls_connection_options = self._tls_ctx.new_connection_options()
            tls_connection_options.set_server_name(url.host)
            tls_connection_options.set_alpn_list(["http/1.1"])

        logger.debug("Opening connection to %s://%s:%s", url.scheme, url.host, port)
        return await AIOHttpClientConnectionUnified.new(
            bootstrap=self._client_bootstrap,
            host_name=url.host,
            port=port,
            socket_options=self._socket_options,
            tls_connection_options=tls_connection_options,
        )

    def _render_path(self, url: URI) -> str:
        path = url.encoded_path if isinstance(url, URI) else (url.path or "/")
        query = f"?{url.query}" if url.query else ""
        return f"{path}{query}"

    def _marshal_request(
        self, request: http_interfaces.Request
    ) -> crt_http.HttpRequest:
        """Create :py:class:`awscrt.http.HttpRequest` from a signed request.

        The request is expected to be signed already, so fields are copied as they
        are and nothing that takes part in the signature is added.
        """
        headers_list: list[tuple[str, str]] = []
        if "host" not in request.fields:
            request.fields.set_field(
                Field(name="host", values=[request.destination.host_header])
            )

        for fld in request.fields:
            if fld.kind is not FieldPosition.HEADER:
                continue
            for val in fld.values:
                headers_list.append((fld.name, val))

        return crt_http.HttpRequest(
            method=request.method,
            path=self._render_path(request.destination),
            headers=crt_http.HttpHeaders(headers_list),
        )

    async def _create_body_generator(self, body: Any) -> AsyncGenerator[bytes, None]:
        """Convert various body types to async generator for request_body_generator."""
        if body is None:
            return
        if isinstance(body, bytes | bytearray):
            yield bytes(body)
        elif isinstance(body, AsyncIterable):
            async for chunk in body:
                yield bytes(chunk)
        elif iscoroutinefunction(getattr(body, "read", None)):
            # An async read method but not iterable
            while chunk := await body.read(self._config.read_buffer_size):
                yield bytes(chunk)
        elif isinstance(body, ByteStream):
            while chunk := body.read(self._config.read_buffer_size):
                yield bytes(chunk)
        elif isinstance(body, Iterable):
            for chunk in body:
                yield bytes(chunk)
        else:
            raise CRTHTTPError(f"Unsupported request body type {type(body)}.")

    def __deepcopy__(self, memo: Any) -> "AWSCRTHTTPClient":
        return AWSCRTHTTPClient(
            eventloop=self._eventloop,
            client_config=deepcopy(self._config),
        )
