# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

from collections import OrderedDict
from collections.abc import AsyncIterable, Iterable, Iterator
from enum import Enum
from typing import Protocol, runtime_checkable


class FieldPosition(Enum):
    """The type of a field.

    Defines its placement in a request or response.
    """

    HEADER = 0
    """Header field, as defined in RFC 9110 Section 6.3."""

    TRAILER = 1
    """Trailer field, as defined in RFC 9110 Section 6.5.

    Trailers sent with ``aws-chunked`` bodies are signed by the chunk signer, not by
    the header signer.
    """


class Field(Protocol):
    """A name-value pair representing a single field in a request or response.

    All field names are case insensitive and case-variance must be treated as
    equivalent. Names may be normalized but should be preserved for accuracy during
    transmission.
    """

    name: str
    values: list[str]
    kind: FieldPosition = FieldPosition.HEADER

    def add(self, value: str) -> None:
        """Append a value to a field."""
        ...

    def set(self, values: list[str]) -> None:
        """Overwrite existing field values."""
        ...

    def remove(self, value: str) -> None:
        """Remove all matching entries from list."""
        ...

    def as_string(self, delimiter: str = ",") -> str:
        """Serialize the ``Field``'s values into a single line string."""
        ...

    def as_tuples(self) -> list[tuple[str, str]]:
        """Get list of ``name``, ``value`` tuples where each tuple represents one
        value."""
        ...


class Fields(Protocol):
    """Protocol agnostic mapping of key-value pair request metadata, such as HTTP
    fields."""

    # Entries are keyed off the name of a provided Field
    entries: OrderedDict[str, Field]
    encoding: str = "utf-8"

    def set_field(self, field: Field) -> None:
        """Alias for __setitem__ to utilize the field.name for the entry key."""
        ...

    def __setitem__(self, name: str, field: Field) -> None: ...

    def __getitem__(self, name: str) -> Field: ...

    def __delitem__(self, name: str) -> None: ...

    def __iter__(self) -> Iterator[Field]: ...

    def __len__(self) -> int: ...

    def __contains__(self, key: str) -> bool: ...

    def get_by_type(self, kind: FieldPosition) -> list[Field]:
        """Helper function for retrieving specific types of fields.

        Used to grab all headers or all trailers.
        """
        ...


@runtime_checkable
class URI(Protocol):
    """Universal Resource Identifier, target location for a :py:class:`Request`."""

    scheme: str
    username: str | None
    password: str | None
    host: str
    port: int | None

    path: str | None
    """Path component of the URI, not percent-encoded."""

    query: str | None
    """Query component of the URI as string."""

    fragment: str | None

    def build(self) -> str:
        """Construct URI string representation.

        Returns a string of the form
        ``{scheme}://{username}:{password}@{host}:{port}{path}?{query}#{fragment}``
        """
        ...

    @property
    def netloc(self) -> str:
        """Construct netloc string in format ``{username}:{password}@{host}:{port}``"""
        ...

    @property
    def host_header(self) -> str:
        """Value of the ``Host`` header, without any user information."""
        ...


class Request(Protocol):
    """Protocol-agnostic representation of a request."""

    destination: URI
    method: str
    fields: Fields
    body: AsyncIterable[bytes] | Iterable[bytes] | bytes | None


class HTTPResponse(Protocol):
    """HTTP primitives returned from a transport."""

    @property
    def status(self) -> int:
        """The 3 digit response status code (1xx, 2xx, 3xx, 4xx, 5xx)."""
        ...

    @property
    def fields(self) -> Fields:
        """``Fields`` object containing HTTP headers and trailers."""
        ...

    @property
    def reason(self) -> str | None:
        """Optional string provided by the server explaining the status."""
        ...

    @property
    def body(self) -> AsyncIterable[bytes]:
        """The response payload as an async stream of bytes."""
        ...

    async def consume_body_async(self) -> bytes:
        """Iterate over the response body and return it as bytes."""
        ...


class HTTPClient(Protocol):
    """An asynchronous HTTP client interface.

    Connection pooling, timeouts and retries are owned by implementations of this
    interface. Signed requests are handed over complete and must be sent as-is.
    """

    async def send(self, request: Request) -> HTTPResponse:
        """Send HTTP request over the wire and return the response.

        :param request: The request including destination URI, fields, payload.
        """
        ...
