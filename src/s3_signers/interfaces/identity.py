# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

from datetime import UTC, datetime
from typing import Protocol, TypedDict, runtime_checkable


@runtime_checkable
class Identity(Protocol):
    """An entity available to the client representing who the user is."""

    expiration: datetime | None = None
    """The expiration time of the identity.

    If time zone is provided, it is updated to UTC. The value must always be in UTC.
    """

    @property
    def is_expired(self) -> bool:
        """Whether the identity is expired."""
        if self.expiration is None:
            return False
        return datetime.now(tz=UTC) >= self.expiration


@runtime_checkable
class S3CredentialsIdentity(Identity, Protocol):
    """Credentials used to sign requests to an S3-compatible service."""

    access_key_id: str
    """A unique identifier for a user or role."""

    secret_access_key: str
    """A secret key used in conjunction with the access key ID to authenticate
    programmatic access."""

    session_token: str | None = None
    """A temporary token used to specify the current session for the supplied
    credentials."""


class IdentityProperties(TypedDict, total=False):
    """Hints passed to a resolver when asking it for credentials."""

    region: str
    endpoint: str


class CredentialsResolver(Protocol):
    """Used to load credentials from a given source.

    Implementations own their caching and refresh policy. Signers call
    ``get_identity`` once per request and never retry.
    """

    async def get_identity(
        self, *, properties: IdentityProperties
    ) -> S3CredentialsIdentity:
        """Load credentials from this resolver.

        :param properties: Properties used to help determine the identity to return.
        :raises CredentialsError: if no credentials are available.
        """
        ...
