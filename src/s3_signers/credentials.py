# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0
import logging
import os
from collections.abc import Sequence
from typing import Final

from ._identity import S3Credentials
from .exceptions import CredentialsError
from .interfaces.identity import (
    CredentialsResolver,
    IdentityProperties,
    S3CredentialsIdentity,
)

logger: Final = logging.getLogger(__name__)

# Each entry lists the variables for one value, in order of precedence.
_ACCESS_KEY_VARS = ("AWS_ACCESS_KEY_ID", "AWS_ACCESS_KEY", "MINIO_ACCESS_KEY")
_SECRET_KEY_VARS = ("AWS_SECRET_ACCESS_KEY", "AWS_SECRET_KEY", "MINIO_SECRET_KEY")
_SESSION_TOKEN_VARS = ("AWS_SESSION_TOKEN", "MINIO_SESSION_TOKEN")


class StaticCredentialsResolver(CredentialsResolver):
    """Resolve static credentials."""

    def __init__(self, *, credentials: S3CredentialsIdentity) -> None:
        self._credentials = credentials

    @classmethod
    def from_keys(
        cls, access_key: str, secret_key: str, session_token: str | None = None
    ) -> "StaticCredentialsResolver":
        return cls(
            credentials=S3Credentials(
                access_key_id=access_key,
                secret_access_key=secret_key,
                session_token=session_token,
            )
        )

    async def get_identity(
        self, *, properties: IdentityProperties
    ) -> S3CredentialsIdentity:
        return self._credentials


class EnvironmentCredentialsResolver(CredentialsResolver):
    """Resolves credentials from system environment variables.

    The standard ``AWS_*`` variables are read first, then the ``MINIO_*`` ones.
    """

    def __init__(self) -> None:
        self._credentials: S3Credentials | None = None

    async def get_identity(
        self, *, properties: IdentityProperties
    ) -> S3CredentialsIdentity:
        if self._credentials is not None:
            return self._credentials

        access_key_id = _first_env(_ACCESS_KEY_VARS)
        secret_access_key = _first_env(_SECRET_KEY_VARS)
        if access_key_id is None or secret_access_key is None:
            raise CredentialsError(
                "An access key and a secret key are required. Set "
                "AWS_ACCESS_KEY_ID and AWS_SECRET_ACCESS_KEY, or MINIO_ACCESS_KEY "
                "and MINIO_SECRET_KEY."
            )

        self._credentials = S3Credentials(
            access_key_id=access_key_id,
            secret_access_key=secret_access_key,
            session_token=_first_env(_SESSION_TOKEN_VARS),
        )
        return self._credentials


class ChainedCredentialsResolver(CredentialsResolver):
    """Attempts to resolve credentials by checking a sequence of sub-resolvers.

    If a nested resolver raises a :py:class:`CredentialsError`, the next resolver in
    the chain will be attempted. The first credentials found are cached until they
    expire.
    """

    def __init__(self, resolvers: Sequence[CredentialsResolver]) -> None:
        """Construct a ChainedCredentialsResolver.

        :param resolvers: The sequence of resolvers to resolve credentials from.
        """
        self._resolvers = resolvers
        self._cached: S3CredentialsIdentity | None = None

    async def get_identity(
        self, *, properties: IdentityProperties
    ) -> S3CredentialsIdentity:
        if self._cached is None or self._cached.is_expired:
            self._cached = await self._resolve(properties=properties)
        return self._cached

    async def _resolve(
        self, *, properties: IdentityProperties
    ) -> S3CredentialsIdentity:
        logger.debug("Attempting to resolve credentials from resolver chain.")
        for resolver in self._resolvers:
            try:
                logger.debug(
                    "Attempting to resolve credentials from %s.", type(resolver)
                )
                return await resolver.get_identity(properties=properties)
            except CredentialsError as e:
                logger.debug(
                    "Failed to resolve credentials from %s: %s", type(resolver), e
                )

        raise CredentialsError("Failed to resolve credentials from resolver chain.")


def _first_env(names: Sequence[str]) -> str | None:
    for name in names:
        value = os.getenv(name)
        if value:
            return value
    return None
