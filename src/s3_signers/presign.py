# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0
"""Query string authentication for S3.

A presigned URL carries the credential scope, the timestamp and the signature as
``X-Amz-*`` query parameters so it can be handed to a client that has no
credentials. Only the ``host`` header is signed and the payload is always
``UNSIGNED-PAYLOAD``.
"""

import logging
from typing import Final

from ._http import URI, S3Request
from .canonical import canonical_request_hash
from .exceptions import SigningValueError
from .interfaces.identity import S3CredentialsIdentity
from .keys import SIGV4_ALGORITHM, date_stamp, derive_signing_key, scope, sign
from .keys import string_to_sign as build_string_to_sign
from .payload import PayloadHash
from .signers import SigV4SigningProperties, current_timestamp, validate_identity
from .utils import build_query, decode_query

logger: Final = logging.getLogger(__name__)

MIN_EXPIRES: int = 1
MAX_EXPIRES: int = 7 * 24 * 60 * 60
"""Seven days, the longest validity S3 accepts for a presigned URL."""


def validate_expires(expires: int) -> int:
    if isinstance(expires, bool) or not isinstance(expires, int):
        raise SigningValueError(
            f"expires must be an integer number of seconds, got {type(expires)}."
        )
    if not MIN_EXPIRES <= expires <= MAX_EXPIRES:
        raise SigningValueError(
            f"expires must be between {MIN_EXPIRES} and {MAX_EXPIRES} seconds, "
            f"got {expires}."
        )
    return expires


def presign_v4(
    *,
    method: str,
    uri: URI,
    region: str,
    access_key: str,
    secret_key: str,
    timestamp: str,
    expires: int,
    session_token: str | None = None,
    service: str = "s3",
) -> str:
    """Return the absolute presigned URL for ``method`` on ``uri``.

    Parameters already in ``uri.query`` are kept in front of the authentication
    parameters. ``X-Amz-Signature`` is appended last and is not part of the
    canonical query.

    :raises SigningValueError: if ``expires`` is outside ``[1, 604800]`` or any
        other input is invalid.
    """
    validate_expires(expires)
    if not region:
        raise SigningValueError("A region is required to presign a request.")
    date8 = date_stamp(timestamp)
    credential_scope = scope(date8, region, service)

    query = decode_query(uri.query)
    query.extend(
        [
            ("X-Amz-Algorithm", SIGV4_ALGORITHM),
            ("X-Amz-Credential", f"{access_key}/{credential_scope}"),
            ("X-Amz-Date", timestamp),
            ("X-Amz-Expires", str(expires)),
            ("X-Amz-SignedHeaders", "host"),
        ]
    )
    if session_token:
        query.append(("X-Amz-Security-Token", session_token))

    canonical_hash, _ = canonical_request_hash(
        method=method,
        path=uri.path,
        query=query,
        headers={"host": uri.host_header},
        payload_hash=PayloadHash.UNSIGNED,
    )
    signing_key = derive_signing_key(secret_key, date8, region, service)
    signature = sign(
        signing_key, build_string_to_sign(timestamp, credential_scope, canonical_hash)
    )

    signed_query = f"{build_query(query)}&X-Amz-Signature={signature}"
    return uri.with_query(signed_query).build()


class PresignSigner:
    """Produces presigned URLs from requests and resolved credentials."""

    def presign(
        self,
        *,
        properties: SigV4SigningProperties,
        request: S3Request,
        identity: S3CredentialsIdentity,
        expires: int,
    ) -> str:
        """Presign ``request``.

        Only the method and destination of the request are used. Its headers and
        body are not part of a presigned URL.
        """
        validate_expires(expires)
        validate_identity(identity)
        timestamp = properties.get("date") or current_timestamp()
        url = presign_v4(
            method=request.method,
            uri=request.destination,
            region=properties["region"],
            service=properties.get("service", "s3"),
            access_key=identity.access_key_id,
            secret_key=identity.secret_access_key,
            session_token=identity.session_token,
            timestamp=timestamp,
            expires=expires,
        )
        logger.debug(
            "Presigned %s request for %s, valid for %s seconds",
            request.method,
            request.destination.path or "/",
            expires,
        )
        return url
