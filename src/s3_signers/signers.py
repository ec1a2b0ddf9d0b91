# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0
import datetime
import logging
from copy import deepcopy
from dataclasses import dataclass, field
from typing import Any, Final, Required, TypedDict

from ._http import URI, Field, S3Request
from ._io import body_length, is_async_body
from .canonical import HeaderInput, canonical_request, canonical_request_hash
from .chunked import (
    DEFAULT_CHUNK_SIZE,
    AsyncAWSChunkedBody,
    AWSChunkedBody,
    ChecksumAlgorithm,
    ChunkSigner,
    ChunkSigningContext,
    encoded_content_length,
    validate_chunk_size,
)
from .exceptions import (
    CredentialsError,
    MissingExpectedParameterException,
    SigningValueError,
)
from .interfaces.identity import S3CredentialsIdentity
from .keys import (
    SIGV4_ALGORITHM,
    SigningKeyCache,
    date_stamp,
    derive_signing_key,
    scope,
    sign,
    string_to_sign,
)
from .payload import (
    STREAMING_MODES,
    PayloadSigningMode,
    buffer_body,
    select_payload_hash,
    selected_mode,
    validate_payload_hash,
)
from .utils import format_timestamp, sha256_hex, validate_timestamp

logger: Final = logging.getLogger(__name__)

CONTENT_SHA256_HEADER = "x-amz-content-sha256"


class SigV4SigningProperties(TypedDict, total=False):
    region: Required[str]
    service: str
    date: str
    payload_signing_mode: PayloadSigningMode
    chunk_size: int
    decoded_content_length: int
    checksum_algorithm: ChecksumAlgorithm


@dataclass(frozen=True, kw_only=True)
class SigningResult:
    """Everything produced while signing a request's headers.

    ``signing_key`` and ``signature`` seed the chunk chain of a streamed body.
    """

    authorization: str
    signature: str
    signed_headers: str
    scope: str
    signing_key: bytes = field(repr=False)
    timestamp: str


def validate_identity(identity: S3CredentialsIdentity) -> None:
    """Perform runtime and expiration checks before attempting signing."""
    if not isinstance(identity, S3CredentialsIdentity):  # pyright: ignore
        raise SigningValueError(
            "Received unexpected value for identity parameter. Expected "
            f"S3CredentialsIdentity but received {type(identity)}."
        )
    if not identity.access_key_id or not identity.secret_access_key:
        raise CredentialsError("Credentials must have an access key and a secret.")
    if identity.is_expired:
        raise CredentialsError(
            f"Provided identity expired at {identity.expiration}. Please "
            "refresh the credentials or update the expiration parameter."
        )


def current_timestamp() -> str:
    """Read the clock once and format it for signing."""
    return format_timestamp(datetime.datetime.now(datetime.UTC))


def sign_v4_authorization(
    *,
    method: str,
    uri: URI,
    region: str,
    fields: HeaderInput,
    access_key: str,
    secret_key: str,
    content_sha256: str,
    timestamp: str,
    service: str = "s3",
    signing_key_cache: SigningKeyCache | None = None,
) -> SigningResult:
    """Compute the ``Authorization`` value for a request.

    ``fields`` must already contain every header that is to be signed, including
    ``host``, ``x-amz-date`` and ``x-amz-content-sha256``.
    """
    if not region:
        raise SigningValueError("A region is required to sign a request.")
    date8 = date_stamp(timestamp)
    credential_scope = scope(date8, region, service)
    canonical_hash, signed_headers = canonical_request_hash(
        method=method,
        path=uri.path,
        query=uri.query,
        headers=fields,
        payload_hash=content_sha256,
    )
    if signing_key_cache is not None:
        signing_key = signing_key_cache.get_signing_key(
            secret_key, date8, region, service
        )
    else:
        signing_key = derive_signing_key(secret_key, date8, region, service)
    signature = sign(
        signing_key, string_to_sign(timestamp, credential_scope, canonical_hash)
    )
    authorization = (
        f"{SIGV4_ALGORITHM} Credential={access_key}/{credential_scope}, "
        f"SignedHeaders={signed_headers}, Signature={signature}"
    )
    return SigningResult(
        authorization=authorization,
        signature=signature,
        signed_headers=signed_headers,
        scope=credential_scope,
        signing_key=signing_key,
        timestamp=timestamp,
    )


class SigV4Signer:
    """Request signer for applying the AWS Signature Version 4 algorithm."""

    def __init__(self, *, signing_key_cache: SigningKeyCache | None = None) -> None:
        self._signing_key_cache = signing_key_cache

    def sign(
        self,
        *,
        properties: SigV4SigningProperties,
        request: S3Request,
        identity: S3CredentialsIdentity,
    ) -> S3Request:
        """Generate and apply a SigV4 signature to a copy of the supplied request.

        :param properties: Signing primitives such as the region, the date and how
            the payload is to be signed.
        :param request: The request to sign. It is not modified.
        :param identity: The credentials to sign with.
        """
        signed_request, _ = self.sign_with_result(
            properties=properties, request=request, identity=identity
        )
        return signed_request

    def sign_with_result(
        self,
        *,
        properties: SigV4SigningProperties,
        request: S3Request,
        identity: S3CredentialsIdentity,
    ) -> tuple[S3Request, SigningResult]:
        """Like :meth:`sign` but also return the intermediate signing values."""
        validate_identity(identity)
        new_properties = self._normalize_signing_properties(properties=properties)
        assert "date" in new_properties

        new_request = deepcopy(request)
        payload_hash = self._apply_required_fields(
            request=new_request, properties=new_properties, identity=identity
        )
        result = sign_v4_authorization(
            method=new_request.method,
            uri=new_request.destination,
            region=new_properties["region"],
            service=new_properties.get("service", "s3"),
            fields=new_request.fields,
            access_key=identity.access_key_id,
            secret_key=identity.secret_access_key,
            content_sha256=payload_hash,
            timestamp=new_properties["date"],
            signing_key_cache=self._signing_key_cache,
        )
        new_request.fields.set_field(
            Field(name="Authorization", values=[result.authorization])
        )

        if selected_mode(payload_hash) in STREAMING_MODES:
            new_request.body = self._chunked_body(
                body=new_request.body, properties=new_properties, result=result
            )

        logger.debug(
            "Signed %s request for %s with signed headers %s",
            new_request.method,
            new_request.destination.path or "/",
            result.signed_headers,
        )
        return new_request, result

    def canonical_request(self, *, request: S3Request) -> str:
        """The canonical request of an already prepared or signed request.

        Useful to compare against the canonical request the service reports in a
        ``SignatureDoesNotMatch`` error.
        """
        payload_field = request.fields.get(CONTENT_SHA256_HEADER)
        if payload_field is not None:
            payload_hash = payload_field.as_string()
        else:
            payload_hash = select_payload_hash(
                request.body, secure=request.destination.scheme == "https"
            )
        canonical, _ = canonical_request(
            method=request.method,
            path=request.destination.path,
            query=request.destination.query,
            headers=request.fields,
            payload_hash=payload_hash,
        )
        return canonical

    def string_to_sign(
        self, *, canonical_request: str, properties: SigV4SigningProperties
    ) -> str:
        date = properties.get("date")
        if date is None:
            raise MissingExpectedParameterException(
                "Cannot generate string_to_sign without a valid date "
                f"in your signing properties. Current value: {date}"
            )
        credential_scope = scope(
            date_stamp(date), properties["region"], properties.get("service", "s3")
        )
        return string_to_sign(date, credential_scope, sha256_hex(canonical_request))

    def _normalize_signing_properties(
        self, *, properties: SigV4SigningProperties
    ) -> SigV4SigningProperties:
        # Create copy of signing properties to avoid mutating the original
        new_properties = SigV4SigningProperties(**properties)
        if "date" not in new_properties:
            new_properties["date"] = current_timestamp()
        else:
            validate_timestamp(new_properties["date"])
        new_properties.setdefault("service", "s3")
        return new_properties

    def _apply_required_fields(
        self,
        *,
        request: S3Request,
        properties: SigV4SigningProperties,
        identity: S3CredentialsIdentity,
    ) -> str:
        """Add the headers every signed request carries and return the payload hash."""
        assert "date" in properties
        date = properties["date"]
        fields = request.fields

        if "host" not in fields:
            fields.set_field(
                Field(name="host", values=[request.destination.host_header])
            )

        existing_date = fields.get("x-amz-date")
        if existing_date is not None and existing_date.as_string() != date:
            raise SigningValueError(
                f"The request already has x-amz-date {existing_date.as_string()!r} "
                f"which does not match the signing timestamp {date!r}."
            )
        if existing_date is None:
            fields.set_field(Field(name="x-amz-date", values=[date]))

        if "x-amz-security-token" not in fields and identity.session_token:
            fields.set_field(
                Field(name="x-amz-security-token", values=[identity.session_token])
            )

        payload_hash = self._payload_hash(request=request, properties=properties)
        if CONTENT_SHA256_HEADER not in fields:
            fields.set_field(Field(name=CONTENT_SHA256_HEADER, values=[payload_hash]))

        mode = selected_mode(payload_hash)
        if mode in STREAMING_MODES:
            self._apply_streaming_fields(
                request=request, properties=properties, mode=mode
            )
        return payload_hash

    def _payload_hash(
        self, *, request: S3Request, properties: SigV4SigningProperties
    ) -> str:
        existing = request.fields.get(CONTENT_SHA256_HEADER)
        if existing is not None:
            if len(existing.values) != 1:
                raise SigningValueError(
                    f"{CONTENT_SHA256_HEADER} must have exactly one value."
                )
            return validate_payload_hash(existing.values[0])

        mode = properties.get("payload_signing_mode", PayloadSigningMode.AUTO)
        if mode is PayloadSigningMode.SIGNED:
            request.body = buffer_body(request.body)
        return select_payload_hash(
            request.body,
            mode=mode,
            secure=request.destination.scheme == "https",
        )

    def _apply_streaming_fields(
        self,
        *,
        request: S3Request,
        properties: SigV4SigningProperties,
        mode: PayloadSigningMode,
    ) -> None:
        decoded_length = properties.get("decoded_content_length")
        if decoded_length is None:
            decoded_length = body_length(request.body)
        if decoded_length is None:
            raise MissingExpectedParameterException(
                "Streaming payload signing needs the decoded length of the body. "
                "Set decoded_content_length in the signing properties."
            )
        chunk_size = validate_chunk_size(
            properties.get("chunk_size", DEFAULT_CHUNK_SIZE)
        )
        checksum = None
        if mode is PayloadSigningMode.STREAMING_TRAILER:
            checksum = properties.get("checksum_algorithm", ChecksumAlgorithm.CRC32)
            properties["checksum_algorithm"] = checksum
        else:
            properties.pop("checksum_algorithm", None)

        fields = request.fields
        encoding = fields.get("content-encoding")
        if encoding is None:
            fields.set_field(Field(name="content-encoding", values=["aws-chunked"]))
        elif "aws-chunked" not in encoding.values:
            encoding.set(["aws-chunked", *encoding.values])
        content_length = encoded_content_length(decoded_length, chunk_size, checksum)
        fields.set_field(Field(name="content-length", values=[str(content_length)]))
        fields.set_field(
            Field(name="x-amz-decoded-content-length", values=[str(decoded_length)])
        )
        if checksum is not None:
            fields.set_field(Field(name="x-amz-trailer", values=[checksum.header_name]))
        properties["decoded_content_length"] = decoded_length
        properties["chunk_size"] = chunk_size

    def _chunked_body(
        self,
        *,
        body: Any,
        properties: SigV4SigningProperties,
        result: SigningResult,
    ) -> AWSChunkedBody | AsyncAWSChunkedBody:
        context = ChunkSigningContext(
            signing_key=result.signing_key,
            scope=result.scope,
            timestamp=result.timestamp,
        )
        signer = ChunkSigner(context, seed_signature=result.signature)
        body_cls = AsyncAWSChunkedBody if is_async_body(body) else AWSChunkedBody
        return body_cls(
            body,
            signer,
            chunk_size=properties.get("chunk_size", DEFAULT_CHUNK_SIZE),
            checksum_algorithm=properties.get("checksum_algorithm"),
        )
