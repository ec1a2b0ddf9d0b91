# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0
"""A small asynchronous S3 client built on the signers in this package.

The client builds path-style requests, fetches credentials once per request,
signs with :class:`~s3_signers.signers.SigV4Signer` and hands the signed request to
an :class:`~s3_signers.interfaces.http.HTTPClient`. It never retries.
"""

import datetime
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any, Final, TypeAlias

from ._http import URI, Field, Fields, S3Request
from ._io import StreamingBody
from .config import DEFAULT_REGION, S3ClientConfig
from .credentials import ChainedCredentialsResolver, EnvironmentCredentialsResolver
from .crt import AWSCRTHTTPClient
from .exceptions import S3ResponseError
from .interfaces.http import HTTPClient, HTTPResponse
from .interfaces.identity import CredentialsResolver, IdentityProperties
from .keys import SigningKeyCache
from .presign import MAX_EXPIRES, PresignSigner
from .signers import SigV4Signer, SigV4SigningProperties, current_timestamp
from .utils import build_query, check_bucket_name, check_object_name, format_timestamp

logger: Final = logging.getLogger(__name__)

QueryArg: TypeAlias = str | Mapping[str, str] | Iterable[tuple[str, str]] | None

_S3_XMLNS = "http://s3.amazonaws.com/doc/2006-03-01/"
_META_PREFIX = "x-amz-meta-"


@dataclass(kw_only=True)
class PresignArgs:
    """Arguments of a presigned object URL."""

    bucket: str
    key: str
    expires: int = MAX_EXPIRES
    version_id: str | None = None
    response_headers: dict[str, str] = field(default_factory=dict)
    """Overrides such as ``response-content-type`` applied when the URL is used."""

    request_date: datetime.datetime | None = None
    """Signing time of the URL. Defaults to now."""

    extra_query: dict[str, str] = field(default_factory=dict)


@dataclass(kw_only=True)
class ObjectStat:
    bucket: str
    key: str
    size: int
    etag: str
    content_type: str
    last_modified: str
    version_id: str | None = None
    metadata: dict[str, str] = field(default_factory=dict)


class S3Client:
    """Asynchronous client for an S3-compatible service."""

    def __init__(self, config: S3ClientConfig) -> None:
        self._config = config
        cache = SigningKeyCache() if config.cache_signing_keys else None
        self._signer = SigV4Signer(signing_key_cache=cache)
        self._presigner = PresignSigner()
        self._credentials_resolver: CredentialsResolver = (
            config.credentials_resolver
            or ChainedCredentialsResolver([EnvironmentCredentialsResolver()])
        )
        self._http_client: HTTPClient | None = config.http_client

    @property
    def config(self) -> S3ClientConfig:
        return self._config

    @property
    def http_client(self) -> HTTPClient:
        if self._http_client is None:
            # The CRT client needs a running event loop, so it is created lazily.
            self._http_client = AWSCRTHTTPClient()
        return self._http_client

    def build_uri(
        self, bucket: str | None = None, key: str | None = None, query: QueryArg = None
    ) -> URI:
        """Path-style URI of a bucket or object on the configured endpoint."""
        path = "/"
        if bucket is not None:
            check_bucket_name(bucket)
            path = f"/{bucket}"
            if key is not None:
                check_object_name(key)
                path = f"{path}/{key}"
        return URI(
            scheme=self._config.scheme,
            host=self._config.host,
            port=self._config.port,
            path=path,
            query=_format_query(query),
        )

    async def execute(
        self,
        method: str,
        bucket: str | None = None,
        key: str | None = None,
        *,
        body: StreamingBody | None = None,
        fields: Fields | Mapping[str, str] | None = None,
        query: QueryArg = None,
        decoded_content_length: int | None = None,
    ) -> HTTPResponse:
        """Sign and send a request.

        :raises CredentialsError: if no credentials can be resolved. Nothing is
            sent in that case.
        :raises S3ResponseError: if the service answers with a non-2xx status.
        """
        request = S3Request(
            destination=self.build_uri(bucket, key, query),
            method=method,
            body=body,
            fields=self._prepare_fields(fields, body),
        )
        timestamp = current_timestamp()
        identity = await self._credentials_resolver.get_identity(
            properties=IdentityProperties(
                region=self._config.region, endpoint=self._config.host
            )
        )
        properties = SigV4SigningProperties(
            region=self._config.region,
            service="s3",
            date=timestamp,
            payload_signing_mode=self._config.payload_signing_mode,
            chunk_size=self._config.chunk_size,
        )
        if decoded_content_length is not None:
            properties["decoded_content_length"] = decoded_content_length

        signed = self._signer.sign(
            properties=properties, request=request, identity=identity
        )
        logger.debug("Sending %s %s", method, signed.destination.path)
        response = await self.http_client.send(signed)
        if not 200 <= response.status < 300:
            error_body = b""
            if method != "HEAD":
                error_body = await response.consume_body_async()
            raise S3ResponseError(
                status=response.status, reason=response.reason, body=error_body
            )
        return response

    async def put_object(
        self,
        bucket: str,
        key: str,
        data: StreamingBody,
        *,
        length: int | None = None,
        content_type: str = "application/octet-stream",
        metadata: Mapping[str, str] | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> str:
        """Upload an object and return its ETag.

        ``data`` may be bytes, a file-like object or a (async) iterable of bytes.
        Streams are sent as signed ``aws-chunked`` bodies, which needs ``length``
        unless it can be determined from the stream.
        """
        fields = Fields.from_headers(dict(headers or {}))
        fields.set_field(Field(name="content-type", values=[content_type]))
        for name, value in (metadata or {}).items():
            fields.set_field(Field(name=f"{_META_PREFIX}{name}", values=[value]))
        response = await self.execute(
            "PUT",
            bucket,
            key,
            body=data,
            fields=fields,
            decoded_content_length=length,
        )
        await response.consume_body_async()
        return _etag(response)

    async def get_object(
        self,
        bucket: str,
        key: str,
        *,
        offset: int = 0,
        length: int | None = None,
        version_id: str | None = None,
    ) -> bytes:
        fields = Fields()
        if offset or length is not None:
            end = "" if length is None else str(offset + length - 1)
            fields.set_field(Field(name="range", values=[f"bytes={offset}-{end}"]))
        query = {"versionId": version_id} if version_id else None
        response = await self.execute("GET", bucket, key, fields=fields, query=query)
        return await response.consume_body_async()

    async def stat_object(
        self, bucket: str, key: str, *, version_id: str | None = None
    ) -> ObjectStat | None:
        """Object metadata, or ``None`` if the object does not exist."""
        query = {"versionId": version_id} if version_id else None
        try:
            response = await self.execute("HEAD", bucket, key, query=query)
        except S3ResponseError as e:
            if e.status == 404:
                return None
            raise

        response_fields = response.fields
        metadata = {
            fld.name.lower()[len(_META_PREFIX) :]: fld.as_string()
            for fld in response_fields
            if fld.name.lower().startswith(_META_PREFIX)
        }
        return ObjectStat(
            bucket=bucket,
            key=key,
            size=int(_header(response_fields, "content-length") or 0),
            etag=_etag(response),
            content_type=_header(response_fields, "content-type"),
            last_modified=_header(response_fields, "last-modified"),
            version_id=_header(response_fields, "x-amz-version-id") or None,
            metadata=metadata,
        )

    async def remove_object(
        self, bucket: str, key: str, *, version_id: str | None = None
    ) -> None:
        query = {"versionId": version_id} if version_id else None
        response = await self.execute("DELETE", bucket, key, query=query)
        await response.consume_body_async()

    async def bucket_exists(self, bucket: str) -> bool:
        try:
            await self.execute("HEAD", bucket)
        except S3ResponseError as e:
            if e.status == 404:
                return False
            raise
        return True

    async def make_bucket(self, bucket: str, *, object_lock: bool = False) -> str:
        """Create a bucket in the configured region and return its location."""
        fields = Fields()
        if object_lock:
            fields.set_field(
                Field(name="x-amz-bucket-object-lock-enabled", values=["true"])
            )
        body = None
        if self._config.region != DEFAULT_REGION:
            body = (
                f'<CreateBucketConfiguration xmlns="{_S3_XMLNS}">'
                f"<LocationConstraint>{self._config.region}</LocationConstraint>"
                "</CreateBucketConfiguration>"
            ).encode()
        response = await self.execute("PUT", bucket, body=body, fields=fields)
        await response.consume_body_async()
        return _header(response.fields, "location") or f"/{bucket}"

    async def presigned_url(
        self,
        method: str,
        bucket: str,
        key: str,
        *,
        expires: int = MAX_EXPIRES,
        version_id: str | None = None,
        response_headers: Mapping[str, str] | None = None,
        request_date: datetime.datetime | None = None,
        extra_query: Mapping[str, str] | None = None,
    ) -> str:
        query: list[tuple[str, str]] = list((extra_query or {}).items())
        if version_id:
            query.append(("versionId", version_id))
        query.extend((response_headers or {}).items())

        request = S3Request(
            destination=self.build_uri(bucket, key, query), method=method
        )
        identity = await self._credentials_resolver.get_identity(
            properties=IdentityProperties(
                region=self._config.region, endpoint=self._config.host
            )
        )
        timestamp = (
            format_timestamp(request_date)
            if request_date is not None
            else current_timestamp()
        )
        return self._presigner.presign(
            properties=SigV4SigningProperties(
                region=self._config.region, service="s3", date=timestamp
            ),
            request=request,
            identity=identity,
            expires=expires,
        )

    async def presigned_get_object(self, args: PresignArgs) -> str:
        return await self._presigned_object("GET", args)

    async def presigned_put_object(self, args: PresignArgs) -> str:
        return await self._presigned_object("PUT", args)

    async def _presigned_object(self, method: str, args: PresignArgs) -> str:
        return await self.presigned_url(
            method,
            args.bucket,
            args.key,
            expires=args.expires,
            version_id=args.version_id,
            response_headers=args.response_headers,
            request_date=args.request_date,
            extra_query=args.extra_query,
        )

    def _prepare_fields(
        self, fields: Fields | Mapping[str, str] | None, body: Any
    ) -> Fields:
        if not isinstance(fields, Fields):
            fields = Fields.from_headers(dict(fields or {}))
        fields.set_field(Field(name="user-agent", values=[self._config.user_agent]))
        if isinstance(body, bytes | bytearray) and "content-length" not in fields:
            fields.set_field(Field(name="content-length", values=[str(len(body))]))
        return fields


def _format_query(query: QueryArg) -> str | None:
    if query is None or isinstance(query, str):
        return query or None
    pairs = query.items() if isinstance(query, Mapping) else query
    return build_query(pairs) or None


def _header(fields: Fields, name: str) -> str:
    fld = fields.get(name)
    return fld.as_string() if fld is not None else ""


def _etag(response: HTTPResponse) -> str:
    return _header(response.fields, "etag").replace('"', "")
