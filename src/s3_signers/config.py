# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0
import os
import platform
import re
from dataclasses import dataclass, field, replace
from typing import Any, Self

from .chunked import DEFAULT_CHUNK_SIZE, validate_chunk_size
from .exceptions import SigningValueError
from .interfaces.http import HTTPClient
from .interfaces.identity import CredentialsResolver
from .payload import PayloadSigningMode

DEFAULT_REGION = "us-east-1"

_ENDPOINT = re.compile(
    r"^(?:(?P<scheme>https?)://)?(?P<host>[A-Za-z0-9_\-.]+)(?::(?P<port>\d+))?$"
)

ENDPOINT_ENV_VARS = ("S3_ENDPOINT_URL", "AWS_ENDPOINT_URL")
REGION_ENV_VAR = "AWS_REGION"


def default_user_agent() -> str:
    from . import __version__

    return (
        f"s3-signers/{__version__} (Python/{platform.python_version()}; "
        f"{platform.system()} {platform.machine()})"
    )


@dataclass(kw_only=True)
class S3ClientConfig:
    """Configuration of an :class:`~s3_signers.client.S3Client`.

    ``endpoint`` is ``[http(s)://]host[:port]``. An explicit scheme decides
    ``secure``, otherwise ``secure`` decides the scheme.
    """

    endpoint: str
    region: str = DEFAULT_REGION
    secure: bool = True
    user_agent: str = field(default_factory=default_user_agent)
    chunk_size: int = DEFAULT_CHUNK_SIZE
    payload_signing_mode: PayloadSigningMode = PayloadSigningMode.AUTO
    cache_signing_keys: bool = False
    credentials_resolver: CredentialsResolver | None = field(default=None, repr=False)
    http_client: HTTPClient | None = field(default=None, repr=False)

    host: str = field(init=False)
    port: int | None = field(init=False)

    def __post_init__(self) -> None:
        match = _ENDPOINT.match(self.endpoint or "")
        if match is None:
            raise SigningValueError(
                f"Invalid endpoint {self.endpoint!r}. Expected [http(s)://]host[:port]."
            )
        if match["scheme"] is not None:
            self.secure = match["scheme"] == "https"
        self.host = match["host"]
        self.port = int(match["port"]) if match["port"] is not None else None
        if self.port is not None and not 0 < self.port < 65536:
            raise SigningValueError(f"Invalid port {self.port} in endpoint.")
        if not self.region:
            raise SigningValueError("region cannot be empty.")
        validate_chunk_size(self.chunk_size)

    @property
    def scheme(self) -> str:
        return "https" if self.secure else "http"

    @classmethod
    def from_env(cls, **overrides: Any) -> Self:
        """Build a config from ``S3_ENDPOINT_URL``/``AWS_ENDPOINT_URL`` and
        ``AWS_REGION``. Keyword arguments take precedence over the environment."""
        values: dict[str, Any] = {}
        for name in ENDPOINT_ENV_VARS:
            if endpoint := os.getenv(name):
                values["endpoint"] = endpoint
                break
        if region := os.getenv(REGION_ENV_VAR):
            values["region"] = region
        values.update(overrides)
        if "endpoint" not in values:
            raise SigningValueError(
                "No endpoint configured. Pass endpoint or set "
                f"{' or '.join(ENDPOINT_ENV_VARS)}."
            )
        return cls(**values)

    def with_overrides(self, **overrides: Any) -> Self:
        return replace(self, **overrides)
