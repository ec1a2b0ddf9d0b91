# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0


class S3SignersWarning(UserWarning): ...


class BaseS3SignersException(Exception):
    """Top-level exception to capture signer and client errors."""


class MissingExpectedParameterException(BaseS3SignersException, ValueError):
    """Some operations require specific signing properties to be present."""


class SigningValueError(BaseS3SignersException, ValueError):
    """A request could not be signed because one of its inputs is invalid.

    Raised before any canonicalization output is produced, so a request that
    fails with this error is never partially signed.
    """


class CredentialsError(BaseS3SignersException):
    """Credentials could not be resolved for a request."""


class ChunkSignerStateError(BaseS3SignersException, RuntimeError):
    """A chunk signer was driven from a state that does not allow the operation."""


class S3ResponseError(BaseS3SignersException):
    """The service answered with a non-2xx status."""

    def __init__(self, *, status: int, reason: str | None = None, body: bytes = b""):
        self.status = status
        self.reason = reason
        self.body = body
        message = f"S3 request failed with status {status}"
        if reason:
            message += f": {reason}"
        super().__init__(message)
