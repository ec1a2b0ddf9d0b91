# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0
"""S3 Signers provides AWS Signature Version 4 signing for S3-compatible object
storage: header signing, presigned URLs and signed ``aws-chunked`` uploads, plus a
small asynchronous client built on top of them."""

from ._http import URI, Field, Fields, S3Request
from ._identity import S3Credentials
from .chunked import (
    AsyncAWSChunkedBody,
    AWSChunkedBody,
    ChecksumAlgorithm,
    ChunkSigner,
    ChunkSigningContext,
    encoded_content_length,
)
from .client import PresignArgs, S3Client
from .config import S3ClientConfig
from .credentials import (
    ChainedCredentialsResolver,
    EnvironmentCredentialsResolver,
    StaticCredentialsResolver,
)
from .payload import PayloadHash, PayloadSigningMode
from .presign import PresignSigner, presign_v4
from .signers import (
    SigningResult,
    SigV4Signer,
    SigV4SigningProperties,
    sign_v4_authorization,
)

__license__ = "Apache-2.0"
__version__ = "0.1.0"

__all__ = (
    "URI",
    "AWSChunkedBody",
    "AsyncAWSChunkedBody",
    "ChainedCredentialsResolver",
    "ChecksumAlgorithm",
    "ChunkSigner",
    "ChunkSigningContext",
    "EnvironmentCredentialsResolver",
    "Field",
    "Fields",
    "PayloadHash",
    "PayloadSigningMode",
    "PresignArgs",
    "PresignSigner",
    "S3Client",
    "S3ClientConfig",
    "S3Credentials",
    "S3Request",
    "SigV4Signer",
    "SigV4SigningProperties",
    "SigningResult",
    "StaticCredentialsResolver",
    "encoded_content_length",
    "presign_v4",
    "sign_v4_authorization",
)
