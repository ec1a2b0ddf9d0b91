# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0
import pytest
from s3_signers import URI, Field, Fields
from s3_signers.canonical import (
    canonical_headers,
    canonical_query,
    canonical_request,
    canonical_request_hash,
    canonical_uri,
    signable_headers,
)
from s3_signers.exceptions import SigningValueError
from s3_signers.interfaces.http import FieldPosition
from s3_signers.payload import EMPTY_SHA256_HASH
from s3_signers.utils import sha256_hex


@pytest.mark.parametrize(
    "path,expected",
    [
        (None, "/"),
        ("", "/"),
        ("test.txt", "/test.txt"),
        ("/test$file.text", "/test%24file.text"),
        ("/bucket/a b+c", "/bucket/a%20b%2Bc"),
        ("/bucket/unreserved-._~", "/bucket/unreserved-._~"),
        ("/bucket/café", "/bucket/caf%C3%A9"),
        # Object keys are literal: no dot segment removal, no slash collapsing.
        ("/bucket/a//b/../c", "/bucket/a//b/../c"),
    ],
)
def test_canonical_uri(path: str | None, expected: str) -> None:
    assert canonical_uri(path) == expected


@pytest.mark.parametrize(
    "query,expected",
    [
        (None, ""),
        ("", ""),
        ("b=2&a=1", "a=1&b=2"),
        ("uploads", "uploads="),
        ("prefix=a b", "prefix=a%20b"),
        ("prefix=a%20b", "prefix=a%20b"),
        ("key=a/b", "key=a%2Fb"),
        ("a=1&&b=2", "a=1&b=2"),
        ("k=v=w", "k=v%3Dw"),
        ("prefix=a%2fb", "prefix=a%2Fb"),
        ("note=100%2541", "note=100%2541"),
        ("a%20b=c+d", "a%20b=c%2Bd"),
    ],
)
def test_canonical_query_string(query: str | None, expected: str) -> None:
    assert canonical_query(query) == expected


def test_canonical_query_sort_is_stable_for_repeated_keys() -> None:
    pairs = [("tag", "2"), ("a", "x"), ("tag", "1")]
    assert canonical_query(pairs) == "a=x&tag=2&tag=1"


def test_canonical_query_sorts_by_encoded_key() -> None:
    # "%" (0x25) sorts before "A" (0x41) once the key is encoded.
    pairs = [("A", "1"), ("!", "2")]
    assert canonical_query(pairs) == "%21=2&A=1"


def test_canonical_query_encodes_only_once() -> None:
    encoded = canonical_query([("X-Amz-Credential", "AKID/20130524/us-east-1")])
    assert encoded == "X-Amz-Credential=AKID%2F20130524%2Fus-east-1"
    assert canonical_query(encoded) == encoded


def test_canonical_query_pairs_are_raw_values() -> None:
    assert canonical_query([("note", "100%41")]) == "note=100%2541"
    assert canonical_query([("prefix", "a%2fb")]) == "prefix=a%252fb"


def test_wire_query_matches_raw_pairs() -> None:
    uri = URI.from_url("https://h/b/k?prefix=a%2fb&note=100%2541")
    assert canonical_query(uri.query) == canonical_query(
        [("prefix", "a/b"), ("note", "100%41")]
    )


def test_only_user_agent_and_authorization_are_excluded() -> None:
    headers = {
        "Expect": "100-continue",
        "Connection": "keep-alive",
        "X-Amzn-Trace-Id": "Root=1",
        "User-Agent": "s3-signers/0.1.0",
        "Authorization": "AWS4-HMAC-SHA256 ...",
    }
    assert list(signable_headers(headers)) == [
        "connection",
        "expect",
        "x-amzn-trace-id",
    ]


def test_signable_headers_normalizes() -> None:
    headers = {
        "Host": "example.com",
        "X-Amz-Meta-Note": "  several   spaces\there  ",
        "User-Agent": "s3-signers/0.1.0",
        "Authorization": "AWS4-HMAC-SHA256 ...",
    }
    assert signable_headers(headers) == {
        "host": "example.com",
        "x-amz-meta-note": "several spaces here",
    }


def test_signable_headers_from_fields_skips_trailers() -> None:
    fields = Fields(
        [
            Field(name="Host", values=["example.com"]),
            Field(name="X-Amz-Meta-List", values=["a", "b"]),
            Field(
                name="x-amz-checksum-crc32",
                values=["AAAAAA=="],
                kind=FieldPosition.TRAILER,
            ),
        ]
    )
    assert signable_headers(fields) == {"host": "example.com", "x-amz-meta-list": "a,b"}


def test_signable_headers_rejects_duplicate_names() -> None:
    with pytest.raises(SigningValueError):
        signable_headers({"Host": "a.example.com", "host": "b.example.com"})


@pytest.mark.parametrize(
    "value", ["line\r\nbreak", "line\nbreak", "nul\x00", "non-ascii é"]
)
def test_signable_headers_rejects_unsignable_values(value: str) -> None:
    with pytest.raises(SigningValueError):
        signable_headers({"x-amz-meta-bad": value})


def test_canonical_headers_block_and_names() -> None:
    block, names = canonical_headers({"X-Amz-Date": "20130524T000000Z", "Host": "h"})
    assert block == "host:h\nx-amz-date:20130524T000000Z\n"
    assert names == ["host", "x-amz-date"]


def test_canonical_request_get_object_example() -> None:
    request, signed_headers = canonical_request(
        method="get",
        path="/test.txt",
        query=None,
        headers={
            "Host": "examplebucket.s3.amazonaws.com",
            "Range": "bytes=0-9",
            "x-amz-content-sha256": EMPTY_SHA256_HASH,
            "x-amz-date": "20130524T000000Z",
        },
        payload_hash=EMPTY_SHA256_HASH,
    )
    assert request == (
        "GET\n"
        "/test.txt\n"
        "\n"
        "host:examplebucket.s3.amazonaws.com\n"
        "range:bytes=0-9\n"
        f"x-amz-content-sha256:{EMPTY_SHA256_HASH}\n"
        "x-amz-date:20130524T000000Z\n"
        "\n"
        "host;range;x-amz-content-sha256;x-amz-date\n"
        f"{EMPTY_SHA256_HASH}"
    )
    assert signed_headers == "host;range;x-amz-content-sha256;x-amz-date"


def test_canonical_request_hash_is_deterministic() -> None:
    kwargs = dict(
        method="PUT",
        path="/bucket/key",
        query=[("partNumber", "1"), ("uploadId", "abc")],
        headers={"host": "s3.amazonaws.com", "x-amz-date": "20130524T000000Z"},
        payload_hash=EMPTY_SHA256_HASH,
    )
    first = canonical_request_hash(**kwargs)
    second = canonical_request_hash(**kwargs)
    assert first == second
    request, _ = canonical_request(**kwargs)
    assert first[0] == sha256_hex(request)
