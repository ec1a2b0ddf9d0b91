# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0
from copy import deepcopy

import pytest
from s3_signers import URI, Field, Fields, S3Request
from s3_signers.exceptions import SigningValueError
from s3_signers.interfaces.http import FieldPosition


def test_field_single_valued_basics() -> None:
    field = Field(name="fname", values=["fval"], kind=FieldPosition.HEADER)
    assert field.name == "fname"
    assert field.kind == FieldPosition.HEADER
    assert field.values == ["fval"]
    assert field.as_string() == "fval"
    assert field.as_tuples() == [("fname", "fval")]


def test_field_multi_valued_basics() -> None:
    field = Field(name="fname", values=["fval1", "fval2"], kind=FieldPosition.HEADER)
    assert field.as_string() == "fval1,fval2"
    assert field.as_tuples() == [("fname", "fval1"), ("fname", "fval2")]


@pytest.mark.parametrize(
    "values,expected",
    [
        (["val1", "val2"], "val1,val2"),
        (["val1", "with, comma"], 'val1,"with, comma"'),
        (['with "quotes"', "val2"], '"with \\"quotes\\"",val2'),
        ([], ""),
    ],
)
def test_field_as_string(values: list[str], expected: str) -> None:
    assert Field(name="fname", values=values).as_string() == expected


def test_field_add_set_remove() -> None:
    field = Field(name="fname", values=["a", "b", "a"])
    field.add("c")
    assert field.values == ["a", "b", "a", "c"]
    field.remove("a")
    assert field.values == ["b", "c"]
    field.set(["z"])
    assert field.values == ["z"]


def test_fields_are_case_insensitive() -> None:
    fields = Fields([Field(name="Content-Type", values=["text/plain"])])
    assert "content-type" in fields
    assert fields["CONTENT-TYPE"].values == ["text/plain"]
    del fields["Content-type"]
    assert len(fields) == 0


def test_fields_reject_duplicate_initial_names() -> None:
    with pytest.raises(ValueError):
        Fields([Field(name="a", values=["1"]), Field(name="A", values=["2"])])


def test_fields_key_must_match_field_name() -> None:
    fields = Fields()
    with pytest.raises(ValueError):
        fields["a"] = Field(name="b", values=["1"])


def test_fields_from_headers() -> None:
    fields = Fields.from_headers({"Content-Type": "text/plain", "x-amz-meta-a": "b"})
    assert [f.name for f in fields] == ["Content-Type", "x-amz-meta-a"]
    assert Fields.from_headers(None) == Fields()


def test_fields_get_by_type() -> None:
    header = Field(name="a", values=["1"])
    trailer = Field(name="b", values=["2"], kind=FieldPosition.TRAILER)
    fields = Fields([header, trailer])
    assert fields.get_by_type(FieldPosition.TRAILER) == [trailer]


def test_uri_from_url() -> None:
    uri = URI.from_url("http://localhost:9000/my-bucket/a%20b?versionId=1")
    assert uri.scheme == "http"
    assert uri.host == "localhost"
    assert uri.port == 9000
    assert uri.path == "/my-bucket/a b"
    assert uri.query == "versionId=1"
    assert uri.build() == "http://localhost:9000/my-bucket/a%20b?versionId=1"


@pytest.mark.parametrize("url", ["localhost:9000", "http:///path", "http://h:99999/"])
def test_uri_from_url_rejects_malformed(url: str) -> None:
    with pytest.raises(SigningValueError):
        URI.from_url(url)


@pytest.mark.parametrize(
    "uri,expected",
    [
        (URI(host="example.com"), "example.com"),
        (URI(host="example.com", port=443), "example.com"),
        (URI(scheme="http", host="example.com", port=80), "example.com"),
        (URI(scheme="http", host="example.com", port=443), "example.com:443"),
        (URI(host="localhost", port=9000), "localhost:9000"),
        (URI(host="::1", port=9000), "[::1]:9000"),
        (URI(host="[::1]"), "[::1]"),
    ],
)
def test_uri_host_header(uri: URI, expected: str) -> None:
    assert uri.host_header == expected


def test_uri_netloc_includes_userinfo() -> None:
    uri = URI(host="example.com", username="user", password="pass", port=8443)
    assert uri.netloc == "user:pass@example.com:8443"
    assert URI(host="example.com", password="pass").netloc == "example.com"


def test_uri_encoded_path() -> None:
    assert URI(host="h").encoded_path == "/"
    assert URI(host="h", path="/b/test$file.text").encoded_path == (
        "/b/test%24file.text"
    )
    assert URI(host="h", path="/b/a b+c").encoded_path == "/b/a%20b%2Bc"


def test_uri_build() -> None:
    uri = URI(
        host="example.com",
        path="/bucket/key",
        query="a=1",
        fragment="frag",
    )
    assert uri.build() == "https://example.com/bucket/key?a=1#frag"


def test_uri_with_query_returns_new_uri() -> None:
    uri = URI(host="example.com", path="/k")
    updated = uri.with_query("x=1")
    assert uri.query is None
    assert updated.query == "x=1"
    assert updated.path == "/k"
    assert updated != uri


def test_request_deepcopy_copies_fields_only() -> None:
    body = iter([b"data"])
    request = S3Request(
        destination=URI(host="example.com", path="/k"),
        method="PUT",
        body=body,
        fields=Fields([Field(name="a", values=["1"])]),
    )
    copied = deepcopy(request)
    copied.fields["a"].add("2")

    assert request.fields["a"].values == ["1"]
    assert copied.body is body
    assert copied.destination is request.destination
    assert copied.method == "PUT"
