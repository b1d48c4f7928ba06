# tests/test_signer.py
from datetime import datetime, timezone

import pytest
import yaml

from cwl_loader.opensearch.signer import (
    Credentials,
    SigningError,
    amz_timestamp,
    build_signed_request,
    canonical_request,
    derive_signing_key,
    parse_endpoint,
    sign,
)
from tests.helpers import ENDPOINT, FIXTURES_DIR


def load_vectors() -> dict:
    with open(FIXTURES_DIR / "sigv4_vectors.yml", "r") as f:
        return yaml.safe_load(f)


VECTORS = load_vectors()
SUITE = VECTORS["suite"]
SUITE_NOW = datetime(2015, 8, 30, 12, 36, 0, tzinfo=timezone.utc)
NOW = datetime(2023, 5, 1, 8, 30, 15, tzinfo=timezone.utc)
CREDENTIALS = Credentials("AKIDEXAMPLE", "wJalrXUtnFEMI/K7MDENG+bPxRfiCYEXAMPLEKEY", "session-token")


def test_derive_signing_key_matches_aws_documentation():
    v = VECTORS["signing_key"]
    key = derive_signing_key(v["secret"], v["date"], v["region"], v["service"])
    assert key.hex() == v["expected"]


@pytest.mark.parametrize("case_name", sorted(SUITE["cases"]))
def test_sign_matches_aws_test_suite(case_name):
    case = SUITE["cases"][case_name]
    credentials = Credentials(**SUITE["credentials"])
    headers = {"Host": SUITE["host"], "X-Amz-Date": SUITE["amz_date"]}

    signed = sign(credentials, case["method"], case["path"], headers, case["body"],
                  SUITE_NOW, SUITE["region"], SUITE["service"])

    assert signed["Authorization"] == case["authorization"]


def test_canonical_request_layout():
    headers = {"X-Amz-Date": "20150830T123600Z", "Host": "example.amazonaws.com"}

    canonical = canonical_request("POST", "/", headers, "")

    assert canonical == "\n".join([
        "POST",
        "/",
        "",
        "host:example.amazonaws.com",
        "x-amz-date:20150830T123600Z",
        "",
        "host;x-amz-date",
        "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855",
    ])


def test_amz_timestamp_is_compact_utc():
    assert amz_timestamp(NOW) == ("20230501T083015Z", "20230501")


def test_parse_endpoint():
    assert parse_endpoint(ENDPOINT) == ("us-east-1", "es")


@pytest.mark.parametrize("host", ["", "localhost:9200", "search-logs.example.com"])
def test_parse_endpoint_rejects_non_aws_hosts(host):
    with pytest.raises(SigningError):
        parse_endpoint(host)


def test_signing_is_deterministic():
    body = '{"index":{"_index":"cwl-prod-acme-stream1-2023.05.01"}}\n{"a":1}\n'

    first = build_signed_request(CREDENTIALS, ENDPOINT, body, NOW)
    second = build_signed_request(CREDENTIALS, ENDPOINT, body, NOW)

    assert first.headers["Authorization"] == second.headers["Authorization"]


def test_changing_one_body_byte_changes_the_signature():
    body = '{"index":{"_index":"cwl-prod-acme-stream1-2023.05.01"}}\n{"a":1}\n'
    altered = body.replace('"a":1', '"a":2')

    original = build_signed_request(CREDENTIALS, ENDPOINT, body, NOW)
    changed = build_signed_request(CREDENTIALS, ENDPOINT, altered, NOW)

    assert original.headers["Authorization"] != changed.headers["Authorization"]


def test_signed_request_carries_required_headers():
    body = '{"message":"café"}\n'

    request = build_signed_request(CREDENTIALS, ENDPOINT, body, NOW)

    assert request.method == "POST"
    assert request.path == "/_bulk"
    assert request.body == body.encode("utf-8")
    assert request.headers["Content-Type"] == "application/json"
    assert request.headers["Host"] == ENDPOINT
    # Byte length, not character length
    assert request.headers["Content-Length"] == str(len(body.encode("utf-8")))
    assert request.headers["X-Amz-Date"] == "20230501T083015Z"
    assert request.headers["X-Amz-Security-Token"] == "session-token"

    authorization = request.headers["Authorization"]
    assert authorization.startswith(
        "AWS4-HMAC-SHA256 Credential=AKIDEXAMPLE/20230501/us-east-1/es/aws4_request, "
    )
    assert "SignedHeaders=content-length;content-type;host;x-amz-date;x-amz-security-token, " in authorization
    assert len(authorization.rsplit("Signature=", 1)[1]) == 64


def test_session_token_header_is_omitted_without_a_token():
    credentials = Credentials("AKIDEXAMPLE", "secret")

    request = build_signed_request(credentials, ENDPOINT, "{}\n", NOW)

    assert "X-Amz-Security-Token" not in request.headers
    assert "SignedHeaders=content-length;content-type;host;x-amz-date, " in request.headers["Authorization"]


def test_sign_does_not_modify_input_headers():
    headers = {"Host": ENDPOINT, "X-Amz-Date": "20230501T083015Z"}

    sign(CREDENTIALS, "POST", "/_bulk", headers, "", NOW, "us-east-1", "es")

    assert headers == {"Host": ENDPOINT, "X-Amz-Date": "20230501T083015Z"}
