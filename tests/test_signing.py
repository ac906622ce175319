"""
Tests for the HMAC request signer.
"""
import hashlib
import hmac
from datetime import datetime, timedelta, timezone

import pytest

from storyframe.providers.signing import (
    build_canonical_request,
    build_string_to_sign,
    credential_scope,
    derive_signing_key,
    format_timestamp,
    sign_request,
)

HOST = "visual.volcengineapi.com"
ACTION = "CVSync2AsyncSubmitTask"
VERSION = "2022-08-31"
TS = "20240131T080910Z"


def _sign(body=b"", timestamp=TS, secret="secret-key"):
    return sign_request("POST", HOST, "/", ACTION, VERSION, "access-key", secret, body, timestamp=timestamp)


class TestTimestamp:
    """Tests for timestamp formatting."""

    def test_compact_utc_format(self):
        moment = datetime(2024, 1, 31, 8, 9, 10, 999999, tzinfo=timezone.utc)
        assert format_timestamp(moment) == TS

    def test_converts_other_timezones_to_utc(self):
        moment = datetime(2024, 1, 31, 16, 9, 10, tzinfo=timezone(timedelta(hours=8)))
        assert format_timestamp(moment) == TS

    def test_x_date_matches_signed_timestamp(self):
        headers = _sign(timestamp=datetime(2024, 1, 31, 8, 9, 10, tzinfo=timezone.utc))
        assert headers["X-Date"] == TS
        assert "Credential=access-key/20240131/cn-north-1/cv/request" in headers["Authorization"]


class TestCanonicalRequest:
    """Tests for canonical request construction."""

    def test_layout(self):
        canonical = build_canonical_request("post", HOST, "/", ACTION, VERSION, TS, b"{}")
        lines = canonical.split("\n")

        assert lines[0] == "POST"
        assert lines[1] == "/"
        assert lines[2] == f"Action={ACTION}&Version={VERSION}"
        assert lines[3] == f"host:{HOST}"
        assert lines[4] == f"x-date:{TS}"
        assert lines[5] == ""
        assert lines[6] == "host;x-date"
        assert lines[7] == hashlib.sha256(b"{}").hexdigest()

    def test_empty_body_hashes_empty_bytes(self):
        canonical = build_canonical_request("POST", HOST, "/", ACTION, VERSION, TS, b"")
        assert canonical.endswith(hashlib.sha256(b"").hexdigest())
        assert not canonical.endswith(hashlib.sha256(b"{}").hexdigest())

    def test_str_body_is_utf8_encoded(self):
        body = '{"prompt":"美好时光"}'
        as_str = build_canonical_request("POST", HOST, "/", ACTION, VERSION, TS, body)
        as_bytes = build_canonical_request("POST", HOST, "/", ACTION, VERSION, TS, body.encode("utf-8"))
        assert as_str == as_bytes


class TestSignature:
    """Tests for the full signing chain."""

    def test_deterministic_for_fixed_timestamp(self):
        assert _sign(b'{"a":1}') == _sign(b'{"a":1}')

    @pytest.mark.parametrize("field, value", [
        ("method", "PUT"),
        ("host", "open.volcengineapi.com"),
        ("path", "/v2"),
        ("action", "CVSync2AsyncGetResult"),
        ("version", "2024-01-01"),
        ("secret", "other-secret"),
        ("body", b'{"a":2}'),
        ("timestamp", "20240131T080911Z"),
    ])
    def test_signature_changes_with_each_input(self, field, value):
        inputs = {
            "method": "POST", "host": HOST, "path": "/", "action": ACTION, "version": VERSION,
            "secret": "secret-key", "body": b'{"a":1}', "timestamp": TS,
        }

        def signature(args):
            headers = sign_request(
                args["method"], args["host"], args["path"], args["action"], args["version"],
                "access-key", args["secret"], args["body"], timestamp=args["timestamp"],
            )
            return headers["Authorization"].rsplit("Signature=", 1)[1]

        assert signature({**inputs, field: value}) != signature(inputs)

    def test_signature_matches_independent_computation(self):
        body = b'{"req_key":"jimeng_vgfm_i2v_l20"}'
        headers = _sign(body)

        canonical = "\n".join([
            "POST", "/", f"Action={ACTION}&Version={VERSION}",
            f"host:{HOST}\nx-date:{TS}\n", "host;x-date", hashlib.sha256(body).hexdigest(),
        ])
        scope = "20240131/cn-north-1/cv/request"
        string_to_sign = "\n".join(["HMAC-SHA256", TS, scope, hashlib.sha256(canonical.encode()).hexdigest()])

        key = b"secret-key"
        for part in ("20240131", "cn-north-1", "cv", "request"):
            key = hmac.new(key, part.encode(), hashlib.sha256).digest()
        expected = hmac.new(key, string_to_sign.encode(), hashlib.sha256).hexdigest()

        assert headers["Authorization"] == (
            f"HMAC-SHA256 Credential=access-key/{scope}, SignedHeaders=host;x-date, Signature={expected}"
        )

    def test_helpers_compose(self):
        canonical = build_canonical_request("POST", HOST, "/", ACTION, VERSION, TS, b"")
        scope = credential_scope(TS, "cn-north-1", "cv")
        string_to_sign = build_string_to_sign(TS, scope, canonical)
        key = derive_signing_key("secret-key", TS[:8], "cn-north-1", "cv")
        signature = hmac.new(key, string_to_sign.encode(), hashlib.sha256).hexdigest()

        assert _sign(b"")["Authorization"].endswith(f"Signature={signature}")

    @pytest.mark.parametrize("header", ["Authorization", "Content-Type", "Host", "X-Date"])
    def test_headers_present(self, header):
        headers = _sign()
        assert headers[header]
        assert headers["Host"] == HOST
        assert headers["Content-Type"] == "application/json"
