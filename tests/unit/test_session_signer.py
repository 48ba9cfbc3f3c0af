"""Unit tests for shared.session_signer."""

from __future__ import annotations

import base64
import json

import pytest

from shared.session_signer import AuthFlowSession, SessionSigner

SECRET = "unit-test-session-secret"
NOW = 1_700_000_000


@pytest.fixture
def signer():
    return SessionSigner(SECRET, ttl_seconds=600)


def _flip(ch: str) -> str:
    return "A" if ch != "A" else "B"


class TestSignVerify:
    @pytest.mark.parametrize(
        "state",
        [
            AuthFlowSession(request_uri="urn:ietf:params:oauth:request_uri:abc"),
            AuthFlowSession(request_uri="urn:x", client_id="https://app.example/cm.json"),
            AuthFlowSession(request_uri="urn:x", client_id="c", email="alice@example.com"),
            AuthFlowSession(request_uri="", client_id="", email="ünïcode@example.com"),
        ],
        ids=["request_uri_only", "with_client", "with_email", "unicode_email"],
    )
    def test_verify_returns_signed_state(self, signer, state):
        token = signer.sign(state, now=NOW)
        assert signer.verify(token, now=NOW + 1) == state

    def test_token_has_two_parts(self, signer):
        token = signer.sign(AuthFlowSession(request_uri="urn:x"), now=NOW)
        encoded, mac = token.rsplit(".", 1)
        assert "=" not in encoded
        assert len(mac) == 64

    def test_payload_embeds_expiry(self, signer):
        token = signer.sign(AuthFlowSession(request_uri="urn:x"), now=NOW)
        encoded = token.rsplit(".", 1)[0]
        padded = encoded + "=" * (-len(encoded) % 4)
        payload = json.loads(base64.urlsafe_b64decode(padded))
        assert payload["exp"] == NOW + 600
        assert payload["email"] is None

    def test_expired_token_rejected(self, signer):
        token = signer.sign(AuthFlowSession(request_uri="urn:x"), now=NOW)
        assert signer.verify(token, now=NOW + 600) is None
        assert signer.verify(token, now=NOW + 599) is not None

    def test_wrong_secret_rejected(self, signer):
        token = signer.sign(AuthFlowSession(request_uri="urn:x"), now=NOW)
        assert SessionSigner("another-secret").verify(token, now=NOW) is None

    def test_empty_secret_not_allowed(self):
        with pytest.raises(ValueError):
            SessionSigner("")


class TestTampering:
    def test_every_single_character_flip_is_rejected(self, signer):
        token = signer.sign(
            AuthFlowSession(request_uri="urn:x", client_id="c", email="a@b.c"), now=NOW
        )
        for i, ch in enumerate(token):
            if ch == ".":
                continue
            tampered = token[:i] + _flip(ch) + token[i + 1 :]
            assert signer.verify(tampered, now=NOW) is None, f"flip at {i} accepted"

    def test_swapped_payload_rejected(self, signer):
        a = signer.sign(AuthFlowSession(request_uri="urn:a", email="a@x.org"), now=NOW)
        b = signer.sign(AuthFlowSession(request_uri="urn:b", email="b@x.org"), now=NOW)
        forged = a.rsplit(".", 1)[0] + "." + b.rsplit(".", 1)[1]
        assert signer.verify(forged, now=NOW) is None

    def test_mac_length_mismatch_rejected(self, signer):
        token = signer.sign(AuthFlowSession(request_uri="urn:x"), now=NOW)
        assert signer.verify(token[:-2], now=NOW) is None
        assert signer.verify(token + "00", now=NOW) is None

    @pytest.mark.parametrize(
        "token",
        ["", None, "no-dot-at-all", ".", "abc.", ".abc", "é.é"],
        ids=["empty", "none", "no_dot", "dot_only", "no_mac", "no_payload", "non_ascii"],
    )
    def test_malformed_tokens_rejected(self, signer, token):
        assert signer.verify(token, now=NOW) is None

    def test_validly_signed_wrong_shape_rejected(self, signer):
        def forge(payload) -> str:
            raw = json.dumps(payload).encode()
            encoded = base64.urlsafe_b64encode(raw).rstrip(b"=").decode()
            return f"{encoded}.{signer._mac(encoded)}"

        assert signer.verify(forge(["not", "a", "dict"]), now=NOW) is None
        assert signer.verify(forge({"client_id": "c", "exp": NOW + 10}), now=NOW) is None
        assert (
            signer.verify(
                forge({"request_uri": "u", "client_id": "c", "exp": True}), now=NOW
            )
            is None
        )
        assert (
            signer.verify(
                forge({"request_uri": "u", "client_id": "c", "email": 5, "exp": NOW + 10}),
                now=NOW,
            )
            is None
        )
        assert signer.verify(
            forge({"request_uri": "u", "client_id": "c", "exp": NOW + 10}), now=NOW
        ) == AuthFlowSession(request_uri="u", client_id="c")


class TestAuthFlowSession:
    def test_with_email_keeps_flow_fields(self):
        state = AuthFlowSession(request_uri="urn:x", client_id="c")
        updated = state.with_email("alice@example.com")
        assert updated.request_uri == "urn:x"
        assert updated.client_id == "c"
        assert updated.email == "alice@example.com"
        assert state.email is None
