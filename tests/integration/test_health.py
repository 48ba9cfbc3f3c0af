"""Integration tests for GET /health."""


class TestHealthEndpoint:
    def test_ok(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}

    def test_no_auth_or_session_needed(self, client):
        client.cookies.clear()
        assert client.get("/health").status_code == 200

    def test_carries_security_headers(self, client):
        resp = client.get("/health")
        assert resp.headers["X-Frame-Options"] == "DENY"
        assert resp.headers["X-Content-Type-Options"] == "nosniff"
