"""
Tests for the BRy AR webhook endpoint.
"""


class TestBryArWebhookEndpoint:

    def test_preflight(self, client):
        response = client.options("/webhooks/bry-ar")

        assert response.status_code == 200
        assert response.content == b""
        assert response.headers["access-control-allow-origin"] == "*"

    def test_acknowledges_success(self, client, fake_supabase, fake_email):
        response = client.post("/webhooks/bry-ar", json={"protocol": "ABC123", "status": "approved"})

        assert response.status_code == 200
        assert response.json() == {"code": 200, "status": "success"}
        assert fake_supabase.rows["ABC123"]["status"] == "approved"
        assert len(fake_email.sent) == 1

    def test_unknown_protocol_still_acknowledged(self, client, fake_email):
        response = client.post("/webhooks/bry-ar", json={"protocol": "NOPE", "status": "approved"})

        assert response.status_code == 200
        assert response.json() == {"code": 200, "status": "success"}
        assert fake_email.sent == []

    def test_missing_protocol_acknowledged(self, client, fake_supabase):
        response = client.post("/webhooks/bry-ar", json={"status": "issued"})

        assert response.status_code == 200
        assert response.json() == {"code": 200, "status": "success"}
        assert fake_supabase.updates == []

    def test_database_outage_still_acknowledged(self, client, fake_supabase):
        fake_supabase.fail_reads = True

        response = client.post("/webhooks/bry-ar", json={"protocol": "ABC123", "status": "approved"})

        assert response.status_code == 200

    def test_malformed_json(self, client):
        response = client.post(
            "/webhooks/bry-ar",
            content=b"{not json",
            headers={"Content-Type": "application/json"},
        )

        assert response.status_code == 500
        body = response.json()
        assert body["code"] == 500
        assert body["status"] == "error"
        assert body["message"]

    def test_json_array_rejected(self, client):
        response = client.post("/webhooks/bry-ar", json=[1, 2, 3])
        assert response.status_code == 500

    def test_no_secret_required(self, client):
        """BRy does not sign deliveries; the endpoint is open."""
        response = client.post("/webhooks/bry-ar", json={"protocol": "ABC123", "result": "approved"})
        assert response.status_code == 200

    def test_request_id_echoed(self, client):
        response = client.post(
            "/webhooks/bry-ar",
            json={"protocol": "ABC123", "status": "approved"},
            headers={"X-Request-ID": "req-42"},
        )
        assert response.headers["x-request-id"] == "req-42"

    def test_numeric_pfx_password(self, client, fake_supabase):
        fake_supabase.rows["ABC123"]["status"] = "pending_authentication"

        response = client.post("/webhooks/bry-ar", json={
            "protocol": "ABC123",
            "status": "issued",
            "pfx_data": "UEZY",
            "pfx_password": 123456,
        })

        assert response.status_code == 200
        row = fake_supabase.rows["ABC123"]
        assert row["status"] == "issued"
        assert row["pfx_password"] == "123456"

    def test_numeric_rejection_reason(self, client, fake_supabase):
        response = client.post("/webhooks/bry-ar", json={"protocol": "ABC123", "status": "rejected", "reason": 42})

        assert response.status_code == 200
        assert fake_supabase.rows["ABC123"]["rejection_reason"] == "42"
