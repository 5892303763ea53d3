def test_free_key_payload(client, test_settings):
    resp = client.get("/free-key")
    assert resp.status_code == 200
    body = resp.json()
    assert body["apiKey"] == test_settings.FREE_MODE_API_KEY
    assert body["plan"] == "free"
    assert body["limits"] == {
        "requestsPerWindow": 10,
        "windowSeconds": 3600,
        "availableCapabilities": ["compliance", "formulation", "science"],
    }
    assert body["usage"] == {"header": "X-API-Key", "value": test_settings.FREE_MODE_API_KEY}


def test_free_key_aliases(client):
    assert client.get("/api/free-key").status_code == 200
    assert client.post("/api/free-key").status_code == 200


def test_issued_free_key_is_accepted(client):
    key = client.get("/free-key").json()["apiKey"]
    resp = client.post("/chat", json={"message": "terpene question"}, headers={"X-API-Key": key})
    assert resp.status_code == 200
    assert resp.json()["capability"] == "science"


def test_free_key_unconfigured(make_client):
    client = make_client(FREE_MODE_API_KEY=None)
    resp = client.get("/free-key")
    assert resp.status_code == 503
    assert resp.json()["code"] == "free_mode_unconfigured"


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "ok"
    assert body["service"] == "capability-gateway"
    assert body["plans"] == ["free", "standard", "enterprise", "admin"]
    assert body["capabilities"][0] == "compliance"
    assert "FREE_MODE_API_KEY" not in resp.text


def test_healthz_alias(client):
    resp = client.get("/healthz")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"
