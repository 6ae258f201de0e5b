def test_health_ok(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json["ok"] is True


def test_healthz_is_plain_text(client):
    r = client.get("/healthz")
    assert r.status_code == 200
    assert r.data == b"ok"


def test_unknown_route_returns_json_404(client):
    r = client.get("/api/does-not-exist")
    assert r.status_code == 404
    assert r.json["status"] == 404
    assert "error" in r.json


def test_anonymous_api_call_is_rejected(client):
    r = client.get("/api/incidents/community")
    assert r.status_code == 401
    assert r.json["error"] == "Authentication required."


def test_mutation_without_csrf_header_is_rejected(seed, login):
    c = login("rita@a.test")
    c.environ_base.pop("HTTP_X_CSRF_TOKEN")
    r = c.post("/api/posts", json={"title": "Hello", "content": "World"})
    assert r.status_code == 400
    assert "CSRF" in r.json["error"]


def test_csrf_token_in_json_body_is_accepted(seed, login):
    c = login("rita@a.test")
    token = c.environ_base.pop("HTTP_X_CSRF_TOKEN")
    r = c.post("/api/posts", json={"title": "Hello", "content": "World", "csrf_token": token})
    assert r.status_code == 201
