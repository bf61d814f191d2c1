def test_health_endpoints_return_ok_envelope(client):
    for path in ("/healthz", "/api/v1/health"):
        resp = client.get(path)
        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert body["data"] == {"status": "ok"}
        assert body["meta"]["trace_id"] == resp.headers["x-trace-id"]


def test_incoming_trace_and_request_ids_are_echoed(client):
    resp = client.get("/healthz", headers={"x-trace-id": "trace_permit_1", "x-request-id": "req_permit_1"})
    assert resp.headers["x-trace-id"] == "trace_permit_1"
    assert resp.headers["x-request-id"] == "req_permit_1"
    assert resp.json()["meta"]["trace_id"] == "trace_permit_1"


def test_unknown_route_uses_error_envelope(client):
    resp = client.get("/route-not-exists")
    assert resp.status_code == 404
    assert resp.headers.get("x-trace-id")
    assert resp.headers.get("x-request-id")

    body = resp.json()
    assert body["success"] is False
    assert body["error"]["code"] == "REQ_NOT_FOUND"
    assert set(body["error"].keys()) >= {"code", "message", "retryable", "class"}
    assert body["meta"]["trace_id"]


def test_metrics_endpoint_exposes_counters(client, submission_payload):
    client.post("/api/v1/submissions", json=submission_payload(), headers={"x-tenant-id": "tenant_a"})
    resp = client.get("/api/v1/metrics", headers={"x-tenant-id": "tenant_a"})
    assert resp.status_code == 200
    assert resp.json()["success"] is True
    assert isinstance(resp.json()["data"], dict)
