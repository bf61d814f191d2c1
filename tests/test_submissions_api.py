def _create(client, payload, *, tenant_id: str = "tenant_a"):
    resp = client.post("/api/v1/submissions", json=payload, headers={"x-tenant-id": tenant_id})
    assert resp.status_code == 201, resp.text
    return resp.json()["data"]


def test_complete_submission_is_auto_validated(client, submission_payload):
    data = _create(client, submission_payload())

    assert data["state"] == "VALIDATED"
    assert data["completeness_score"] == 1.0
    assert data["submission_id"].startswith("sub_")
    assert data["rule_set_version"] == 1
    assert len(data["rule_results"]) == 5

    events = client.get(
        f"/api/v1/submissions/{data['submission_id']}/events",
        headers={"x-tenant-id": "tenant_a"},
    ).json()["data"]["items"]
    assert [(x["from_state"], x["to_state"]) for x in events] == [("DRAFT", "VALIDATED")]


def test_incomplete_submission_stays_draft_with_failures(client, submission_payload):
    data = _create(client, submission_payload(building_height=45, has_structural_calcs=False))

    assert data["state"] == "DRAFT"
    assert data["completeness_score"] == 0.6
    failed = {x["rule_key"] for x in data["rule_results"] if not x["passed"]}
    assert failed == {"BUILDING_HEIGHT_LIMIT", "STRUCTURAL_CALCS_INCLUDED"}


def test_manual_validation_of_incomplete_submission_is_rejected(client, submission_payload):
    data = _create(client, submission_payload(fire_egress_count=1))

    resp = client.post(
        f"/api/v1/submissions/{data['submission_id']}/transition",
        json={"target_state": "VALIDATED"},
        headers={"x-tenant-id": "tenant_a"},
    )
    assert resp.status_code == 409
    error = resp.json()["error"]
    assert error["code"] == "WF_TRANSITION_INCOMPLETE_SUBMISSION"
    assert "0.80" in error["message"]


def test_illegal_graph_transition_returns_409(client, submission_payload):
    data = _create(client, submission_payload())

    resp = client.post(
        f"/api/v1/submissions/{data['submission_id']}/transition",
        json={"target_state": "APPROVED"},
        headers={"x-tenant-id": "tenant_a"},
    )
    assert resp.status_code == 409
    assert resp.json()["error"]["code"] == "WF_STATE_TRANSITION_INVALID"


def test_unknown_target_state_is_a_validation_error(client, submission_payload):
    data = _create(client, submission_payload())
    resp = client.post(
        f"/api/v1/submissions/{data['submission_id']}/transition",
        json={"target_state": "ARCHIVED"},
        headers={"x-tenant-id": "tenant_a"},
    )
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "REQ_VALIDATION_FAILED"


def test_edit_in_draft_rescores_without_advancing(client, submission_payload):
    data = _create(client, submission_payload(building_height=45))
    assert data["completeness_score"] == 0.8

    resp = client.patch(
        f"/api/v1/submissions/{data['submission_id']}",
        json={"building_height": 38},
        headers={"x-tenant-id": "tenant_a"},
    )
    assert resp.status_code == 200
    updated = resp.json()["data"]
    assert updated["completeness_score"] == 1.0
    assert updated["state"] == "DRAFT"
    assert updated["project_name"] == "Harbor View Duplex"
    assert updated["submission_details"]["setback_front"] == 25
    assert all(x["passed"] for x in updated["rule_results"])

    validated = client.post(
        f"/api/v1/submissions/{data['submission_id']}/transition",
        json={"target_state": "VALIDATED"},
        headers={"x-tenant-id": "tenant_a"},
    )
    assert validated.status_code == 200
    assert validated.json()["data"]["state"] == "VALIDATED"


def test_edit_outside_draft_is_rejected(client, submission_payload):
    data = _create(client, submission_payload())

    resp = client.patch(
        f"/api/v1/submissions/{data['submission_id']}",
        json={"building_height": 38},
        headers={"x-tenant-id": "tenant_a"},
    )
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "SUBMISSION_INVALID_STATE"


def test_unknown_jurisdiction_is_rejected(client, submission_payload):
    resp = client.post(
        "/api/v1/submissions",
        json=submission_payload(jurisdiction_code="ZZZ"),
        headers={"x-tenant-id": "tenant_a"},
    )
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "RULES_JURISDICTION_INVALID"


def test_missing_required_detail_is_a_validation_error(client, submission_payload):
    payload = submission_payload()
    payload.pop("fire_egress_count")
    resp = client.post("/api/v1/submissions", json=payload, headers={"x-tenant-id": "tenant_a"})

    assert resp.status_code == 400
    error = resp.json()["error"]
    assert error["code"] == "REQ_VALIDATION_FAILED"
    assert "fire_egress_count" in error["details"]["fields"]


def test_get_returns_rule_results_and_empty_packet(client, submission_payload):
    data = _create(client, submission_payload())

    resp = client.get(f"/api/v1/submissions/{data['submission_id']}", headers={"x-tenant-id": "tenant_a"})
    assert resp.status_code == 200
    body = resp.json()["data"]
    assert body["packet"] is None
    assert [x["rule_key"] for x in body["rule_results"]] == [x["rule_key"] for x in data["rule_results"]]


def test_list_is_tenant_scoped_and_newest_first(client, submission_payload):
    first = _create(client, submission_payload(project_name="First"))
    second = _create(client, submission_payload(project_name="Second"))
    _create(client, submission_payload(project_name="Other tenant"), tenant_id="tenant_b")

    resp = client.get("/api/v1/submissions", headers={"x-tenant-id": "tenant_a"})
    assert resp.status_code == 200
    items = resp.json()["data"]["items"]
    assert [x["submission_id"] for x in items] == [second["submission_id"], first["submission_id"]]


def test_atx_submission_uses_jurisdiction_specific_rules(client, submission_payload):
    data = _create(
        client,
        submission_payload(
            jurisdiction_code="ATX",
            building_height=30,
            lot_area=10000,
            impervious_area=5000,
        ),
    )
    assert data["state"] == "DRAFT"
    assert data["completeness_score"] == 0.8
    cover = next(x for x in data["rule_results"] if x["rule_key"] == "ATX_IMPERVIOUS_COVER")
    assert cover["passed"] is False


def test_metrics_expose_counters(client, submission_payload):
    _create(client, submission_payload())
    counters = client.get("/api/v1/metrics").json()["data"]["counters"]
    assert counters["permits_submissions_created_total{jurisdiction=JCY}"] == 1
    assert counters["permits_state_transitions_total{from_state=DRAFT,to_state=VALIDATED}"] == 1
    assert counters["permits_rules_skipped_total{rule_key=PLUMBING_FIXTURE_COUNT_SUBMITTED}"] == 1
