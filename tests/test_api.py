from __future__ import annotations

PAPER = {
    "publication_type": "research_paper",
    "title": "Graph neural networks for traffic",
    "publication_date": "2025-05-10",
    "quartile": "Q1",
    "declared_total_authors": 1,
}


def _create(client, **overrides):
    response = client.post("/research/contributions", json={**PAPER, **overrides})
    assert response.status_code == 201, response.get_json()
    return response.get_json()["data"]


def test_requires_login(client) -> None:
    response = client.get("/research/contributions")
    assert response.status_code == 401
    assert response.get_json()["success"] is False


def test_create_and_fetch_contribution(client, login, faculty) -> None:
    login(faculty)
    data = _create(client)
    assert data["status"] == "draft"
    assert data["calculated_incentive_amount"] == 50000
    assert data["version"] == 1

    detail = client.get(f"/research/contributions/{data['id']}").get_json()["data"]
    assert detail["title"] == PAPER["title"]
    assert detail["status_history"] == []

    listing = client.get("/research/contributions").get_json()["data"]
    assert [c["id"] for c in listing] == [data["id"]]


def test_unknown_type_is_validation_error(client, login, faculty) -> None:
    login(faculty)
    response = client.post("/research/contributions", json={**PAPER, "publication_type": "patent"})
    assert response.status_code == 400
    assert "Unknown publication type" in response.get_json()["message"]


def test_outsider_cannot_view(client, login, faculty, make_user) -> None:
    login(faculty)
    data = _create(client)
    login(make_user("faculty"))
    response = client.get(f"/research/contributions/{data['id']}")
    assert response.status_code == 403


def test_missing_contribution_is_404(client, login, faculty) -> None:
    login(faculty)
    assert client.get("/research/contributions/999").status_code == 404


def test_update_with_if_match(client, login, faculty) -> None:
    login(faculty)
    data = _create(client)

    response = client.patch(
        f"/research/contributions/{data['id']}",
        json={"quartile": "Q3"},
        headers={"If-Match": str(data["version"])},
    )
    assert response.status_code == 200
    assert response.get_json()["data"]["calculated_incentive_amount"] == 15000

    stale = client.patch(
        f"/research/contributions/{data['id']}",
        json={"quartile": "Q4"},
        headers={"If-Match": str(data["version"])},
    )
    assert stale.status_code == 409


def test_workflow_over_http(client, login, faculty, reviewer, approver) -> None:
    login(faculty)
    data = _create(client)
    cid = data["id"]

    response = client.post(f"/research/contributions/{cid}/submit")
    body = response.get_json()
    assert response.status_code == 200
    assert body["data"]["status"] == "submitted"
    assert body["data"]["contribution"]["application_number"].startswith("RP-")

    login(reviewer)
    assert client.post(f"/research/contributions/{cid}/start-review").status_code == 200
    response = client.post(
        f"/research/contributions/{cid}/request-changes",
        json={
            "comments": "Please correct the quartile",
            "suggestions": [{"field_name": "quartile", "suggested_value": "Q2"}],
        },
    )
    assert response.status_code == 200
    suggestion_id = response.get_json()["data"]["suggestions"][0]["id"]

    login(faculty)
    response = client.post(f"/research/suggestions/{suggestion_id}/respond", json={"action": "accept"})
    assert response.status_code == 200
    assert response.get_json()["data"]["contribution"]["calculated_incentive_amount"] == 30000
    assert client.post(f"/research/contributions/{cid}/resubmit").status_code == 200

    login(approver)
    response = client.post(f"/research/contributions/{cid}/approve", json={"comments": "OK"})
    assert response.status_code == 200
    assert response.get_json()["data"]["contribution"]["incentive_amount"] == 30000

    again = client.post(f"/research/contributions/{cid}/approve")
    assert again.status_code == 400
    assert again.get_json()["success"] is False

    history = client.get(f"/research/contributions/{cid}/history").get_json()["data"]
    assert [h["to_status"] for h in history] == [
        "submitted",
        "under_review",
        "changes_required",
        "resubmitted",
        "approved",
    ]


def test_reject_requires_reason_over_http(client, login, faculty, approver) -> None:
    login(faculty)
    cid = _create(client)["id"]
    client.post(f"/research/contributions/{cid}/submit")

    login(approver)
    assert client.post(f"/research/contributions/{cid}/reject", json={}).status_code == 400
    response = client.post(f"/research/contributions/{cid}/reject", json={"reason": "Duplicate"})
    assert response.get_json()["data"]["status"] == "rejected"


def test_unknown_action_is_404(client, login, faculty) -> None:
    login(faculty)
    cid = _create(client)["id"]
    assert client.post(f"/research/contributions/{cid}/teleport").status_code == 404


def test_review_queue_requires_permission(client, login, faculty, reviewer) -> None:
    login(faculty)
    cid = _create(client)["id"]
    client.post(f"/research/contributions/{cid}/submit")
    assert client.get("/research/reviews/pending").status_code == 403

    login(reviewer)
    queue = client.get("/research/reviews/pending").get_json()["data"]
    assert [c["id"] for c in queue] == [cid]

    stats = client.get("/research/reviews/statistics").get_json()["data"]
    assert stats["by_status"] == {"submitted": 1}


def test_user_lookup(client, login, faculty, make_user) -> None:
    colleague = make_user("student", uid="STU-42", full_name="Sam Student")
    login(faculty)
    data = client.get("/research/users/lookup?uid=STU-42").get_json()["data"]
    assert data["id"] == colleague.id
    assert data["participant_type"] == "internal_student"
    assert client.get("/research/users/lookup?uid=nobody").status_code == 404


def test_policy_admin_only(client, login, faculty, admin) -> None:
    payload = {
        "policy_name": "Grants 2025",
        "publication_type": "grant",
        "effective_from": "2025-01-01",
        "rules": {"base": {"incentive_amount": 80000, "points": 80}},
    }
    login(faculty)
    assert client.post("/research/policies", json=payload).status_code == 403

    login(admin)
    response = client.post("/research/policies", json=payload)
    assert response.status_code == 201
    policy_id = response.get_json()["data"]["id"]

    clash = client.post("/research/policies", json={**payload, "policy_name": "Dup"})
    assert clash.status_code == 400

    active = client.get("/research/policies/grant/active?date=2025-06-01").get_json()["data"]
    assert active["id"] == policy_id
    assert active["is_default"] is False

    fallback = client.get("/research/policies/grant/active?date=2024-06-01").get_json()["data"]
    assert fallback["is_default"] is True
    assert fallback["rules"]["base"]["incentive_amount"] == 100000


def test_stored_policy_drives_calculation(client, login, faculty, admin) -> None:
    login(admin)
    client.post(
        "/research/policies",
        json={
            "policy_name": "Grants 2025",
            "publication_type": "grant",
            "effective_from": "2025-01-01",
            "rules": {"base": {"incentive_amount": 80000, "points": 80}},
        },
    )

    login(faculty)
    preview = client.post(
        "/research/incentives/preview",
        json={"publication_type": "grant", "publication_date": "2025-02-01", "sanctioned_amount": 1000000},
    ).get_json()["data"]
    assert preview["applicant"] == {"incentive_amount": 80000, "points": 80}


def test_defaults_endpoint(client, login, faculty) -> None:
    login(faculty)
    data = client.get("/research/policies/defaults?publication_type=book").get_json()["data"]
    assert data["book"]["book_types"]["authored"]["incentive_amount"] == 50000
