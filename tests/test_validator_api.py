import pytest

from models.application import ApplicationStatus
from models.user import Role
from models.validator_action import ReviewAction, ValidatorAction
from services.errors import Conflict
from tests.conftest import (
    ADMIN_EMAIL,
    ADMIN_PASSWORD,
    complete_registration,
    create_user,
    login_as,
    register_citizen,
    run_concurrently,
)


@pytest.fixture
def citizen(app):
    client = app.test_client()
    application_id = complete_registration(client)
    return client, application_id


@pytest.fixture
def validator(app):
    create_user(app, "validator@example.com", role=Role.VALIDATOR, name="Val Idator")
    client = app.test_client()
    headers = login_as(client, "validator@example.com")
    return client, headers


def _audit_entries(app, application_id):
    with app.app_context():
        return [
            (a.action, a.notes)
            for a in app.extensions["portal"].verification.actions_for(application_id)
        ]


def test_reject_then_reopen_scenario(app, citizen, validator):
    citizen_client, application_id = citizen
    client, headers = validator

    queue = client.get("/validator/queue").get_json()
    assert [a["id"] for a in queue] == [application_id]
    assert queue[0]["status"] == "pending"
    assert queue[0]["userEmail"] == "jane@example.com"

    resp = client.post(
        "/validator/action",
        json={"applicationId": application_id, "action": "reject", "notes": "incomplete ID"},
        headers=headers,
    )
    assert resp.status_code == 200
    assert resp.get_json()["newStatus"] == "rejected"

    user = citizen_client.get("/auth/me").get_json()["user"]
    assert user["verificationStatus"] == "rejected"
    assert user["rejectionReason"] == "incomplete ID"
    assert user["rejectionDate"] is not None

    resp = client.post(f"/validator/application/{application_id}/reopen", headers=headers)
    assert resp.status_code == 200
    assert resp.get_json()["application"]["status"] == "pending"

    user = citizen_client.get("/auth/me").get_json()["user"]
    assert user["verificationStatus"] == "pending"
    assert user["rejectionReason"] is None
    assert user["rejectionDate"] is None

    assert _audit_entries(app, application_id) == [
        (ReviewAction.REJECT, "incomplete ID"),
        (ReviewAction.REOPEN, "Application reopened for re-review"),
    ]

    detail = client.get(f"/validator/application/{application_id}").get_json()
    assert [a["action"] for a in detail["actions"]] == ["reject", "reopen"]


def test_approve_grants_community_access(citizen, validator):
    citizen_client, application_id = citizen
    client, headers = validator
    resp = client.post("/validator/action", json={"applicationId": application_id, "action": "approve"},
                       headers=headers)
    assert resp.status_code == 200
    me = citizen_client.get("/auth/me").get_json()
    assert me["user"]["verificationStatus"] == "approved"
    assert me["communityAccess"] is True


def test_action_on_resolved_application_conflicts(app, citizen, validator):
    _, application_id = citizen
    client, headers = validator
    approve = {"applicationId": application_id, "action": "approve"}
    assert client.post("/validator/action", json=approve, headers=headers).status_code == 200

    second = client.post(
        "/validator/action",
        json={"applicationId": application_id, "action": "reject", "notes": "too late"},
        headers=headers,
    )
    assert second.status_code == 409
    assert second.get_json()["message"] == "Application is not pending"
    assert _audit_entries(app, application_id) == [(ReviewAction.APPROVE, None)]
    with app.app_context():
        application = app.extensions["portal"].verification.get(application_id)
        assert application.status is ApplicationStatus.APPROVED


def test_reopen_pending_conflicts(app, citizen, validator):
    _, application_id = citizen
    client, headers = validator
    resp = client.post(f"/validator/application/{application_id}/reopen", headers=headers)
    assert resp.status_code == 409
    assert resp.get_json()["message"] == "Application is already pending"
    assert _audit_entries(app, application_id) == []


def test_request_info_clears_rejection(app, citizen, validator):
    citizen_client, application_id = citizen
    client, headers = validator
    client.post("/validator/action",
                json={"applicationId": application_id, "action": "reject", "notes": "blurry"},
                headers=headers)
    client.post(f"/validator/application/{application_id}/reopen", headers=headers)
    resp = client.post("/validator/action",
                       json={"applicationId": application_id, "action": "request_info", "notes": "new selfie"},
                       headers=headers)
    assert resp.get_json()["newStatus"] == "needs_info"
    user = citizen_client.get("/auth/me").get_json()["user"]
    assert user["verificationStatus"] == "needs_info"
    assert user["rejectionReason"] is None


def test_unknown_application(validator):
    client, headers = validator
    assert client.get("/validator/application/9999").status_code == 404
    resp = client.post("/validator/action", json={"applicationId": 9999, "action": "approve"}, headers=headers)
    assert resp.status_code == 404
    assert resp.get_json()["message"] == "Application not found"


def test_action_validation(citizen, validator):
    _, application_id = citizen
    client, headers = validator
    for payload in (
        {"applicationId": application_id, "action": "reopen"},
        {"applicationId": application_id, "action": "escalate"},
        {"applicationId": str(application_id), "action": "approve"},
        {"action": "approve"},
    ):
        resp = client.post("/validator/action", json=payload, headers=headers)
        assert resp.status_code == 422, payload


def test_action_requires_csrf(citizen, validator):
    _, application_id = citizen
    client, _ = validator
    resp = client.post("/validator/action", json={"applicationId": application_id, "action": "approve"})
    assert resp.status_code == 403


def test_citizen_is_forbidden(app, citizen):
    citizen_client, _ = citizen
    resp = citizen_client.get("/validator/queue")
    assert resp.status_code == 403
    assert resp.get_json()["message"] == "Validator access required"


def test_anonymous_is_unauthenticated(client):
    assert client.get("/validator/queue").status_code == 401


def test_admin_may_validate(app, citizen):
    _, application_id = citizen
    client = app.test_client()
    headers = login_as(client, ADMIN_EMAIL, ADMIN_PASSWORD)
    resp = client.post("/validator/action", json={"applicationId": application_id, "action": "approve"},
                       headers=headers)
    assert resp.status_code == 200


def test_queue_is_oldest_first_and_history_filters(app, validator):
    client, headers = validator
    first = complete_registration(app.test_client())
    second = complete_registration(app.test_client(), email="john@example.com", firstName="John")
    third = complete_registration(app.test_client(), email="max@example.com", firstName="Max")

    assert [a["id"] for a in client.get("/validator/queue").get_json()] == [first, second, third]

    client.post("/validator/action", json={"applicationId": first, "action": "approve"}, headers=headers)
    client.post("/validator/action", json={"applicationId": second, "action": "reject", "notes": "no"},
                headers=headers)

    assert [a["id"] for a in client.get("/validator/queue").get_json()] == [third]
    history = client.get("/validator/history").get_json()
    assert {a["id"] for a in history} == {first, second}
    rejected = client.get("/validator/history?status=rejected").get_json()
    assert [a["id"] for a in rejected] == [second]
    assert client.get("/validator/history?status=pending").status_code == 400
    assert client.get("/validator/history?status=bogus").status_code == 400


def test_second_decision_conflicts(app, citizen, validator):
    _, application_id = citizen
    with app.app_context():
        services = app.extensions["portal"]
        validator_id = services.accounts.find_by_email("validator@example.com").id
        services.verification.apply_action(application_id, validator_id, ReviewAction.APPROVE)
        with pytest.raises(Conflict):
            services.verification.apply_action(application_id, validator_id, ReviewAction.REJECT, "late")
        count = services.storage.get_session().query(ValidatorAction).count()
    assert count == 1


def test_step1_after_approval_conflicts(app, citizen, validator):
    _, application_id = citizen
    client, headers = validator
    client.post("/validator/action", json={"applicationId": application_id, "action": "approve"}, headers=headers)
    assert register_citizen(app.test_client()).status_code == 409


def test_concurrent_decisions_have_one_winner(app, citizen, validator):
    citizen_client, application_id = citizen
    decisions = [
        (ReviewAction.APPROVE, None),
        (ReviewAction.REJECT, "forged ID"),
        (ReviewAction.REQUEST_INFO, "need the back side"),
        (ReviewAction.APPROVE, None),
    ]
    with app.app_context():
        validator_id = app.extensions["portal"].accounts.find_by_email("validator@example.com").id

    def decide(index):
        action, notes = decisions[index]
        return app.extensions["portal"].verification.apply_action(application_id, validator_id, action, notes)

    outcomes = run_concurrently(app, decide, len(decisions))

    winners = [i for i, o in enumerate(outcomes) if not isinstance(o, Exception)]
    assert len(winners) == 1
    assert all(isinstance(o, Conflict) for i, o in enumerate(outcomes) if i not in winners)

    [audit] = _audit_entries(app, application_id)
    assert audit == decisions[winners[0]]
    expected = decisions[winners[0]][0].resulting_status
    with app.app_context():
        assert app.extensions["portal"].verification.get(application_id).status is expected
    assert citizen_client.get("/auth/me").get_json()["user"]["verificationStatus"] == expected.value
