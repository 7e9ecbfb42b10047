import pytest

from models.user import Role, VerificationStatus
from tests.conftest import (
    ADMIN_EMAIL,
    ADMIN_PASSWORD,
    create_user,
    login,
    login_as,
    refresh_cookie,
)


@pytest.fixture
def admin(app):
    client = app.test_client()
    headers = login_as(client, ADMIN_EMAIL, ADMIN_PASSWORD)
    return client, headers


def test_list_users_with_filters(app, admin):
    client, _ = admin
    create_user(app, "alice@example.com", name="Alice")
    create_user(app, "bob@example.com", name="Bob", role=Role.VALIDATOR)
    create_user(app, "carol@example.com", name="Carol", status=VerificationStatus.APPROVED)

    body = client.get("/admin/users").get_json()
    assert body["meta"] == {"page": 1, "limit": 25, "total": 4}

    validators = client.get("/admin/users?role=validator").get_json()["data"]
    assert [u["email"] for u in validators] == ["bob@example.com"]

    approved_citizens = client.get("/admin/users?role=citizen&status=approved").get_json()["data"]
    assert [u["email"] for u in approved_citizens] == ["carol@example.com"]

    found = client.get("/admin/users?search=ALI").get_json()["data"]
    assert [u["email"] for u in found] == ["alice@example.com"]

    by_name = client.get("/admin/users?sortBy=name&sortOrder=asc&limit=2").get_json()
    assert [u["name"] for u in by_name["data"]] == ["Admin User", "Alice"]
    assert by_name["meta"]["total"] == 4


def test_list_users_rejects_bad_query(admin):
    client, _ = admin
    assert client.get("/admin/users?role=root").status_code == 400
    assert client.get("/admin/users?sortBy=password_hash").status_code == 400
    assert client.get("/admin/users?page=abc").status_code == 400


def test_search_is_parameterized(app, admin):
    client, _ = admin
    create_user(app, "alice@example.com", name="Alice")
    resp = client.get("/admin/users?search=%27%20OR%201%3D1%20--")
    assert resp.status_code == 200
    assert resp.get_json()["data"] == []


def test_create_user(admin):
    client, headers = admin
    resp = client.post(
        "/admin/users",
        json={"email": "Val@Example.com", "name": "Val", "password": "Validator1!", "role": "validator"},
        headers=headers,
    )
    assert resp.status_code == 201
    data = resp.get_json()["data"]
    assert data["email"] == "val@example.com"
    assert data["role"] == "validator"
    assert data["verificationStatus"] == "approved"
    assert "password" not in data

    duplicate = client.post(
        "/admin/users",
        json={"email": "val@example.com", "name": "Val", "password": "Validator1!"},
        headers=headers,
    )
    assert duplicate.status_code == 409


def test_create_user_validation(admin):
    client, headers = admin
    resp = client.post("/admin/users", json={"email": "x@example.com", "name": "X", "password": "short"},
                       headers=headers)
    assert resp.status_code == 422
    assert "password" in resp.get_json()["details"]


def test_role_change_revokes_sessions(app, admin):
    client, headers = admin
    user_id = create_user(app, "promote@example.com")
    target = app.test_client()
    login(target, "promote@example.com")

    resp = client.put(f"/admin/users/{user_id}", json={"role": "validator"}, headers=headers)
    assert resp.status_code == 200
    assert resp.get_json()["data"]["role"] == "validator"

    assert target.post("/auth/refresh").status_code == 401


def test_password_change_revokes_sessions(app, admin):
    client, headers = admin
    user_id = create_user(app, "reset@example.com")
    target = app.test_client()
    login(target, "reset@example.com")

    resp = client.put(f"/admin/users/{user_id}", json={"password": "BrandNew123!"}, headers=headers)
    assert resp.status_code == 200
    assert target.post("/auth/refresh").status_code == 401
    assert login(app.test_client(), "reset@example.com", "BrandNew123!").status_code == 200


def test_name_change_keeps_sessions(app, admin):
    client, headers = admin
    user_id = create_user(app, "rename@example.com")
    target = app.test_client()
    login(target, "rename@example.com")

    client.put(f"/admin/users/{user_id}", json={"name": "Renamed"}, headers=headers)
    refreshed = target.post("/auth/refresh")
    assert refreshed.status_code == 200
    assert refreshed.get_json()["user"]["name"] == "Renamed"


def test_update_email_conflict_and_missing_user(app, admin):
    client, headers = admin
    user_id = create_user(app, "one@example.com")
    create_user(app, "two@example.com")
    assert client.put(f"/admin/users/{user_id}", json={"email": "two@example.com"},
                      headers=headers).status_code == 409
    assert client.put("/admin/users/9999", json={"name": "Nobody"}, headers=headers).status_code == 404


def test_delete_user(app, admin):
    client, headers = admin
    user_id = create_user(app, "delete@example.com")
    target = app.test_client()
    login(target, "delete@example.com")

    assert client.delete(f"/admin/users/{user_id}", headers=headers).status_code == 204
    assert client.delete(f"/admin/users/{user_id}", headers=headers).status_code == 404
    assert target.post("/auth/refresh").status_code == 401


def test_delete_guards(app, admin):
    client, headers = admin
    me = client.get("/auth/me").get_json()["user"]
    resp = client.delete(f"/admin/users/{me['id']}", headers=headers)
    assert resp.status_code == 403
    assert resp.get_json()["message"] == "You cannot delete your own account"

    other_admin = create_user(app, "second-admin@example.com", role=Role.ADMIN)
    resp = client.delete(f"/admin/users/{other_admin}", headers=headers)
    assert resp.status_code == 403
    assert resp.get_json()["message"] == "Admin accounts cannot be deleted"


def test_revoke_sessions(app, admin):
    client, headers = admin
    user_id = create_user(app, "stolen@example.com")
    target = app.test_client()
    login(target, "stolen@example.com")
    assert refresh_cookie(target) is not None

    resp = client.post(f"/admin/users/{user_id}/revoke-sessions", headers=headers)
    assert resp.status_code == 200
    assert resp.get_json()["sessionsRevoked"] == 1
    assert target.post("/auth/refresh").status_code == 401
    assert client.post("/admin/users/9999/revoke-sessions", headers=headers).status_code == 404


def test_admin_routes_require_admin(app):
    create_user(app, "val@example.com", role=Role.VALIDATOR)
    client = app.test_client()
    headers = login_as(client, "val@example.com")
    resp = client.get("/admin/users")
    assert resp.status_code == 403
    assert resp.get_json()["message"] == "Admin access required"
    assert client.post("/admin/users", json={}, headers=headers).status_code == 403


def test_search_wildcards_are_literal(app, admin):
    client, _ = admin
    create_user(app, "alice@example.com", name="Alice")
    create_user(app, "under_score@example.com", name="Under Score")
    create_user(app, "percent@example.com", name="100% Sure")

    def emails(term):
        resp = client.get("/admin/users", query_string={"search": term})
        assert resp.status_code == 200
        return sorted(u["email"] for u in resp.get_json()["data"])

    assert emails("_") == ["under_score@example.com"]
    assert emails("%") == ["percent@example.com"]
    assert emails("a_i") == []
    assert emails("\\") == []


def test_user_stats(app, admin):
    client, _ = admin
    create_user(app, "alice@example.com")
    create_user(app, "carol@example.com", status=VerificationStatus.APPROVED)
    create_user(app, "val@example.com", role=Role.VALIDATOR, status=VerificationStatus.APPROVED)

    resp = client.get("/admin/users/stats")
    assert resp.status_code == 200
    assert resp.get_json() == {
        "total": 4,
        "byRole": {"citizen": 2, "validator": 1, "admin": 1},
        "byVerificationStatus": {"none": 1, "pending": 0, "approved": 3, "rejected": 0, "needs_info": 0},
    }


def test_user_stats_requires_admin(app):
    create_user(app, "val@example.com", role=Role.VALIDATOR)
    client = app.test_client()
    login_as(client, "val@example.com")
    assert client.get("/admin/users/stats").status_code == 403
