"""
Authentication blueprint:
- POST /auth/login
- POST /auth/refresh
- POST /auth/logout
- POST /auth/logout-all
- GET  /auth/me
- GET  /auth/sessions
- GET  /auth/csrf-token

The implementation:
- Uses argon2 for password hashing (via utils.security)
- Issues 1h access tokens (HS256 JWT) and 7d opaque refresh tokens
- Stores only refresh-token digests in the DB and rotates them on every refresh
- Delivers both as httpOnly cookies; the access token is also returned in the
  body for Bearer clients
"""
from __future__ import annotations

from flask import Blueprint, request, jsonify

from models.schemas.user import LoginSchema, UserOutSchema, SessionOutSchema
from services.access_tokens import Identity
from services.errors import Unauthenticated
from services.session_store import DeviceInfo
from utils.cookies import (
    AUTH_COOKIES,
    set_auth_cookies,
    set_csrf_cookie,
    clear_auth_cookies,
    read_refresh_cookie,
)
from utils.csrf import generate_csrf_token
from utils.decorators import jwt_required, csrf_protect, current_services
from utils.security import hash_secret
from api.limits import limiter, login_limit

bp = Blueprint("auth", __name__, url_prefix="/auth")

login_schema = LoginSchema()
user_out_schema = UserOutSchema()
sessions_out_schema = SessionOutSchema(many=True)


def request_device() -> DeviceInfo:
    return DeviceInfo(user_agent=request.headers.get("User-Agent"), ip_address=request.remote_addr)


def session_response(user, refresh_token: str | None = None, status: int = 200, **extra):
    """
    Response carrying a fresh access token for `user` in the body and the
    access_token cookie. The refresh_token cookie is only (re)set when a new
    refresh token is given.
    """
    tokens = current_services().tokens
    access_token = tokens.issue(user)
    body = {"user": user_out_schema.dump(user), "token": access_token, "expiresIn": tokens.expires_in}
    body.update(extra)
    response = jsonify(body)
    set_auth_cookies(response, access_token, refresh_token)
    return response, status


def issue_session(user, status: int = 200, **extra):
    """Mint an access token and a new refresh token for `user` and set both cookies."""
    refresh_token = current_services().sessions.create(user.id, request_device())
    return session_response(user, refresh_token, status=status, **extra)


@bp.post("/login")
@limiter.limit(login_limit)
def login():
    """
    Login: sets access_token and refresh_token cookies
    ---
    tags:
      - Auth
    consumes:
      - application/json
    parameters:
      -  in: body
         name: body
         schema:
           type: object
           properties:
             email: { type: string }
             password: { type: string }
    responses:
      200:
        description: OK (returns user and access token)
      401:
        description: Invalid credentials
      422:
        description: Validation error
      429:
        description: Too many login attempts from this address
    """
    payload = login_schema.load(request.get_json(silent=True) or {})
    user = current_services().accounts.authenticate(payload["email"], payload["password"])
    return issue_session(user)


@bp.post("/refresh")
def refresh():
    """
    Rotate the refresh_token cookie and mint a new access token
    ---
    tags:
      - Auth
    responses:
      200:
        description: OK (returns user and access token)
      401:
        description: Missing, expired, revoked or replayed refresh token
    """
    services = current_services()
    raw = read_refresh_cookie()
    if not raw:
        raise Unauthenticated("Refresh token required", clear_cookies=AUTH_COOKIES)

    rotation = services.sessions.rotate(raw, request_device())
    if rotation is None:
        raise Unauthenticated("Invalid or expired refresh token", clear_cookies=AUTH_COOKIES)

    user = services.accounts.get_user(rotation.user_id)
    if user is None:
        services.sessions.revoke(rotation.token)
        raise Unauthenticated("User not found", clear_cookies=AUTH_COOKIES)

    return session_response(user, rotation.token)


@bp.post("/logout")
def logout():
    """
    Logout: revokes the current refresh token and clears auth cookies
    ---
    tags:
      - Auth
    responses:
      200:
        description: Logged out (also when there was no session)
    """
    raw = read_refresh_cookie()
    if raw:
        current_services().sessions.revoke(raw)
    response = jsonify({"message": "Logged out successfully"})
    clear_auth_cookies(response)
    return response, 200


@bp.post("/logout-all")
@csrf_protect()
@jwt_required()
def logout_all(identity: Identity):
    """
    Revoke every refresh token of the caller (logout from all devices)
    ---
    tags:
      - Auth
    security:
      - Bearer: []
      - CSRF: []
    responses:
      200:
        description: OK (returns number of revoked sessions)
      401:
        description: Unauthorized
      403:
        description: CSRF check failed
    """
    revoked = current_services().sessions.revoke_all(identity.id)
    response = jsonify({"message": "Logged out from all devices", "sessionsRevoked": revoked})
    clear_auth_cookies(response)
    return response, 200


@bp.get("/me")
@jwt_required()
def me(identity: Identity):
    """
    Current user, re-read from the database
    ---
    tags:
      - Auth
    security:
      - Bearer: []
    responses:
      200:
        description: OK
      401:
        description: Unauthorized or user no longer exists
    """
    services = current_services()
    user = services.accounts.get_user(identity.id)
    if user is None:
        raise Unauthenticated("User not found", clear_cookies=AUTH_COOKIES)
    return jsonify(
        {
            "user": user_out_schema.dump(user),
            "communityAccess": services.verification.can_use_community(user),
        }
    ), 200


@bp.get("/sessions")
@jwt_required()
def sessions(identity: Identity):
    """
    Active sessions (unrevoked, unexpired refresh tokens) of the caller
    ---
    tags:
      - Auth
    security:
      - Bearer: []
    responses:
      200:
        description: OK
      401:
        description: Unauthorized
    """
    records = current_services().sessions.list_active(identity.id)
    raw = read_refresh_cookie()
    current_hash = hash_secret(raw) if raw else None
    data = sessions_out_schema.dump(records)
    for item, record in zip(data, records):
        item["current"] = record.token_hash == current_hash
    return jsonify({"sessions": data}), 200


@bp.get("/csrf-token")
def csrf_token():
    """
    Issue a fresh CSRF token (cookie + body) for the double-submit check
    ---
    tags:
      - Auth
    responses:
      200:
        description: OK (returns csrfToken)
    """
    token = generate_csrf_token()
    response = jsonify({"csrfToken": token})
    set_csrf_cookie(response, token)
    return response, 200
