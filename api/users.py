"""
Admin user management (admin role):
- GET    /admin/users
- GET    /admin/users/stats
- POST   /admin/users
- PUT    /admin/users/<id>
- DELETE /admin/users/<id>
- POST   /admin/users/<id>/revoke-sessions
"""
from __future__ import annotations

from typing import Tuple

from flask import Blueprint, request, jsonify, abort

from models.user import Role, VerificationStatus
from models.schemas.user import UserCreateSchema, UserUpdateSchema, UserOutSchema, UserListOutSchema
from services.access_tokens import Identity
from services.accounts import SORT_COLUMNS
from services.errors import NotFound
from utils.decorators import require_admin, csrf_protect, current_services

MAX_LIMIT = 100

bp = Blueprint("users", __name__, url_prefix="/admin")

user_create_schema = UserCreateSchema()
user_update_schema = UserUpdateSchema()
user_out_schema = UserOutSchema()
user_list_out_schema = UserListOutSchema(many=True)


def parse_pagination() -> Tuple[int, int]:
    try:
        page = int(request.args.get("page", "1"))
        limit = int(request.args.get("limit", "25"))
        page = max(page, 1)
        limit = max(1, min(limit, MAX_LIMIT))
        return page, limit
    except ValueError:
        abort(400, description="page and limit must be integers")


def parse_enum_arg(name: str, enum_cls):
    value = request.args.get(name)
    if not value:
        return None
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        abort(400, description=f"{name} must be one of {allowed}")


def parse_sort() -> Tuple[str, bool]:
    sort_by = request.args.get("sortBy", "created_at")
    if sort_by not in SORT_COLUMNS:
        abort(400, description=f"Unsupported sort field. Allowed: {', '.join(SORT_COLUMNS)}")
    return sort_by, request.args.get("sortOrder", "desc").lower() != "asc"


@bp.get("/users")
@require_admin()
def list_users(identity: Identity):
    """
    List users with filters and pagination
    ---
    tags:
      - Users
    security:
      - Bearer: []
    parameters:
      - { in: query, name: page, type: integer }
      - { in: query, name: limit, type: integer }
      - { in: query, name: role, type: string, enum: [admin, validator, citizen] }
      - { in: query, name: status, type: string, enum: [none, pending, approved, rejected, needs_info] }
      - { in: query, name: search, type: string }
      - { in: query, name: sortBy, type: string, enum: [created_at, name, email] }
      - { in: query, name: sortOrder, type: string, enum: [asc, desc] }
    responses:
      200: { description: OK }
    """
    page, limit = parse_pagination()
    sort_by, descending = parse_sort()
    rows, total = current_services().accounts.list_users(
        page,
        limit,
        role=parse_enum_arg("role", Role),
        status=parse_enum_arg("status", VerificationStatus),
        search=request.args.get("search") or None,
        sort_by=sort_by,
        descending=descending,
    )
    return jsonify(
        {
            "data": user_list_out_schema.dump(rows),
            "meta": {"page": page, "limit": limit, "total": total},
        }
    ), 200


@bp.get("/users/stats")
@require_admin()
def user_stats(identity: Identity):
    """
    User counts for the admin dashboard
    ---
    tags:
      - Users
    security:
      - Bearer: []
    responses:
      200:
        description: Total users and counts per role and verification status
    """
    stats = current_services().accounts.stats()
    return jsonify({
        "total": stats.total,
        "byRole": {role.value: count for role, count in stats.by_role.items()},
        "byVerificationStatus": {status.value: count for status, count in stats.by_status.items()},
    }), 200


@bp.post("/users")
@csrf_protect()
@require_admin()
def create_user(identity: Identity):
    """
    Create a user with any role
    ---
    tags:
      - Users
    security:
      - Bearer: []
      - CSRF: []
    consumes:
      - application/json
    parameters:
      - in: body
        name: body
        schema:
          type: object
          properties:
            email: { type: string }
            name: { type: string }
            password: { type: string }
            role: { type: string, enum: [admin, validator, citizen] }
    responses:
      201: { description: Created }
      409: { description: Email already in use }
    """
    data = user_create_schema.load(request.get_json(silent=True) or {})
    user = current_services().accounts.create_user(data["email"], data["name"], data["password"], data["role"])
    return jsonify({"data": user_out_schema.dump(user)}), 201


@bp.put("/users/<int:user_id>")
@csrf_protect()
@require_admin()
def update_user(user_id: int, identity: Identity):
    """
    Update a user. Changing the password or role revokes the user's sessions.
    ---
    tags:
      - Users
    security:
      - Bearer: []
      - CSRF: []
    parameters:
      - { in: path, name: user_id, type: integer, required: true }
      - in: body
        name: body
        schema:
          type: object
          properties:
            name: { type: string }
            email: { type: string }
            password: { type: string }
            role: { type: string }
            verificationStatus: { type: string }
    responses:
      200: { description: OK }
      404: { description: User not found }
      409: { description: Email already in use }
    """
    changes = user_update_schema.load(request.get_json(silent=True) or {})
    user = current_services().accounts.update_user(user_id, changes)
    return jsonify({"data": user_out_schema.dump(user)}), 200


@bp.delete("/users/<int:user_id>")
@csrf_protect()
@require_admin()
def delete_user(user_id: int, identity: Identity):
    """
    Delete a non-admin user together with their sessions and applications
    ---
    tags:
      - Users
    security:
      - Bearer: []
      - CSRF: []
    parameters:
      - { in: path, name: user_id, type: integer, required: true }
    responses:
      204: { description: Deleted }
      403: { description: Cannot delete yourself or an admin }
      404: { description: User not found }
    """
    current_services().accounts.delete_user(user_id, identity.id)
    return ("", 204)


@bp.post("/users/<int:user_id>/revoke-sessions")
@csrf_protect()
@require_admin()
def revoke_sessions(user_id: int, identity: Identity):
    """
    Revoke every refresh token of a user (e.g. after credential compromise)
    ---
    tags:
      - Users
    security:
      - Bearer: []
      - CSRF: []
    parameters:
      - { in: path, name: user_id, type: integer, required: true }
    responses:
      200: { description: OK }
      404: { description: User not found }
    """
    services = current_services()
    if services.accounts.get_user(user_id) is None:
        raise NotFound("User not found")
    revoked = services.sessions.revoke_all(user_id)
    return jsonify({"sessionsRevoked": revoked}), 200
