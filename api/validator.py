"""
Validator back office (validator or admin role):
- GET  /validator/queue
- GET  /validator/application/<id>
- POST /validator/action
- GET  /validator/history?status=approved|rejected|needs_info
- POST /validator/application/<id>/reopen
"""
from __future__ import annotations

from flask import Blueprint, request, jsonify, abort

from models.application import ApplicationStatus
from models.schemas.application import (
    ApplicationOutSchema,
    ApplicationDetailOutSchema,
    ValidatorActionSchema,
)
from services.access_tokens import Identity
from utils.decorators import require_validator, csrf_protect, current_services

bp = Blueprint("validator", __name__, url_prefix="/validator")

applications_out_schema = ApplicationOutSchema(many=True)
application_out_schema = ApplicationOutSchema()
application_detail_schema = ApplicationDetailOutSchema()
action_schema = ValidatorActionSchema()


@bp.get("/queue")
@require_validator()
def queue(identity: Identity):
    """
    Pending applications, oldest first
    ---
    tags:
      - Validator
    security:
      - Bearer: []
    responses:
      200: { description: OK }
      401: { description: Unauthorized }
      403: { description: Validator access required }
    """
    return jsonify(applications_out_schema.dump(current_services().verification.queue())), 200


@bp.get("/application/<int:application_id>")
@require_validator()
def get_application(application_id: int, identity: Identity):
    """
    One application with its audit trail
    ---
    tags:
      - Validator
    security:
      - Bearer: []
    parameters:
      - in: path
        name: application_id
        type: integer
        required: true
    responses:
      200: { description: OK }
      404: { description: Application not found }
    """
    application = current_services().verification.get(application_id)
    return jsonify(application_detail_schema.dump(application)), 200


@bp.post("/action")
@csrf_protect()
@require_validator()
def submit_action(identity: Identity):
    """
    Approve, reject or request more information on a pending application
    ---
    tags:
      - Validator
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
            applicationId: { type: integer }
            action: { type: string, enum: [approve, reject, request_info] }
            notes: { type: string }
    responses:
      200: { description: Action recorded }
      404: { description: Application not found }
      409: { description: Application is not pending }
    """
    data = action_schema.load(request.get_json(silent=True) or {})
    application = current_services().verification.apply_action(
        data["application_id"], identity.id, data["action"], data["notes"]
    )
    return jsonify({"message": "Action recorded successfully", "newStatus": application.status.value}), 200


@bp.get("/history")
@require_validator()
def history(identity: Identity):
    """
    Resolved applications, most recently updated first
    ---
    tags:
      - Validator
    security:
      - Bearer: []
    parameters:
      - in: query
        name: status
        type: string
        enum: [approved, rejected, needs_info]
    responses:
      200: { description: OK }
      400: { description: Unsupported status filter }
    """
    status = None
    raw = request.args.get("status")
    if raw:
        try:
            status = ApplicationStatus(raw)
        except ValueError:
            abort(400, description="status must be one of approved, rejected, needs_info")
        if status is ApplicationStatus.PENDING:
            abort(400, description="status must be one of approved, rejected, needs_info")
    return jsonify(applications_out_schema.dump(current_services().verification.history(status))), 200


@bp.post("/application/<int:application_id>/reopen")
@csrf_protect()
@require_validator()
def reopen(application_id: int, identity: Identity):
    """
    Send a resolved application back to pending
    ---
    tags:
      - Validator
    security:
      - Bearer: []
      - CSRF: []
    parameters:
      - in: path
        name: application_id
        type: integer
        required: true
    responses:
      200: { description: Reopened }
      404: { description: Application not found }
      409: { description: Application is already pending }
    """
    application = current_services().verification.reopen(application_id, identity.id)
    return jsonify(
        {
            "message": "Application reopened for re-review",
            "applicationId": application.id,
            "application": application_out_schema.dump(application),
        }
    ), 200
