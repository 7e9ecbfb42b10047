"""
Citizen registration (identity-verification submission):
- POST /register/step1                 personal info, creates the account and a pending application
- POST /register/step2                 ID card images
- POST /register/step3                 selfie + client-side analysis; (re)submits for review
- GET  /register/previous-application  prefill data for a reapplication
- POST /register/reapply               rejected citizen reapplies with the previous data
- POST /register/reapply-with-changes  same, replacing any of the personal fields or images
"""
from __future__ import annotations

from flask import Blueprint, request, jsonify

from models.schemas.application import (
    RegisterStep1Schema,
    RegisterStep2Schema,
    RegisterStep3Schema,
    ReapplySchema,
    PreviousApplicationOutSchema,
)
from services.access_tokens import Identity
from services.errors import NotFound
from services.verification import PersonalInfo
from utils.decorators import jwt_required, csrf_protect, current_services
from api.auth import issue_session, session_response

bp = Blueprint("registration", __name__, url_prefix="/register")

step1_schema = RegisterStep1Schema()
step2_schema = RegisterStep2Schema()
step3_schema = RegisterStep3Schema()
reapply_schema = ReapplySchema()
previous_out_schema = PreviousApplicationOutSchema()


@bp.post("/step1")
def step1():
    """
    Register a citizen and open a pending verification application
    ---
    tags:
      - Registration
    consumes:
      - application/json
    parameters:
      - in: body
        name: body
        schema:
          type: object
          properties:
            email: { type: string }
            password: { type: string }
            firstName: { type: string }
            middleName: { type: string }
            lastName: { type: string }
            address: { type: string }
            phone: { type: string }
            dob: { type: string, format: date }
    responses:
      201:
        description: Created (user is logged in)
      409:
        description: Email already registered
      422:
        description: Validation error
    """
    data = step1_schema.load(request.get_json(silent=True) or {})
    password = data.pop("password")
    submission = current_services().verification.submit(PersonalInfo(**data), password)
    message = "Reapplication submitted" if submission.is_reapplication else "Step 1 completed"
    return issue_session(
        submission.user,
        status=201,
        message=message,
        applicationId=submission.application.id,
        isReapplication=submission.is_reapplication,
    )


@bp.post("/step2")
@csrf_protect()
@jwt_required()
def step2(identity: Identity):
    """
    Upload ID card images
    ---
    tags:
      - Registration
    security:
      - Bearer: []
      - CSRF: []
    parameters:
      - in: body
        name: body
        schema:
          type: object
          properties:
            idCardFront: { type: string }
            idCardBack: { type: string }
    responses:
      200:
        description: OK
      404:
        description: Application not found
      409:
        description: Application already resolved
    """
    data = step2_schema.load(request.get_json(silent=True) or {})
    current_services().verification.attach_documents(identity.id, data["id_card_front"], data["id_card_back"])
    return jsonify({"message": "ID uploaded successfully"}), 200


@bp.post("/step3")
@csrf_protect()
@jwt_required()
def step3(identity: Identity):
    """
    Upload the selfie and submit the application for review
    ---
    tags:
      - Registration
    security:
      - Bearer: []
      - CSRF: []
    parameters:
      - in: body
        name: body
        schema:
          type: object
          properties:
            selfieImage: { type: string }
            aiAnalysis: { type: string }
    responses:
      200:
        description: OK
      404:
        description: Application not found
      409:
        description: Application already resolved
    """
    data = step3_schema.load(request.get_json(silent=True) or {})
    current_services().verification.attach_selfie(identity.id, data["selfie_image"], data["ai_analysis"])
    return jsonify({"message": "Application submitted for review"}), 200


@bp.get("/previous-application")
@jwt_required()
def previous_application(identity: Identity):
    """
    Most recent application of the caller, for prefilling a reapplication
    ---
    tags:
      - Registration
    security:
      - Bearer: []
    responses:
      200:
        description: OK
      404:
        description: No previous application
    """
    application = current_services().verification.latest_application(identity.id)
    if application is None:
        raise NotFound("No previous application found")
    return jsonify(previous_out_schema.dump(application)), 200


@bp.post("/reapply")
@csrf_protect()
@jwt_required()
def reapply(identity: Identity):
    """
    Reapply after a rejection, reusing the previous application's data
    ---
    tags:
      - Registration
    security:
      - Bearer: []
      - CSRF: []
    responses:
      200:
        description: New pending application (returns user and a fresh access token)
      404:
        description: No previous application
      409:
        description: Caller is not rejected
    """
    submission = current_services().verification.reapply(identity.id)
    return session_response(
        submission.user,
        message="Reapplication submitted successfully",
        applicationId=submission.application.id,
    )


@bp.post("/reapply-with-changes")
@csrf_protect()
@jwt_required()
def reapply_with_changes(identity: Identity):
    """
    Reapply after a rejection with updated personal data or images
    ---
    tags:
      - Registration
    security:
      - Bearer: []
      - CSRF: []
    parameters:
      - in: body
        name: body
        schema:
          type: object
          properties:
            firstName: { type: string }
            middleName: { type: string }
            lastName: { type: string }
            address: { type: string }
            phone: { type: string }
            dob: { type: string, format: date }
            idCardFront: { type: string }
            idCardBack: { type: string }
            selfieImage: { type: string }
    responses:
      200:
        description: New pending application (returns user and a fresh access token)
      404:
        description: No previous application
      409:
        description: Caller is not rejected
      422:
        description: Validation error
    """
    changes = reapply_schema.load(request.get_json(silent=True) or {})
    submission = current_services().verification.reapply(identity.id, changes)
    return session_response(
        submission.user,
        message="Reapplication with updates submitted successfully",
        applicationId=submission.application.id,
    )
