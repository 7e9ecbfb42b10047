import re
from datetime import date

from marshmallow import Schema, fields, pre_load, validates, validates_schema, validate, ValidationError

from models.application import ApplicationStatus
from models.validator_action import ReviewAction
from models.schemas.user import MAX_EMAIL_LENGTH, MAX_PASSWORD_LENGTH, MIN_PASSWORD_LENGTH

# Images arrive as base64 data URIs; roughly 10 MB
MAX_IMAGE_LENGTH = 10 * 1024 * 1024
MAX_NOTES_LENGTH = 1000
PHONE_RE = re.compile(r"^\+?[0-9 ()-]{7,20}$")
SAFE_IMAGE_RE = re.compile(r"^(https?://|data:image/(png|jpe?g|webp);base64,)", re.IGNORECASE)


def _validate_image(value):
    if not SAFE_IMAGE_RE.match(value):
        raise ValidationError("Image must be an http(s) URL or a base64 image data URI.")


def _check_phone(value):
    if not PHONE_RE.match(value):
        raise ValidationError("Invalid phone number.")


def _check_dob(value):
    try:
        born = date.fromisoformat(value)
    except ValueError:
        raise ValidationError("Date of birth must be YYYY-MM-DD.")
    if born >= date.today():
        raise ValidationError("Date of birth must be in the past.")


def _strip_strings(data, keep=("password",)):
    if isinstance(data, dict):
        data = {k: v.strip() if isinstance(v, str) and k not in keep else v for k, v in data.items()}
    return data


class RegisterStep1Schema(Schema):
    email = fields.Email(required=True, validate=validate.Length(max=MAX_EMAIL_LENGTH))
    password = fields.String(required=True, load_only=True,
                             validate=validate.Length(min=MIN_PASSWORD_LENGTH, max=MAX_PASSWORD_LENGTH))
    first_name = fields.String(required=True, data_key="firstName", validate=validate.Length(min=1, max=100))
    middle_name = fields.String(load_default=None, allow_none=True, data_key="middleName",
                                validate=validate.Length(max=100))
    last_name = fields.String(required=True, data_key="lastName", validate=validate.Length(min=1, max=100))
    address = fields.String(required=True, validate=validate.Length(min=1, max=512))
    phone = fields.String(required=True)
    dob = fields.String(required=True)

    @pre_load
    def normalize(self, data, **kwargs):
        data = _strip_strings(data)
        if isinstance(data, dict) and isinstance(data.get("email"), str):
            data["email"] = data["email"].lower()
        return data

    @validates("phone")
    def validate_phone(self, value, **kwargs):
        _check_phone(value)

    @validates("dob")
    def validate_dob(self, value, **kwargs):
        _check_dob(value)


class RegisterStep2Schema(Schema):
    id_card_front = fields.String(required=True, data_key="idCardFront",
                                  validate=[validate.Length(max=MAX_IMAGE_LENGTH), _validate_image])
    id_card_back = fields.String(required=True, data_key="idCardBack",
                                 validate=[validate.Length(max=MAX_IMAGE_LENGTH), _validate_image])


class RegisterStep3Schema(Schema):
    selfie_image = fields.String(required=True, data_key="selfieImage",
                                 validate=[validate.Length(max=MAX_IMAGE_LENGTH), _validate_image])
    # Client-side OCR / face-match output, stored verbatim for the validator
    ai_analysis = fields.String(load_default=None, allow_none=True, data_key="aiAnalysis",
                                validate=validate.Length(max=100_000))



class ReapplySchema(Schema):
    """
    Changes a rejected citizen makes when reapplying. Every field is optional;
    anything left out is carried over from the previous application. A new name
    must give at least the first and last name.
    """
    first_name = fields.String(data_key="firstName", validate=validate.Length(min=1, max=100))
    middle_name = fields.String(allow_none=True, data_key="middleName", validate=validate.Length(max=100))
    last_name = fields.String(data_key="lastName", validate=validate.Length(min=1, max=100))
    address = fields.String(validate=validate.Length(min=1, max=512))
    phone = fields.String()
    dob = fields.String()
    id_card_front = fields.String(data_key="idCardFront",
                                  validate=[validate.Length(max=MAX_IMAGE_LENGTH), _validate_image])
    id_card_back = fields.String(data_key="idCardBack",
                                 validate=[validate.Length(max=MAX_IMAGE_LENGTH), _validate_image])
    selfie_image = fields.String(data_key="selfieImage",
                                 validate=[validate.Length(max=MAX_IMAGE_LENGTH), _validate_image])

    @pre_load
    def normalize(self, data, **kwargs):
        return _strip_strings(data)

    @validates("phone")
    def validate_phone(self, value, **kwargs):
        _check_phone(value)

    @validates("dob")
    def validate_dob(self, value, **kwargs):
        _check_dob(value)

    @validates_schema(skip_on_field_errors=False)
    def validate_name(self, data, **kwargs):
        given = [key for key in ("first_name", "middle_name", "last_name") if data.get(key)]
        if given and not {"first_name", "last_name"} <= set(given):
            raise ValidationError("First and last name are both required when changing the name.", "lastName")


class ValidatorActionSchema(Schema):
    application_id = fields.Integer(required=True, strict=True, data_key="applicationId",
                                    validate=validate.Range(min=1))
    action = fields.Enum(ReviewAction, by_value=True, required=True)
    notes = fields.String(load_default=None, allow_none=True, validate=validate.Length(max=MAX_NOTES_LENGTH))

    @validates("action")
    def validate_action(self, value, **kwargs):
        if value is ReviewAction.REOPEN:
            raise ValidationError("Use the reopen endpoint to reopen an application.")


class ValidatorActionOutSchema(Schema):
    id = fields.Integer()
    application_id = fields.Integer(data_key="applicationId")
    validator_id = fields.Integer(allow_none=True, data_key="validatorId")
    action = fields.Enum(ReviewAction, by_value=True)
    notes = fields.String(allow_none=True)
    created_at = fields.DateTime(data_key="createdAt")


class ApplicationOutSchema(Schema):
    id = fields.Integer()
    user_id = fields.Integer(data_key="userId")
    full_name = fields.String(data_key="fullName")
    address = fields.String()
    phone = fields.String()
    dob = fields.String()
    id_card_front = fields.String(allow_none=True, data_key="idCardFront")
    id_card_back = fields.String(allow_none=True, data_key="idCardBack")
    selfie_image = fields.String(allow_none=True, data_key="selfieImage")
    ai_analysis_json = fields.String(allow_none=True, data_key="aiAnalysisJson")
    status = fields.Enum(ApplicationStatus, by_value=True)
    created_at = fields.DateTime(data_key="createdAt")
    updated_at = fields.DateTime(data_key="updatedAt")
    user_email = fields.Method("get_user_email", data_key="userEmail")

    def get_user_email(self, obj):
        user = getattr(obj, "user", None)
        return user.email if user is not None else None


class ApplicationDetailOutSchema(ApplicationOutSchema):
    actions = fields.List(fields.Nested(ValidatorActionOutSchema))


class PreviousApplicationOutSchema(Schema):
    """Prefill data for a reapplication form."""
    email = fields.Method("get_email")
    first_name = fields.Method("get_first_name", data_key="firstName")
    middle_name = fields.Method("get_middle_name", data_key="middleName")
    last_name = fields.Method("get_last_name", data_key="lastName")
    full_name = fields.String(data_key="fullName")
    address = fields.String()
    phone = fields.String()
    dob = fields.String()
    id_card_front = fields.String(allow_none=True, data_key="idCardFront")
    id_card_back = fields.String(allow_none=True, data_key="idCardBack")
    selfie_image = fields.String(allow_none=True, data_key="selfieImage")
    status = fields.Enum(ApplicationStatus, by_value=True)

    def _parts(self, obj):
        return (obj.full_name or "").split()

    def get_email(self, obj):
        return obj.user.email

    def get_first_name(self, obj):
        parts = self._parts(obj)
        return parts[0] if parts else ""

    def get_middle_name(self, obj):
        parts = self._parts(obj)
        return " ".join(parts[1:-1]) if len(parts) > 2 else ""

    def get_last_name(self, obj):
        parts = self._parts(obj)
        return parts[-1] if len(parts) > 1 else ""
