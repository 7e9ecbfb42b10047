from marshmallow import Schema, fields, pre_load, validates, validate, ValidationError

from models.user import Role, VerificationStatus

MAX_EMAIL_LENGTH = 255
MAX_PASSWORD_LENGTH = 128
MIN_PASSWORD_LENGTH = 8


def _norm_email(v):
    return v.strip().lower() if isinstance(v, str) else v


class LoginSchema(Schema):
    email = fields.Email(required=True, validate=validate.Length(max=MAX_EMAIL_LENGTH))
    password = fields.String(required=True, load_only=True,
                             validate=validate.Length(min=1, max=MAX_PASSWORD_LENGTH))

    @pre_load
    def normalize(self, data, **kwargs):
        if isinstance(data, dict) and "email" in data:
            data = dict(data, email=_norm_email(data["email"]))
        return data


class UserCreateSchema(Schema):
    """Admin-side account creation."""
    email = fields.Email(required=True, validate=validate.Length(max=MAX_EMAIL_LENGTH))
    name = fields.String(required=True, validate=validate.Length(min=1, max=255))
    password = fields.String(required=True, load_only=True)
    role = fields.Enum(Role, by_value=True, load_default=Role.CITIZEN)

    @pre_load
    def normalize(self, data, **kwargs):
        if isinstance(data, dict) and "email" in data:
            data = dict(data, email=_norm_email(data["email"]))
        return data

    @validates("password")
    def validate_password(self, value, **kwargs):
        if len(value) < MIN_PASSWORD_LENGTH:
            raise ValidationError("Password must be at least 8 characters long.")
        if len(value) > MAX_PASSWORD_LENGTH:
            raise ValidationError("Password must be at most 128 characters long.")


class UserUpdateSchema(Schema):
    name = fields.String(validate=validate.Length(min=1, max=255))
    email = fields.Email(validate=validate.Length(max=MAX_EMAIL_LENGTH))
    password = fields.String(load_only=True)
    role = fields.Enum(Role, by_value=True)
    verification_status = fields.Enum(VerificationStatus, by_value=True, data_key="verificationStatus")

    @validates("password")
    def validate_password(self, value, **kwargs):
        if len(value) < MIN_PASSWORD_LENGTH:
            raise ValidationError("Password must be at least 8 characters long.")
        if len(value) > MAX_PASSWORD_LENGTH:
            raise ValidationError("Password must be at most 128 characters long.")


class UserOutSchema(Schema):
    id = fields.Integer()
    email = fields.String()
    name = fields.String()
    role = fields.Enum(Role, by_value=True)
    verification_status = fields.Enum(VerificationStatus, by_value=True, data_key="verificationStatus")
    rejection_reason = fields.String(allow_none=True, data_key="rejectionReason")
    rejection_date = fields.DateTime(allow_none=True, data_key="rejectionDate")


class UserListOutSchema(UserOutSchema):
    created_at = fields.DateTime(data_key="createdAt")
    updated_at = fields.DateTime(data_key="updatedAt")


class SessionOutSchema(Schema):
    id = fields.Integer()
    user_agent = fields.String(allow_none=True, data_key="userAgent")
    ip_address = fields.String(allow_none=True, data_key="ipAddress")
    created_at = fields.DateTime(data_key="createdAt")
    expires_at = fields.DateTime(data_key="expiresAt")
