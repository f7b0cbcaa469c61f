from marshmallow import Schema, fields, pre_load, validates, validate, ValidationError

from models.schemas.common import PASSWORD_RULES, norm_email, validate_birth_year
from models.user import GENDERS


class _EmailNormalizing(Schema):
    @pre_load
    def normalize(self, data, **kwargs):
        if isinstance(data, dict) and "email" in data:
            data = dict(data)
            data["email"] = norm_email(data["email"])
        return data


class RegisterSchema(_EmailNormalizing):
    email = fields.Email(required=True, validate=validate.Length(max=254))
    password = fields.String(required=True, load_only=True, validate=PASSWORD_RULES)
    name = fields.String(required=True, validate=validate.Length(min=1, max=100))
    birth_year = fields.Integer(required=True, strict=True)
    gender = fields.String(allow_none=True, load_default=None, validate=validate.OneOf(GENDERS))

    @validates("name")
    def validate_name(self, value, **kwargs):
        if not value.strip():
            raise ValidationError("Name must not be blank.")

    @validates("birth_year")
    def validate_birth_year(self, value, **kwargs):
        validate_birth_year(value)


class LoginSchema(_EmailNormalizing):
    # No format rules here: a malformed address is simply a failed login
    email = fields.String(required=True, validate=validate.Length(min=1, max=254))
    password = fields.String(required=True, load_only=True, validate=validate.Length(min=1, max=128))


class PasswordResetRequestSchema(_EmailNormalizing):
    email = fields.Email(required=True, validate=validate.Length(max=254))


class PasswordResetConfirmSchema(Schema):
    token = fields.String(required=True, validate=validate.Length(min=1, max=128))
    new_password = fields.String(required=True, load_only=True, validate=PASSWORD_RULES)


class PasswordChangeSchema(Schema):
    current_password = fields.String(required=True, load_only=True, validate=validate.Length(min=1, max=128))
    new_password = fields.String(required=True, load_only=True, validate=PASSWORD_RULES)


class ProfileUpdateSchema(Schema):
    name = fields.String(validate=validate.Length(min=1, max=100))
    gender = fields.String(validate=validate.OneOf(GENDERS))
    birth_year = fields.Integer(strict=True)

    @validates("name")
    def validate_name(self, value, **kwargs):
        if not value.strip():
            raise ValidationError("Name must not be blank.")

    @validates("birth_year")
    def validate_birth_year(self, value, **kwargs):
        validate_birth_year(value)


class UserOutSchema(Schema):
    """Safe representation: never includes the password digest or lockout state."""
    id = fields.String()
    email = fields.String()
    name = fields.String()
    gender = fields.String(allow_none=True)
    birth_year = fields.Integer()
    email_verified = fields.Boolean()
    email_verified_at = fields.DateTime(allow_none=True)
    created_at = fields.DateTime()
    updated_at = fields.DateTime()
