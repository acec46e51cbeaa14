from marshmallow import EXCLUDE, Schema, ValidationError, fields, pre_load, validate, validates_schema

MIN_PASSWORD_LENGTH = 8
# Upper bound on anything that gets Argon2-hashed or verified
MAX_PASSWORD_LENGTH = 128
# Column widths in models/user.py
MAX_NAME_LENGTH = 255
MAX_USERNAME_LENGTH = 64
MAX_EMAIL_LENGTH = 255
# Reset tokens are 64 hex characters
MAX_RESET_TOKEN_LENGTH = 128


def _max_length(limit):
    return validate.Length(max=limit, error=f"Must be at most {limit} characters long.")


_not_empty = validate.Length(min=1, error="Field may not be empty.")
_password_length = [
    validate.Length(
        min=MIN_PASSWORD_LENGTH,
        error=f"Password must be at least {MIN_PASSWORD_LENGTH} characters long.",
    ),
    validate.Length(
        max=MAX_PASSWORD_LENGTH,
        error=f"Password must be at most {MAX_PASSWORD_LENGTH} characters long.",
    ),
]
_name = [_not_empty, _max_length(MAX_NAME_LENGTH)]
_username = [_not_empty, _max_length(MAX_USERNAME_LENGTH)]
_email = _max_length(MAX_EMAIL_LENGTH)
_any_password = [_not_empty, _max_length(MAX_PASSWORD_LENGTH)]


def _norm_email(v):
    return v.strip().lower() if isinstance(v, str) else v


class _TrimmedSchema(Schema):
    """Ignores unknown keys, strips strings and lower-cases email before validation."""

    class Meta:
        unknown = EXCLUDE

    @pre_load
    def normalize(self, data, **kwargs):
        if not isinstance(data, dict):
            return data
        cleaned = {}
        for key, value in data.items():
            if key in ("password", "password_confirmation", "current_password"):
                cleaned[key] = value
            elif isinstance(value, str):
                cleaned[key] = value.strip()
            else:
                cleaned[key] = value
        if "email" in cleaned:
            cleaned["email"] = _norm_email(cleaned["email"])
        return cleaned


class _PasswordConfirmationMixin:
    @validates_schema
    def validate_confirmation(self, data, **kwargs):
        if "password" in data and data.get("password") != data.get("password_confirmation"):
            raise ValidationError(
                "Password confirmation doesn't match.", field_name="password_confirmation"
            )


class RegisterSchema(_PasswordConfirmationMixin, _TrimmedSchema):
    name = fields.String(required=True, validate=_name)
    username = fields.String(required=True, validate=_username)
    email = fields.Email(required=True, validate=_email)
    password = fields.String(required=True, load_only=True, validate=_password_length)
    password_confirmation = fields.String(required=True, load_only=True)


class LoginSchema(_TrimmedSchema):
    username = fields.String(required=True, validate=_username)
    password = fields.String(required=True, load_only=True, validate=_any_password)


class UpdateProfileSchema(_TrimmedSchema):
    name = fields.String(required=True, validate=_name)
    username = fields.String(required=True, validate=_username)
    email = fields.Email(required=True, validate=_email)


class UpdatePasswordSchema(_PasswordConfirmationMixin, _TrimmedSchema):
    current_password = fields.String(required=True, load_only=True, validate=_any_password)
    password = fields.String(required=True, load_only=True, validate=_password_length)
    password_confirmation = fields.String(required=True, load_only=True)


class ForgotPasswordSchema(_TrimmedSchema):
    email = fields.Email(required=True, validate=_email)


class ResetPasswordSchema(_PasswordConfirmationMixin, _TrimmedSchema):
    email = fields.Email(required=True, validate=_email)
    token = fields.String(required=True, validate=[_not_empty, _max_length(MAX_RESET_TOKEN_LENGTH)])
    password = fields.String(required=True, load_only=True, validate=_password_length)
    password_confirmation = fields.String(required=True, load_only=True)


class UserOutSchema(Schema):
    """Wire-safe projection of a user: the password hash is never part of it."""

    id = fields.Integer()
    name = fields.String()
    username = fields.String()
    email = fields.String()
