from marshmallow import Schema, fields, pre_load, validate, validates, ValidationError

from qconnect.models.enums import Role


def _norm_email(v):
    return v.strip().lower() if isinstance(v, str) else v


class _EmailNormalizing(Schema):
    @pre_load
    def normalize(self, data, **kwargs):
        if isinstance(data, dict) and "email" in data:
            data = dict(data, email=_norm_email(data["email"]))
        return data


class SignupSchema(_EmailNormalizing):
    name = fields.String(required=True, validate=validate.Length(min=2, max=255))
    email = fields.Email(required=True)
    password = fields.String(required=True, load_only=True)
    phone = fields.String(allow_none=True, validate=validate.Length(max=32))

    @validates("password")
    def validate_password(self, value, **kwargs):
        if len(value) < 8:
            raise ValidationError("Password must be at least 8 characters long.")


class UserCreateSchema(SignupSchema):
    """Admin-side creation: same as signup plus an explicit role."""
    role = fields.Enum(Role, by_value=True, load_default=Role.patient)


class LoginSchema(_EmailNormalizing):
    email = fields.Email(required=True)
    password = fields.String(required=True, load_only=True, validate=validate.Length(min=1))


class UserUpdateSchema(Schema):
    name = fields.String(validate=validate.Length(min=2, max=255))
    phone = fields.String(allow_none=True, validate=validate.Length(max=32))
    role = fields.Enum(Role, by_value=True)


class UserOutSchema(Schema):
    id = fields.String()
    name = fields.String(allow_none=True)
    email = fields.String()
    phone = fields.String(allow_none=True)
    role = fields.Enum(Role, by_value=True)
    created_at = fields.DateTime()
