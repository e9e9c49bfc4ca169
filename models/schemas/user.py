from marshmallow import Schema, fields, pre_load, validates, validate, ValidationError


def _norm_email(v):
    return v.strip().lower() if isinstance(v, str) else v


class _EmailNormalizingSchema(Schema):
    @pre_load
    def normalize(self, data, **kwargs):
        if isinstance(data, dict) and "email" in data:
            data = dict(data)
            data["email"] = _norm_email(data["email"])
        return data


class UserCreateSchema(_EmailNormalizingSchema):
    name = fields.String(required=True)
    email = fields.Email(required=True, validate=validate.Length(max=255))
    password = fields.String(required=True, load_only=True)

    @pre_load
    def strip_name(self, data, **kwargs):
        if isinstance(data, dict) and isinstance(data.get("name"), str):
            data = dict(data)
            data["name"] = data["name"].strip()
        return data

    @validates("name")
    def validate_name(self, value, **kwargs):
        if len(value) < 2:
            raise ValidationError("Name must be at least 2 characters long.")
        if len(value) > 255:
            raise ValidationError("Name must be at most 255 characters long.")

    @validates("password")
    def validate_password(self, value, **kwargs):
        if len(value) < 6:
            raise ValidationError("Password must be at least 6 characters long.")


class UserLoginSchema(_EmailNormalizingSchema):
    email = fields.Email(required=True)
    password = fields.String(required=True, load_only=True)


class UserOutSchema(Schema):
    id = fields.String()
    name = fields.String()
    email = fields.String()
    created_at = fields.DateTime()


class AuthorSummarySchema(Schema):
    id = fields.String()
    name = fields.String()


class RefreshRequestSchema(Schema):
    refresh_token = fields.String(load_default=None)
