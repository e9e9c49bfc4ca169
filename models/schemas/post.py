from marshmallow import Schema, fields, validate, validates, post_load, ValidationError

from models.schemas.user import AuthorSummarySchema

BULK_ACTIONS = ("publish", "unpublish", "delete")


class PostWriteSchema(Schema):
    title = fields.String(required=True)
    content = fields.String(load_default="", validate=validate.Length(max=191))
    published = fields.Boolean(load_default=False)

    @validates("title")
    def _validate_title(self, value, **kwargs):
        if not 1 <= len(value.strip()) <= 50:
            raise ValidationError("title must be between 1 and 50 characters.")

    @post_load
    def _trim(self, data, **kwargs):
        data["title"] = data["title"].strip()
        data["content"] = (data.get("content") or "").strip()
        return data


class BulkUpdateSchema(Schema):
    post_ids = fields.List(fields.String(), required=True, validate=validate.Length(min=1))
    action = fields.String(required=True, validate=validate.OneOf(BULK_ACTIONS))

    @post_load
    def _dedupe(self, data, **kwargs):
        data["post_ids"] = list(dict.fromkeys(data["post_ids"]))
        return data


class PostOutSchema(Schema):
    id = fields.String()
    title = fields.String()
    content = fields.String()
    published = fields.Boolean()
    created_at = fields.DateTime()
    updated_at = fields.DateTime()
    author = fields.Nested(AuthorSummarySchema)


class PostSummarySchema(Schema):
    id = fields.String()
    title = fields.String()
    published = fields.Boolean()
    created_at = fields.DateTime()
