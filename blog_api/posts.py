from __future__ import annotations

from datetime import datetime, timezone

from flask import Blueprint, request, jsonify, abort, g
from sqlalchemy import func, or_
from sqlalchemy.orm import joinedload

from blog_api.deps import get_storage
from blog_api.utils.pagination import (
    parse_pagination,
    parse_sort,
    parse_published_filter,
    pagination_meta,
    paginate,
)
from models.post import Post
from models.user import User
from models.schemas.post import PostWriteSchema, BulkUpdateSchema, PostOutSchema, PostSummarySchema
from models.schemas.user import AuthorSummarySchema
from utils.decorators import jwt_required, current_user_id_or_none
from utils.exceptions import AuthorizationFailed, Conflict, InputInvalid, NotFound

bp = Blueprint("posts", __name__)

# Schemas
post_write_schema = PostWriteSchema()
bulk_update_schema = BulkUpdateSchema()
post_out_schema = PostOutSchema()
posts_out_schema = PostOutSchema(many=True)
post_summaries_schema = PostSummarySchema(many=True)
author_summary_schema = AuthorSummarySchema()

# Sorting allowlists: API field -> SQLAlchemy column
SORT_COLUMNS = {
    "created_at": Post.created_at,
    "updated_at": Post.updated_at,
    "title": Post.title,
}
MY_POSTS_SORT_COLUMNS = dict(SORT_COLUMNS, published=Post.published)

MIN_SEARCH_LENGTH = 2
RECENT_POSTS = 5


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _posts_query():
    return get_storage().get_session().query(Post).options(joinedload(Post.author))


def _list_response(query, sort_columns, extra: dict | None = None):
    page, limit = parse_pagination()
    order_by = (parse_sort(sort_columns), Post.id.asc())
    rows, total = paginate(query, order_by, page, limit)
    data = {"posts": posts_out_schema.dump(rows)}
    if extra:
        data.update(extra)
    return jsonify({"data": data, "meta": pagination_meta(page, limit, total)})


def _get_owned_post(post_id: str) -> Post:
    """Load a post the caller may modify: 404 if missing, 403 if someone else's."""
    post = get_storage().get(Post, post_id)
    if not post:
        raise NotFound("Post not found")
    if post.author_id != g.current_user_id:
        raise AuthorizationFailed("Access denied. You can only modify your own posts")
    return post


def _title_taken(author_id: str, title: str, exclude_id: str | None = None) -> bool:
    query = get_storage().get_session().query(Post.id).filter(
        Post.author_id == author_id, Post.title == title
    )
    if exclude_id:
        query = query.filter(Post.id != exclude_id)
    return query.first() is not None


def _counts_for(author_id: str) -> dict:
    session = get_storage().get_session()
    published = session.query(func.count(Post.id)).filter(
        Post.author_id == author_id, Post.published.is_(True)
    ).scalar()
    drafts = session.query(func.count(Post.id)).filter(
        Post.author_id == author_id, Post.published.is_(False)
    ).scalar()
    return {"total": published + drafts, "published": published, "drafts": drafts}


@bp.get("/posts")
def list_posts():
    """
    List published posts with pagination and sorting
    ---
    tags:
      - Posts
    parameters:
      - in: query
        name: page
        type: integer
        default: 1
      - in: query
        name: limit
        type: integer
        default: 10
      - in: query
        name: sort_by
        type: string
        enum: [created_at, updated_at, title]
        default: created_at
      - in: query
        name: sort_order
        type: string
        enum: [asc, desc]
        default: desc
    responses:
      200:
        description: List of posts
    """
    query = _posts_query().filter(Post.published.is_(True))
    return _list_response(query, SORT_COLUMNS)


@bp.get("/posts/<post_id>")
def get_post(post_id: str):
    """
    Get a single post by id. Drafts are only visible to their author.
    ---
    tags:
      - Posts
    parameters:
      - in: path
        name: post_id
        type: string
        required: true
    responses:
      200:
        description: Post found
      404:
        description: Not found
    """
    post = _posts_query().filter(Post.id == post_id).first()
    if not post:
        raise NotFound("Post not found")
    # a draft is indistinguishable from a missing post for anyone but its author
    if not post.published and current_user_id_or_none() != post.author_id:
        raise NotFound("Post not found")
    return jsonify({"data": post_out_schema.dump(post)})


@bp.get("/my-posts")
@jwt_required()
def my_posts():
    """
    List the caller's posts, drafts included
    ---
    tags:
      - Posts
    security:
      - Bearer: []
    parameters:
      - in: query
        name: published
        type: string
        enum: ["true", "false"]
      - in: query
        name: page
        type: integer
      - in: query
        name: limit
        type: integer
      - in: query
        name: sort_by
        type: string
        enum: [created_at, updated_at, title, published]
      - in: query
        name: sort_order
        type: string
        enum: [asc, desc]
    responses:
      200:
        description: The caller's posts plus published/draft counts
      401:
        description: Unauthorized
    """
    query = _posts_query().filter(Post.author_id == g.current_user_id)
    published = parse_published_filter()
    if published is not None:
        query = query.filter(Post.published.is_(published))
    return _list_response(query, MY_POSTS_SORT_COLUMNS, extra={"stats": _counts_for(g.current_user_id)})


@bp.post("/posts")
@jwt_required()
def create_post():
    """
    Create a new post
    ---
    tags:
      - Posts
    security:
      - Bearer: []
    consumes:
      - application/json
    parameters:
      - in: body
        name: body
        required: true
        schema:
          type: object
          required: [title]
          properties:
            title: { type: string, maxLength: 50 }
            content: { type: string, maxLength: 191 }
            published: { type: boolean, default: false }
    responses:
      201:
        description: Created
      409:
        description: The caller already has a post with this title
      422:
        description: Validation error
    """
    payload = request.get_json(silent=True) or {}
    data = post_write_schema.load(payload)

    if _title_taken(g.current_user_id, data["title"]):
        raise Conflict("You already have a post with this title")

    storage = get_storage()
    post = Post(
        title=data["title"],
        content=data["content"],
        published=data["published"],
        author_id=g.current_user_id,
    )
    storage.new(post)
    storage.save()

    return jsonify({"data": post_out_schema.dump(post)}), 201


@bp.put("/posts/<post_id>")
@jwt_required()
def update_post(post_id: str):
    """
    Replace a post's title, content and published flag
    ---
    tags:
      - Posts
    security:
      - Bearer: []
    consumes:
      - application/json
    parameters:
      - in: path
        name: post_id
        type: string
        required: true
      - in: body
        name: body
        required: true
        schema:
          type: object
          required: [title]
          properties:
            title: { type: string, maxLength: 50 }
            content: { type: string, maxLength: 191 }
            published: { type: boolean, default: false }
    responses:
      200:
        description: Updated
      403:
        description: Not the author
      404:
        description: Not found
      409:
        description: The caller has another post with this title
    """
    post = _get_owned_post(post_id)
    payload = request.get_json(silent=True) or {}
    data = post_write_schema.load(payload)

    if _title_taken(g.current_user_id, data["title"], exclude_id=post.id):
        raise Conflict("You already have another post with this title")

    for field in ("title", "content", "published"):
        setattr(post, field, data[field])

    storage = get_storage()
    storage.new(post)
    storage.save()
    return jsonify({"data": post_out_schema.dump(post)})


@bp.patch("/posts/bulk-update")
@jwt_required()
def bulk_update():
    """
    Publish, unpublish or delete several of the caller's posts at once
    ---
    tags:
      - Posts
    security:
      - Bearer: []
    consumes:
      - application/json
    parameters:
      - in: body
        name: body
        required: true
        schema:
          type: object
          required: [post_ids, action]
          properties:
            post_ids:
              type: array
              items: { type: string }
            action: { type: string, enum: [publish, unpublish, delete] }
    responses:
      200:
        description: Number of affected posts
      403:
        description: One or more posts do not belong to the caller
      422:
        description: Validation error
    """
    payload = request.get_json(silent=True) or {}
    data = bulk_update_schema.load(payload)
    post_ids, action = data["post_ids"], data["action"]

    storage = get_storage()
    session = storage.get_session()
    owned = session.query(Post.id).filter(
        Post.id.in_(post_ids), Post.author_id == g.current_user_id
    ).all()
    if len(owned) != len(post_ids):
        raise AuthorizationFailed("You can only modify your own posts")

    query = session.query(Post).filter(Post.id.in_(post_ids))
    if action == "delete":
        affected = query.delete(synchronize_session=False)
    else:
        affected = query.update(
            {Post.published: action == "publish", Post.updated_at: _now()},
            synchronize_session=False,
        )
    storage.save()
    # rows changed behind the identity map's back
    session.expire_all()

    return jsonify(
        {
            "data": {"affected_count": affected, "action": action},
            "message": f"{affected} posts {'deleted' if action == 'delete' else action + 'ed'} successfully",
        }
    )


@bp.patch("/posts/<post_id>/toggle-publish")
@jwt_required()
def toggle_publish(post_id: str):
    """
    Flip a post between published and draft
    ---
    tags:
      - Posts
    security:
      - Bearer: []
    parameters:
      - in: path
        name: post_id
        type: string
        required: true
    responses:
      200:
        description: Updated
      403:
        description: Not the author
      404:
        description: Not found
    """
    post = _get_owned_post(post_id)
    post.published = not post.published

    storage = get_storage()
    storage.new(post)
    storage.save()
    return jsonify({"data": post_out_schema.dump(post)})


@bp.post("/posts/<post_id>/duplicate")
@jwt_required()
def duplicate_post(post_id: str):
    """
    Copy a post into a new draft titled "Copy of <title>"
    ---
    tags:
      - Posts
    security:
      - Bearer: []
    parameters:
      - in: path
        name: post_id
        type: string
        required: true
    responses:
      201:
        description: Created
      403:
        description: Not the author
      404:
        description: Not found
    """
    original = _get_owned_post(post_id)

    base_title = f"Copy of {original.title}"
    title, counter = base_title, 1
    while _title_taken(g.current_user_id, title):
        counter += 1
        title = f"{base_title} ({counter})"
    if len(title) > 50:
        raise InputInvalid("Title of the copy would exceed 50 characters")

    storage = get_storage()
    duplicate = Post(
        title=title,
        content=original.content,
        published=False,
        author_id=g.current_user_id,
    )
    storage.new(duplicate)
    storage.save()
    return jsonify({"data": post_out_schema.dump(duplicate)}), 201


@bp.delete("/posts/<post_id>")
@jwt_required()
def delete_post(post_id: str):
    """
    Delete a post
    ---
    tags:
      - Posts
    security:
      - Bearer: []
    parameters:
      - in: path
        name: post_id
        type: string
        required: true
    responses:
      204:
        description: Deleted
      403:
        description: Not the author
      404:
        description: Not found
    """
    post = _get_owned_post(post_id)
    storage = get_storage()
    storage.delete(post)
    storage.save()
    return ("", 204)


@bp.get("/authors/<author_id>/posts")
def author_posts(author_id: str):
    """
    Published posts of one author
    ---
    tags:
      - Posts
    parameters:
      - in: path
        name: author_id
        type: string
        required: true
      - in: query
        name: page
        type: integer
      - in: query
        name: limit
        type: integer
      - in: query
        name: sort_by
        type: string
        enum: [created_at, updated_at, title]
      - in: query
        name: sort_order
        type: string
        enum: [asc, desc]
    responses:
      200:
        description: The author and a page of their published posts
      404:
        description: Author not found
    """
    author = get_storage().get(User, author_id)
    if not author:
        abort(404, description="Author not found")
    query = _posts_query().filter(Post.author_id == author.id, Post.published.is_(True))
    return _list_response(query, SORT_COLUMNS, extra={"author": author_summary_schema.dump(author)})


@bp.get("/search/posts")
def search_posts():
    """
    Case-insensitive search in title and content of published posts
    ---
    tags:
      - Posts
    parameters:
      - in: query
        name: q
        type: string
        required: true
        description: "At least 2 characters"
      - in: query
        name: author_id
        type: string
      - in: query
        name: page
        type: integer
      - in: query
        name: limit
        type: integer
      - in: query
        name: sort_by
        type: string
        enum: [created_at, updated_at, title]
      - in: query
        name: sort_order
        type: string
        enum: [asc, desc]
    responses:
      200:
        description: Matching posts
      400:
        description: Search query too short
    """
    q = (request.args.get("q") or "").strip()
    if len(q) < MIN_SEARCH_LENGTH:
        abort(400, description=f"Search query must be at least {MIN_SEARCH_LENGTH} characters long")

    escaped = q.lower().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    pattern = f"%{escaped}%"
    query = _posts_query().filter(
        Post.published.is_(True),
        or_(
            func.lower(Post.title).like(pattern, escape="\\"),
            func.lower(Post.content).like(pattern, escape="\\"),
        ),
    )
    author_id = request.args.get("author_id")
    if author_id:
        query = query.filter(Post.author_id == author_id)
    return _list_response(query, SORT_COLUMNS, extra={"query": q})


@bp.get("/stats")
@jwt_required()
def stats():
    """
    Post counts and most recent posts of the caller
    ---
    tags:
      - Posts
    security:
      - Bearer: []
    responses:
      200:
        description: OK
      401:
        description: Unauthorized
    """
    counts = _counts_for(g.current_user_id)
    recent = (
        get_storage().get_session().query(Post)
        .filter(Post.author_id == g.current_user_id)
        .order_by(Post.created_at.desc(), Post.id.asc())
        .limit(RECENT_POSTS)
        .all()
    )
    return jsonify(
        {
            "data": {
                "stats": {
                    "total_posts": counts["total"],
                    "published_posts": counts["published"],
                    "draft_posts": counts["drafts"],
                },
                "recent_posts": post_summaries_schema.dump(recent),
            }
        }
    )
