"""
Users blueprint. Access is decided by the session middleware policy:
reads for any signed-in role, create/delete for admins, updates for the
account owner or an admin.
"""
from __future__ import annotations

import logging
from typing import Tuple

from flask import Blueprint, request, jsonify
from sqlalchemy import or_

from qconnect.api.errors import Conflict, Forbidden, NotFound, ValidationFailed
from qconnect.api.middleware import current_identity
from qconnect.models import storage
from qconnect.models.enums import Role
from qconnect.models.user import User
from qconnect.models.schemas.user import UserCreateSchema, UserOutSchema, UserUpdateSchema
from qconnect.utils.security import hash_password

MAX_LIMIT = 100

logger = logging.getLogger(__name__)

bp = Blueprint("users", __name__)

user_create_schema = UserCreateSchema()
user_update_schema = UserUpdateSchema()
user_out_schema = UserOutSchema()
user_list_out_schema = UserOutSchema(many=True)


def parse_pagination() -> Tuple[int, int]:
    try:
        page = int(request.args.get("page", "1"))
        limit = int(request.args.get("limit", "10"))
    except ValueError:
        raise ValidationFailed("page and limit must be integers")
    page = max(page, 1)
    limit = max(1, min(limit, MAX_LIMIT))
    return page, limit


def _get_user_or_404(user_id: str) -> User:
    user = User.find_by_id(user_id)
    if user is None:
        raise NotFound("User not found")
    return user


@bp.get("/users")
def list_users():
    """
    List users (paginated, optional ?q= search on name/email)
    ---
    tags:
      - Users
    security:
      - Bearer: []
    responses:
      200: { description: OK }
    """
    session = storage.get_session()
    page, limit = parse_pagination()
    q = (request.args.get("q") or "").strip()

    query = session.query(User)
    if q:
        pattern = f"%{q}%"
        query = query.filter(or_(User.name.ilike(pattern), User.email.ilike(pattern)))

    total = query.count()
    rows = query.order_by(User.created_at.asc(), User.email.asc()).offset((page - 1) * limit).limit(limit).all()
    return jsonify(
        {
            "data": user_list_out_schema.dump(rows),
            "meta": {"page": page, "limit": limit, "total": total, "accessed_by": current_identity().email},
        }
    )


@bp.get("/users/<user_id>")
def get_user(user_id: str):
    """
    Get one user
    ---
    tags:
      - Users
    security:
      - Bearer: []
    responses:
      200: { description: OK }
      404: { description: Not found }
    """
    return jsonify({"data": user_out_schema.dump(_get_user_or_404(user_id))})


@bp.post("/users")
def create_user():
    """
    Admin-only: create a user with any role
    ---
    tags:
      - Users
    security:
      - Bearer: []
    responses:
      201: { description: Created }
      409: { description: Email already registered }
    """
    data = user_create_schema.load(request.get_json(silent=True) or {})
    if User.find_by_email(data["email"]):
        raise Conflict("Email already registered")
    user = User(
        name=data["name"],
        email=data["email"],
        phone=data.get("phone"),
        role=data["role"],
        password_hash=hash_password(data["password"]),
    )
    storage.new(user)
    storage.save()
    logger.info("user %s created with role %s", user.id, user.role.value)
    return jsonify({"data": user_out_schema.dump(user)}), 201


@bp.patch("/users/<user_id>")
def update_user(user_id: str):
    """
    Update a user (owner or admin; role changes admin only)
    ---
    tags:
      - Users
    security:
      - Bearer: []
    responses:
      200: { description: OK }
      403: { description: Not allowed }
      404: { description: Not found }
    """
    data = user_update_schema.load(request.get_json(silent=True) or {})
    if not data:
        raise ValidationFailed("At least one field must be provided")
    if "role" in data and current_identity().role != Role.admin:
        raise Forbidden("Only admins can change roles")

    user = _get_user_or_404(user_id)
    for key, value in data.items():
        setattr(user, key, value)
    user.save()
    return jsonify({"data": user_out_schema.dump(user)})


@bp.delete("/users/<user_id>")
def delete_user(user_id: str):
    """
    Admin-only: delete a user (their refresh tokens go with them)
    ---
    tags:
      - Users
    security:
      - Bearer: []
    responses:
      200: { description: Deleted }
      404: { description: Not found }
    """
    user = _get_user_or_404(user_id)
    user.delete()
    storage.save()
    logger.info("user %s deleted", user_id)
    return jsonify({"message": "User deleted"})
