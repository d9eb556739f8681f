from flask import Blueprint, jsonify
from sqlalchemy import func

from qconnect.api.errors import NotFound
from qconnect.api.middleware import current_identity
from qconnect.models import storage, refresh_tokens
from qconnect.models.enums import Role
from qconnect.models.user import User
from qconnect.utils.decorators import roles_required

bp = Blueprint("admin", __name__)


@bp.get("")
@roles_required([Role.admin.value])
def summary():
    """
    Admin overview: users per role and live refresh tokens
    ---
    tags:
      - Admin
    security:
      - Bearer: []
    responses:
      200: { description: OK }
      403: { description: Admin role required }
    """
    session = storage.get_session()
    counts = dict(session.query(User.role, func.count(User.id)).group_by(User.role).all())
    return jsonify(
        {
            "data": {
                "users": {role.value: counts.get(role, 0) for role in Role},
                "live_refresh_tokens": refresh_tokens.count_live(),
                "viewer": current_identity().email,
            }
        }
    )


@bp.post("/users/<user_id>/revoke-sessions")
@roles_required([Role.admin.value])
def revoke_sessions(user_id: str):
    """
    Admin-only: revoke every refresh token of a user
    ---
    tags:
      - Admin
    security:
      - Bearer: []
    responses:
      200: { description: Revoked }
      404: { description: Not found }
    """
    if User.find_by_id(user_id) is None:
        raise NotFound("User not found")
    revoked = refresh_tokens.revoke_all(user_id)
    return jsonify({"data": {"user_id": user_id, "revoked": revoked}})
