# backend/app/routes/users.py
from flask import Blueprint, jsonify
from sqlalchemy import select

from backend.app.errors import ErrorCode, NotFoundError
from backend.app.extensions import db
from backend.app.middleware.auth_middleware import require_auth
from backend.app.models.user import User

users_bp = Blueprint("users", __name__)


# Used by the bill form to check a username before adding it as a participant.
# The balance is private and is not part of this payload.
@users_bp.route("/by-username/<string:username>", methods=["GET"])
@require_auth
def get_user_by_username(username: str):
    user = db.session.execute(
        select(User).where(User.username == username)
    ).scalar_one_or_none()

    if user is None:
        raise NotFoundError(
            ErrorCode.USER_NOT_FOUND,
            f"User '{username}' not found.",
        )

    return jsonify({
        "data": {
            "id": user.id,
            "username": user.username,
            "created_at": user.created_at.isoformat() if user.created_at else None,
        },
        "warnings": []
    }), 200
