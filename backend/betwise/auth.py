from __future__ import annotations

from functools import wraps

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from betwise.extensions import db, login_manager
from betwise.models import Profile, UserRole
from betwise.utils.jwt_utils import create_access_token, decode_token, get_bearer_token

api_auth = Blueprint("api_auth", __name__, url_prefix="/api/auth")


@login_manager.user_loader
def load_user(user_id):
    return db.session.get(Profile, int(user_id))


@login_manager.request_loader
def load_user_from_request(req):
    """Bearer tokens for the SPA and mobile clients."""
    token = get_bearer_token(req.headers.get("Authorization", ""))
    if not token:
        return None
    payload = decode_token(token)
    if not payload or payload.get("type") != "access":
        return None
    try:
        user_id = int(payload.get("sub"))
    except (TypeError, ValueError):
        return None
    return db.session.get(Profile, user_id)


@login_manager.unauthorized_handler
def _unauthorized():
    return jsonify({"message": "Unauthorized"}), 401


def admin_required(view):
    @wraps(view)
    @login_required
    def wrapper(*args, **kwargs):
        if not current_user.is_admin:
            return jsonify({"message": "Admin required"}), 403
        return view(*args, **kwargs)

    return wrapper


@api_auth.post("/signup")
def signup():
    data = request.get_json(silent=True) or {}
    email = (data.get("email") or "").strip().lower()
    password = data.get("password") or ""
    username = (data.get("username") or email.split("@")[0]).strip()
    if not email or "@" not in email:
        return jsonify({"message": "valid email required"}), 400
    if len(password) < 6:
        return jsonify({"message": "password must be at least 6 characters"}), 400
    if Profile.query.filter_by(email=email).first():
        return jsonify({"message": "email already registered"}), 409

    profile = Profile(email=email, username=username[:120])
    profile.set_password(password)
    profile.roles.append(UserRole(role="user"))
    db.session.add(profile)
    db.session.commit()

    return jsonify({"ok": True, "token": create_access_token(profile.id), "user": profile.to_dict()}), 201


@api_auth.post("/login")
def login():
    data = request.get_json(silent=True) or {}
    email = (data.get("email") or "").strip().lower()
    password = data.get("password") or ""
    if not email or not password:
        return jsonify({"message": "email and password required"}), 400
    profile = Profile.query.filter_by(email=email).first()
    if not profile or not profile.check_password(password):
        return jsonify({"message": "invalid credentials"}), 401
    return jsonify({"ok": True, "token": create_access_token(profile.id), "user": profile.to_dict()}), 200


@api_auth.get("/me")
@login_required
def me():
    return jsonify({"ok": True, "user": current_user.to_dict()}), 200
