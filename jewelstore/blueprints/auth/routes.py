"""
Authentication Routes

Provides:
- GET  /auth/csrf    (token for mutating requests)
- POST /auth/login
- POST /auth/logout
- GET  /auth/me

Rules:
- Only active admins may log in.
- Credentials validated via password hash; the error never says which part was wrong.
"""

import logging

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required, login_user, logout_user
from flask_wtf.csrf import generate_csrf

from ...errors import ValidationError
from ...models import Admin

logger = logging.getLogger(__name__)

auth_bp = Blueprint("auth", __name__, url_prefix="/auth")


@auth_bp.route("/csrf", methods=["GET"])
def csrf_token():
    return jsonify({"csrfToken": generate_csrf()})


@auth_bp.route("/login", methods=["POST"])
def login():
    data = request.get_json(silent=True) or {}
    email = str(data.get("email") or "").strip().lower()
    password = str(data.get("password") or "")

    if not email or not password:
        raise ValidationError("Email and password are required", "email")

    admin = Admin.query.filter_by(email=email).first()
    if not admin or not admin.check_password(password):
        logger.info("Failed login for %s from %s", email, request.remote_addr)
        return jsonify({"error": "Invalid email or password"}), 401

    if not admin.is_active:
        return jsonify({"error": "Account is disabled"}), 403

    login_user(admin)
    logger.info("Admin %s logged in", admin.email)
    return jsonify({"admin": admin.to_dict()})


@auth_bp.route("/logout", methods=["POST"])
@login_required
def logout():
    logout_user()
    return jsonify({"success": True})


@auth_bp.route("/me", methods=["GET"])
@login_required
def me():
    return jsonify({"admin": current_user.to_dict()})
