import datetime
import logging
import re

from flask import Blueprint, current_app
from flask_jwt_extended import (
    create_access_token,
    create_refresh_token,
    current_user,
    decode_token,
    get_jwt,
    get_jwt_identity,
    jwt_required,
)
from flask_jwt_extended.exceptions import JWTExtendedException
from jwt.exceptions import PyJWTError
from sqlalchemy.exc import SQLAlchemyError

from gtshop.errors import FailedPreconditionError, InternalError, UnauthenticatedError, ValidationError
from gtshop.extensions import BLOCKLIST, db
from gtshop.models.user import User
from gtshop.routes import json_body, ok

logger = logging.getLogger(__name__)

auth_bp = Blueprint("auth", __name__)

EMAIL_REGEX = r"^[a-zA-Z0-9_.+-]+@[a-zA-Z0-9-]+\.[a-zA-Z0-9-.]+$"
VERIFY_PURPOSE = "verify_email"


def _verification_token(user):
    return create_access_token(
        identity=str(user.user_id),
        additional_claims={"purpose": VERIFY_PURPOSE},
        expires_delta=datetime.timedelta(days=1),
    )


def _sync_admin_flag(user):
    if user.email.lower() in current_app.config.get("ADMIN_EMAILS", []) and not user.is_admin:
        user.is_admin = True
        db.session.commit()
        logger.info("User %s promoted to admin from ADMIN_EMAILS", user.user_id)


@auth_bp.route("/register", methods=["POST"])
def register():
    """
    Register a new user
    ---
    tags:
      - Auth
    parameters:
      - in: body
        name: body
        required: true
        schema:
          type: object
          required:
            - email
            - password
          properties:
            email:
              type: string
            password:
              type: string
    responses:
      201:
        description: User registered, verification pending
      400:
        description: Invalid email or password
      409:
        description: Email already exists
    """
    data = json_body()
    email = str(data.get("email") or "").strip().lower()
    password = data.get("password") or ""
    if not email or not password:
        raise ValidationError("Missing email or password")

    if not re.match(EMAIL_REGEX, email):
        raise ValidationError("Invalid email format")

    if len(password) < 8:
        raise ValidationError("Password must be at least 8 characters")

    if User.query.filter_by(email=email).first():
        raise FailedPreconditionError("Email already exists")

    new_user = User(email=email)
    new_user.set_password(password)

    try:
        db.session.add(new_user)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        raise InternalError(f"Database error: {e}")

    _sync_admin_flag(new_user)

    # No mail transport here; the token is logged for the operator to relay
    token = _verification_token(new_user)
    logger.info("Email verification token for %s: %s", email, token)

    body = {"user_id": new_user.user_id}
    if current_app.debug or current_app.testing:
        body["verification_token"] = token
    return ok(body, 201)


@auth_bp.route("/verify-email", methods=["POST"])
def verify_email():
    """
    Confirm an email address with the token issued at registration
    ---
    tags:
      - Auth
    parameters:
      - in: body
        name: body
        required: true
        schema:
          type: object
          required:
            - token
          properties:
            token:
              type: string
    responses:
      200:
        description: Email verified
      401:
        description: Invalid or expired token
    """
    token = json_body().get("token")
    if not token:
        raise ValidationError("Missing token")
    try:
        claims = decode_token(token)
    except (PyJWTError, JWTExtendedException):
        raise UnauthenticatedError("Invalid or expired verification token")
    if claims.get("purpose") != VERIFY_PURPOSE:
        raise UnauthenticatedError("Invalid or expired verification token")

    user = db.session.get(User, claims["sub"])
    if user is None:
        raise UnauthenticatedError("Invalid or expired verification token")
    if not user.email_verified:
        user.email_verified = True
        db.session.commit()
        logger.info("Email verified for user %s", user.user_id)
    return ok(user.to_dict())


@auth_bp.route("/login", methods=["POST"])
def login():
    """
    Authenticate user and return tokens
    ---
    tags:
      - Auth
    parameters:
      - in: body
        name: body
        required: true
        schema:
          type: object
          required:
            - email
            - password
          properties:
            email:
              type: string
            password:
              type: string
    responses:
      200:
        description: Login successful
      401:
        description: Invalid credentials
    """
    data = json_body()
    email = str(data.get("email") or "").strip().lower()
    if not email or not data.get("password"):
        raise ValidationError("Missing email or password")

    user = User.query.filter_by(email=email).first()

    if user and user.check_password(data["password"]):
        _sync_admin_flag(user)
        access_token = create_access_token(identity=str(user.user_id), expires_delta=datetime.timedelta(minutes=15))
        refresh_token = create_refresh_token(identity=str(user.user_id), expires_delta=datetime.timedelta(days=7))

        return ok({
            "access_token": access_token,
            "refresh_token": refresh_token,
            "user": user.to_dict(),
        })

    raise UnauthenticatedError("Invalid email or password")


@auth_bp.route("/refresh", methods=["POST"])
@jwt_required(refresh=True)
def refresh():
    """
    Refresh access token
    ---
    tags:
      - Auth
    security:
      - Bearer: []
    responses:
      200:
        description: New access token
      401:
        description: Invalid refresh token
    """
    current_user_id = get_jwt_identity()
    new_access_token = create_access_token(identity=current_user_id, expires_delta=datetime.timedelta(minutes=15))
    return ok({"access_token": new_access_token})


@auth_bp.route("/logout", methods=["POST"])
@jwt_required()
def logout():
    """
    Logout user (Revoke token)
    ---
    tags:
      - Auth
    security:
      - Bearer: []
    responses:
      200:
        description: Logout successful
    """
    BLOCKLIST.add(get_jwt()["jti"])
    return ok({"user_id": current_user.user_id})


@auth_bp.route("/me", methods=["GET"])
@jwt_required()
def me():
    return ok(current_user.to_dict())
