"""
Authentication blueprint:
- POST /auth/register
- POST /auth/login
- POST /auth/refresh
- POST /auth/logout
- POST /auth/logout-all
- POST /auth/password-reset
- POST /auth/password-reset/confirm
- GET  /auth/verify-email/<token>
- POST /auth/resend-verification

The access token travels in the JSON body and comes back as a Bearer header.
The refresh token lives only in an HttpOnly, SameSite=Strict cookie, with a
script-readable csrf cookie next to it for the double-submit check on the
cookie-authenticated endpoints. All rules live in AuthService.
"""
from __future__ import annotations

from flask import Blueprint, request, jsonify, g, current_app

from api.errors import error_response
from models.schemas.user import (
    LoginSchema,
    PasswordResetConfirmSchema,
    PasswordResetRequestSchema,
    RegisterSchema,
    UserOutSchema,
)
from services.errors import TokenError
from utils.decorators import auth_service, csrf_required, jwt_required
from utils.security import generate_csrf_token

RESET_REQUESTED_MESSAGE = "If an account with that email exists, a password reset link has been sent."

bp = Blueprint("auth", __name__)

register_schema = RegisterSchema()
login_schema = LoginSchema()
reset_request_schema = PasswordResetRequestSchema()
reset_confirm_schema = PasswordResetConfirmSchema()
user_out_schema = UserOutSchema()


def set_session_cookies(response, refresh_token: str):
    """Attach the refresh cookie and a fresh csrf cookie with the same lifetime."""
    cfg = current_app.config
    max_age = int(cfg["REFRESH_TOKEN_TTL"].total_seconds())
    response.set_cookie(
        cfg["REFRESH_COOKIE_NAME"],
        refresh_token,
        max_age=max_age,
        httponly=True,
        secure=cfg["REFRESH_COOKIE_SECURE"],
        samesite="Strict",
        path="/",
    )
    response.set_cookie(
        cfg["CSRF_COOKIE_NAME"],
        generate_csrf_token(),
        max_age=max_age,
        httponly=False,
        secure=cfg["REFRESH_COOKIE_SECURE"],
        samesite="Strict",
        path="/",
    )
    return response


def clear_session_cookies(response):
    cfg = current_app.config
    response.delete_cookie(
        cfg["REFRESH_COOKIE_NAME"], path="/", secure=cfg["REFRESH_COOKIE_SECURE"],
        httponly=True, samesite="Strict",
    )
    response.delete_cookie(
        cfg["CSRF_COOKIE_NAME"], path="/", secure=cfg["REFRESH_COOKIE_SECURE"],
        samesite="Strict",
    )
    return response


def _refresh_cookie():
    return request.cookies.get(current_app.config["REFRESH_COOKIE_NAME"])


@bp.post("/register")
def register():
    """
    Register a new account and start a session.
    ---
    tags:
      - Auth
    consumes:
      - application/json
    parameters:
      - in: body
        name: body
        schema:
          type: object
          required: [email, password, name, birth_year]
          properties:
            email: { type: string }
            password: { type: string }
            name: { type: string }
            birth_year: { type: integer }
            gender: { type: string, enum: [male, female, other, prefer-not-to-say] }
    responses:
      201:
        description: Created; sets refreshToken and csrf-token cookies
      400:
        description: Validation error
      409:
        description: Email already registered
    """
    payload = request.get_json(silent=True) or {}
    data = register_schema.load(payload)

    result = auth_service().register(
        email=data["email"],
        password=data["password"],
        name=data["name"].strip(),
        birth_year=data["birth_year"],
        gender=data.get("gender"),
    )

    response = jsonify(
        {
            "user": user_out_schema.dump(result.user),
            "access_token": result.access_token,
            "token_type": "bearer",
            "expires_in": int(current_app.config["ACCESS_TOKEN_TTL"].total_seconds()),
            "email_verification_sent": result.email_verification_sent,
        }
    )
    response.status_code = 201
    return set_session_cookies(response, result.refresh_token)


@bp.post("/login")
def login():
    """
    Login: returns an access token and sets the refresh cookie
    ---
    tags:
      - Auth
    consumes:
      - application/json
    parameters:
      -  in: body
         name: body
         schema:
           type: object
           properties:
             email: { type: string }
             password: { type: string }
    responses:
      200:
        description: OK (returns access token)
      401:
        description: Invalid credentials or account temporarily locked
    """
    payload = request.get_json(silent=True) or {}
    data = login_schema.load(payload)

    result = auth_service().login(data["email"], data["password"])

    response = jsonify(
        {
            "user": user_out_schema.dump(result.user),
            "access_token": result.access_token,
            "token_type": "bearer",
            "expires_in": int(current_app.config["ACCESS_TOKEN_TTL"].total_seconds()),
        }
    )
    return set_session_cookies(response, result.refresh_token)


@bp.post("/refresh")
def refresh():
    """
    Rotate the refresh cookie and obtain a new access token
    ---
    tags:
      - Auth
    responses:
      200:
        description: OK (new access token, rotated cookie)
      401:
        description: Missing, invalid, expired or already-used refresh token
    """
    try:
        result = auth_service().refresh_tokens(_refresh_cookie())
    except TokenError as err:
        # A dead cookie is useless to the client; drop it
        response, status = error_response(err.code, err.message, err.status_code)
        clear_session_cookies(response)
        return response, status

    response = jsonify(
        {
            "access_token": result.access_token,
            "token_type": "bearer",
            "expires_in": int(current_app.config["ACCESS_TOKEN_TTL"].total_seconds()),
        }
    )
    return set_session_cookies(response, result.refresh_token)


@bp.post("/logout")
@csrf_required()
def logout():
    """
    Logout: revokes the session behind the refresh cookie
    ---
    tags:
      - Auth
    security:
      - CSRF: []
    responses:
      200:
        description: Logged out (also when the cookie was already invalid)
      403:
        description: CSRF check failed
    """
    auth_service().logout(_refresh_cookie())
    response = jsonify({"message": "Logged out"})
    return clear_session_cookies(response)


@bp.post("/logout-all")
@jwt_required()
@csrf_required()
def logout_all():
    """
    Logout everywhere: revokes every session of the current user
    ---
    tags:
      - Auth
    security:
      - Bearer: []
      - CSRF: []
    responses:
      200:
        description: Number of sessions revoked
      401:
        description: Unauthorized
    """
    count = auth_service().logout_all(g.current_user_id)
    response = jsonify({"message": "Logged out of all sessions", "count": count})
    return clear_session_cookies(response)


@bp.post("/password-reset")
def request_password_reset():
    """
    Request a password reset email. Same answer whether or not the account exists.
    ---
    tags:
      - Auth
    consumes:
      - application/json
    parameters:
      -  in: body
         name: body
         schema:
           type: object
           properties:
             email: { type: string }
    responses:
      200:
        description: OK
      400:
        description: Validation error
    """
    payload = request.get_json(silent=True) or {}
    data = reset_request_schema.load(payload)
    auth_service().request_password_reset(data["email"])
    return jsonify({"message": RESET_REQUESTED_MESSAGE}), 200


@bp.post("/password-reset/confirm")
def confirm_password_reset():
    """
    Set a new password with a reset token; signs out every session
    ---
    tags:
      - Auth
    consumes:
      - application/json
    parameters:
      -  in: body
         name: body
         schema:
           type: object
           properties:
             token: { type: string }
             new_password: { type: string }
    responses:
      200:
        description: Password changed
      400:
        description: Validation error
      401:
        description: Invalid or expired token
    """
    payload = request.get_json(silent=True) or {}
    data = reset_confirm_schema.load(payload)
    auth_service().confirm_password_reset(data["token"], data["new_password"])
    response = jsonify({"message": "Password has been reset. Please log in again."})
    return clear_session_cookies(response)


@bp.get("/verify-email/<token>")
def verify_email(token: str):
    """
    Confirm an email address
    ---
    tags:
      - Auth
    parameters:
      -  in: path
         name: token
         type: string
         required: true
    responses:
      200:
        description: Email verified
      401:
        description: Invalid or expired token
    """
    user = auth_service().verify_email(token)
    return jsonify({"message": "Email verified", "user": user_out_schema.dump(user)}), 200


@bp.post("/resend-verification")
@jwt_required()
@csrf_required()
def resend_verification():
    """
    Send a new verification email (at most 5 per hour)
    ---
    tags:
      - Auth
    security:
      - Bearer: []
      - CSRF: []
    responses:
      200:
        description: Sent, or already verified
      400:
        description: Too many requests for this hour
      401:
        description: Unauthorized
    """
    sent = auth_service().resend_email_verification(g.current_user_id)
    message = "Verification email sent" if sent else "Email already verified"
    return jsonify({"message": message, "sent": sent}), 200
