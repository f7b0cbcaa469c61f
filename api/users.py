from __future__ import annotations

from flask import Blueprint, request, jsonify, g, make_response

from api.auth import clear_session_cookies
from models.schemas.user import PasswordChangeSchema, ProfileUpdateSchema, UserOutSchema
from services.errors import NotFoundError
from utils.decorators import auth_service, csrf_required, jwt_required

bp = Blueprint("users", __name__)

profile_update_schema = ProfileUpdateSchema()
password_change_schema = PasswordChangeSchema()
user_out_schema = UserOutSchema()


@bp.get("/me")
@jwt_required()
def me():
    """
    Get current user info
    ---
    tags:
      - Users
    security:
      - Bearer: []
    responses:
      200:
        description: OK
      401:
        description: Unauthorized
      404:
        description: Account no longer exists
    """
    user = auth_service().get_by_id(g.current_user_id)
    if user is None:
        raise NotFoundError("User", g.current_user_id)
    return jsonify({"data": user_out_schema.dump(user)}), 200


@bp.patch("/me")
@jwt_required()
@csrf_required()
def update_me():
    """
    Update profile fields (name, gender, birth_year)
    ---
    tags:
      - Users
    security:
      - Bearer: []
      - CSRF: []
    consumes:
      - application/json
    parameters:
      -  in: body
         name: body
         schema:
           type: object
           properties:
             name: { type: string }
             gender: { type: string, enum: [male, female, other, prefer-not-to-say] }
             birth_year: { type: integer }
    responses:
      200:
        description: Updated
      400:
        description: Validation error
    """
    payload = request.get_json(silent=True) or {}
    data = profile_update_schema.load(payload)
    if "name" in data:
        data["name"] = data["name"].strip()
    user = auth_service().update_profile(g.current_user_id, **data)
    return jsonify({"data": user_out_schema.dump(user)}), 200


@bp.post("/me/password")
@jwt_required()
@csrf_required()
def change_password():
    """
    Change password; every session, this one included, is signed out
    ---
    tags:
      - Users
    security:
      - Bearer: []
      - CSRF: []
    consumes:
      - application/json
    parameters:
      -  in: body
         name: body
         schema:
           type: object
           properties:
             current_password: { type: string }
             new_password: { type: string }
    responses:
      200:
        description: Password changed
      401:
        description: Current password is incorrect
    """
    payload = request.get_json(silent=True) or {}
    data = password_change_schema.load(payload)
    revoked = auth_service().change_password(
        g.current_user_id, data["current_password"], data["new_password"]
    )
    response = jsonify({"message": "Password changed. Please log in again.", "sessions_revoked": revoked})
    return clear_session_cookies(response)


@bp.delete("/me")
@jwt_required()
@csrf_required()
def delete_me():
    """
    Delete the account and everything attached to it
    ---
    tags:
      - Users
    security:
      - Bearer: []
      - CSRF: []
    responses:
      204:
        description: Deleted
      404:
        description: Not found
    """
    auth_service().delete_account(g.current_user_id)
    response = make_response("", 204)
    return clear_session_cookies(response)
