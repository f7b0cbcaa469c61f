from __future__ import annotations
from functools import wraps
from flask import request, g, current_app

from services.errors import AppError, TokenError, TokenErrorCode
from utils.security import tokens_match


class CSRFError(AppError):
    status_code = 403
    code = "CSRF_FAILED"

    def __init__(self, message: str = "Invalid CSRF token"):
        super().__init__(message)


def auth_service():
    """The AuthService composed by create_app()."""
    return current_app.extensions["auth_service"]


def jwt_required():
    """Require a valid access token in the Authorization header.

    Sets g.current_user_id; the user row itself is loaded by the view only
    when it needs it.
    """
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            auth = request.headers.get("Authorization", "")
            if not auth.startswith("Bearer "):
                raise TokenError(TokenErrorCode.INVALID_TOKEN)
            token = auth.split(" ", 1)[1].strip()
            g.current_user_id = auth_service().verify_access_token(token)
            return fn(*args, **kwargs)

        return wrapper

    return decorator


def csrf_required():
    """
    Double-submit check: the csrf cookie set alongside the refresh cookie
    must be echoed back in the CSRF header.
    """
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            cookie = request.cookies.get(current_app.config["CSRF_COOKIE_NAME"])
            header = request.headers.get(current_app.config["CSRF_HEADER_NAME"])
            if not tokens_match(header, cookie):
                raise CSRFError()
            return fn(*args, **kwargs)

        return wrapper

    return decorator
