from models.base_model import Base, BaseModel, utcnow
from models.user import User, GENDERS
from models.refresh_token import RefreshToken
from models.recovery_token import PasswordResetToken, EmailVerifyToken
from models.db_storage import DBStorage

__all__ = [
    "Base",
    "BaseModel",
    "utcnow",
    "User",
    "GENDERS",
    "RefreshToken",
    "PasswordResetToken",
    "EmailVerifyToken",
    "DBStorage",
]
