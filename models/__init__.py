from models.base_model import Base
from models.user import User
from models.refresh_token import RefreshToken
from models.reset_password_request import ResetPasswordRequest
from models.db_storage import DBStorage

__all__ = ["Base", "User", "RefreshToken", "ResetPasswordRequest", "DBStorage"]
