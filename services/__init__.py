from services.mail import Mailer
from services.password_reset import PasswordResetManager
from services.session import SessionManager, SessionTokens

__all__ = ["Mailer", "PasswordResetManager", "SessionManager", "SessionTokens"]
