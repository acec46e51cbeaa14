"""
ResetPasswordRequest model: a pending password reset for an email address.

email is not a foreign key: a request may exist for an address that has no
account.
"""
from sqlalchemy import Column, String

from models.base_model import Base, BaseModel


class ResetPasswordRequest(BaseModel, Base):
    __tablename__ = "reset_password_requests"

    email = Column(String(255), nullable=False, index=True)
    token_hash = Column(String(255), nullable=False)
