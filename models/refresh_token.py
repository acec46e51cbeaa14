"""
RefreshToken model: at most one live refresh token per user.
Fields:
- user_id (unique) - FK to users.id, enforces a single active session per user
- token_hash - Argon2 hash of the issued refresh JWT
- created_at, updated_at
"""
from sqlalchemy import Column, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from models.base_model import Base, BaseModel


class RefreshToken(BaseModel, Base):
    __tablename__ = "refresh_tokens"

    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True)
    token_hash = Column(String(255), nullable=False)

    user = relationship("User", back_populates="refresh_token")
