#!/usr/bin/env python3
"""
Shared SQLAlchemy base and mixins for the vidshare API.

- Integer autoincrement primary key
- created_at / updated_at timestamps, stored as naive UTC
- persistence goes through an explicitly passed DBStorage, never a global

Notes:
- Timestamps are filled in Python with utils.security.utcnow, not by the database.
  Services that need a controllable clock set created_at explicitly.
"""

from __future__ import annotations

from sqlalchemy import Column, DateTime, Integer
from sqlalchemy.orm import declarative_base

from utils.security import utcnow

# Declarative base for all models
Base = declarative_base()


class BaseModel:
    """
    Base mixin for all persistent models: id, created_at, updated_at.
    """

    id = Column(Integer, primary_key=True, autoincrement=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} id={self.id}>"
