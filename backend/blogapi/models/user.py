from sqlalchemy import Boolean, Column, DateTime, Integer, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from blogapi.db.base import Base


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    login = Column(String(64), unique=True, nullable=False, index=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    hashed_password = Column(String(255), nullable=False)
    # Soft delete: row stays, every session of the user is dropped
    is_deleted = Column(Boolean, nullable=False, default=False, server_default="0")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    # Email confirmation (opaque code, mutated in place, never cleared)
    confirmation_code = Column(String(64), unique=True, nullable=True, index=True)
    confirmation_expires_at = Column(DateTime(timezone=True), nullable=True)
    is_confirmed = Column(Boolean, nullable=False, default=False, server_default="0")

    # Password recovery: only the hash of the signed code is stored
    recovery_code_hash = Column(String(128), nullable=False, default="", server_default="")
    recovery_expires_at = Column(DateTime(timezone=True), nullable=True)

    device_sessions = relationship("DeviceAuthSession", back_populates="user", cascade="all, delete-orphan")

    def __repr__(self) -> str:
        return f"<User {self.login}>"
