from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from blogapi.db.base import Base


class DeviceAuthSession(Base):
    """
    The currently valid refresh-token generation of one logged-in device.

    At most one row per `device_id`. `issued_at` always equals the `issued_at`
    claim of the only refresh token that may still be used for the device; a
    token carrying any other value is stale.
    """

    __tablename__ = "device_auth_sessions"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    device_id = Column(String(36), unique=True, nullable=False, index=True)

    issued_at = Column(DateTime(timezone=True), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)

    device_name = Column(Text, nullable=False, default="Unknown")
    ip = Column(String(64), nullable=False, default="Unknown")

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    user = relationship("User", back_populates="device_sessions")

    def __repr__(self) -> str:
        return f"<DeviceAuthSession device={self.device_id} user={self.user_id}>"
