from sqlalchemy import Column, DateTime, Index, Integer, String

from blogapi.db.base import Base


class Attempt(Base):
    """One request hitting a throttled route. Append-only."""

    __tablename__ = "attempts"

    id = Column(Integer, primary_key=True)
    ip = Column(String(64), nullable=False)
    url = Column(String(512), nullable=False)
    timestamp = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (Index("ix_attempts_ip_url_timestamp", "ip", "url", "timestamp"),)
