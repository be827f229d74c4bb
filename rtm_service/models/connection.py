"""
SQLAlchemy models for the persisted Azure DevOps connection registry.
"""
from sqlalchemy import Column, String, Integer, DateTime, ForeignKey, Index, Text
from sqlalchemy.orm import relationship
from datetime import datetime, timezone

from rtm_service.db import Base


def _utcnow():
    return datetime.now(timezone.utc)


class Connection(Base):
    """
    A named set of Azure DevOps credentials.
    The personal access token is stored encrypted (see utils.encryption).
    """
    __tablename__ = "connections"
    
    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False, unique=True)
    org_url = Column(String, nullable=False)
    project = Column(String, nullable=False)
    token_ciphertext = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)
    
    sprints = relationship("Sprint", back_populates="connection", cascade="all, delete-orphan", passive_deletes=True)

    def to_summary_dict(self) -> dict:
        """ID, name and timestamps only; never includes credentials."""
        return {
            "id": self.id,
            "name": self.name,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class Sprint(Base):
    """
    Cached copy of a connection's iterations, refreshed on demand.
    """
    __tablename__ = "sprints"
    
    id = Column(String, primary_key=True)
    connection_id = Column(Integer, ForeignKey("connections.id", ondelete="CASCADE"), primary_key=True)
    name = Column(String, nullable=False)
    path = Column(String, nullable=True)
    start_date = Column(String, nullable=True)
    finish_date = Column(String, nullable=True)
    time_frame = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)
    
    connection = relationship("Connection", back_populates="sprints")
    
    __table_args__ = (
        Index('idx_sprints_connection_id', 'connection_id'),
    )

    def to_api_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "path": self.path,
            "startDate": self.start_date,
            "finishDate": self.finish_date,
            "timeFrame": self.time_frame,
        }
