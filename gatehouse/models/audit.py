"""Audit log model."""
from sqlalchemy import Column, ForeignKey, Index, Integer, String, Text

from gatehouse.database import Base
from gatehouse.services.clock import now_iso


class AuditLog(Base):
    """Append-only record of security-relevant actions."""

    __tablename__ = "audit_logs"
    __table_args__ = (
        Index("ix_audit_logs_actor_created", "actor_id", "created_at"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    actor_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"))
    action = Column(String(50), nullable=False, index=True)
    ip_address = Column(String(45))
    details = Column(Text, default="{}")  # JSON
    created_at = Column(String(26), default=now_iso)
