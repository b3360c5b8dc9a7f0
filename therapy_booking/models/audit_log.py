# ===== therapy_booking/models/audit_log.py =====
from sqlalchemy import Column, String, DateTime, JSON, Index

from therapy_booking.models.base import Base, new_id, utcnow


class AuditLog(Base):
    """Trail of administrative overrides (hard deletes, status changes)"""
    __tablename__ = "audit_logs"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(64), nullable=True)
    action = Column(String(50), nullable=False)  # "booking.delete", "booking.transition"
    resource_type = Column(String(50), nullable=False)
    resource_id = Column(String(64), nullable=True)
    old_data = Column(JSON, nullable=True)
    new_data = Column(JSON, nullable=True)
    request_id = Column(String(64), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (
        Index("ix_audit_logs_resource", "resource_type", "resource_id"),
    )
