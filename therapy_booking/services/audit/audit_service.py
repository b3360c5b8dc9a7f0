# therapy_booking/services/audit/audit_service.py
"""Audit trail for administrative overrides"""
from typing import Optional, Dict, Any
from sqlalchemy.orm import Session

from therapy_booking.core.identity import Identity
from therapy_booking.models.audit_log import AuditLog


class AuditService:

    @staticmethod
    def record(
            db: Session,
            actor: Optional[Identity],
            action: str,
            resource_type: str,
            resource_id: Optional[str],
            old_data: Optional[Dict[str, Any]] = None,
            new_data: Optional[Dict[str, Any]] = None,
            request_id: Optional[str] = None
    ) -> AuditLog:
        """Stage an audit row in the caller's transaction (no commit)"""
        entry = AuditLog(
            user_id=actor.user_id if actor else None,
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            old_data=old_data,
            new_data=new_data,
            request_id=request_id,
        )
        db.add(entry)
        return entry

    @staticmethod
    def list_for_resource(db: Session, resource_type: str, resource_id: str):
        return db.query(AuditLog).filter(
            AuditLog.resource_type == resource_type,
            AuditLog.resource_id == resource_id
        ).order_by(AuditLog.created_at.asc()).all()
