# ================================
# AUDIT MODELS (models/audit.py)
# ================================

from sqlalchemy import Column, String, Text, JSON, ForeignKey, Uuid
from sqlalchemy.orm import relationship
from backoffice.models.base import Base

class AuditLog(Base):
    """Audit Log für alle wichtigen Aktionen"""
    __tablename__ = "audit_logs"

    # Actor (NULL for anonymous callers)
    user_id = Column(Uuid(as_uuid=True), ForeignKey('users.id', ondelete='SET NULL'), nullable=True, index=True)

    # Action Information
    action = Column(String(100), nullable=False)  # 'LOGIN_SUCCESS', 'ACCESS_DENIED', ...
    resource_type = Column(String(100), nullable=True)  # 'permission', 'role', 'user', or the guarded resource
    resource_id = Column(String(100), nullable=True)

    # Change Details
    details = Column(JSON, nullable=True)

    # Context
    ip_address = Column(String(45), nullable=True)
    user_agent = Column(Text, nullable=True)

    # Relationships
    user = relationship("User", foreign_keys=[user_id])

    def __repr__(self):
        return f"<AuditLog(action='{self.action}', user='{self.user_id}')>"
