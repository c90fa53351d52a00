# ================================
# UTILS PACKAGE INITIALIZATION (utils/__init__.py)
# ================================

"""
Utils Package

Audit logging and compliance tracking
"""

from backoffice.utils.audit import AuditLogger, audit_logger

__all__ = ["AuditLogger", "audit_logger"]
