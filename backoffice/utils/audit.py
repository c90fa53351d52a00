# ================================
# AUDIT LOGGING UTILITY (utils/audit.py)
# ================================

from sqlalchemy.orm import Session
from backoffice.models.audit import AuditLog
from typing import Optional, Dict, Any, Union
from datetime import datetime, timezone
from ipaddress import IPv4Address, IPv6Address, ip_address as parse_ip
import uuid
import logging

logger = logging.getLogger(__name__)

class AuditLogger:
    """
    Audit trail for authentication, authorization and administrative actions.

    Entries are written to the ``audit_logs`` table and mirrored to the
    application logger. Sensitive keys (passwords, tokens, secrets) are
    redacted before either sink sees them.

    Audit logging is a side effect: failures are logged and swallowed so
    they never change the response the caller receives.
    """

    SENSITIVE_KEYS = {
        'password', 'password_hash', 'token', 'session_token', 'csrf_token',
        'secret', 'api_key', 'private_key'
    }

    def log_auth_event(
        self,
        db: Session,
        action: str,
        user_id: Optional[uuid.UUID],
        details: Optional[Dict[str, Any]] = None,
        ip_address: Optional[Union[str, IPv4Address, IPv6Address]] = None,
        user_agent: Optional[str] = None,
        resource_type: Optional[str] = None,
        resource_id: Optional[Any] = None
    ) -> Optional[AuditLog]:
        """
        Log an authentication or authorization event.

        Args:
            db: Database session
            action: Action performed (e.g., 'LOGIN_SUCCESS', 'ROLE_CREATED')
            user_id: ID of user performing action
            details: Additional structured data about the event
            ip_address: Client IP address
            user_agent: Client user agent string
            resource_type: Type of resource affected (optional)
            resource_id: ID of affected resource (optional)

        Returns:
            Created AuditLog instance, or None when the entry could not be built
        """
        try:
            sanitized_details = self._sanitize_sensitive_data(details or {})

            audit_entry = AuditLog(
                user_id=user_id,
                action=action,
                resource_type=resource_type,
                resource_id=str(resource_id) if resource_id is not None else None,
                details=sanitized_details if sanitized_details else None,
                ip_address=self._normalize_ip_address(ip_address),
                user_agent=user_agent[:500] if user_agent else None  # Truncate long user agents
            )

            db.add(audit_entry)

            # Log to application logger as well
            self._log_to_application_logger(action, user_id, sanitized_details)

            return audit_entry

        except Exception as e:
            logger.error(f"Failed to create audit log: {e}", exc_info=True)
            # Don't raise exception to avoid breaking the main flow
            return None

    def log_security_event(
        self,
        db: Session,
        action: str,
        severity: str,
        user_id: Optional[uuid.UUID],
        threat_details: Dict[str, Any],
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None
    ) -> Optional[AuditLog]:
        """
        Log security-related events (denials, CSRF rejections, throttling).

        Args:
            severity: 'low', 'medium', 'high' or 'critical'
            threat_details: Detailed information about the security event
        """
        enhanced_details = {
            "security_event": True,
            "severity": severity,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            **threat_details
        }

        return self.log_auth_event(
            db=db,
            action=action,
            user_id=user_id,
            details=enhanced_details,
            ip_address=ip_address,
            user_agent=user_agent,
            resource_type=threat_details.get("resource") or "security"
        )

    def log_denial(
        self,
        db: Session,
        action: str,
        user_id: Optional[uuid.UUID],
        details: Dict[str, Any],
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None
    ) -> None:
        """
        Record a denied request and commit it immediately.

        Called before any business write happens, so committing the request
        session only persists the audit entry itself.
        """
        try:
            entry = self.log_security_event(
                db, action, "medium", user_id, details,
                ip_address=ip_address, user_agent=user_agent
            )
            if entry is not None:
                db.commit()
        except Exception as e:
            db.rollback()
            logger.error(f"Failed to persist denial audit entry: {e}", exc_info=True)

    def _sanitize_sensitive_data(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Remove or mask sensitive information from audit data"""
        if not data:
            return {}

        sanitized = {}
        for key, value in data.items():
            if self._is_sensitive_key(key):
                sanitized[key] = "***REDACTED***"
            elif isinstance(value, dict):
                sanitized[key] = self._sanitize_sensitive_data(value)
            elif isinstance(value, list):
                sanitized[key] = [
                    self._sanitize_sensitive_data(item) if isinstance(item, dict) else self._json_safe(item)
                    for item in value
                ]
            elif isinstance(value, str) and len(value) > 1000:
                # Truncate very long strings to prevent log bloat
                sanitized[key] = value[:1000] + "...[TRUNCATED]"
            else:
                sanitized[key] = self._json_safe(value)

        return sanitized

    @staticmethod
    def _json_safe(value: Any) -> Any:
        if isinstance(value, (uuid.UUID, IPv4Address, IPv6Address)):
            return str(value)
        if isinstance(value, datetime):
            return value.isoformat()
        return value

    def _normalize_ip_address(self, ip_address: Optional[Union[str, IPv4Address, IPv6Address]]) -> Optional[str]:
        """Normalize IP address for consistent storage"""
        if not ip_address:
            return None

        if isinstance(ip_address, (IPv4Address, IPv6Address)):
            return str(ip_address)

        # Handle forwarded IPs (take the first one)
        candidate = str(ip_address).split(',')[0].strip()
        try:
            return str(parse_ip(candidate))
        except ValueError:
            # Test clients report hostnames such as 'testclient'
            return candidate[:45]

    def _log_to_application_logger(
        self,
        action: str,
        user_id: Optional[uuid.UUID],
        details: Dict[str, Any]
    ):
        """Also log to application logger for immediate visibility"""
        log_message = f"AUDIT: {action}"
        if user_id:
            log_message += f" | User: {user_id}"
        if details:
            safe_details = {k: v for k, v in details.items() if not self._is_sensitive_key(k)}
            if safe_details:
                log_message += f" | Details: {safe_details}"
        logger.info(log_message)

    def _is_sensitive_key(self, key: Any) -> bool:
        key_lower = str(key).lower()
        return any(sensitive_key in key_lower for sensitive_key in self.SENSITIVE_KEYS)

audit_logger = AuditLogger()
