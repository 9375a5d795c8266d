"""
Audit logging for security-sensitive operations.

Logs registration, login and session-fencing events, sensitive reads and
gateway connection lifecycle events to help with incident response.
"""

import logging
from typing import Optional
from fastapi import Request

# Configure audit logger
audit_logger = logging.getLogger("audit")
audit_logger.setLevel(logging.INFO)

# Create handler if not already configured
if not audit_logger.handlers:
    handler = logging.StreamHandler()
    formatter = logging.Formatter(
        '%(asctime)s - AUDIT - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    handler.setFormatter(formatter)
    audit_logger.addHandler(handler)


class AuditLogger:
    """
    Centralized audit logging for security events.

    All authentication and session operations should be logged here.
    """

    @staticmethod
    def get_client_ip(request: Optional[Request]) -> str:
        """Extract client IP from request."""
        if not request:
            return "unknown"

        # Check for forwarded IP (if behind proxy)
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            return forwarded.split(",")[0].strip()

        return request.client.host if request.client else "unknown"

    @staticmethod
    def log_auth_event(
        event_type: str,
        username: Optional[str],
        success: bool,
        family_id: Optional[str] = None,
        details: Optional[str] = None
    ):
        """
        Log authentication events.

        Args:
            event_type: Type of auth event (register, confirm_registration,
                login, resume, session_expired)
            username: Username key the event concerns
            success: Whether the operation succeeded
            family_id: Family the account belongs to, if known
            details: Additional details about the event
        """
        status = "SUCCESS" if success else "FAILURE"

        message = (
            f"AUTH_EVENT | {event_type.upper()} | {status} | "
            f"username={username or 'N/A'} | family_id={family_id or 'N/A'}"
        )

        if details:
            message += f" | details={details}"

        if success:
            audit_logger.info(message)
        else:
            audit_logger.warning(message)

    @staticmethod
    def log_sensitive_operation(
        operation: str,
        username: str,
        family_id: Optional[str] = None,
        details: Optional[str] = None
    ):
        """
        Log sensitive operations.

        Args:
            operation: Operation type (child_credentials_read, operator_relay, ...)
            username: Username key performing the operation
            family_id: Family affected
            details: Additional details
        """
        message = (
            f"SENSITIVE_OP | {operation.upper()} | "
            f"username={username} | family_id={family_id or 'N/A'}"
        )

        if details:
            message += f" | details={details}"

        audit_logger.info(message)

    @staticmethod
    def log_connection_event(
        event_type: str,
        connection_id: str,
        request: Optional[Request] = None,
        details: Optional[str] = None
    ):
        """
        Log store gateway connection lifecycle events.

        Args:
            event_type: open, attach, close
            connection_id: Gateway connection ID
            request: FastAPI request object for IP extraction
            details: Additional details
        """
        ip = AuditLogger.get_client_ip(request)

        message = (
            f"CONNECTION | {event_type.upper()} | "
            f"connection_id={connection_id} | ip={ip}"
        )

        if details:
            message += f" | details={details}"

        audit_logger.info(message)


# Convenience functions
def log_auth_event(
    event_type: str,
    username: Optional[str],
    success: bool,
    family_id: Optional[str] = None,
    details: Optional[str] = None
):
    """Convenience wrapper for AuditLogger.log_auth_event."""
    AuditLogger.log_auth_event(event_type, username, success, family_id, details)


def log_sensitive_operation(
    operation: str,
    username: str,
    family_id: Optional[str] = None,
    details: Optional[str] = None
):
    """Convenience wrapper for AuditLogger.log_sensitive_operation."""
    AuditLogger.log_sensitive_operation(operation, username, family_id, details)


def log_connection_event(
    event_type: str,
    connection_id: str,
    request: Optional[Request] = None,
    details: Optional[str] = None
):
    """Convenience wrapper for AuditLogger.log_connection_event."""
    AuditLogger.log_connection_event(event_type, connection_id, request, details)
