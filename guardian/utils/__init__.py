"""
Utility modules for Guardian Link.
"""

from .audit_log import AuditLogger, log_auth_event, log_sensitive_operation, log_connection_event
from .time import Clock, now_ms

__all__ = [
    "AuditLogger",
    "log_auth_event",
    "log_sensitive_operation",
    "log_connection_event",
    "Clock",
    "now_ms",
]
