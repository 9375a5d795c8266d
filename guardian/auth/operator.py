"""
Out-of-band operator channel for registration codes.

Registration does not send the verification code to the registrant. The
registrant opens a WhatsApp deep link addressed to the operator, and the
operator, who can see pending registrations, reads the code back to them.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from urllib.parse import quote

from guardian import config
from guardian.utils.audit_log import log_sensitive_operation

logger = logging.getLogger(__name__)


@dataclass
class RelayRequest:
    username: str
    child_name: str
    code: str
    link: str


def build_relay_link(username: str, child_name: str, contact: str = None) -> str:
    """Build the wa.me deep link the registrant opens to ask for their code."""
    message = (
        "Hello Guardian admin, I am a new user.\n"
        f"Username: *{username}*\n"
        f"Child name: *{child_name}*\n\n"
        "Please check the pending registration and send me the activation code."
    )
    return f"https://wa.me/{contact or config.OPERATOR_CONTACT}?text={quote(message, safe='')}"


class OperatorChannel(ABC):
    """Receives verification codes for manual relay."""

    @abstractmethod
    async def relay(self, request: RelayRequest) -> None:
        pass


class AuditOperatorChannel(OperatorChannel):
    """
    Default channel: records the relay request through the audit logger,
    where the operator on duty picks it up.
    """

    async def relay(self, request: RelayRequest) -> None:
        log_sensitive_operation(
            "operator_relay",
            request.username,
            details=f"child_name={request.child_name} code={request.code}",
        )
        logger.debug("Registrant link for %s: %s", request.username, request.link)
