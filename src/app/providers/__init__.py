"""
Mail Transport Abstraction.

SMTP 외 구현으로 교체 가능 (테스트는 fake transport).
"""

from .base import Attachment, MailTransport, OutboundMessage
from .smtp import SmtpTransport

__all__ = [
    "MailTransport",
    "OutboundMessage",
    "Attachment",
    "SmtpTransport",
]
