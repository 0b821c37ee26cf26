"""Mail Service - Email abstraction."""

from .interface import (
    MailAdapter,
    MailAccount,
    Endpoint,
    Credentials,
    CanonicalMessage,
    ReplyEnvelope,
    OutgoingMessage,
    OutgoingAttachment,
    OperationResult,
)
from .errors import (
    MailGatewayError,
    ConfigurationMissing,
    AccountNotFound,
    InvalidMessageId,
    TransportFailure,
    ParseFailure,
    UnknownOperation,
    InvalidRequest,
)
from .manager import MailManager
from .coordinator import MailCoordinator
from .presenter import format_result
from .adapters import ADAPTERS, GmailAdapter, SmtpImapAdapter

__all__ = [
    "MailAdapter",
    "MailAccount",
    "Endpoint",
    "Credentials",
    "CanonicalMessage",
    "ReplyEnvelope",
    "OutgoingMessage",
    "OutgoingAttachment",
    "OperationResult",
    "MailGatewayError",
    "ConfigurationMissing",
    "AccountNotFound",
    "InvalidMessageId",
    "TransportFailure",
    "ParseFailure",
    "UnknownOperation",
    "InvalidRequest",
    "MailManager",
    "MailCoordinator",
    "format_result",
    "ADAPTERS",
    "GmailAdapter",
    "SmtpImapAdapter",
]
