"""
Mail Service Interface

Core abstraction for email providers. Adapters implement this interface
so the coordinator can drive SMTP/IMAP accounts and the Gmail API the
same way.
"""

from abc import ABC, abstractmethod
from typing import Dict, Any, List, Optional, TYPE_CHECKING
from dataclasses import dataclass, field

if TYPE_CHECKING:
    from ...config import GatewayConfig


@dataclass(frozen=True)
class Endpoint:
    """Mail server endpoint."""
    host: str
    port: int
    secure: bool = True
    requires_id_handshake: bool = False

    def __str__(self):
        return f"{self.host}:{self.port}"


@dataclass(frozen=True)
class Credentials:
    """Login for one endpoint."""
    user: str
    password: str = field(default="", repr=False)

    @property
    def complete(self) -> bool:
        return bool(self.user and self.password)


@dataclass(frozen=True)
class MailAccount:
    """A named mail account with independent SMTP and IMAP logins."""
    name: str
    smtp: Endpoint
    smtp_credentials: Credentials
    imap: Endpoint
    imap_credentials: Credentials

    @property
    def address(self) -> str:
        return self.smtp_credentials.user or self.imap_credentials.user


@dataclass
class CanonicalMessage:
    """Provider-independent message record."""
    id: str
    thread_id: str
    sender: str
    to: str
    subject: str
    date: str
    snippet: str
    body: Optional[str] = None
    is_unread: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "threadId": self.thread_id,
            "from": self.sender,
            "to": self.to,
            "subject": self.subject,
            "date": self.date,
            "snippet": self.snippet,
            "body": self.body,
            "isUnread": self.is_unread,
        }


@dataclass
class ReplyEnvelope:
    """Header fields of an original message needed to answer it."""
    sender: str
    to: str = ""
    cc: str = ""
    subject: str = ""
    message_id: str = ""
    references: List[str] = field(default_factory=list)
    thread_id: Optional[str] = None


@dataclass
class OutgoingAttachment:
    """Attachment for a message being sent."""
    filename: str
    path: Optional[str] = None
    content: Optional[str] = None


@dataclass
class OutgoingMessage:
    """Message handed to an adapter for delivery."""
    to: str
    subject: str
    body: str
    sender: Optional[str] = None
    html: bool = False
    attachments: List[OutgoingAttachment] = field(default_factory=list)
    in_reply_to: Optional[str] = None
    references: List[str] = field(default_factory=list)
    thread_id: Optional[str] = None


@dataclass
class OperationResult:
    """Outcome of one public operation: a payload or a failure."""
    operation: str
    success: bool
    data: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None
    error_type: Optional[str] = None

    @classmethod
    def ok(cls, operation: str, **data) -> "OperationResult":
        return cls(operation=operation, success=True, data=data)

    @classmethod
    def failed(cls, operation: str, error: str, error_type: str) -> "OperationResult":
        return cls(operation=operation, success=False, error=error, error_type=error_type)


class MailAdapter(ABC):
    """
    Base class for mail adapters.

    Messages are returned oldest first. The coordinator applies limits and
    ordering on top of that.

    Attributes:
        adapter_type: Provider key used in configuration
        stable_ids: False when ids are only valid within the session that
            produced them (IMAP sequence numbers)
        server_side_search: True when the provider evaluates search queries
        requires_account: True when operations need a resolved MailAccount
    """

    adapter_type: str = "base"
    stable_ids: bool = False
    server_side_search: bool = False
    requires_account: bool = True

    def __init__(self, config: "GatewayConfig"):
        self.config = config

    @abstractmethod
    async def send(self, account: Optional[MailAccount], message: OutgoingMessage) -> str:
        """Deliver a message. Returns the provider-assigned message id."""
        pass

    @abstractmethod
    async def list_messages(
        self,
        account: Optional[MailAccount],
        folder: str = "INBOX",
        limit: int = 10,
        unread_only: bool = False
    ) -> List[CanonicalMessage]:
        """List the most recent messages in a folder."""
        pass

    @abstractmethod
    async def search_messages(
        self,
        account: Optional[MailAccount],
        query: str,
        folder: str = "INBOX",
        limit: int = 10
    ) -> List[CanonicalMessage]:
        """Return search candidates for a query."""
        pass

    @abstractmethod
    async def delete_message(self, account: Optional[MailAccount], message_id: str) -> None:
        """Permanently delete a message."""
        pass

    @abstractmethod
    async def fetch_for_reply(self, account: Optional[MailAccount], message_id: str) -> ReplyEnvelope:
        """Fetch the headers needed to build a reply."""
        pass
