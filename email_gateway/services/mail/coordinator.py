"""
Mail Operation Coordinator

One coroutine per public operation. Each call validates its input, resolves
the account, drives the active adapter and returns an OperationResult.
Failures never escape: they come back as failure results.
"""

import inspect
import logging
from email.utils import getaddresses
from typing import Any, Dict, List, Optional, Sequence, Union

from email_validator import EmailNotValidError, validate_email

from .errors import InvalidRequest, MailGatewayError, UnknownOperation
from .interface import (
    CanonicalMessage,
    MailAccount,
    OperationResult,
    OutgoingAttachment,
    OutgoingMessage,
    ReplyEnvelope,
)
from .manager import MailManager

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 10
DEFAULT_FOLDER = "INBOX"
REPLY_PREFIX = "Re: "

# camelCase wire names accepted by dispatch()
ARGUMENT_ALIASES = {
    "unreadOnly": "unread_only",
    "messageId": "message_id",
    "replyAll": "reply_all",
    "from": "from_email",
}


# ----------------------------------------------------------------------
# Pure rules
# ----------------------------------------------------------------------

def reply_subject(subject: str) -> str:
    """Prefix "Re: " unless the subject already starts with "Re:"."""
    subject = subject or ""
    if subject.startswith(REPLY_PREFIX[:3]):
        return subject
    return f"{REPLY_PREFIX}{subject}"


def _split_addresses(value: Optional[str]) -> List[str]:
    """Split a header on commas outside quotes and angle brackets, keeping entry text."""
    entries = []
    current = []
    quoted = False
    depth = 0
    for char in value or "":
        if char == '"':
            quoted = not quoted
        elif char == "<" and not quoted:
            depth += 1
        elif char == ">" and not quoted and depth:
            depth -= 1
        elif char == "," and not quoted and not depth:
            entries.append("".join(current))
            current = []
            continue
        current.append(char)
    entries.append("".join(current))
    return [entry.strip() for entry in entries if entry.strip()]


def reply_recipients(envelope: ReplyEnvelope, reply_all: bool = False) -> str:
    """
    Original sender, or the union of From, To and Cc.

    Entries keep their original text and are de-duplicated by exact
    string equality in first-seen order.
    """
    if not reply_all:
        return envelope.sender

    recipients: List[str] = []
    for header in (envelope.sender, envelope.to, envelope.cc):
        for entry in _split_addresses(header):
            if entry not in recipients:
                recipients.append(entry)
    return ", ".join(recipients)


def matches_query(message: CanonicalMessage, query: str) -> bool:
    """
    Case-insensitive substring match.

    "from:<text>" matches the sender only; anything else matches sender,
    subject or body.
    """
    needle = (query or "").strip().lower()
    if needle.startswith("from:"):
        return needle[len("from:"):].strip() in (message.sender or "").lower()
    return any(
        needle in (field or "").lower()
        for field in (message.sender, message.subject, message.body)
    )


def take_recent(messages: Sequence[CanonicalMessage], limit: int) -> List[CanonicalMessage]:
    """Last `limit` of an oldest-first sequence, newest first."""
    return list(messages[-limit:])[::-1] if limit > 0 else []


# ----------------------------------------------------------------------
# Validation
# ----------------------------------------------------------------------

def _require_text(value: Any, name: str, allow_empty: bool = False) -> str:
    if not isinstance(value, str):
        raise InvalidRequest(f"{name} must be a string")
    if not allow_empty and not value.strip():
        raise InvalidRequest(f"{name} is required")
    return value


def _validate_addresses(value: Any, name: str) -> str:
    value = _require_text(value, name)
    entries = getaddresses([value])
    if not entries or not all(addr for _, addr in entries):
        raise InvalidRequest(f"{name} is not a valid email address: {value!r}")
    for _, addr in entries:
        try:
            validate_email(addr, check_deliverability=False)
        except EmailNotValidError as e:
            raise InvalidRequest(f"{name} is not a valid email address: {e}")
    return value


def _validate_limit(limit: Any) -> int:
    if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
        raise InvalidRequest(f"limit must be a positive integer, got {limit!r}")
    return limit


def _attachments(items: Optional[List[Union[dict, OutgoingAttachment]]]) -> List[OutgoingAttachment]:
    attachments = []
    for item in items or []:
        if isinstance(item, OutgoingAttachment):
            attachments.append(item)
            continue
        if not isinstance(item, dict) or not item.get("filename"):
            raise InvalidRequest("Each attachment needs a filename")
        attachments.append(OutgoingAttachment(
            filename=item["filename"],
            path=item.get("path"),
            content=item.get("content"),
        ))
    return [a for a in attachments if a.path or a.content]


class MailCoordinator:
    """Runs the public mail operations against the configured provider."""

    OPERATIONS = (
        "list_accounts",
        "send_email",
        "read_emails",
        "search_emails",
        "delete_email",
        "reply_email",
    )

    def __init__(self, manager: MailManager):
        self.manager = manager

    async def _guard(self, operation: str, call) -> OperationResult:
        try:
            return await call()
        except MailGatewayError as e:
            logger.warning(f"❌ {operation} failed ({e.error_type}): {e}")
            return OperationResult.failed(operation, str(e), e.error_type)
        except Exception as e:
            logger.exception(f"❌ {operation} failed unexpectedly")
            return OperationResult.failed(operation, str(e) or type(e).__name__, "UnexpectedError")

    def _account_for(self, adapter, hint: Optional[str] = None) -> Optional[MailAccount]:
        if not adapter.requires_account:
            return None
        return self.manager.resolve(hint)

    def _sender_for(self, account: Optional[MailAccount], requested: Optional[str]) -> str:
        """Named accounts always send as themselves; legacy and Gmail honour `from`."""
        if account is not None and account is not self.manager.config.legacy_account:
            return account.address
        fallback = account.address if account is not None else ""
        if requested and "@" not in requested:
            requested = None
        return requested or self.manager.config.default_from or fallback

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def list_accounts(self) -> OperationResult:
        """Enumerate configured accounts (addresses masked)."""
        async def call():
            return OperationResult.ok(
                "list_accounts",
                accounts=self.manager.describe_accounts(),
                default_account=self.manager.config.default_account,
                provider=self.manager.provider,
            )
        return await self._guard("list_accounts", call)

    async def send_email(
        self,
        to: str,
        subject: str,
        body: str,
        from_email: Optional[str] = None,
        html: bool = False,
        attachments: Optional[List[Union[dict, OutgoingAttachment]]] = None
    ) -> OperationResult:
        """Send a new message from the account matching `from_email` (or the default)."""
        async def call():
            _validate_addresses(to, "to")
            _require_text(subject, "subject", allow_empty=True)
            _require_text(body, "body", allow_empty=True)
            if from_email and "@" in from_email:
                _validate_addresses(from_email, "from")
            files = _attachments(attachments)

            adapter = self.manager.get_adapter()
            account = self._account_for(adapter, from_email)
            sender = self._sender_for(account, from_email)
            message = OutgoingMessage(
                to=to,
                subject=subject,
                body=body,
                sender=sender or None,
                html=bool(html),
                attachments=files,
            )
            message_id = await adapter.send(account, message)

            return OperationResult.ok(
                "send_email",
                provider=adapter.adapter_type,
                account=account.name if account else adapter.adapter_type,
                **{"from": sender},
                to=to,
                subject=subject,
                message_id=message_id,
                html=bool(html),
                attachment_count=len(files),
            )
        return await self._guard("send_email", call)

    async def read_emails(
        self,
        limit: int = DEFAULT_LIMIT,
        folder: str = DEFAULT_FOLDER,
        unread_only: bool = False,
        account: Optional[str] = None
    ) -> OperationResult:
        """Newest `limit` messages of a folder, newest first."""
        async def call():
            _validate_limit(limit)
            _require_text(folder, "folder")

            adapter = self.manager.get_adapter()
            mail_account = self._account_for(adapter, account)
            messages = await adapter.list_messages(mail_account, folder, limit, bool(unread_only))
            recent = take_recent(messages, limit)

            return OperationResult.ok(
                "read_emails",
                messages=[m.to_dict() for m in recent],
                count=len(recent),
                folder=folder,
                unread_only=bool(unread_only),
                account=mail_account.name if mail_account else adapter.adapter_type,
                stable_ids=adapter.stable_ids,
            )
        return await self._guard("read_emails", call)

    async def search_emails(
        self,
        query: str,
        limit: int = DEFAULT_LIMIT,
        folder: str = DEFAULT_FOLDER
    ) -> OperationResult:
        """Messages matching `query`, newest first."""
        async def call():
            _require_text(query, "query")
            _validate_limit(limit)
            _require_text(folder, "folder")

            adapter = self.manager.get_adapter()
            mail_account = self._account_for(adapter)
            candidates = await adapter.search_messages(mail_account, query, folder, limit)
            if not adapter.server_side_search:
                candidates = [m for m in candidates if matches_query(m, query)]
            found = take_recent(candidates, limit)

            return OperationResult.ok(
                "search_emails",
                messages=[m.to_dict() for m in found],
                count=len(found),
                query=query,
                folder=folder,
                stable_ids=adapter.stable_ids,
            )
        return await self._guard("search_emails", call)

    async def delete_email(self, message_id: str) -> OperationResult:
        """Permanently delete a message from the default account."""
        async def call():
            _require_text(message_id, "message_id")

            adapter = self.manager.get_adapter()
            mail_account = self._account_for(adapter)
            await adapter.delete_message(mail_account, message_id)

            return OperationResult.ok(
                "delete_email",
                message_id=message_id,
                provider=adapter.adapter_type,
            )
        return await self._guard("delete_email", call)

    async def reply_email(
        self,
        message_id: str,
        body: str,
        reply_all: bool = False,
        html: bool = False
    ) -> OperationResult:
        """Reply to a message in the default account's inbox."""
        async def call():
            _require_text(message_id, "message_id")
            _require_text(body, "body", allow_empty=True)

            adapter = self.manager.get_adapter()
            mail_account = self._account_for(adapter)
            envelope = await adapter.fetch_for_reply(mail_account, message_id)

            recipients = reply_recipients(envelope, bool(reply_all))
            if not recipients:
                raise InvalidRequest(f"Original message {message_id} has no sender to reply to")
            subject = reply_subject(envelope.subject)

            references = list(envelope.references)
            if envelope.message_id and envelope.message_id not in references:
                references.append(envelope.message_id)

            sender = self._sender_for(mail_account, None)
            sent_id = await adapter.send(mail_account, OutgoingMessage(
                to=recipients,
                subject=subject,
                body=body,
                sender=sender or None,
                html=bool(html),
                in_reply_to=envelope.message_id or None,
                references=references,
                thread_id=envelope.thread_id,
            ))

            return OperationResult.ok(
                "reply_email",
                to=recipients,
                subject=subject,
                message_id=sent_id,
                reply_all=bool(reply_all),
                html=bool(html),
            )
        return await self._guard("reply_email", call)

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    async def dispatch(self, name: str, arguments: Optional[Dict[str, Any]] = None) -> OperationResult:
        """
        Run an operation by name.

        Args:
            name: One of OPERATIONS
            arguments: Keyword arguments; camelCase wire names are accepted

        Returns:
            OperationResult (UnknownOperation / InvalidRequest failures included)
        """
        async def call():
            if name not in self.OPERATIONS:
                raise UnknownOperation(f"Unknown tool: {name}")

            handler = getattr(self, name)
            arguments_given = arguments or {}
            for alias, canonical in ARGUMENT_ALIASES.items():
                if alias in arguments_given and canonical in arguments_given:
                    raise InvalidRequest(f"Invalid arguments for {name}: both {alias} and {canonical} given")
            kwargs = {ARGUMENT_ALIASES.get(key, key): value for key, value in arguments_given.items()}
            try:
                inspect.signature(handler).bind(**kwargs)
            except TypeError as e:
                raise InvalidRequest(f"Invalid arguments for {name}: {e}")
            return await handler(**kwargs)
        return await self._guard(name, call)
