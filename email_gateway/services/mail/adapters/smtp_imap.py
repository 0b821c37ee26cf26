"""
SMTP + IMAP Mail Adapter

Implements MailAdapter over a one-shot SMTP submission session (send) and a
one-shot IMAP session per call (list, search, delete, reply-fetch).

Message ids are IMAP sequence numbers. They are only meaningful within the
mailbox state that produced them: an expunge renumbers every later message.
"""

import asyncio
import functools
import logging
import smtplib
import ssl
from typing import Dict, List, Optional

from imapclient import IMAPClient, DELETED, SEEN
from imapclient.exceptions import IMAPClientError

from ..compose import build_message
from ..errors import ConfigurationMissing, InvalidMessageId, ParseFailure, TransportFailure
from ..interface import CanonicalMessage, MailAccount, MailAdapter, OutgoingMessage, ReplyEnvelope
from ..normalizer import normalize_rfc822, rfc822_reply_envelope

logger = logging.getLogger(__name__)

REPLY_FOLDER = "INBOX"
FETCH_ITEMS = [b"BODY.PEEK[]", b"FLAGS"]
BODY_KEY = b"BODY[]"


def parse_seqno(message_id: str) -> int:
    """Interpret a message id strictly as a positive sequence number."""
    value = str(message_id).strip()
    if not value.isdecimal() or int(value) < 1:
        raise InvalidMessageId(f"Invalid message ID: {message_id!r} is not a mailbox sequence number")
    return int(value)


class SmtpImapAdapter(MailAdapter):
    """SMTP submission + IMAP retrieval adapter."""

    adapter_type = "smtp"
    stable_ids = False
    server_side_search = False
    requires_account = True

    async def _run(self, func, *args, **kwargs):
        """Run a blocking transport call off the event loop."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, functools.partial(func, *args, **kwargs))

    # ------------------------------------------------------------------
    # SMTP
    # ------------------------------------------------------------------

    def _submit(self, account: MailAccount, msg) -> None:
        endpoint = account.smtp
        credentials = account.smtp_credentials
        context = ssl.create_default_context()

        if endpoint.secure:
            server = smtplib.SMTP_SSL(endpoint.host, endpoint.port, timeout=self.config.timeout, context=context)
        else:
            server = smtplib.SMTP(endpoint.host, endpoint.port, timeout=self.config.timeout)

        with server:
            if not endpoint.secure:
                server.ehlo()
                if server.has_extn("starttls"):
                    server.starttls(context=context)
                    server.ehlo()
            server.login(credentials.user, credentials.password)
            server.send_message(msg)

    async def send(self, account: Optional[MailAccount], message: OutgoingMessage) -> str:
        """Send via a fresh SMTP session. Returns the Message-ID header."""
        if account is None or not account.smtp_credentials.complete:
            name = account.name if account else "?"
            raise ConfigurationMissing(f"SMTP configuration missing for account '{name}'. Set the SMTP user and password")

        msg = build_message(message, message.sender or account.address)
        try:
            await self._run(self._submit, account, msg)
        except (smtplib.SMTPException, OSError) as e:
            raise TransportFailure(f"SMTP delivery via {account.smtp} failed: {e}")

        logger.info(f"✅ Sent message via {account.smtp} ({account.name})")
        return msg["Message-ID"]

    # ------------------------------------------------------------------
    # IMAP session
    # ------------------------------------------------------------------

    def _connect(self, account: MailAccount) -> IMAPClient:
        endpoint = account.imap
        credentials = account.imap_credentials

        client = IMAPClient(
            endpoint.host,
            port=endpoint.port,
            ssl=endpoint.secure,
            ssl_context=ssl.create_default_context() if endpoint.secure else None,
            use_uid=False,
            timeout=self.config.timeout,
        )
        try:
            client.login(credentials.user, credentials.password)
            if endpoint.requires_id_handshake:
                client.id_({**self.config.client_id_fields, "support-email": credentials.user})
                logger.debug(f"Sent IMAP ID to {endpoint.host}")
        except Exception:
            client.shutdown()
            raise
        return client

    async def _open(self, account: Optional[MailAccount]) -> IMAPClient:
        if account is None or not account.imap_credentials.complete:
            name = account.name if account else "?"
            raise ConfigurationMissing(f"IMAP configuration missing for account '{name}'. Set the IMAP user and password")

        try:
            client = await self._run(self._connect, account)
        except (IMAPClientError, OSError) as e:
            raise TransportFailure(f"IMAP connection to {account.imap} failed: {e}")

        logger.debug(f"Opened IMAP session to {account.imap} ({account.name})")
        return client

    async def _close(self, client: IMAPClient) -> None:
        try:
            await self._run(client.logout)
        except (IMAPClientError, OSError) as e:
            logger.debug(f"IMAP logout failed, dropping connection: {e}")
            client.shutdown()

    async def _select(self, client: IMAPClient, folder: str, readonly: bool) -> int:
        """Open a mailbox. Returns its message count."""
        info = await self._run(client.select_folder, folder, readonly=readonly)
        return int(info.get(b"EXISTS", 0))

    # ------------------------------------------------------------------
    # Parsing
    # ------------------------------------------------------------------

    @staticmethod
    def _parse_one(seqno: int, data: Dict[bytes, object]) -> CanonicalMessage:
        raw = data.get(BODY_KEY)
        if raw is None:
            raise ParseFailure(f"No body returned for message {seqno}")
        flags = data.get(b"FLAGS") or ()
        return normalize_rfc822(raw, str(seqno), is_unread=SEEN not in flags)

    async def _parse_all(self, response: Dict[int, Dict[bytes, object]]) -> List[CanonicalMessage]:
        """
        Parse fetched messages concurrently.

        Waits until every parse has finished or failed. Failed messages are
        logged and left out.
        """
        seqnos = sorted(response)
        loop = asyncio.get_running_loop()
        tasks = [loop.run_in_executor(None, self._parse_one, seqno, response[seqno]) for seqno in seqnos]
        results = await asyncio.gather(*tasks, return_exceptions=True)

        messages = []
        for seqno, result in zip(seqnos, results):
            if isinstance(result, Exception):
                logger.warning(f"⚠️ Skipping message {seqno}: {result}")
                continue
            if isinstance(result, BaseException):
                raise result
            messages.append(result)
        return messages

    async def _collect(
        self,
        account: Optional[MailAccount],
        folder: str,
        criteria: List[str],
        limit: Optional[int] = None
    ) -> List[CanonicalMessage]:
        """Open session -> select -> search -> fetch -> close, then parse."""
        client = await self._open(account)
        try:
            await self._select(client, folder, readonly=True)
            seqnos = sorted(await self._run(client.search, criteria))
            if not seqnos:
                return []
            if limit:
                seqnos = seqnos[-limit:]
            response = await self._run(client.fetch, seqnos, FETCH_ITEMS)
        except (IMAPClientError, OSError) as e:
            raise TransportFailure(f"IMAP read of '{folder}' failed: {e}")
        finally:
            await self._close(client)

        return await self._parse_all(response)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def list_messages(
        self,
        account: Optional[MailAccount],
        folder: str = "INBOX",
        limit: int = 10,
        unread_only: bool = False
    ) -> List[CanonicalMessage]:
        """Fetch the newest `limit` messages (UNSEEN only when asked)."""
        criteria = ["UNSEEN"] if unread_only else ["ALL"]
        return await self._collect(account, folder, criteria, limit)

    async def search_messages(
        self,
        account: Optional[MailAccount],
        query: str,
        folder: str = "INBOX",
        limit: int = 10
    ) -> List[CanonicalMessage]:
        """Fetch every message in the folder; the coordinator filters them."""
        return await self._collect(account, folder, ["ALL"])

    async def delete_message(self, account: Optional[MailAccount], message_id: str) -> None:
        """Flag \\Deleted and expunge. Irreversible; renumbers later messages."""
        seqno = parse_seqno(message_id)

        client = await self._open(account)
        try:
            exists = await self._select(client, REPLY_FOLDER, readonly=False)
            if seqno > exists:
                raise InvalidMessageId(f"Invalid message ID: {seqno} is out of range (mailbox has {exists} messages)")
            await self._run(client.add_flags, [seqno], [DELETED])
            await self._run(client.expunge)
        except (IMAPClientError, OSError) as e:
            raise TransportFailure(f"IMAP delete of message {seqno} failed: {e}")
        finally:
            await self._close(client)

        logger.info(f"🗑️ Deleted message {seqno} from {account.imap} ({account.name})")

    async def fetch_for_reply(self, account: Optional[MailAccount], message_id: str) -> ReplyEnvelope:
        """Read the original message's headers by sequence number."""
        seqno = parse_seqno(message_id)

        client = await self._open(account)
        try:
            exists = await self._select(client, REPLY_FOLDER, readonly=True)
            if seqno > exists:
                raise InvalidMessageId(f"Invalid message ID: {seqno} is out of range (mailbox has {exists} messages)")
            response = await self._run(client.fetch, [seqno], [b"BODY.PEEK[]"])
        except (IMAPClientError, OSError) as e:
            raise TransportFailure(f"IMAP fetch of message {seqno} failed: {e}")
        finally:
            await self._close(client)

        raw = response.get(seqno, {}).get(BODY_KEY)
        if raw is None:
            raise InvalidMessageId(f"Message {seqno} not found")
        return rfc822_reply_envelope(raw)
