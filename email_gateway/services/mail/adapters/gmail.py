"""
Gmail Mail Adapter

Implements MailAdapter interface for Gmail API.

Authenticates with a refresh token exchanged for a bearer token. Message
ids are Gmail's durable ids. Search queries are passed through in Gmail's
query syntax.
"""

import asyncio
import logging
from typing import List, Optional

from google.auth.exceptions import GoogleAuthError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from ..compose import build_message, encode_raw
from ..errors import ConfigurationMissing, ParseFailure, TransportFailure
from ..interface import CanonicalMessage, MailAccount, MailAdapter, OutgoingMessage, ReplyEnvelope
from ..normalizer import gmail_reply_envelope, normalize_gmail

logger = logging.getLogger(__name__)

TOKEN_URI = "https://oauth2.googleapis.com/token"
SCOPES = [
    "https://www.googleapis.com/auth/gmail.readonly",
    "https://www.googleapis.com/auth/gmail.send",
    "https://www.googleapis.com/auth/gmail.modify",
    "https://mail.google.com/",
]
PAGE_SIZE = 100
REPLY_HEADERS = ["From", "To", "Cc", "Subject", "Message-ID", "References"]


class GmailAdapter(MailAdapter):
    """Gmail mail adapter."""

    adapter_type = "gmail"
    stable_ids = True
    server_side_search = True
    requires_account = False

    def __init__(self, config):
        super().__init__(config)
        self._service = None

    def _connect(self):
        """Build the Gmail API client from the configured refresh token."""
        settings = self.config.gmail
        if not settings.complete:
            raise ConfigurationMissing(
                "Gmail configuration missing. Please set GMAIL_CLIENT_ID, GMAIL_CLIENT_SECRET, and GMAIL_REFRESH_TOKEN"
            )

        creds = Credentials(
            token=settings.access_token,
            refresh_token=settings.refresh_token,
            client_id=settings.client_id,
            client_secret=settings.client_secret,
            token_uri=TOKEN_URI,
            scopes=SCOPES,
        )
        if not creds.valid:
            creds.refresh(Request())

        service = build("gmail", "v1", credentials=creds, cache_discovery=False)
        logger.info("✅ Connected to Gmail API")
        return service

    async def _get_service(self):
        """
        API client, built on first use and reused for the life of the adapter.

        It holds only the credentials derived from the config snapshot the
        adapter was created with.
        """
        if self._service is None:
            loop = asyncio.get_running_loop()
            try:
                self._service = await loop.run_in_executor(None, self._connect)
            except (GoogleAuthError, HttpError, OSError) as e:
                raise TransportFailure(f"Failed to connect to Gmail: {e}")
        return self._service

    async def _execute(self, request, action: str):
        """Execute an API request off the event loop."""
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, request.execute)
        except (HttpError, GoogleAuthError, OSError) as e:
            raise TransportFailure(f"Gmail {action} failed: {e}")

    async def _list_ids(self, query: str, limit: int) -> List[str]:
        """Page through messages.list until `limit` ids are collected."""
        service = await self._get_service()
        ids: List[str] = []
        page_token = None

        while len(ids) < limit:
            params = {
                "userId": "me",
                "q": query or None,
                "maxResults": min(limit - len(ids), PAGE_SIZE),
            }
            if page_token:
                params["pageToken"] = page_token

            results = await self._execute(service.users().messages().list(**params), "list")
            ids.extend(m["id"] for m in results.get("messages", []) if m.get("id"))

            page_token = results.get("nextPageToken")
            if not page_token:
                break

        return ids[:limit]

    async def _get_messages(self, ids: List[str]) -> List[CanonicalMessage]:
        """Fetch full messages; oldest first."""
        service = await self._get_service()
        messages = []
        for message_id in ids:
            msg_data = await self._execute(
                service.users().messages().get(userId="me", id=message_id, format="full"),
                "get",
            )
            try:
                messages.append(normalize_gmail(msg_data))
            except ParseFailure as e:
                logger.warning(f"⚠️ Skipping message {message_id}: {e}")

        # messages.list returns newest first
        messages.reverse()
        return messages

    async def list_messages(
        self,
        account: Optional[MailAccount],
        folder: str = "INBOX",
        limit: int = 10,
        unread_only: bool = False
    ) -> List[CanonicalMessage]:
        """List messages in folder."""
        query = f"in:{folder}"
        if unread_only:
            query += " is:unread"
        return await self._get_messages(await self._list_ids(query, limit))

    async def search_messages(
        self,
        account: Optional[MailAccount],
        query: str,
        folder: str = "INBOX",
        limit: int = 10
    ) -> List[CanonicalMessage]:
        """Search messages using Gmail search syntax."""
        full_query = f"in:{folder} {query}" if folder else query
        return await self._get_messages(await self._list_ids(full_query, limit))

    async def send(self, account: Optional[MailAccount], message: OutgoingMessage) -> str:
        """Send a message. Returns the Gmail message id."""
        service = await self._get_service()
        sender = message.sender or self.config.default_from or ""
        body = {"raw": encode_raw(build_message(message, sender))}
        if message.thread_id:
            body["threadId"] = message.thread_id

        result = await self._execute(service.users().messages().send(userId="me", body=body), "send")
        logger.info(f"✅ Sent Gmail message: {result.get('id')}")
        return result.get("id", "")

    async def delete_message(self, account: Optional[MailAccount], message_id: str) -> None:
        """Permanently delete by id. Deleting an absent id is an error."""
        service = await self._get_service()
        await self._execute(service.users().messages().delete(userId="me", id=message_id), "delete")
        logger.info(f"🗑️ Deleted Gmail message: {message_id}")

    async def fetch_for_reply(self, account: Optional[MailAccount], message_id: str) -> ReplyEnvelope:
        """Get the original message's reply headers and thread."""
        service = await self._get_service()
        msg_data = await self._execute(
            service.users().messages().get(
                userId="me",
                id=message_id,
                format="metadata",
                metadataHeaders=REPLY_HEADERS,
            ),
            "get",
        )
        return gmail_reply_envelope(msg_data)
