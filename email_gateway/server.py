"""
Email Gateway MCP Server

Tools:
- list_accounts: Configured mail accounts
- send_email / reply_email: Deliver mail via SMTP or the Gmail API
- read_emails / search_emails: Retrieve mail via IMAP or the Gmail API
- delete_email: Permanently remove a message
"""

import logging
from typing import Annotated, List, Optional

from dotenv import load_dotenv
from fastmcp import FastMCP
from pydantic import Field

from .config import GatewayConfig, configure_logging, load_config
from .services.mail import MailCoordinator, MailManager, format_result

logger = logging.getLogger(__name__)

INSTRUCTIONS = """
Send, read, search, delete and reply to email.

Message IDs from read_emails/search_emails are mailbox sequence numbers when
the SMTP/IMAP provider is active. They change after any deletion, so read
again before deleting or replying to another message.
"""


def register_tools(mcp: FastMCP, coordinator: MailCoordinator) -> None:
    """Register the mail tools with the MCP server."""

    # =========================================================================
    # ACCOUNTS
    # =========================================================================
    @mcp.tool()
    async def list_accounts() -> str:
        """List all configured email accounts."""
        return format_result(await coordinator.list_accounts())

    # =========================================================================
    # SENDING
    # =========================================================================
    @mcp.tool()
    async def send_email(
        to: str,
        subject: str,
        body: str,
        from_email: Annotated[Optional[str], Field(alias="from")] = None,
        html: bool = False,
        attachments: Optional[List[dict]] = None
    ) -> str:
        """
        Send an email. If `from` is given, the account matching it is used.

        Args:
            to: Recipient email address
            subject: Email subject
            body: Email body content
            from: Sender address or account name used to pick the account (optional)
            html: Whether the body is HTML
            attachments: List of {filename, path?, content?}

        Returns:
            Delivery confirmation or error message
        """
        result = await coordinator.send_email(
            to=to,
            subject=subject,
            body=body,
            from_email=from_email,
            html=html,
            attachments=attachments,
        )
        return format_result(result)

    @mcp.tool()
    async def reply_email(
        message_id: Annotated[str, Field(alias="messageId")],
        body: str,
        reply_all: Annotated[bool, Field(alias="replyAll")] = False,
        html: bool = False
    ) -> str:
        """
        Reply to an email.

        Args:
            messageId: Original message ID to reply to
            body: Reply body content
            replyAll: Reply to sender, To and Cc recipients
            html: Whether the body is HTML

        Returns:
            Confirmation with recipients and subject, or error message
        """
        result = await coordinator.reply_email(
            message_id=message_id,
            body=body,
            reply_all=reply_all,
            html=html,
        )
        return format_result(result)

    # =========================================================================
    # READING
    # =========================================================================
    @mcp.tool()
    async def read_emails(
        limit: int = 10,
        folder: str = "INBOX",
        unread_only: Annotated[bool, Field(alias="unreadOnly")] = False,
        account: Optional[str] = None
    ) -> str:
        """
        Read the most recent emails from a folder.

        Args:
            limit: Number of emails to retrieve (default: 10)
            folder: Folder to read from (default: INBOX)
            unreadOnly: Only retrieve unread emails
            account: Account name or email address (default account if omitted)

        Returns:
            Formatted list of emails, newest first
        """
        result = await coordinator.read_emails(
            limit=limit,
            folder=folder,
            unread_only=unread_only,
            account=account,
        )
        return format_result(result)

    @mcp.tool()
    async def search_emails(query: str, limit: int = 10, folder: str = "INBOX") -> str:
        """
        Search emails. Use "from:<text>" to match the sender only.

        Args:
            query: Search query
            limit: Number of results to return (default: 10)
            folder: Folder to search in (default: INBOX)

        Returns:
            Formatted list of matching emails
        """
        result = await coordinator.search_emails(query=query, limit=limit, folder=folder)
        return format_result(result)

    # =========================================================================
    # DELETING
    # =========================================================================
    @mcp.tool()
    async def delete_email(message_id: Annotated[str, Field(alias="messageId")]) -> str:
        """
        Permanently delete an email by message ID.

        Args:
            messageId: Email message ID to delete

        Returns:
            Success or error message
        """
        return format_result(await coordinator.delete_email(message_id=message_id))


def create_server(config: GatewayConfig) -> FastMCP:
    """Build the MCP server for a configuration snapshot."""
    mcp = FastMCP("Email Gateway", instructions=INSTRUCTIONS)
    register_tools(mcp, MailCoordinator(MailManager(config)))
    return mcp


# =============================================================================
# MAIN
# =============================================================================
def main() -> None:
    load_dotenv()
    config = load_config()
    configure_logging(config.log_level)

    mcp = create_server(config)
    if config.transport == "stdio":
        logger.info("Email Gateway running on stdio")
        mcp.run()
    else:
        mcp.run(transport=config.transport, host=config.host, port=config.port)


if __name__ == "__main__":
    main()
