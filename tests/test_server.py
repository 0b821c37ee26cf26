"""Tests for MCP tool registration and the server entry point."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastmcp import Client, FastMCP

from email_gateway.config import load_config
from email_gateway.server import main, register_tools
from email_gateway.services.mail import MailCoordinator, MailManager, OperationResult


class TestRegisterTools:
    def setup_method(self):
        self.mcp = MagicMock()
        self.fns = []
        self.mcp.tool.return_value = lambda fn: self.fns.append(fn) or fn
        self.coordinator = MagicMock()
        register_tools(self.mcp, self.coordinator)

    def _fn(self, name):
        return next(f for f in self.fns if f.__name__ == name)

    def test_six_tools(self):
        assert sorted(f.__name__ for f in self.fns) == [
            "delete_email",
            "list_accounts",
            "read_emails",
            "reply_email",
            "search_emails",
            "send_email",
        ]

    @pytest.mark.asyncio
    async def test_read_emails_forwards_arguments(self):
        self.coordinator.read_emails = AsyncMock(return_value=OperationResult.ok(
            "read_emails", messages=[], folder="INBOX", unread_only=True,
        ))
        text = await self._fn("read_emails")(limit=3, unread_only=True)

        self.coordinator.read_emails.assert_awaited_once_with(
            limit=3, folder="INBOX", unread_only=True, account=None,
        )
        assert text == "📭 No emails found in INBOX (unread only)"

    @pytest.mark.asyncio
    async def test_send_email_failure_text(self):
        self.coordinator.send_email = AsyncMock(return_value=OperationResult.failed(
            "send_email", "SMTP delivery via smtp.qq.com:465 failed: timeout", "TransportFailure",
        ))
        text = await self._fn("send_email")(to="x@example.com", subject="s", body="b", from_email="y@163.com")

        assert text.startswith("❌ Failed to send email:")
        assert self.coordinator.send_email.call_args[1]["from_email"] == "y@163.com"

    @pytest.mark.asyncio
    async def test_delete_email(self):
        self.coordinator.delete_email = AsyncMock(return_value=OperationResult.ok(
            "delete_email", message_id="4", provider="smtp",
        ))
        text = await self._fn("delete_email")(message_id="4")
        assert "Message ID: 4" in text


class TestToolsEndToEnd:
    @pytest.mark.asyncio
    async def test_list_accounts(self, config):
        mcp = MagicMock()
        fns = {}
        mcp.tool.return_value = lambda fn: fns.setdefault(fn.__name__, fn)
        register_tools(mcp, MailCoordinator(MailManager(config)))

        text = await fns["list_accounts"]()
        assert text.startswith("📧 2 email account(s) configured:")
        assert "alice@qq.com" not in text

    @pytest.mark.asyncio
    async def test_invalid_id_reaches_caller(self, config):
        mcp = MagicMock()
        fns = {}
        mcp.tool.return_value = lambda fn: fns.setdefault(fn.__name__, fn)
        register_tools(mcp, MailCoordinator(MailManager(config)))

        with patch("email_gateway.services.mail.adapters.smtp_imap.IMAPClient") as mock_class:
            text = await fns["delete_email"](message_id="not-a-number")

        assert text.startswith("❌ Failed to delete email: Invalid message ID")
        mock_class.assert_not_called()


class TestMain:
    @patch("email_gateway.server.create_server")
    @patch("email_gateway.server.load_dotenv")
    @patch("email_gateway.server.load_config")
    def test_stdio(self, mock_load_config, mock_dotenv, mock_create):
        mock_load_config.return_value = load_config({})
        main()

        mock_dotenv.assert_called_once()
        mock_create.return_value.run.assert_called_once_with()

    @patch("email_gateway.server.create_server")
    @patch("email_gateway.server.load_dotenv")
    @patch("email_gateway.server.load_config")
    def test_http(self, mock_load_config, mock_dotenv, mock_create):
        mock_load_config.return_value = load_config({"MCP_TRANSPORT": "http", "MCP_PORT": "9000"})
        main()

        mock_create.return_value.run.assert_called_once_with(transport="http", host="0.0.0.0", port=9000)


class TestWireNames:
    def setup_method(self):
        self.mcp = FastMCP("test")
        self.coordinator = MagicMock()
        register_tools(self.mcp, self.coordinator)

    @pytest.mark.asyncio
    async def test_schema_uses_camel_case_names(self):
        async with Client(self.mcp) as client:
            tools = {tool.name: tool for tool in await client.list_tools()}

        assert "unreadOnly" in tools["read_emails"].inputSchema["properties"]
        assert "from" in tools["send_email"].inputSchema["properties"]
        assert {"messageId", "replyAll"} <= set(tools["reply_email"].inputSchema["properties"])
        assert "messageId" in tools["delete_email"].inputSchema["properties"]

    @pytest.mark.asyncio
    async def test_call_with_camel_case_names(self):
        self.coordinator.read_emails = AsyncMock(return_value=OperationResult.ok(
            "read_emails", messages=[], folder="INBOX", unread_only=True,
        ))
        async with Client(self.mcp) as client:
            await client.call_tool("read_emails", {"unreadOnly": True})

        self.coordinator.read_emails.assert_awaited_once_with(
            limit=10, folder="INBOX", unread_only=True, account=None,
        )

    @pytest.mark.asyncio
    async def test_delete_with_message_id(self):
        self.coordinator.delete_email = AsyncMock(return_value=OperationResult.ok(
            "delete_email", message_id="7", provider="smtp",
        ))
        async with Client(self.mcp) as client:
            await client.call_tool("delete_email", {"messageId": "7"})

        self.coordinator.delete_email.assert_awaited_once_with(message_id="7")
