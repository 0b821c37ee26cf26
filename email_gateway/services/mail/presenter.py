"""
Result Presenter

Renders OperationResults as the text returned to tool callers.
"""

from typing import Any, Dict, List

from .interface import OperationResult

PREVIEW_LENGTH = 200

FAILURE_VERBS = {
    "list_accounts": "list accounts",
    "send_email": "send email",
    "read_emails": "read emails",
    "search_emails": "search emails",
    "delete_email": "delete email",
    "reply_email": "reply to email",
}


def _format_accounts(data: Dict[str, Any]) -> str:
    accounts = data.get("accounts", [])
    if not accounts:
        return "❌ No email accounts configured"

    lines = [f"📧 {len(accounts)} email account(s) configured:", ""]
    for index, account in enumerate(accounts, 1):
        marker = " (default)" if account.get("default") else ""
        lines.append(f"{index}. **{account['name'].upper()}**{marker}")
        lines.append(f"   Address: {account['address']}")
        lines.append(f"   SMTP: {account['smtp']}")
        lines.append(f"   IMAP: {account['imap']}")
        lines.append("")
    return "\n".join(lines).rstrip()


def _format_sent(data: Dict[str, Any]) -> str:
    lines = [
        "✅ Email sent successfully!",
        "",
        "Details:",
        f"- From: {data.get('from') or data.get('account')}",
        f"- To: {data['to']}",
        f"- Subject: {data['subject']}",
        f"- Provider: {data['provider']}",
        f"- Account: {data['account']}",
        f"- Message ID: {data['message_id']}",
        f"- Format: {'HTML' if data.get('html') else 'Plain text'}",
    ]
    if data.get("attachment_count"):
        lines.append(f"- Attachments: {data['attachment_count']}")
    return "\n".join(lines)


def _format_messages(messages: List[Dict[str, Any]], with_body: bool) -> str:
    blocks = []
    for index, email in enumerate(messages, 1):
        unread = "🔵 " if email.get("isUnread") else ""
        block = (
            f"{index}. {unread}**{email['subject']}**\n"
            f"   From: {email['from']}\n"
            f"   Date: {email['date']}\n"
            f"   Snippet: {email['snippet']}\n"
            f"   Message ID: {email['id']}\n"
        )
        if with_body and email.get("body"):
            block += f"   Body Preview: {email['body'][:PREVIEW_LENGTH]}...\n"
        blocks.append(block + "   ---\n")
    return "\n".join(blocks)


def _format_read(data: Dict[str, Any]) -> str:
    messages = data.get("messages", [])
    if not messages:
        suffix = " (unread only)" if data.get("unread_only") else ""
        return f"📭 No emails found in {data['folder']}{suffix}"
    return f"📧 Found {len(messages)} email(s):\n\n" + _format_messages(messages, with_body=True)


def _format_search(data: Dict[str, Any]) -> str:
    messages = data.get("messages", [])
    if not messages:
        return f"🔍 No emails found matching \"{data['query']}\" in {data['folder']}"
    header = f"🔍 Found {len(messages)} email(s) matching \"{data['query']}\":\n\n"
    return header + _format_messages(messages, with_body=False)


def _format_deleted(data: Dict[str, Any]) -> str:
    return f"✅ Email deleted successfully!\n\nMessage ID: {data['message_id']}"


def _format_reply(data: Dict[str, Any]) -> str:
    return "\n".join([
        "✅ Reply sent successfully!",
        "",
        "Details:",
        f"- To: {data['to']}",
        f"- Subject: {data['subject']}",
        f"- Message ID: {data['message_id']}",
        f"- Reply all: {'Yes' if data.get('reply_all') else 'No'}",
        f"- Format: {'HTML' if data.get('html') else 'Plain text'}",
    ])


FORMATTERS = {
    "list_accounts": _format_accounts,
    "send_email": _format_sent,
    "read_emails": _format_read,
    "search_emails": _format_search,
    "delete_email": _format_deleted,
    "reply_email": _format_reply,
}


def format_result(result: OperationResult) -> str:
    """Render a result as tool output text."""
    if not result.success:
        verb = FAILURE_VERBS.get(result.operation)
        if verb is None:
            return f"Error: {result.error}"
        return f"❌ Failed to {verb}: {result.error}"
    return FORMATTERS[result.operation](result.data)
