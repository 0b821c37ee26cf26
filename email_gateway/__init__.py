"""
Email Gateway

MCP server exposing send, read, search, delete, reply and list-accounts
operations over SMTP/IMAP accounts or the Gmail API.
"""

__version__ = "1.0.0"
