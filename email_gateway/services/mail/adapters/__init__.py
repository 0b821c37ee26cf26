"""
Mail Adapters

Available provider adapters, keyed by EMAIL_PROVIDER value.
"""

from .smtp_imap import SmtpImapAdapter
from .gmail import GmailAdapter

# Registry of available adapters
ADAPTERS = {
    "smtp": SmtpImapAdapter,
    "gmail": GmailAdapter,
}

__all__ = ["ADAPTERS", "SmtpImapAdapter", "GmailAdapter"]
