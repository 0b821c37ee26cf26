"""
Mail Service Errors

Every failure a mail operation can report. The coordinator turns these
into failure results; adapters raise them in place of library exceptions.
"""


class MailGatewayError(Exception):
    """Base exception for mail operations."""

    error_type = "MailGatewayError"


class ConfigurationMissing(MailGatewayError):
    """Required credentials or endpoint settings are absent."""

    error_type = "ConfigurationMissing"


class AccountNotFound(MailGatewayError):
    """No configured account matches the requested name or address."""

    error_type = "AccountNotFound"


class InvalidMessageId(MailGatewayError):
    """Message id is not a usable identifier for the active provider."""

    error_type = "InvalidId"


class TransportFailure(MailGatewayError):
    """Network or protocol error from the underlying session."""

    error_type = "TransportFailure"


class ParseFailure(MailGatewayError):
    """Malformed message content."""

    error_type = "ParseFailure"


class UnknownOperation(MailGatewayError):
    """Requested operation name is not recognized."""

    error_type = "UnknownOperation"


class InvalidRequest(MailGatewayError):
    """Request arguments failed validation."""

    error_type = "InvalidRequest"
