"""Shared test fixtures for the Email Gateway tests."""

from email.message import EmailMessage

import pytest

from email_gateway.config import load_config


TWO_ACCOUNT_ENV = {
    "QQ_SMTP_USER": "alice@qq.com",
    "QQ_SMTP_PASS": "qq-app-password",
    "163_SMTP_USER": "bob@163.com",
    "163_SMTP_PASS": "163-app-password",
}


@pytest.fixture
def env():
    """Environment with one qq and one 163 account."""
    return dict(TWO_ACCOUNT_ENV)


@pytest.fixture
def config(env):
    return load_config(env)


@pytest.fixture
def gmail_config():
    return load_config({
        "EMAIL_PROVIDER": "gmail",
        "GMAIL_CLIENT_ID": "client-id",
        "GMAIL_CLIENT_SECRET": "client-secret",
        "GMAIL_REFRESH_TOKEN": "refresh-token",
        "DEFAULT_FROM_EMAIL": "me@gmail.com",
    })


@pytest.fixture
def make_raw():
    """Factory for raw RFC 822 message bytes."""

    def _make(
        subject="Hello",
        sender="Carol <carol@example.com>",
        to="alice@qq.com",
        body="Plain body",
        html=None,
        message_id="<orig-1@example.com>",
        cc=None,
        references=None,
    ):
        msg = EmailMessage()
        msg["From"] = sender
        msg["To"] = to
        if cc:
            msg["Cc"] = cc
        msg["Subject"] = subject
        msg["Date"] = "Mon, 05 Feb 2024 10:00:00 +0000"
        if message_id:
            msg["Message-ID"] = message_id
        if references:
            msg["References"] = references
        if body is not None:
            msg.set_content(body)
            if html:
                msg.add_alternative(html, subtype="html")
        elif html:
            msg.set_content(html, subtype="html")
        return msg.as_bytes()

    return _make
