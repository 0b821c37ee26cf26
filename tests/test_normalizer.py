"""Tests for message normalization."""

import base64

import pytest

from email_gateway.services.mail import ParseFailure
from email_gateway.services.mail.normalizer import (
    BODY_PREVIEW_LENGTH,
    gmail_body,
    gmail_reply_envelope,
    normalize_gmail,
    normalize_rfc822,
    rfc822_reply_envelope,
)


def b64(text: str) -> str:
    return base64.urlsafe_b64encode(text.encode()).decode().rstrip("=")


class TestRfc822:
    def test_fields(self, make_raw):
        message = normalize_rfc822(make_raw(), "7", is_unread=True)
        assert message.id == "7"
        assert message.thread_id == "<orig-1@example.com>"
        assert message.sender == "Carol <carol@example.com>"
        assert message.to == "alice@qq.com"
        assert message.subject == "Hello"
        assert message.date == "Mon, 05 Feb 2024 10:00:00 +0000"
        assert message.body.strip() == "Plain body"
        assert message.is_unread is True

    def test_thread_id_falls_back_to_seqno(self, make_raw):
        message = normalize_rfc822(make_raw(message_id=None), "3", is_unread=False)
        assert message.thread_id == "3"

    def test_text_preferred_over_html(self, make_raw):
        message = normalize_rfc822(make_raw(body="text part", html="<p>html part</p>"), "1", False)
        assert message.body.strip() == "text part"

    def test_html_fallback(self, make_raw):
        message = normalize_rfc822(make_raw(body=None, html="<p>only html</p>"), "1", False)
        assert "<p>only html</p>" in message.body

    def test_preview_and_snippet_lengths(self, make_raw):
        message = normalize_rfc822(make_raw(body="x" * 5000), "1", False)
        assert len(message.body) == BODY_PREVIEW_LENGTH
        assert message.snippet == message.body[:150]

    def test_encoded_subject(self, make_raw):
        message = normalize_rfc822(make_raw(subject="Grüße 你好"), "1", False)
        assert message.subject == "Grüße 你好"

    @pytest.mark.parametrize("raw", [b"", None, "not bytes"])
    def test_unparseable(self, raw):
        with pytest.raises(ParseFailure):
            normalize_rfc822(raw, "1", False)

    def test_reply_envelope(self, make_raw):
        raw = make_raw(cc="Dan <dan@example.com>", references="<a@x> <b@x>")
        envelope = rfc822_reply_envelope(raw)
        assert envelope.sender == "Carol <carol@example.com>"
        assert envelope.cc == "Dan <dan@example.com>"
        assert envelope.message_id == "<orig-1@example.com>"
        assert envelope.references == ["<a@x>", "<b@x>"]
        assert envelope.thread_id is None


class TestGmail:
    def resource(self, **overrides):
        data = {
            "id": "18c2f",
            "threadId": "18c2e",
            "snippet": "Server snippet",
            "labelIds": ["INBOX", "UNREAD"],
            "payload": {
                "mimeType": "text/plain",
                "headers": [
                    {"name": "From", "value": "Carol <carol@example.com>"},
                    {"name": "To", "value": "me@gmail.com"},
                    {"name": "Subject", "value": "Hi"},
                    {"name": "Date", "value": "Tue, 6 Feb 2024 09:00:00 +0000"},
                    {"name": "Message-ID", "value": "<m1@mail.example.com>"},
                ],
                "body": {"data": b64("Hello there")},
            },
        }
        data.update(overrides)
        return data

    def test_fields(self):
        message = normalize_gmail(self.resource())
        assert message.id == "18c2f"
        assert message.thread_id == "18c2e"
        assert message.sender == "Carol <carol@example.com>"
        assert message.snippet == "Server snippet"
        assert message.body == "Hello there"
        assert message.is_unread is True

    def test_read_label(self):
        assert normalize_gmail(self.resource(labelIds=["INBOX"])).is_unread is False

    def test_long_body_truncated(self):
        resource = self.resource()
        resource["payload"]["body"]["data"] = b64("y" * 2000)
        body = normalize_gmail(resource).body
        assert body == "y" * BODY_PREVIEW_LENGTH + "..."

    def test_missing_headers(self):
        with pytest.raises(ParseFailure):
            normalize_gmail({"id": "1", "payload": {}})

    def test_nested_multipart_prefers_plain(self):
        payload = {
            "mimeType": "multipart/mixed",
            "parts": [
                {
                    "mimeType": "multipart/alternative",
                    "parts": [
                        {"mimeType": "text/html", "body": {"data": b64("<b>html</b>")}},
                        {"mimeType": "text/plain", "body": {"data": b64("plain")}},
                    ],
                },
                {"mimeType": "application/pdf", "filename": "a.pdf", "body": {"attachmentId": "x"}},
            ],
        }
        assert gmail_body(payload) == "plain"

    def test_html_only(self):
        payload = {"parts": [{"mimeType": "text/html", "body": {"data": b64("<i>hi</i>")}}]}
        assert gmail_body(payload) == "<i>hi</i>"

    def test_no_body(self):
        assert gmail_body({"parts": []}) == ""

    def test_reply_envelope(self):
        envelope = gmail_reply_envelope(self.resource())
        assert envelope.sender == "Carol <carol@example.com>"
        assert envelope.message_id == "<m1@mail.example.com>"
        assert envelope.thread_id == "18c2e"
        assert envelope.references == []

    def test_reply_envelope_without_headers(self):
        with pytest.raises(ParseFailure, match="original message headers"):
            gmail_reply_envelope({"id": "1", "payload": {"headers": []}})
