from __future__ import annotations

import base64
import json
import re
from email.message import EmailMessage
from pathlib import Path
from typing import Any

import structlog
from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build

from opentolk.config import settings

log = structlog.get_logger()

MAX_BODY_CHARS = 8000


def credentials_from_file(path: str | Path | None = None) -> Credentials | None:
    """Load authorized-user credentials saved by an OAuth flow, or None if not connected."""
    raw = path or settings.google_token_file
    if not raw:
        return None
    token_file = Path(raw).expanduser()
    if not token_file.is_file():
        return None
    data = json.loads(token_file.read_text(encoding="utf-8"))
    return Credentials(
        token=data.get("token"),
        refresh_token=data.get("refresh_token"),
        token_uri=data.get("token_uri", "https://oauth2.googleapis.com/token"),
        client_id=data.get("client_id", settings.google_client_id),
        client_secret=data.get("client_secret", settings.google_client_secret),
        scopes=data.get("scopes"),
    )


def _service(credentials: Credentials):
    return build("gmail", "v1", credentials=credentials, cache_discovery=False)


def _decode_body(payload: dict[str, Any]) -> str:
    """Recursively extract plain-text body from a Gmail message payload."""
    mime_type = payload.get("mimeType", "")
    parts = payload.get("parts", [])

    if mime_type == "text/plain":
        data = payload.get("body", {}).get("data", "")
        if data:
            return base64.urlsafe_b64decode(data).decode("utf-8", errors="replace")

    if parts:
        for part in parts:
            if part.get("mimeType") == "text/plain":
                text = _decode_body(part)
                if text:
                    return text
        for part in parts:
            if part.get("mimeType") == "text/html":
                text = _decode_body(part)
                if text:
                    return _strip_html(text)
        for part in parts:
            text = _decode_body(part)
            if text:
                return text

    if mime_type == "text/html":
        data = payload.get("body", {}).get("data", "")
        if data:
            html = base64.urlsafe_b64decode(data).decode("utf-8", errors="replace")
            return _strip_html(html)

    return ""


def _strip_html(html: str) -> str:
    """Rough HTML-to-text conversion."""
    text = re.sub(r"<br\s*/?>", "\n", html, flags=re.IGNORECASE)
    text = re.sub(r"<[^>]+>", "", text)
    text = re.sub(r"&nbsp;", " ", text)
    text = re.sub(r"&amp;", "&", text)
    text = re.sub(r"&lt;", "<", text)
    text = re.sub(r"&gt;", ">", text)
    text = re.sub(r"&#\d+;", "", text)
    return text.strip()


def _get_header(headers: list[dict[str, str]], name: str) -> str:
    """Get a header value by name (case-insensitive)."""
    for h in headers:
        if h.get("name", "").lower() == name.lower():
            return h.get("value", "")
    return ""


def _encode(message: EmailMessage) -> str:
    return base64.urlsafe_b64encode(message.as_bytes()).decode("ascii")


class GoogleGmailClient:
    """Synchronous Gmail API wrapper; callers run it off the event loop."""

    def __init__(self, credentials: Credentials):
        self._creds = credentials
        self._svc = _service(credentials)

    def list_messages(self, query: str | None = None, max_results: int = 10) -> list[dict[str, Any]]:
        """List recent messages (optionally filtered by Gmail search syntax)."""
        params: dict[str, Any] = {"userId": "me", "maxResults": max_results}
        if query:
            params["q"] = query
        results = self._svc.users().messages().list(**params).execute()

        messages = []
        for msg_ref in results.get("messages", []):
            msg = (
                self._svc.users()
                .messages()
                .get(userId="me", id=msg_ref["id"], format="metadata",
                     metadataHeaders=["Subject", "From", "Date"])
                .execute()
            )
            headers = msg.get("payload", {}).get("headers", [])
            messages.append({
                "message_id": msg["id"],
                "thread_id": msg.get("threadId", ""),
                "subject": _get_header(headers, "Subject") or "(no subject)",
                "from": _get_header(headers, "From"),
                "date": _get_header(headers, "Date"),
                "snippet": msg.get("snippet", ""),
                "unread": "UNREAD" in msg.get("labelIds", []),
            })

        log.info("google_gmail.list_messages", query=query, count=len(messages))
        return messages

    def get_message(self, message_id: str) -> dict[str, Any]:
        """Get full message content by ID. Body is truncated to MAX_BODY_CHARS."""
        msg = (
            self._svc.users()
            .messages()
            .get(userId="me", id=message_id, format="full")
            .execute()
        )
        headers = msg.get("payload", {}).get("headers", [])
        body = _decode_body(msg.get("payload", {}))
        if len(body) > MAX_BODY_CHARS:
            body = body[:MAX_BODY_CHARS] + "\n... [truncated]"

        return {
            "message_id": msg["id"],
            "thread_id": msg.get("threadId", ""),
            "subject": _get_header(headers, "Subject") or "(no subject)",
            "from": _get_header(headers, "From"),
            "to": _get_header(headers, "To"),
            "date": _get_header(headers, "Date"),
            "rfc_message_id": _get_header(headers, "Message-ID"),
            "body": body,
        }

    def send_message(self, to: str, subject: str, body: str) -> str:
        message = EmailMessage()
        message["To"] = to
        message["Subject"] = subject
        message.set_content(body)

        sent = (
            self._svc.users()
            .messages()
            .send(userId="me", body={"raw": _encode(message)})
            .execute()
        )
        log.info("google_gmail.send_message", message_id=sent.get("id"))
        return sent.get("id", "")

    def reply_to_message(self, message_id: str, body: str) -> str:
        """Reply in the original message's thread."""
        original = self.get_message(message_id)
        subject = original["subject"]
        if not subject.lower().startswith("re:"):
            subject = f"Re: {subject}"

        message = EmailMessage()
        message["To"] = original["from"]
        message["Subject"] = subject
        if original["rfc_message_id"]:
            message["In-Reply-To"] = original["rfc_message_id"]
            message["References"] = original["rfc_message_id"]
        message.set_content(body)

        sent = (
            self._svc.users()
            .messages()
            .send(userId="me", body={"raw": _encode(message), "threadId": original["thread_id"]})
            .execute()
        )
        log.info("google_gmail.reply", message_id=message_id, sent_id=sent.get("id"))
        return sent.get("id", "")

    def archive_message(self, message_id: str) -> None:
        self._svc.users().messages().modify(
            userId="me", id=message_id, body={"removeLabelIds": ["INBOX"]}
        ).execute()
        log.info("google_gmail.archive", message_id=message_id)
