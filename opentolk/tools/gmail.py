from __future__ import annotations

import asyncio
from typing import Any

from opentolk.connectors.google_gmail import GoogleGmailClient
from opentolk.schemas.manifest import Permission
from opentolk.tools.base import BuiltinTool, ToolContext, required_str
from opentolk.tools.registry import register_tool

NOT_CONNECTED = "Error: Gmail is not connected. Please connect Gmail in plugin settings first."


class _GmailTool(BuiltinTool):
    permission = Permission.gmail

    def _client(self, ctx: ToolContext) -> GoogleGmailClient | None:
        credentials = ctx.gmail_credentials() if ctx.gmail_credentials else None
        if credentials is None:
            return None
        return GoogleGmailClient(credentials)


class GmailCheckTool(_GmailTool):
    name = "gmail_check"
    description = (
        "List recent emails from the user's Gmail inbox. "
        "Returns subjects, senders, dates, and message IDs."
    )

    def parameters_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "query": {
                    "type": "string",
                    "description": "Gmail search query (e.g. 'is:unread', 'from:sarah'). "
                    "Leave empty for recent emails.",
                },
                "max_results": {
                    "type": "number",
                    "description": "Maximum number of emails to return (default 10)",
                },
            },
        }

    async def execute(self, args: dict[str, Any], context: ToolContext) -> str:
        client = self._client(context)
        if client is None:
            return NOT_CONNECTED

        query = args.get("query") or None
        try:
            max_results = int(args.get("max_results") or 10)
        except (TypeError, ValueError):
            max_results = 10

        try:
            messages = await asyncio.to_thread(client.list_messages, query, max_results)
        except Exception as exc:
            return f"Error checking email: {exc}"

        if not messages:
            return "No emails found."

        lines = [f"Found {len(messages)} email(s):", ""]
        for i, msg in enumerate(messages, start=1):
            unread = " [UNREAD]" if msg["unread"] else ""
            lines.append(f"{i}. **{msg['subject']}**{unread}")
            lines.append(f"   From: {msg['from']}")
            lines.append(f"   Date: {msg['date']}")
            lines.append(f"   Preview: {msg['snippet']}")
            lines.append(f"   ID: {msg['message_id']}")
            lines.append("")
        return "\n".join(lines)


class GmailReadTool(_GmailTool):
    name = "gmail_read"
    description = "Read the full content of a specific email by its message ID."

    def parameters_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "message_id": {"type": "string", "description": "The Gmail message ID to read"},
            },
            "required": ["message_id"],
        }

    async def execute(self, args: dict[str, Any], context: ToolContext) -> str:
        client = self._client(context)
        if client is None:
            return NOT_CONNECTED
        message_id = required_str(args, "message_id")
        if message_id is None:
            return "Error: message_id is required."

        try:
            msg = await asyncio.to_thread(client.get_message, message_id)
        except Exception as exc:
            return f"Error reading email: {exc}"

        return (
            f"**{msg['subject']}**\n"
            f"From: {msg['from']}\n"
            f"To: {msg['to']}\n"
            f"Date: {msg['date']}\n\n"
            f"{msg['body']}"
        )


class GmailReplyTool(_GmailTool):
    name = "gmail_reply"
    description = "Reply to an existing email. The reply is sent in the same thread."

    def parameters_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "message_id": {"type": "string", "description": "The Gmail message ID to reply to"},
                "body": {"type": "string", "description": "The reply message body text"},
            },
            "required": ["message_id", "body"],
        }

    async def execute(self, args: dict[str, Any], context: ToolContext) -> str:
        client = self._client(context)
        if client is None:
            return NOT_CONNECTED
        message_id = required_str(args, "message_id")
        if message_id is None:
            return "Error: message_id is required."
        body = required_str(args, "body")
        if body is None:
            return "Error: body is required."

        try:
            sent_id = await asyncio.to_thread(client.reply_to_message, message_id, body)
        except Exception as exc:
            return f"Error sending reply: {exc}"
        return f"Reply sent successfully (ID: {sent_id})."


class GmailSendTool(_GmailTool):
    name = "gmail_send"
    description = "Send a new email to a recipient."

    def parameters_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "to": {"type": "string", "description": "Recipient email address"},
                "subject": {"type": "string", "description": "Email subject line"},
                "body": {"type": "string", "description": "Email body text"},
            },
            "required": ["to", "subject", "body"],
        }

    async def execute(self, args: dict[str, Any], context: ToolContext) -> str:
        client = self._client(context)
        if client is None:
            return NOT_CONNECTED
        for key in ("to", "subject", "body"):
            if required_str(args, key) is None:
                return f"Error: {key} is required."

        try:
            sent_id = await asyncio.to_thread(
                client.send_message, args["to"], args["subject"], args["body"]
            )
        except Exception as exc:
            return f"Error sending email: {exc}"
        return f"Email sent successfully to {args['to']} (ID: {sent_id})."


class GmailArchiveTool(_GmailTool):
    name = "gmail_archive"
    description = "Archive an email (remove it from the inbox) by its message ID."

    def parameters_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "message_id": {"type": "string", "description": "The Gmail message ID to archive"},
            },
            "required": ["message_id"],
        }

    async def execute(self, args: dict[str, Any], context: ToolContext) -> str:
        client = self._client(context)
        if client is None:
            return NOT_CONNECTED
        message_id = required_str(args, "message_id")
        if message_id is None:
            return "Error: message_id is required."

        try:
            await asyncio.to_thread(client.archive_message, message_id)
        except Exception as exc:
            return f"Error archiving email: {exc}"
        return "Email archived successfully."


_TOOLS = [
    GmailCheckTool(),
    GmailReadTool(),
    GmailReplyTool(),
    GmailSendTool(),
    GmailArchiveTool(),
]

for _t in _TOOLS:
    register_tool(_t)
