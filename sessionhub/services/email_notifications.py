"""Email notification service for booking and message digests"""

import asyncio
import html
import logging
import smtplib
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Any

from sessionhub.config import Settings, settings as default_settings

logger = logging.getLogger(__name__)


@dataclass
class DigestEntry:
    """One conversation line in an unread digest"""
    title: str
    counterparty_label: str
    counterparty_name: str
    unread_count: int
    last_message_ago: str


def plural(count: int, word: str) -> str:
    return f"{count} {word}{'s' if count != 1 else ''}"


class EmailTemplate:
    """Email templates for booking invites and unread digests"""

    @staticmethod
    def unread_digest_subject(conversation_count: int) -> str:
        return f"You have {plural(conversation_count, 'conversation')} with unread messages"

    @staticmethod
    def unread_digest_html(
        user_name: str,
        entries: list[DigestEntry],
        dashboard_url: str,
    ) -> str:
        """Generate HTML digest of conversations with unread messages"""
        total_unread = sum(entry.unread_count for entry in entries)
        conversations = "".join(
            f"""
            <div class="conversation">
                <h4>{html.escape(entry.title)}</h4>
                <p><strong>{entry.counterparty_label}:</strong> {html.escape(entry.counterparty_name)}</p>
                <p><strong>Unread messages:</strong> {entry.unread_count}</p>
                <p class="muted">Last message: {entry.last_message_ago}</p>
            </div>
            """
            for entry in entries
        )
        return f"""
        <!DOCTYPE html>
        <html>
        <head>
            <meta charset="utf-8">
            <title>Unread messages</title>
            <style>
                body {{ font-family: Arial, sans-serif; line-height: 1.6; color: #333; }}
                .container {{ max-width: 600px; margin: 0 auto; padding: 20px; }}
                .conversation {{ background: #f8f9fa; padding: 15px; border-radius: 8px; margin-bottom: 10px; border-left: 4px solid #01A3B4; }}
                .muted {{ color: #999; font-size: 12px; }}
                .cta-button {{ display: inline-block; background: #01A3B4; color: white; padding: 12px 30px; text-decoration: none; border-radius: 6px; font-weight: bold; }}
            </style>
        </head>
        <body>
            <div class="container">
                <h2>Hi {html.escape(user_name)},</h2>
                <p>You have <strong>{plural(total_unread, 'unread message')}</strong>
                across <strong>{plural(len(entries), 'conversation')}</strong>.</p>
                {conversations}
                <div style="text-align: center;">
                    <a href="{dashboard_url}" class="cta-button">View Messages</a>
                </div>
                <p class="muted">This is an automated notification. You can manage your notification preferences in your account settings.</p>
            </div>
        </body>
        </html>
        """

    @staticmethod
    def unread_digest_text(user_name: str, entries: list[DigestEntry], dashboard_url: str) -> str:
        lines = [f"Hi {user_name},", ""]
        total_unread = sum(entry.unread_count for entry in entries)
        lines.append(
            f"You have {plural(total_unread, 'unread message')} across {plural(len(entries), 'conversation')}."
        )
        lines.append("")
        for entry in entries:
            lines.append(
                f"- {entry.title} ({entry.counterparty_label}: {entry.counterparty_name}): "
                f"{entry.unread_count} unread, last message {entry.last_message_ago}"
            )
        lines.extend(["", f"View messages: {dashboard_url}"])
        return "\n".join(lines)

    @staticmethod
    def booking_invite_html(recipient_name: str, counterparty_name: str, booking: dict[str, Any], for_provider: bool) -> str:
        headline = "New booking confirmed" if for_provider else "Your booking is confirmed"
        counterparty_label = "Requester" if for_provider else "Provider"
        session = booking.get("session_date") or "To be scheduled"
        return f"""
        <!DOCTYPE html>
        <html>
        <body style="font-family: Arial, sans-serif;">
            <h2>{headline}</h2>
            <p>Hi {html.escape(recipient_name)},</p>
            <ul>
                <li><strong>Service:</strong> {html.escape(booking.get('listing_title') or '')}</li>
                <li><strong>{counterparty_label}:</strong> {html.escape(counterparty_name)}</li>
                <li><strong>Session:</strong> {session} ({booking.get('session_length')}, {booking.get('format')})</li>
                <li><strong>Booking ID:</strong> {booking.get('id')}</li>
            </ul>
        </body>
        </html>
        """


class EmailNotificationService:
    """Service for sending notification emails over SMTP"""

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or default_settings
        self.smtp_server = self.settings.smtp_server
        self.smtp_port = self.settings.smtp_port
        self.smtp_username = self.settings.smtp_username
        self.smtp_password = self.settings.smtp_password
        self.from_email = self.settings.from_email or self.settings.smtp_username or "noreply@sessionhub.app"
        self.from_name = self.settings.from_name

    def is_configured(self) -> bool:
        """Check if email service is properly configured"""
        return self.settings.is_email_configured()

    def _build_message(self, to_email: str, subject: str, html_content: str, text_content: str | None) -> MIMEMultipart:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = f"{self.from_name} <{self.from_email}>"
        msg["To"] = to_email
        if text_content:
            msg.attach(MIMEText(text_content, "plain"))
        msg.attach(MIMEText(html_content, "html"))
        return msg

    def _deliver(self, msg: MIMEMultipart) -> None:
        with smtplib.SMTP(self.smtp_server, self.smtp_port) as server:
            server.starttls()
            server.login(self.smtp_username, self.smtp_password)
            server.send_message(msg)

    async def send_email(
        self,
        to_email: str,
        subject: str,
        html_content: str,
        text_content: str | None = None,
    ) -> bool:
        """Send email via SMTP without blocking the event loop"""
        if not self.is_configured():
            logger.warning("Email service not configured, skipping email")
            return False

        msg = self._build_message(to_email, subject, html_content, text_content)
        try:
            await asyncio.to_thread(self._deliver, msg)
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Failed to send email to {to_email}: {e}")
            return False

        logger.info(f"Email sent successfully to {to_email}")
        return True

    async def send_booking_invite(
        self,
        to_email: str,
        recipient_name: str,
        counterparty_name: str,
        booking: dict[str, Any],
        for_provider: bool,
    ) -> bool:
        subject = "New Booking Confirmed" if for_provider else "Your Booking is Confirmed"
        return await self.send_email(
            to_email,
            subject,
            EmailTemplate.booking_invite_html(recipient_name, counterparty_name, booking, for_provider),
        )
