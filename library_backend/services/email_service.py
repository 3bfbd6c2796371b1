"""
email_service.py — Outbound mail
SMTP delivery plus the HTML bodies for verification, password reset,
overdue reminders and the contact form. smtplib blocks, so sends run in a
worker thread and never stall the event loop.
"""

import asyncio
import html
import logging
import smtplib
from datetime import datetime
from email.message import EmailMessage

from library_backend.config import (
    SMTP_HOST, SMTP_PORT, SMTP_SECURE, SMTP_USER, SMTP_PASS, SMTP_FROM, FRONTEND_URL,
)
from library_backend.errors import EmailDeliveryError

logger = logging.getLogger(__name__)


class EmailSender:
    """Sends HTML mail through one SMTP server."""

    def __init__(
        self,
        host: str = SMTP_HOST,
        port: int = SMTP_PORT,
        secure: bool = SMTP_SECURE,
        username: str = SMTP_USER,
        password: str = SMTP_PASS,
        sender: str = SMTP_FROM,
        timeout: float = 30.0,
    ):
        self.host = host
        self.port = port
        self.secure = secure
        self.username = username
        self.password = password
        self.sender = sender
        self.timeout = timeout

    def _build_message(self, to: str, subject: str, html_body: str) -> EmailMessage:
        msg = EmailMessage()
        msg["From"] = self.sender
        msg["To"] = to
        msg["Subject"] = subject
        msg.set_content("This message requires an HTML capable mail client.")
        msg.add_alternative(html_body, subtype="html")
        return msg

    def _deliver(self, msg: EmailMessage) -> None:
        smtp_cls = smtplib.SMTP_SSL if self.secure else smtplib.SMTP
        with smtp_cls(self.host, self.port, timeout=self.timeout) as server:
            if not self.secure:
                server.starttls()
            if self.username:
                server.login(self.username, self.password)
            server.send_message(msg)

    async def send(self, to: str, subject: str, html_body: str) -> None:
        """Deliver one message. Raises EmailDeliveryError if the SMTP exchange fails."""
        msg = self._build_message(to, subject, html_body)
        try:
            await asyncio.to_thread(self._deliver, msg)
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Failed to send email to {to} (subject={subject}): {e}")
            raise EmailDeliveryError("Failed to send email") from e
        logger.info(f"Email sent to {to} subject={subject}")


# ── Message bodies ────────────────────────────────────────────────
def verification_email(token: str) -> tuple[str, str]:
    link = f"{FRONTEND_URL}/verification-success?token={token}"
    body = f"""
    <h1>Verify Email Address</h1>
    <p>You're receiving this email because you recently created a new account.
    Please verify your email address by clicking the link below.</p>
    <a href="{link}">VERIFY EMAIL</a>
    """
    return "Verify Your Email", body


def password_reset_email(token: str) -> tuple[str, str]:
    link = f"{FRONTEND_URL}/reset-password?token={token}"
    body = f"""
    <h1>Reset Your Password</h1>
    <p>Click the link below to reset your password:</p>
    <a href="{link}">Reset Password</a>
    """
    return "Reset Your Password", body


def overdue_email(user_name: str, book_title: str, due_date: datetime) -> tuple[str, str]:
    body = f"""
    <h1>Reminder: Overdue Book</h1>
    <p>Hello {html.escape(user_name)},</p>
    <p>The book <b>{html.escape(book_title)}</b> you borrowed was due on {due_date:%Y-%m-%d} and is overdue.</p>
    <p>Please return it as soon as possible.</p>
    """
    return "Overdue Book Reminder", body


def contact_form_email(name: str, email: str, message: str) -> tuple[str, str]:
    body = f"""
    <h1>New Contact Form Submission</h1>
    <p><b>Name:</b> {html.escape(name)}</p>
    <p><b>Email:</b> {html.escape(email)}</p>
    <p><b>Message:</b></p>
    <pre>{html.escape(message)}</pre>
    <a href="mailto:{html.escape(email)}">Reply</a>
    """
    return f"Contact Form: Message from {name}", body
