"""Email dispatch for delivered notifications and messages."""
import html
import logging
import re
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from mailroom.config import get_settings, import_string

logger = logging.getLogger(__name__)


def display_name(entity) -> str:
    """Call the configured name accessor of a messageable entity."""
    accessor = getattr(entity, get_settings().name_method, None)
    if accessor is None:
        return str(entity)
    return accessor() if callable(accessor) else str(accessor)


def email_target(entity, notification) -> str | None:
    """Call the configured email accessor; ``None`` or blank means no email."""
    accessor = getattr(entity, get_settings().email_method, None)
    if accessor is None:
        return None
    email_to = accessor(notification) if callable(accessor) else accessor
    if email_to is None or not str(email_to).strip():
        return None
    return str(email_to).strip()


def send_email_notification(
    to_email: str,
    subject: str,
    html_content: str,
) -> bool:
    """Send an email using SMTP.

    Returns ``False`` without sending when no SMTP host is configured. SMTP
    errors propagate to the caller.
    """
    settings = get_settings()
    if not settings.smtp_host:
        logger.info("SMTP not configured, skipping email")
        return False

    msg = MIMEMultipart("alternative")
    msg["Subject"] = subject
    msg["From"] = settings.smtp_from_email
    msg["To"] = to_email

    # Plain text fallback
    plain_text = html_content.replace("<br>", "\n").replace("</p>", "\n\n")
    plain_text = html.unescape(re.sub(r"<[^>]+>", "", plain_text))

    msg.attach(MIMEText(plain_text, "plain"))
    msg.attach(MIMEText(html_content, "html"))

    with smtplib.SMTP(settings.smtp_host, settings.smtp_port) as server:
        server.starttls()
        if settings.smtp_user and settings.smtp_password:
            server.login(settings.smtp_user, settings.smtp_password)
        server.send_message(msg)
    logger.info(f"Sent email '{subject}' to {to_email}")
    return True


class NotificationMailer:
    """Renders a notification as an HTML email and sends it."""

    def subject_for(self, notification) -> str:
        return notification.subject

    def render(self, notification, receiver) -> str:
        body = html.escape(notification.body or "").replace("\n", "<br>")
        return f"""
    <html>
    <body style="font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px;">
        <p>Hi {html.escape(display_name(receiver))},</p>
        <h2 style="color: #1e40af;">{html.escape(notification.subject or "")}</h2>
        <p>{body}</p>
        <p style="margin-top: 24px; padding-top: 16px; border-top: 1px solid #e5e7eb; color: #6b7280; font-size: 12px;">
            You're receiving this because email notifications are enabled for your account.
        </p>
    </body>
    </html>
    """

    def send_email(self, notification, receiver, email_to: str) -> bool:
        return send_email_notification(email_to, self.subject_for(notification), self.render(notification, receiver))


class MessageMailer(NotificationMailer):
    """Mailer for conversation messages: new thread or reply."""

    def subject_for(self, message) -> str:
        conversation = message.conversation
        if conversation is not None and conversation.count_messages() > 1:
            return f"Reply: {message.subject}"
        return f"New message: {message.subject}"

    def render(self, message, receiver) -> str:
        sender = message.sender
        intro = f"{html.escape(display_name(sender))} wrote:" if sender is not None else ""
        body = html.escape(message.body or "").replace("\n", "<br>")
        return f"""
    <html>
    <body style="font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px;">
        <p>Hi {html.escape(display_name(receiver))},</p>
        <h2 style="color: #1e40af;">{html.escape(message.subject or "")}</h2>
        <p style="color: #6b7280;">{intro}</p>
        <p style="padding: 12px; background: #f3f4f6; border-radius: 8px;">{body}</p>
    </body>
    </html>
    """


def get_mailer(notification) -> NotificationMailer:
    """Instantiate the mailer configured for the notification's kind."""
    settings = get_settings()
    if getattr(notification, "conversation", None) is not None:
        path = settings.message_mailer
        default = MessageMailer
    else:
        path = settings.notification_mailer
        default = NotificationMailer
    mailer_cls = import_string(path) if path else default
    return mailer_cls()
