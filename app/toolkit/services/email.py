"""
Email sending through the Django mail backend.

Related files:
    - notifications/channels.py: EmailChannel delivers dispatcher sends here
    - templates/: plain-text bodies rendered with EmailService.render

Configuration:
    Email settings are read from Django settings:
    - EMAIL_BACKEND
    - EMAIL_HOST, EMAIL_PORT, EMAIL_HOST_USER, EMAIL_HOST_PASSWORD
    - DEFAULT_FROM_EMAIL

Usage:
    from toolkit.services.email import EmailService

    body = EmailService.render(
        "bookings/emails/order_cancelled_admin.txt", {"order": order}
    )
    EmailService.send_raw(
        to="ops@bouncepartyclub.com",
        subject="Order Cancelled: 1234",
        body_text=body,
    )
"""

from __future__ import annotations

import logging

from django.conf import settings
from django.core.mail import EmailMultiAlternatives
from django.template.loader import render_to_string

logger = logging.getLogger(__name__)


class EmailService:
    """
    Thin wrapper over EmailMultiAlternatives.

    Delivery errors propagate to the caller; the notification dispatcher
    needs the error text to record the failure and escalate.
    """

    @staticmethod
    def render(template_name: str, context: dict) -> str:
        """Render a plain-text body template."""
        return render_to_string(template_name, context).strip()

    @staticmethod
    def send_raw(
        to: str | list[str],
        subject: str,
        body_text: str,
        body_html: str | None = None,
        from_email: str | None = None,
        reply_to: str | None = None,
        headers: dict[str, str] | None = None,
    ) -> int:
        """
        Send email with raw content (no template).

        Args:
            to: Recipient email address(es)
            subject: Email subject line
            body_text: Plain text email body
            body_html: HTML email body (optional)
            from_email: Sender email (defaults to DEFAULT_FROM_EMAIL)
            reply_to: Reply-to address
            headers: Extra message headers (e.g. Message-ID)

        Returns:
            Number of messages the backend accepted (0 or 1)

        Raises:
            Whatever the mail backend raises (SMTPException, OSError, ...)
        """
        if isinstance(to, str):
            to = [to]

        email = EmailMultiAlternatives(
            subject=subject,
            body=body_text,
            from_email=from_email or settings.DEFAULT_FROM_EMAIL,
            to=to,
            reply_to=[reply_to] if reply_to else None,
            headers=headers,
        )
        if body_html:
            email.attach_alternative(body_html, "text/html")

        sent = email.send(fail_silently=False)
        logger.info(
            f"Email sent to {len(to)} recipient(s): {subject}",
            extra={"email_subject": subject},
        )
        return sent
