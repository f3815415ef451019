"""
Email Service using Resend

Delivers teacher application notifications. The review workflow produces
notification intents; this module turns them into emails.
"""

import asyncio
import logging
import os
from html import escape
from typing import TYPE_CHECKING

import resend

if TYPE_CHECKING:
    from lms_api.modules.teacher_applications.audit import NotificationIntent

logger = logging.getLogger(__name__)

# Initialize Resend with API key
resend.api_key = os.getenv("RESEND_API_KEY")

# Configurations
EMAIL_FROM = os.getenv("EMAIL_FROM", "LMS <noreply@lms.dev>")
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3000")

_BASE_STYLE = """
    body { font-family: system-ui, -apple-system, sans-serif; line-height: 1.6; color: #1f2937; }
    .container { max-width: 600px; margin: 0 auto; padding: 40px 20px; }
    .header { color: #1a365d; margin-bottom: 24px; }
    .info-box { background-color: #f3f4f6; padding: 16px; border-radius: 8px; margin: 16px 0; }
    .button { display: inline-block; background-color: #1a365d; color: white; padding: 14px 28px; text-decoration: none; border-radius: 8px; margin: 24px 0; }
    .footer { margin-top: 40px; padding-top: 20px; border-top: 1px solid #e5e7eb; color: #6b7280; font-size: 14px; }
"""


async def send_email(
    to_email: str,
    subject: str,
    html_content: str,
) -> bool:
    """
    Send an email using Resend.

    Args:
        to_email: Recipient email address
        subject: Email subject line
        html_content: HTML content of the email

    Returns:
        True if email was sent successfully
    """
    if not resend.api_key:
        logger.warning("RESEND_API_KEY not set - logging email instead of sending")
        logger.info(f"EMAIL TO: {to_email} | SUBJECT: {subject}")
        return True

    try:
        params: resend.Emails.SendParams = {
            "from": EMAIL_FROM,
            "to": [to_email],
            "subject": subject,
            "html": html_content,
        }

        # Run sync Resend call in thread pool to avoid blocking event loop
        email = await asyncio.to_thread(resend.Emails.send, params)
        logger.info(f"Email sent successfully to {to_email}, id: {email['id']}")
        return True
    except Exception as e:
        logger.error(f"Failed to send email to {to_email}: {e}")
        return False


def _render(title: str, greeting_name: str, body_html: str) -> str:
    status_url = f"{FRONTEND_URL}/teacher/application-status"
    return f"""
    <!DOCTYPE html>
    <html>
    <head>
        <style>{_BASE_STYLE}</style>
    </head>
    <body>
        <div class="container">
            <h1 class="header">{title}</h1>

            <p>Hello {escape(greeting_name)},</p>

            {body_html}

            <a href="{status_url}" class="button">View Application Status</a>

            <div class="footer">
                <p>LMS - Teacher Onboarding</p>
            </div>
        </div>
    </body>
    </html>
    """


def _approved_email(payload: dict) -> tuple[str, str]:
    body = """
            <p>Congratulations! Your teacher application has been <strong>approved</strong>.</p>
            <p>You can now create courses and start teaching.</p>
    """
    if payload.get("feedback"):
        body += f'<div class="info-box">{escape(payload["feedback"])}</div>'
    return "Your teacher application was approved", body


def _rejected_email(payload: dict) -> tuple[str, str]:
    reason = escape(payload.get("rejection_reason") or "")
    body = f"""
            <p>Thank you for applying to teach with us. After careful review, your application was not approved.</p>
            <div class="info-box"><strong>Reason:</strong> {reason}</div>
    """
    return "Update on your teacher application", body


def _resubmission_email(payload: dict) -> tuple[str, str]:
    feedback = escape(payload.get("feedback") or "")
    body = f"""
            <p>Your reviewer needs a few changes before your application can be decided.</p>
            <div class="info-box">{feedback}</div>
    """
    documents = payload.get("requested_documents") or []
    if documents:
        items = "".join(f"<li>{escape(str(doc))}</li>" for doc in documents)
        body += f"<p>Please provide:</p><ul>{items}</ul>"
    return "Action needed on your teacher application", body


def _status_changed_email(payload: dict) -> tuple[str, str]:
    status_label = escape(str(payload.get("status", "")).replace("_", " "))
    body = f"<p>Your teacher application status is now <strong>{status_label}</strong>.</p>"
    return "Your teacher application status changed", body


_TEMPLATES = {
    "approved": _approved_email,
    "rejected": _rejected_email,
    "resubmission_requested": _resubmission_email,
    "status_changed": _status_changed_email,
}


async def send_notification(intent: "NotificationIntent") -> bool:
    """
    Deliver a notification intent by email.

    Args:
        intent: The notification intent produced by the review workflow

    Returns:
        True if the email was handed to the provider, False otherwise
    """
    payload = intent.payload
    to_email = payload.get("applicant_email")

    if not to_email:
        logger.warning(
            f"No email address for recipient {intent.recipient_id}; "
            f"skipping '{intent.kind.value}' notification"
        )
        return False

    subject, body = _TEMPLATES[intent.kind.value](payload)
    name = payload.get("applicant_name") or "there"

    return await send_email(
        to_email=to_email,
        subject=subject,
        html_content=_render(escape(subject), name, body),
    )
