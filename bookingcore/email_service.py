"""
Email Service using Resend
Compiles MJML templates to HTML and delivers booking emails
"""

import logging
from datetime import datetime, timezone
from io import BytesIO
from typing import Optional, Union
from zoneinfo import ZoneInfo

import resend
from mjml import mjml_to_html

from .config import EMAIL_FROM_ADDRESS, RESEND_API_KEY
from .email_templates import (
    booking_confirmation_template,
    booking_reminder_template,
    booking_rescheduled_template,
    booking_success_template,
)

logger = logging.getLogger(__name__)

resend.api_key = RESEND_API_KEY


def compile_mjml_to_html(mjml_content: str) -> str:
    """Compile MJML template to production-ready HTML"""
    try:
        result = mjml_to_html(BytesIO(mjml_content.encode("utf-8")))
        # mjml_to_html returns a dict-like result with 'html' and 'errors'
        if isinstance(result, dict):
            if result.get("errors"):
                logger.warning(f"MJML compilation warnings: {result['errors']}")
            return result.get("html", "")
        return result.html
    except Exception as e:
        logger.error(f"MJML compilation error: {e}")
        raise RuntimeError(f"Failed to compile MJML template: {str(e)}") from e


def format_booking_date(start_time: datetime, timezone_name: str = "UTC") -> str:
    """Render a naive UTC start time in the company's timezone"""
    local = start_time.replace(tzinfo=timezone.utc).astimezone(ZoneInfo(timezone_name))
    return local.strftime("%A, %B %d, %Y at %H:%M (%Z)")


async def send_email(
    to: Union[str, list[str]],
    subject: str,
    mjml_content: str,
    from_address: Optional[str] = None,
) -> dict:
    """
    Send an email through Resend

    Args:
        to: Recipient email(s)
        subject: Email subject line
        mjml_content: MJML template content (will be compiled to HTML)
        from_address: Optional custom from address

    Returns:
        Send response dict
    """
    html_content = compile_mjml_to_html(mjml_content)

    recipients = [to] if isinstance(to, str) else to
    sender = from_address or EMAIL_FROM_ADDRESS

    if not RESEND_API_KEY:
        logger.error("❌ No email service configured - RESEND_API_KEY missing")
        raise RuntimeError("Email service not configured")

    try:
        logger.info(f"📧 Sending email via Resend to: {recipients}")
        response = resend.Emails.send(
            {
                "from": sender,
                "to": recipients,
                "subject": subject,
                "html": html_content,
            }
        )
        logger.info(f"✅ Email sent successfully via Resend: {response}")
        return response
    except Exception as e:
        logger.error(f"❌ Email send error to {recipients}: {e}")
        raise RuntimeError(f"Failed to send email: {str(e)}") from e


# ============================================
# Booking emails
# ============================================


async def send_booking_confirmation_email(
    to: str,
    customer_name: str,
    company_name: str,
    service_name: str,
    start_time: datetime,
    confirmation_url: str,
    timezone_name: str = "UTC",
    reschedule_url: Optional[str] = None,
    cancel_url: Optional[str] = None,
) -> dict:
    """Ask the customer to confirm a booking that is waiting for confirmation"""
    mjml_content = booking_confirmation_template(
        customer_name=customer_name,
        company_name=company_name,
        service_name=service_name,
        formatted_date=format_booking_date(start_time, timezone_name),
        confirmation_url=confirmation_url,
        reschedule_url=reschedule_url,
        cancel_url=cancel_url,
    )
    return await send_email(
        to=to,
        subject=f"Confirm your appointment at {company_name}",
        mjml_content=mjml_content,
    )


async def send_booking_success_email(
    to: str,
    customer_name: str,
    company_name: str,
    service_name: str,
    start_time: datetime,
    timezone_name: str = "UTC",
    reschedule_url: Optional[str] = None,
    cancel_url: Optional[str] = None,
) -> dict:
    mjml_content = booking_success_template(
        customer_name=customer_name,
        company_name=company_name,
        service_name=service_name,
        formatted_date=format_booking_date(start_time, timezone_name),
        reschedule_url=reschedule_url,
        cancel_url=cancel_url,
    )
    return await send_email(
        to=to,
        subject=f"Appointment confirmed! {service_name} at {company_name}",
        mjml_content=mjml_content,
    )


async def send_booking_rescheduled_email(
    to: str,
    customer_name: str,
    company_name: str,
    service_name: str,
    start_time: datetime,
    timezone_name: str = "UTC",
    reschedule_url: Optional[str] = None,
    cancel_url: Optional[str] = None,
) -> dict:
    mjml_content = booking_rescheduled_template(
        customer_name=customer_name,
        company_name=company_name,
        service_name=service_name,
        formatted_date=format_booking_date(start_time, timezone_name),
        reschedule_url=reschedule_url,
        cancel_url=cancel_url,
    )
    return await send_email(
        to=to,
        subject=f"Appointment rescheduled: {service_name} at {company_name}",
        mjml_content=mjml_content,
    )


async def send_booking_reminder_email(
    to: str,
    customer_name: str,
    company_name: str,
    service_name: str,
    start_time: datetime,
    timezone_name: str = "UTC",
    provider_name: Optional[str] = None,
    confirm_url: Optional[str] = None,
    reschedule_url: Optional[str] = None,
    cancel_url: Optional[str] = None,
) -> dict:
    """Send an upcoming-appointment reminder"""
    mjml_content = booking_reminder_template(
        customer_name=customer_name,
        company_name=company_name,
        service_name=service_name,
        formatted_date=format_booking_date(start_time, timezone_name),
        provider_name=provider_name,
        confirm_url=confirm_url,
        reschedule_url=reschedule_url,
        cancel_url=cancel_url,
    )
    return await send_email(
        to=to,
        subject=f"Reminder: your appointment at {company_name}",
        mjml_content=mjml_content,
    )
