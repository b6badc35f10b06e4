"""
Email Service using Resend
Templates are written in MJML and compiled to HTML before sending
"""

import logging
from typing import Optional, Union

import resend
from mjml import mjml_to_html

from .config import EMAIL_FROM_ADDRESS, RESEND_API_KEY
from .email_templates import (
    booking_status_template,
    garage_approved_template,
    mot_reminder_template,
    new_booking_template,
    subscription_payment_failed_template,
    subscription_payment_success_template,
    trial_converted_template,
    trial_ending_template,
    welcome_email_template,
)

logger = logging.getLogger(__name__)

resend.api_key = RESEND_API_KEY


def compile_mjml_to_html(mjml_content: str) -> str:
    """Compile MJML template to production-ready HTML"""
    try:
        result = mjml_to_html(mjml_content)
        if isinstance(result, dict):
            if result.get("errors"):
                logger.warning(f"MJML compilation warnings: {result['errors']}")
            return result.get("html", "")
        html = getattr(result, "html", None)
        return html if html is not None else str(result)
    except Exception as e:
        logger.error(f"MJML compilation error: {e}")
        raise Exception(f"Failed to compile MJML template: {str(e)}") from e


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
    if not RESEND_API_KEY:
        logger.error("❌ No email service configured - RESEND_API_KEY missing")
        raise Exception("Email service not configured")

    html_content = compile_mjml_to_html(mjml_content)
    recipients = [to] if isinstance(to, str) else to

    try:
        logger.info(f"📧 Sending email via Resend to: {recipients}")
        response = resend.Emails.send(
            {
                "from": from_address or EMAIL_FROM_ADDRESS,
                "to": recipients,
                "subject": subject,
                "html": html_content,
            }
        )
        logger.info(f"✅ Email sent successfully via Resend: {response}")
        return response
    except Exception as e:
        logger.error(f"❌ Email send error to {recipients}: {e}")
        raise Exception(f"Failed to send email: {str(e)}") from e


# ============================================
# Pre-built emails for lifecycle events
# ============================================


async def send_welcome_email(to: str, user_name: str, is_garage: bool = False) -> dict:
    return await send_email(
        to=to,
        subject="Welcome to MOT Booking",
        mjml_content=welcome_email_template(user_name, is_garage),
    )


async def send_garage_approved_email(to: str, garage_name: str) -> dict:
    return await send_email(
        to=to,
        subject="Your garage has been approved",
        mjml_content=garage_approved_template(garage_name),
    )


async def send_new_booking_email(
    to: str,
    garage_name: str,
    driver_name: str,
    registration_number: str,
    service_type: str,
    slot_time: str,
    total_amount: float,
) -> dict:
    """Notify a garage of a new booking"""
    return await send_email(
        to=to,
        subject=f"New {service_type} booking - {registration_number}",
        mjml_content=new_booking_template(
            garage_name, driver_name, registration_number, service_type, slot_time, total_amount
        ),
    )


async def send_booking_status_email(to: str, driver_name: str, garage_name: str, status: str, slot_time: str) -> dict:
    return await send_email(
        to=to,
        subject="Your MOT booking has been updated",
        mjml_content=booking_status_template(driver_name, garage_name, status, slot_time),
    )


async def send_mot_reminder_email(
    to: str, driver_name: str, registration_number: str, expiry_date: str, days_left: int
) -> dict:
    return await send_email(
        to=to,
        subject=f"MOT reminder: {registration_number} expires in {days_left} days",
        mjml_content=mot_reminder_template(driver_name, registration_number, expiry_date, days_left),
    )


async def send_subscription_payment_success_email(
    to: str, garage_name: str, plan_name: str, amount: str, invoice_number: str, membership_period: str
) -> dict:
    return await send_email(
        to=to,
        subject=f"Payment received - {invoice_number}",
        mjml_content=subscription_payment_success_template(
            garage_name, plan_name, amount, invoice_number, membership_period
        ),
    )


async def send_subscription_payment_failed_email(to: str, garage_name: str, amount: str, suspended: bool) -> dict:
    return await send_email(
        to=to,
        subject="Action required: subscription payment failed",
        mjml_content=subscription_payment_failed_template(garage_name, amount, suspended),
    )


async def send_trial_ending_email(to: str, garage_name: str, days_remaining: int) -> dict:
    return await send_email(
        to=to,
        subject="Your free trial is ending soon",
        mjml_content=trial_ending_template(garage_name, days_remaining),
    )


async def send_trial_converted_email(to: str, garage_name: str, plan_name: str) -> dict:
    return await send_email(
        to=to,
        subject="Your subscription is now active",
        mjml_content=trial_converted_template(garage_name, plan_name),
    )
