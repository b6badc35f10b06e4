"""
MJML Email Templates
Transactional emails for drivers, garages and admins
"""

from typing import Optional

from .config import FRONTEND_URL

THEME = {
    "primary": "#2563eb",
    "primary_dark": "#1d4ed8",
    "primary_light": "#dbeafe",
    "background": "#f8fafc",
    "card_bg": "#ffffff",
    "text_primary": "#0f172a",
    "text_secondary": "#334155",
    "text_muted": "#64748b",
    "border": "#e2e8f0",
    "success": "#16a34a",
    "warning": "#f59e0b",
    "danger": "#ef4444",
}

BRAND_NAME = "MOT Booking"


def get_base_template(
    title: str,
    preview_text: str,
    content_sections: str,
    cta_url: Optional[str] = None,
    cta_label: Optional[str] = None,
) -> str:
    """Base MJML template wrapper for all emails"""

    cta_section = ""
    if cta_url and cta_label:
        cta_section = f"""
        <mj-section padding="20px 0">
          <mj-column>
            <mj-button
              href="{cta_url}"
              background-color="{THEME['primary']}"
              color="#ffffff"
              font-weight="600"
              border-radius="8px"
              padding="18px 40px"
              font-size="16px">
              {cta_label}
            </mj-button>
          </mj-column>
        </mj-section>
        """

    return f"""
    <mjml>
      <mj-head>
        <mj-title>{title}</mj-title>
        <mj-preview>{preview_text}</mj-preview>
        <mj-attributes>
          <mj-all font-family="-apple-system, BlinkMacSystemFont, 'Segoe UI', 'Helvetica Neue', Arial, sans-serif" />
          <mj-text font-size="16px" line-height="1.6" color="{THEME['text_secondary']}" />
        </mj-attributes>
      </mj-head>
      <mj-body background-color="{THEME['background']}">
        <mj-section background-color="#ffffff" padding="32px 40px 0 40px">
          <mj-column>
            <mj-text font-size="20px" font-weight="700" color="{THEME['primary_dark']}" padding="0">
              {BRAND_NAME}
            </mj-text>
            <mj-divider border-color="{THEME['border']}" border-width="1px" padding="24px 0 32px 0" />
          </mj-column>
        </mj-section>

        <mj-section background-color="#ffffff" padding="0 40px 48px 40px">
          <mj-column>
            <mj-text font-size="24px" font-weight="600" color="{THEME['text_primary']}" line-height="1.3" padding="0 0 16px 0">
              {title}
            </mj-text>

            {content_sections}
          </mj-column>
        </mj-section>

        {cta_section}

        <mj-section padding="32px 20px">
          <mj-column>
            <mj-text align="center" font-size="13px" color="#94a3b8" padding="0">
              You're receiving this because you have an account with {BRAND_NAME}.
            </mj-text>
          </mj-column>
        </mj-section>
      </mj-body>
    </mjml>
    """


def _detail_rows(rows: list[tuple[str, str]]) -> str:
    """Render label/value pairs as a bordered summary table"""
    cells = "".join(
        f"""
        <tr>
          <td style="padding: 8px 0; color: {THEME['text_muted']};">{label}</td>
          <td style="padding: 8px 0; text-align: right; font-weight: 600; color: {THEME['text_primary']};">{value}</td>
        </tr>
        """
        for label, value in rows
    )
    return f"""
    <mj-table padding="16px 0" border="1px solid {THEME['border']}" cellpadding="12px">
      {cells}
    </mj-table>
    """


def welcome_email_template(user_name: str, is_garage: bool) -> str:
    if is_garage:
        body = """
        Your garage account has been created. An administrator will review your details
        and you will receive an email as soon as your account is approved.
        """
    else:
        body = """
        You can now add your vehicles, check their MOT history and book an MOT at a
        garage near you.
        """

    content = f"""
    <mj-text>Hi {user_name},</mj-text>
    <mj-text>{body}</mj-text>
    """

    return get_base_template(
        title=f"Welcome to {BRAND_NAME}!",
        preview_text="Your account has been created successfully",
        content_sections=content,
        cta_url=f"{FRONTEND_URL}/login",
        cta_label="Sign in",
    )


def garage_approved_template(garage_name: str) -> str:
    content = f"""
    <mj-text>Hi {garage_name},</mj-text>
    <mj-text>
      Good news: your garage has been approved. Choose a subscription plan and publish your
      MOT prices and opening hours to start receiving bookings from drivers.
    </mj-text>
    """

    return get_base_template(
        title="Your garage has been approved",
        preview_text="You can now start receiving MOT bookings",
        content_sections=content,
        cta_url=f"{FRONTEND_URL}/garage/dashboard",
        cta_label="Go to Dashboard",
    )


def new_booking_template(
    garage_name: str,
    driver_name: str,
    registration_number: str,
    service_type: str,
    slot_time: str,
    total_amount: float,
) -> str:
    """Sent to the garage when a driver books a slot"""
    details = _detail_rows(
        [
            ("Driver", driver_name),
            ("Vehicle", registration_number),
            ("Service", service_type),
            ("Time", slot_time),
            ("Amount", f"£{total_amount:.2f}"),
        ]
    )
    content = f"""
    <mj-text>Hi {garage_name},</mj-text>
    <mj-text>You have a new {service_type} booking.</mj-text>
    {details}
    <mj-text color="{THEME['text_muted']}">Please accept or reject the booking from your dashboard.</mj-text>
    """

    return get_base_template(
        title="New booking received",
        preview_text=f"{registration_number} booked for {slot_time}",
        content_sections=content,
        cta_url=f"{FRONTEND_URL}/garage/bookings",
        cta_label="Review booking",
    )


def booking_status_template(driver_name: str, garage_name: str, status: str, slot_time: str) -> str:
    """Sent to the driver when the garage accepts, rejects or completes a booking"""
    status_text = {
        "ACCEPTED": "has been accepted",
        "REJECTED": "has been rejected",
        "COMPLETED": "has been completed",
        "CANCELLED": "has been cancelled",
    }.get(status, f"is now {status.lower()}")

    content = f"""
    <mj-text>Hi {driver_name},</mj-text>
    <mj-text>Your booking at <strong>{garage_name}</strong> on {slot_time} {status_text}.</mj-text>
    """

    return get_base_template(
        title="Booking update",
        preview_text=f"Your booking {status_text}",
        content_sections=content,
        cta_url=f"{FRONTEND_URL}/bookings",
        cta_label="View my bookings",
    )


def mot_reminder_template(driver_name: str, registration_number: str, expiry_date: str, days_left: int) -> str:
    content = f"""
    <mj-text>Hi {driver_name},</mj-text>
    <mj-text>
      The MOT for <strong>{registration_number}</strong> expires on <strong>{expiry_date}</strong>,
      in {days_left} days. Driving without a valid MOT can lead to a fine of up to £1,000.
    </mj-text>
    """

    return get_base_template(
        title="Your MOT is due soon",
        preview_text=f"MOT for {registration_number} expires in {days_left} days",
        content_sections=content,
        cta_url=f"{FRONTEND_URL}/garages",
        cta_label="Book an MOT",
    )


def subscription_payment_success_template(
    garage_name: str, plan_name: str, amount: str, invoice_number: str, membership_period: str
) -> str:
    details = _detail_rows(
        [
            ("Plan", plan_name),
            ("Amount", amount),
            ("Invoice", invoice_number),
            ("Period", membership_period),
        ]
    )
    content = f"""
    <mj-text>Hi {garage_name},</mj-text>
    <mj-text>Thank you, we've received your subscription payment.</mj-text>
    {details}
    """

    return get_base_template(
        title="Payment received",
        preview_text=f"Invoice {invoice_number}",
        content_sections=content,
        cta_url=f"{FRONTEND_URL}/garage/billing",
        cta_label="View invoices",
    )


def subscription_payment_failed_template(garage_name: str, amount: str, suspended: bool) -> str:
    if suspended:
        body = """
        We were unable to collect your subscription payment and your garage is no longer
        visible to drivers. Update your payment method to restore your listing.
        """
    else:
        body = """
        We were unable to collect your subscription payment. We'll retry automatically,
        but please check your payment method to avoid your listing being hidden.
        """

    details = _detail_rows([("Amount due", amount)])
    content = f"""
    <mj-text>Hi {garage_name},</mj-text>
    <mj-text>{body}</mj-text>
    {details}
    """

    return get_base_template(
        title="Payment failed",
        preview_text="Action required: update your payment method",
        content_sections=content,
        cta_url=f"{FRONTEND_URL}/garage/billing",
        cta_label="Update payment method",
    )


def trial_ending_template(garage_name: str, days_remaining: int) -> str:
    plural = "s" if days_remaining != 1 else ""
    content = f"""
    <mj-text>Hi {garage_name},</mj-text>
    <mj-text>
      Your free trial ends in {days_remaining} day{plural}.
      Your subscription will continue automatically using the payment method on file.
    </mj-text>
    """

    return get_base_template(
        title="Your trial is ending soon",
        preview_text=f"{days_remaining} days left in your trial",
        content_sections=content,
        cta_url=f"{FRONTEND_URL}/garage/billing",
        cta_label="Manage subscription",
    )


def trial_converted_template(garage_name: str, plan_name: str) -> str:
    content = f"""
    <mj-text>Hi {garage_name},</mj-text>
    <mj-text>Your trial has ended and your <strong>{plan_name}</strong> subscription is now active.</mj-text>
    """

    return get_base_template(
        title="Subscription active",
        preview_text=f"Your {plan_name} plan is active",
        content_sections=content,
    )
