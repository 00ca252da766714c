"""
MJML Email Templates
Customer-facing booking emails, branded with the company name
"""

from html import escape
from typing import Optional

THEME = {
    "primary": "#4f46e5",
    "background": "#f8fafc",
    "text_primary": "#0f172a",
    "text_secondary": "#334155",
    "text_muted": "#64748b",
    "border": "#e2e8f0",
    "info_bg": "#f1f5f9",
    "danger": "#ef4444",
}


def get_base_template(
    title: str,
    preview_text: str,
    company_name: str,
    content_sections: str,
    cta_url: Optional[str] = None,
    cta_label: Optional[str] = None,
) -> str:
    """Base MJML template wrapper for all booking emails"""

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

    company = escape(company_name)
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
        <!-- Header -->
        <mj-section background-color="{THEME['primary']}" padding="30px 20px">
          <mj-column>
            <mj-text align="center" font-size="20px" font-weight="700" color="#ffffff" padding="0">
              {company}
            </mj-text>
          </mj-column>
        </mj-section>

        <!-- Main Content -->
        <mj-section background-color="#ffffff" padding="40px 40px 24px 40px">
          <mj-column>
            <mj-text font-size="24px" font-weight="600" color="{THEME['text_primary']}" line-height="1.3" padding="0 0 16px 0">
              {title}
            </mj-text>

            {content_sections}
          </mj-column>
        </mj-section>

        {cta_section}

        <!-- Footer -->
        <mj-section padding="32px 20px">
          <mj-column>
            <mj-text align="center" font-size="13px" color="#94a3b8" padding="0">
              © {company}. All rights reserved.
            </mj-text>
          </mj-column>
        </mj-section>
      </mj-body>
    </mjml>
    """


def _details_box(service_name: str, formatted_date: str, provider_name: Optional[str] = None) -> str:
    provider_line = ""
    if provider_name:
        provider_line = f"<strong>With:</strong> {escape(provider_name)}<br/>"
    return f"""
    <mj-text padding="16px 0">
      <div style="background: {THEME['info_bg']}; border: 1px solid {THEME['border']}; border-radius: 10px; padding: 20px;">
        <strong>Service:</strong> {escape(service_name)}<br/>
        {provider_line}
        <strong>Date:</strong> {formatted_date}
      </div>
    </mj-text>
    """


def _change_links(reschedule_url: Optional[str], cancel_url: Optional[str]) -> str:
    """Reschedule / cancel links; hidden when the booking has no such token"""
    links = []
    if reschedule_url:
        links.append(
            f'<a href="{reschedule_url}" style="color: {THEME["primary"]}; font-weight: bold; text-decoration: none;">Reschedule</a>'
        )
    if cancel_url:
        links.append(
            f'<a href="{cancel_url}" style="color: {THEME["danger"]}; font-weight: bold; text-decoration: none;">Cancel appointment</a>'
        )
    if not links:
        return ""
    separator = ' <span style="color: #cbd5e1;">|</span> '
    return f"""
    <mj-divider border-color="{THEME['border']}" border-width="1px" padding="24px 0 16px 0" />
    <mj-text align="center" font-size="14px" color="{THEME['text_muted']}" padding="0 0 8px 0">
      Need to make changes?
    </mj-text>
    <mj-text align="center" font-size="14px" padding="0">
      {separator.join(links)}
    </mj-text>
    """


def booking_confirmation_template(
    customer_name: str,
    company_name: str,
    service_name: str,
    formatted_date: str,
    confirmation_url: str,
    reschedule_url: Optional[str] = None,
    cancel_url: Optional[str] = None,
) -> str:
    """Ask the customer to confirm a PENDING booking"""
    content = f"""
    <mj-text>
      Hi <strong>{escape(customer_name)}</strong>,
    </mj-text>

    <mj-text>
      You requested an appointment at <strong>{escape(company_name)}</strong>:
    </mj-text>

    {_details_box(service_name, formatted_date)}

    <mj-text padding="24px 0 0 0">
      To hold your spot, please confirm your attendance with the button below.
    </mj-text>

    {_change_links(reschedule_url, cancel_url)}

    <mj-text font-size="14px" color="{THEME['text_muted']}" padding="24px 0 0 0">
      If you did not request this appointment you can ignore this email.
    </mj-text>
    """

    return get_base_template(
        title="Confirm your appointment",
        preview_text=f"Please confirm your appointment at {escape(company_name)}",
        company_name=company_name,
        content_sections=content,
        cta_url=confirmation_url,
        cta_label="Confirm my appointment",
    )


def booking_success_template(
    customer_name: str,
    company_name: str,
    service_name: str,
    formatted_date: str,
    reschedule_url: Optional[str] = None,
    cancel_url: Optional[str] = None,
) -> str:
    """Booking confirmed"""
    content = f"""
    <mj-text>
      Hi <strong>{escape(customer_name)}</strong>,
    </mj-text>

    <mj-text>
      Your appointment at <strong>{escape(company_name)}</strong> is confirmed.
    </mj-text>

    {_details_box(service_name, formatted_date)}

    {_change_links(reschedule_url, cancel_url)}

    <mj-text padding="24px 0 0 0">
      See you soon!
    </mj-text>
    """

    return get_base_template(
        title="Your appointment is confirmed!",
        preview_text=f"{escape(service_name)} at {escape(company_name)}",
        company_name=company_name,
        content_sections=content,
    )


def booking_rescheduled_template(
    customer_name: str,
    company_name: str,
    service_name: str,
    formatted_date: str,
    reschedule_url: Optional[str] = None,
    cancel_url: Optional[str] = None,
) -> str:
    content = f"""
    <mj-text>
      Hi <strong>{escape(customer_name)}</strong>,
    </mj-text>

    <mj-text>
      Your appointment at <strong>{escape(company_name)}</strong> has been moved.
    </mj-text>

    {_details_box(service_name, formatted_date)}

    {_change_links(reschedule_url, cancel_url)}

    <mj-text padding="24px 0 0 0">
      See you at the new time!
    </mj-text>
    """

    return get_base_template(
        title="Your appointment has been rescheduled",
        preview_text=f"New time for {escape(service_name)} at {escape(company_name)}",
        company_name=company_name,
        content_sections=content,
    )


def booking_reminder_template(
    customer_name: str,
    company_name: str,
    service_name: str,
    formatted_date: str,
    provider_name: Optional[str] = None,
    confirm_url: Optional[str] = None,
    reschedule_url: Optional[str] = None,
    cancel_url: Optional[str] = None,
) -> str:
    """Upcoming appointment reminder; shows the confirm button only while a confirmation is pending"""
    content = f"""
    <mj-text>
      Hi <strong>{escape(customer_name)}</strong>,
    </mj-text>

    <mj-text>
      This is a friendly reminder of your appointment at <strong>{escape(company_name)}</strong>:
    </mj-text>

    {_details_box(service_name, formatted_date, provider_name)}

    {_change_links(reschedule_url, cancel_url)}
    """

    return get_base_template(
        title="Appointment reminder",
        preview_text=f"Your appointment at {escape(company_name)} is coming up",
        company_name=company_name,
        content_sections=content,
        cta_url=confirm_url,
        cta_label="Yes, I'll be there",
    )
