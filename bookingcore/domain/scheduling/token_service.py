"""Token service - Lifecycle token generation and public link building"""

import secrets
from typing import Optional
from urllib.parse import urlencode

from ...config import ROOT_DOMAIN, TOKEN_BYTES
from ...models import Booking, Company

# Public pages served by the company booking site
ACTION_PATHS = {
    "confirm": "/confirm-booking",
    "cancel": "/cancel",
    "reschedule": "/reschedule",
}


def generate_token() -> str:
    """Generate an opaque, URL-safe lifecycle token"""
    return secrets.token_urlsafe(TOKEN_BYTES)


def site_host(company: Company) -> str:
    """Host serving the company's public pages: custom domain or <slug>.<ROOT_DOMAIN>"""
    return company.custom_domain or f"{company.slug}.{ROOT_DOMAIN}"


def build_action_url(company: Company, action: str, token: Optional[str]) -> Optional[str]:
    """
    Build the public link for a lifecycle action.

    Returns None when the booking has no token for that action (consumed or
    never issued), so templates can hide the button.
    """
    if not token:
        return None
    host = site_host(company)
    protocol = "http" if "localhost" in host else "https"
    return f"{protocol}://{host}{ACTION_PATHS[action]}?{urlencode({'token': token})}"


def build_booking_links(booking: Booking) -> dict[str, Optional[str]]:
    """All lifecycle links for a booking, keyed the way email templates expect"""
    company = booking.company
    return {
        "confirm_url": build_action_url(company, "confirm", booking.confirmation_token),
        "cancel_url": build_action_url(company, "cancel", booking.cancellation_token),
        "reschedule_url": build_action_url(company, "reschedule", booking.reschedule_token),
    }
