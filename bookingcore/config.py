import os
import warnings
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./bookingcore.db")

# Slot generation
SLOT_STEP_MINUTES = int(os.getenv("SLOT_STEP_MINUTES", "30"))
MAX_SLOT_RANGE_DAYS = int(os.getenv("MAX_SLOT_RANGE_DAYS", "31"))

# Booking guard - how long a writer waits for the resource lock before giving up
BOOKING_LOCK_TIMEOUT_SECONDS = float(os.getenv("BOOKING_LOCK_TIMEOUT_SECONDS", "5"))

# Lifecycle tokens (bytes of entropy passed to secrets.token_urlsafe)
TOKEN_BYTES = int(os.getenv("TOKEN_BYTES", "32"))

# Reminder scheduler
# Tolerance must be >= tick period, otherwise bookings fall between two ticks
REMINDER_TICK_MINUTES = int(os.getenv("REMINDER_TICK_MINUTES", "10"))
REMINDER_TOLERANCE_MINUTES = int(os.getenv("REMINDER_TOLERANCE_MINUTES", "20"))
TICK_LOCK_TTL_SECONDS = int(os.getenv("TICK_LOCK_TTL_SECONDS", "600"))

# Shared secret for the external cron trigger
CRON_SECRET = os.getenv("CRON_SECRET")
if not CRON_SECRET:
    warnings.warn(
        "CRON_SECRET not set! The reminder cron endpoint will reject every call",
        RuntimeWarning,
        stacklevel=2,
    )

# Public booking sites live at <slug>.<ROOT_DOMAIN> unless the company has a custom domain
ROOT_DOMAIN = os.getenv("ROOT_DOMAIN", "localhost:3000")

# Resend Email Configuration
RESEND_API_KEY = os.getenv("RESEND_API_KEY")
EMAIL_FROM_ADDRESS = os.getenv("EMAIL_FROM_ADDRESS", "Bookings <noreply@bookingcore.app>")
