import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "postgresql://localhost:5432/motbooking")

# Security - CRITICAL: No default secret key in production
SECRET_KEY = os.getenv("SECRET_KEY")
if not SECRET_KEY:
    import warnings

    warnings.warn(
        "SECRET_KEY not set! Using insecure default - DO NOT USE IN PRODUCTION", RuntimeWarning, stacklevel=2
    )
    SECRET_KEY = "INSECURE-DEV-KEY-CHANGE-IN-PRODUCTION"  # noqa: S105 - Dev fallback only

JWT_ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "10080"))  # 7 days

# Frontend base URL for redirects
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3000")

# Stripe Configuration
STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY")
STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET")

# DVLA Vehicle Enquiry Service
DVLA_API_KEY = os.getenv("DVLA_API_KEY")
DVLA_API_URL = os.getenv(
    "DVLA_API_URL", "https://driver-vehicle-licensing.api.gov.uk/vehicle-enquiry/v1/vehicles"
)

# DVSA MOT History API (OAuth client credentials)
DVSA_CLIENT_ID = os.getenv("DVSA_CLIENT_ID")
DVSA_CLIENT_SECRET = os.getenv("DVSA_CLIENT_SECRET")
DVSA_API_KEY = os.getenv("DVSA_API_KEY")
DVSA_API_URL = os.getenv("DVSA_API_URL", "https://history.mot.api.gov.uk/v1/trade/vehicles/registration")
DVSA_TOKEN_URL = os.getenv(
    "DVSA_TOKEN_URL",
    "https://login.microsoftonline.com/a455b827-244f-4c97-b5b4-ce5d13b4d00c/oauth2/v2.0/token",
)
DVSA_SCOPE = os.getenv("DVSA_SCOPE", "https://tapi.dvsa.gov.uk/.default")

# Postcode geocoding
POSTCODES_IO_URL = os.getenv("POSTCODES_IO_URL", "https://api.postcodes.io/postcodes")

# Resend Email Configuration
RESEND_API_KEY = os.getenv("RESEND_API_KEY")
EMAIL_FROM_ADDRESS = os.getenv("EMAIL_FROM_ADDRESS", "MOT Booking <noreply@motbooking.co.uk>")

# Redis (push fan-out + arq)
REDIS_URL = os.getenv("REDIS_URL")

# Booking race protection
BOOKING_MAX_RETRIES = int(os.getenv("BOOKING_MAX_RETRIES", "3"))
BOOKING_RETRY_BASE_DELAY = float(os.getenv("BOOKING_RETRY_BASE_DELAY", "0.1"))  # seconds

# Subscription lifecycle
SUBSCRIPTION_GRACE_PERIOD_DAYS = int(os.getenv("SUBSCRIPTION_GRACE_PERIOD_DAYS", "3"))
SUBSCRIPTION_MAX_PAYMENT_RETRIES = int(os.getenv("SUBSCRIPTION_MAX_PAYMENT_RETRIES", "3"))
SUBSCRIPTION_SUSPEND_AFTER_DAYS = int(os.getenv("SUBSCRIPTION_SUSPEND_AFTER_DAYS", "7"))
SUBSCRIPTION_EXPIRY_ALERT_THRESHOLD = int(os.getenv("SUBSCRIPTION_EXPIRY_ALERT_THRESHOLD", "20"))
