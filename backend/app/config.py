"""
Implant Warranty - Runtime Configuration
Environment-driven settings shared by the API, the services and the scripts.
"""
import os


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


# Database
DATABASE_URL = os.getenv(
    "DATABASE_URL",
    f"postgresql://{os.getenv('USER', 'postgres')}@localhost:5432/implant_warranty"
)

# Staff authentication (admin surface)
JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "implant-warranty-secret-key-change-in-production")
JWT_ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_HOURS = int(os.getenv("ACCESS_TOKEN_EXPIRE_HOURS", "24"))

# PII encryption: 64 hex characters or 32 raw bytes
ENCRYPTION_KEY = os.getenv("ENCRYPTION_KEY", "")

# Device-binding cookie for the patient registration flow
WARRANTY_STEP_COOKIE = "warranty_step"
WARRANTY_STEP_SECRET = os.getenv("WARRANTY_STEP_SECRET", "") or JWT_SECRET_KEY
WARRANTY_STEP_TTL_DAYS = int(os.getenv("WARRANTY_STEP_TTL_DAYS", "365"))
WARRANTY_COOKIE_SECURE = _env_bool("WARRANTY_COOKIE_SECURE", "true")

# Surgery dates are entered in local time
APP_TIMEZONE = os.getenv("APP_TIMEZONE", "Asia/Taipei")

# Mailgun
MAILGUN_DOMAIN = os.getenv("MAILGUN_DOMAIN", "")
MAILGUN_API_KEY = os.getenv("MAILGUN_API_KEY", "")
MAILGUN_FROM_EMAIL = os.getenv("MAILGUN_FROM_EMAIL", "noreply@example.com")
MAILGUN_BASE_URL = os.getenv("MAILGUN_BASE_URL", "https://api.mailgun.net/v3")
NOTIFICATION_TIMEOUT_SEC = float(os.getenv("NOTIFICATION_TIMEOUT_SEC", "10"))

# Company
COMPANY_NAME = os.getenv("COMPANY_NAME", "Implant Warranty Service")
COMPANY_NOTIFICATION_EMAIL = os.getenv("COMPANY_NOTIFICATION_EMAIL", "")
EMAIL_TEMPLATE_SUBJECT = os.getenv(
    "EMAIL_TEMPLATE_SUBJECT",
    "{patient_name}, your implant warranty registration is complete"
)
EMAIL_SENDER_NAME = os.getenv("EMAIL_SENDER_NAME", "Customer Service")

# HTTP
CORS_ALLOWED_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ALLOWED_ORIGINS", "http://localhost:5173").split(",")
    if origin.strip()
]
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
