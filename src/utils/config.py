# environment driven settings, read once at import time
import os
from datetime import timedelta


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, default))
    except (TypeError, ValueError):
        return default


DB_PATH = os.getenv("TEMPLE_CONNECT_DB", "data/db.sqlite")
STORAGE_PATH = os.getenv("TEMPLE_CONNECT_STORAGE", "data/local_storage.json")

SESSION_TTL = timedelta(minutes=_env_int("SESSION_TTL_MINUTES", 60))
REFRESH_TTL = timedelta(days=_env_int("REFRESH_TTL_DAYS", 30))
PASSWORD_RESET_TTL = timedelta(hours=1)
BCRYPT_ROUNDS = _env_int("BCRYPT_ROUNDS", 12)

OTP_TTL = timedelta(minutes=_env_int("OTP_TTL_MINUTES", 10))
OTP_RESEND_SECONDS = 60

SENDGRID_API_KEY = os.getenv("SENDGRID_API_KEY")
SENDER_EMAIL = os.getenv("SENDER_EMAIL", "no-reply@templeconnect.lk")

TWILIO_ACCOUNT_SID = os.getenv("TWILIO_ACCOUNT_SID")
TWILIO_AUTH_TOKEN = os.getenv("TWILIO_AUTH_TOKEN")
TWILIO_FROM_NUMBER = os.getenv("TWILIO_FROM_NUMBER")

DEFAULT_COUNTRY = os.getenv("DEFAULT_COUNTRY", "LK")

DEBUG = bool(os.getenv("TEMPLE_CONNECT_DEBUG") or os.getenv("DEBUG"))
LOG_FILE = os.getenv("TEMPLE_CONNECT_LOG_FILE")
