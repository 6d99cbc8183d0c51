import os
from datetime import timedelta
from decimal import Decimal
from dotenv import load_dotenv

load_dotenv()


def _env_bool(name, default=False):
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class Config:
    # --- Flask Core ---
    SECRET_KEY = os.getenv('SECRET_KEY', 'fallback-secret-key')
    SQLALCHEMY_DATABASE_URI = os.getenv('DATABASE_URL', 'sqlite:///spems.db')
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # --- JWT Authentication (Bearer header) ---
    JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "dev-jwt-secret")
    JWT_TOKEN_LOCATION = ["headers"]
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(days=30)

    # --- Mail (reminders, status updates) ---
    MAIL_SERVER = os.getenv("MAIL_SERVER", "localhost")
    MAIL_PORT = int(os.getenv("MAIL_PORT", "587"))
    MAIL_USE_TLS = _env_bool("MAIL_USE_TLS", True)
    MAIL_USERNAME = os.getenv("MAIL_USERNAME")
    MAIL_PASSWORD = os.getenv("MAIL_PASSWORD")
    MAIL_DEFAULT_SENDER = (
        os.getenv("MAIL_SENDER_NAME", "Smart Project Earnings Management System"),
        os.getenv("MAIL_SENDER_EMAIL", "noreply@spems.com"),
    )
    MAIL_SUPPRESS_SEND = _env_bool("MAIL_SUPPRESS_SEND", False)
    FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3000")

    # --- Monthly subscription ---
    MONTHLY_FEE = Decimal(os.getenv("MONTHLY_FEE", "15000"))
    PAYMENT_CURRENCY = os.getenv("PAYMENT_CURRENCY", "RWF")
    DEFAULT_PAYMENT_METHOD = os.getenv("DEFAULT_PAYMENT_METHOD", "MOMO")
    PAYMENT_WINDOW_DAYS = int(os.getenv("PAYMENT_WINDOW_DAYS", "30"))
    PRE_BLOCK_REMINDER_DAYS = int(os.getenv("PRE_BLOCK_REMINDER_DAYS", "2"))
    PAYMENT_INSTRUCTIONS = os.getenv(
        "PAYMENT_INSTRUCTIONS",
        "Pay via Mobile Money (MOMO) and contact the admin to confirm your payment.",
    )

    # Seconds a positive/negative compliance read may be reused by the access gate (0 = off)
    COMPLIANCE_CACHE_SECONDS = int(os.getenv("COMPLIANCE_CACHE_SECONDS", "0"))

    # --- Daily payment check ---
    PAYMENT_SCHEDULER_ENABLED = _env_bool("PAYMENT_SCHEDULER_ENABLED", True)
    PAYMENT_CHECK_HOUR = int(os.getenv("PAYMENT_CHECK_HOUR", "9"))
    PAYMENT_CHECK_MINUTE = int(os.getenv("PAYMENT_CHECK_MINUTE", "0"))
    SCHEDULER_TIMEZONE = os.getenv("SCHEDULER_TIMEZONE", "UTC")

    # --- Logging ---
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    LOG_JSON = _env_bool("LOG_JSON", False)


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    JWT_SECRET_KEY = "test-jwt-secret-with-enough-length-for-hs256"
    MAIL_SUPPRESS_SEND = True
    MAIL_DEFAULT_SENDER = ("SPEMS Test", "noreply@test.local")
    PAYMENT_SCHEDULER_ENABLED = False
    COMPLIANCE_CACHE_SECONDS = 0
    LOG_LEVEL = "DEBUG"
