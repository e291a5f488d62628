# config/settings/test.py
from .base import *  # noqa

DEBUG = False

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": ":memory:",
    }
}

PASSWORD_HASHERS = ["django.contrib.auth.hashers.MD5PasswordHasher"]

BILLING = {**BILLING, "TAX_RATE": "0.16", "PAYMENT_TERMS_DAYS": 30, "RETRY_BASE_DELAY": 0.0}

LOGGING["loggers"]["clinic_core"]["level"] = "WARNING"
