# config/settings/base.py
from pathlib import Path
import os
from dotenv import load_dotenv


BASE_DIR = Path(__file__).resolve().parent.parent.parent
load_dotenv(BASE_DIR / ".env")

SECRET_KEY = os.getenv("DJANGO_SECRET_KEY", "unsafe-dev-key")
DEBUG = os.getenv("DJANGO_DEBUG", "0") == "1"
ALLOWED_HOSTS = ["*"]

INSTALLED_APPS = [
    # Django
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",

    # Third-party
    "corsheaders",
    "rest_framework",
    "drf_spectacular",
    "django_filters",

    # Domain apps (modular monolith)
    "clinic_core.common.apps.CommonConfig",
    "clinic_core.appointments.apps.AppointmentsConfig",
    "clinic_core.billing.apps.BillingConfig",
    "clinic_core.expenses.apps.ExpensesConfig",
]

MIDDLEWARE = [
    "corsheaders.middleware.CorsMiddleware",
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]


ROOT_URLCONF = "config.urls"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
                "django.contrib.messages.context_processors.messages",
            ],
        },
    }
]

WSGI_APPLICATION = "config.wsgi.application"

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.postgresql",
        "NAME": os.getenv("DB_NAME", "clinic"),
        "USER": os.getenv("DB_USER", "clinic"),
        "PASSWORD": os.getenv("DB_PASSWORD", "clinic"),
        "HOST": os.getenv("DB_HOST", "127.0.0.1"),
        "PORT": os.getenv("DB_PORT", "5432"),
    }
}

AUTH_PASSWORD_VALIDATORS = [
    {"NAME": "django.contrib.auth.password_validation.UserAttributeSimilarityValidator"},
    {"NAME": "django.contrib.auth.password_validation.MinimumLengthValidator"},
    {"NAME": "django.contrib.auth.password_validation.CommonPasswordValidator"},
    {"NAME": "django.contrib.auth.password_validation.NumericPasswordValidator"},
]

LANGUAGE_CODE = "es-mx"
TIME_ZONE = "America/Mexico_City"
USE_I18N = True
USE_TZ = True

STATIC_URL = "static/"
DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

REST_FRAMEWORK = {
    "DEFAULT_AUTHENTICATION_CLASSES": (
        "rest_framework.authentication.SessionAuthentication",
        "rest_framework.authentication.BasicAuthentication",
    ),
    "DEFAULT_PERMISSION_CLASSES": (
        "rest_framework.permissions.IsAuthenticated",
    ),
    "DEFAULT_SCHEMA_CLASS": "clinic_core.common.openapi.ClinicAutoSchema",

    # Standard error envelope
    "EXCEPTION_HANDLER": "clinic_core.common.api.exceptions.api_exception_handler",

    # Filtering + ordering + search support everywhere
    "DEFAULT_FILTER_BACKENDS": [
        "django_filters.rest_framework.DjangoFilterBackend",
        "rest_framework.filters.OrderingFilter",
        "rest_framework.filters.SearchFilter",
    ],

    "DEFAULT_PAGINATION_CLASS": "clinic_core.common.api.pagination.DefaultPagination",
}

API_PAGE_SIZE = int(os.getenv("API_PAGE_SIZE", "20"))

SPECTACULAR_SETTINGS = {
    "TITLE": "Dental Clinic Billing API",
    "DESCRIPTION": "Billing reports, payment reconciliation and clinic expenses",
    "VERSION": "0.1.0",

    "COMPONENT_SPLIT_REQUEST": True,
    "SORT_OPERATIONS": True,
    "SORT_OPERATION_PARAMETERS": True,
    "SERVE_INCLUDE_SCHEMA": False,
}

# Billing engine constants (amounts are decimal strings)
BILLING = {
    "TAX_RATE": os.getenv("BILLING_TAX_RATE", "0.16"),  # IVA
    "CURRENCY": os.getenv("BILLING_CURRENCY", "MXN"),
    "INVOICE_NUMBER_PREFIX": os.getenv("BILLING_INVOICE_PREFIX", "FAC-"),
    "PAYMENT_TERMS_DAYS": int(os.getenv("BILLING_PAYMENT_TERMS_DAYS", "30")),
    "QUICK_PAYMENT_HALF_THRESHOLD": "200.00",
    "QUICK_PAYMENT_INCREMENT": "500.00",
    "RETRY_ATTEMPTS": int(os.getenv("BILLING_RETRY_ATTEMPTS", "3")),
    "RETRY_BASE_DELAY": float(os.getenv("BILLING_RETRY_BASE_DELAY", "0.05")),
}

LOG_LEVEL = os.getenv("DJANGO_LOG_LEVEL", "INFO")

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "verbose": {
            "format": "%(asctime)s %(levelname)s %(name)s: %(message)s",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "verbose",
        },
    },
    "root": {
        "handlers": ["console"],
        "level": "WARNING",
    },
    "loggers": {
        "clinic_core": {
            "handlers": ["console"],
            "level": LOG_LEVEL,
            "propagate": False,
        },
        "django.request": {
            "handlers": ["console"],
            "level": "ERROR",
            "propagate": False,
        },
    },
}

# CORS settings
# Development
CORS_ALLOW_ALL_ORIGINS = True  # Only for development!
CORS_ALLOW_CREDENTIALS = True

COMMON_IDEMPOTENCY_USE_DB = True
