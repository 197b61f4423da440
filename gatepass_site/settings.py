"""
Django settings for the GatePass service.

Everything deployment-specific comes from the environment; the defaults are
for local development only.
"""

import os
from datetime import timedelta
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent


def env_bool(name, default=False):
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


SECRET_KEY = os.environ.get("DJANGO_SECRET_KEY", "development-secret-key-change-in-production")
DEBUG = env_bool("DJANGO_DEBUG", True)
ALLOWED_HOSTS = [h for h in os.environ.get("DJANGO_ALLOWED_HOSTS", "localhost,127.0.0.1").split(",") if h]


INSTALLED_APPS = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    "rest_framework",
    "rest_framework_simplejwt",
    "gatepass",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]

ROOT_URLCONF = "gatepass_site.urls"
WSGI_APPLICATION = "gatepass_site.wsgi.application"

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
    },
]


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------
# Every store call is bounded: SQLite waits at most DB_TIMEOUT for a lock,
# PostgreSQL aborts statements after DB_TIMEOUT and gives up connecting
# after the same. Connections are per request (CONN_MAX_AGE = 0).

DB_TIMEOUT = int(os.environ.get("GATEPASS_DB_TIMEOUT_SECONDS", "5"))

if os.environ.get("GATEPASS_DB_ENGINE", "sqlite") == "postgres":
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.postgresql",
            "NAME": os.environ.get("GATEPASS_DB_NAME", "gatepass"),
            "USER": os.environ.get("GATEPASS_DB_USER", "gatepass"),
            "PASSWORD": os.environ.get("GATEPASS_DB_PASSWORD", ""),
            "HOST": os.environ.get("GATEPASS_DB_HOST", "localhost"),
            "PORT": os.environ.get("GATEPASS_DB_PORT", "5432"),
            "CONN_MAX_AGE": 0,
            "OPTIONS": {
                "connect_timeout": DB_TIMEOUT,
                "options": f"-c statement_timeout={DB_TIMEOUT * 1000}",
            },
        }
    }
else:
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.sqlite3",
            "NAME": os.environ.get("GATEPASS_DB_NAME", str(BASE_DIR / "db.sqlite3")),
            "CONN_MAX_AGE": 0,
            "OPTIONS": {"timeout": DB_TIMEOUT},
            # On disk so concurrent test connections wait on the lock timeout;
            # shared-cache memory databases fail writers immediately.
            "TEST": {"NAME": str(BASE_DIR / "test_gatepass.sqlite3")},
        }
    }

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"
AUTH_USER_MODEL = "gatepass.User"

AUTH_PASSWORD_VALIDATORS = [
    {"NAME": "django.contrib.auth.password_validation.MinimumLengthValidator"},
]


# ---------------------------------------------------------------------------
# Sessions (federated browser logins)
# ---------------------------------------------------------------------------

SESSION_COOKIE_AGE = 7 * 24 * 60 * 60
SESSION_COOKIE_HTTPONLY = True
SESSION_COOKIE_SAMESITE = "Lax"
SESSION_COOKIE_SECURE = not DEBUG
CSRF_COOKIE_SECURE = not DEBUG


# ---------------------------------------------------------------------------
# REST framework / bearer tokens
# ---------------------------------------------------------------------------

REST_FRAMEWORK = {
    "DEFAULT_AUTHENTICATION_CLASSES": [
        "gatepass.authentication.DualModeAuthentication",
    ],
    "DEFAULT_PERMISSION_CLASSES": [
        "rest_framework.permissions.IsAuthenticated",
    ],
    "DEFAULT_RENDERER_CLASSES": [
        "rest_framework.renderers.JSONRenderer",
    ],
    "EXCEPTION_HANDLER": "gatepass.exceptions.api_exception_handler",
    "UNAUTHENTICATED_USER": "django.contrib.auth.models.AnonymousUser",
}

SIMPLE_JWT = {
    "ACCESS_TOKEN_LIFETIME": timedelta(days=7),
    "ALGORITHM": "HS256",
    "SIGNING_KEY": os.environ.get("GATEPASS_JWT_SIGNING_KEY", SECRET_KEY),
    "AUTH_HEADER_TYPES": ("Bearer",),
    "USER_ID_FIELD": "id",
    "USER_ID_CLAIM": "user_id",
    "UPDATE_LAST_LOGIN": False,
}


# ---------------------------------------------------------------------------
# GatePass
# ---------------------------------------------------------------------------

GATEPASS = {
    "CREDENTIAL_TTL_HOURS": 12,
    "CREDENTIAL_GENERATION_ATTEMPTS": 5,
    "CREDENTIAL_RETRY_BACKOFF": 0.05,
    "ACCESS_EVENT_WINDOW_DAYS": 7,
    "ADMIN_BOOTSTRAP_PASSWORD": os.environ.get("ADMIN_PASSWORD", ""),
    "OIDC": {
        "ISSUER_URL": os.environ.get("OIDC_ISSUER_URL", ""),
        "CLIENT_ID": os.environ.get("OIDC_CLIENT_ID", ""),
        "CLIENT_SECRET": os.environ.get("OIDC_CLIENT_SECRET", ""),
        "REDIRECT_URI": os.environ.get("OIDC_REDIRECT_URI", ""),
        "SCOPES": "openid email profile offline_access",
        # Discovery document is re-fetched at most once per hour.
        "DISCOVERY_CACHE_TTL": 3600,
        "HTTP_TIMEOUT": 10,
        "LOGIN_REDIRECT": "/role-selection",
        "HOME_REDIRECT": "/",
    },
}


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "console": {
            "format": "%(asctime)s %(levelname)s [%(name)s] %(message)s",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "console",
        },
    },
    "root": {"handlers": ["console"], "level": "WARNING"},
    "loggers": {
        "gatepass": {
            "handlers": ["console"],
            "level": os.environ.get("GATEPASS_LOG_LEVEL", "INFO"),
            "propagate": False,
        },
    },
}


LANGUAGE_CODE = "en-us"
TIME_ZONE = os.environ.get("GATEPASS_TIME_ZONE", "UTC")
USE_I18N = True
USE_TZ = True

STATIC_URL = "static/"
