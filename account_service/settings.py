"""
Django settings for account_service project.

Environment variables are loaded in layers (.env, then .env.test or .env.prod
depending on RUN_ENV), see common.utils.env_util.
"""
import os
from pathlib import Path

from common.utils.env_util import load_env

BASE_DIR = Path(__file__).resolve().parent.parent

env = load_env(BASE_DIR)

RUN_ENV = os.environ.get("RUN_ENV", "").lower()

SECRET_KEY = env("DJANGO_SECRET_KEY", default="django-insecure-account-service-dev-key")

DEBUG = env.bool("DJANGO_DEBUG", default=RUN_ENV != "prod")

ALLOWED_HOSTS = env.list("DJANGO_ALLOWED_HOSTS", default=["localhost", "127.0.0.1"])

# Enabled apps
APP_MAILACCOUNT_ENABLED = env.bool("APP_MAILACCOUNT_ENABLED", default=True)

INSTALLED_APPS = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    "rest_framework",
]
if APP_MAILACCOUNT_ENABLED:
    INSTALLED_APPS.append("app_mailaccount")

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]

ROOT_URLCONF = "account_service.urls"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.debug",
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
                "django.contrib.messages.context_processors.messages",
            ],
        },
    },
]

WSGI_APPLICATION = "account_service.wsgi.application"


# Database
# sqlite is used for local development and tests; IMMEDIATE transactions plus a
# busy timeout make concurrent writers queue instead of failing.
SQLITE_OPTIONS = {
    "timeout": 20,
    "transaction_mode": "IMMEDIATE",
}


def _build_db(url_var: str, sqlite_name: str) -> dict:
    db = env.db(url_var, default=f"sqlite:///{BASE_DIR / sqlite_name}")
    if db["ENGINE"] == "django.db.backends.sqlite3":
        db["OPTIONS"] = dict(SQLITE_OPTIONS)
        db["TEST"] = {"NAME": str(BASE_DIR / f"test_{sqlite_name}")}
    return db


DATABASES = {
    "default": _build_db("DATABASE_URL", "db.sqlite3"),
    "mailaccount_rw": _build_db("MAILACCOUNT_DATABASE_URL", "mailaccount.sqlite3"),
}

DATABASE_ROUTERS = [
    "app_mailaccount.db_routers.ReadWriteRouter",
]

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"


# Password validation
AUTH_PASSWORD_VALIDATORS = [
    {"NAME": "django.contrib.auth.password_validation.UserAttributeSimilarityValidator"},
    {"NAME": "django.contrib.auth.password_validation.MinimumLengthValidator"},
    {"NAME": "django.contrib.auth.password_validation.CommonPasswordValidator"},
    {"NAME": "django.contrib.auth.password_validation.NumericPasswordValidator"},
]


# Internationalization
LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = True
USE_TZ = True

STATIC_URL = "static/"


REST_FRAMEWORK = {
    "DEFAULT_RENDERER_CLASSES": [
        "rest_framework.renderers.JSONRenderer",
    ],
    "DEFAULT_PARSER_CLASSES": [
        "rest_framework.parsers.JSONParser",
    ],
    "UNAUTHENTICATED_USER": None,
}


# Logging
LOG_LEVEL = env("LOG_LEVEL", default="INFO")

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "standard": {
            "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "standard",
        },
    },
    "root": {
        "handlers": ["console"],
        "level": LOG_LEVEL,
    },
    "loggers": {
        "django": {
            "handlers": ["console"],
            "level": "WARNING",
            "propagate": False,
        },
        "app_mailaccount": {
            "handlers": ["console"],
            "level": LOG_LEVEL,
            "propagate": False,
        },
    },
}
