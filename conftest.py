"""
Pytest configuration file.

This file ensures Django settings are loaded before any tests run,
which in turn loads environment variables from .env files.
"""
import os

import django

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "account_service.settings")
os.environ.setdefault("RUN_ENV", "test")
os.environ.setdefault(
    "MAIL_ACCOUNT_ENCRYPTION_KEY",
    "3f1c5a9e7b2d4c6f8a0e1b3d5f7a9c2e4b6d8f0a1c3e5b7d9f2a4c6e8b0d1f3a",
)
django.setup()

from django.conf import settings

if "testserver" not in settings.ALLOWED_HOSTS:
    settings.ALLOWED_HOSTS.append("testserver")
