"""
Mail account application configuration

This module provides utilities for loading and accessing environment variables
for the mail account application. It supports layered environment variable loading
(.env, .env.test, .env.prod) and provides convenient accessors for the credential
key, health thresholds, token refresh and OAuth client configuration.
"""
from pathlib import Path
from typing import Dict

from app_mailaccount.consts.account_const import (
    DEFAULT_MAX_ERRORS,
    DEFAULT_ERRORS_THRESHOLD,
    DEFAULT_WARNING_THRESHOLD,
    DEFAULT_REFRESH_LOOKAHEAD_MINUTES,
    DEFAULT_REFRESH_LEASE_SECONDS,
    DEFAULT_PROVIDER_TIMEOUT_SECONDS,
)
from common.utils.env_util import load_env


def get_base_dir() -> Path:
    """
    Get the project root directory.

    Returns:
        Path to the project root directory
    """
    # app_mailaccount/config.py -> app_mailaccount -> project root
    return Path(__file__).resolve().parent.parent


def get_env():
    """
    Load and return environment variables with layered support.

    Returns:
        environ.Env instance with loaded environment variables
    """
    base_dir = get_base_dir()
    return load_env(base_dir)


def get_app_config() -> Dict:
    """
    Get mail account configuration from environment variables.

    Returns:
        Dictionary containing mail account configuration values

    Raises:
        ConfigurationErrorException: If configuration values are invalid
    """
    from common.exceptions.configuration_error_exception import ConfigurationErrorException

    env = get_env()

    try:
        # credential cipher
        encryption_key = env("MAIL_ACCOUNT_ENCRYPTION_KEY", default="")

        # health thresholds
        max_errors = env.int("MAIL_ACCOUNT_MAX_ERRORS", default=DEFAULT_MAX_ERRORS)
        errors_threshold = env.int("MAIL_ACCOUNT_ERRORS_THRESHOLD", default=DEFAULT_ERRORS_THRESHOLD)
        warning_threshold = env.int("MAIL_ACCOUNT_WARNING_THRESHOLD", default=DEFAULT_WARNING_THRESHOLD)

        # token refresh
        refresh_lookahead_minutes = env.int("MAIL_ACCOUNT_REFRESH_LOOKAHEAD_MINUTES",
                                            default=DEFAULT_REFRESH_LOOKAHEAD_MINUTES)
        refresh_lease_seconds = env.int("MAIL_ACCOUNT_REFRESH_LEASE_SECONDS", default=DEFAULT_REFRESH_LEASE_SECONDS)
        provider_timeout = env.float("MAIL_ACCOUNT_PROVIDER_TIMEOUT", default=DEFAULT_PROVIDER_TIMEOUT_SECONDS)

        # oauth clients
        google_client_id = env("GOOGLE_CLIENT_ID", default="")
        google_client_secret = env("GOOGLE_CLIENT_SECRET", default="")
        google_redirect_uri = env("GOOGLE_REDIRECT_URI", default="")
        microsoft_client_id = env("MICROSOFT_CLIENT_ID", default="")
        microsoft_client_secret = env("MICROSOFT_CLIENT_SECRET", default="")
        microsoft_redirect_uri = env("MICROSOFT_REDIRECT_URI", default="")
    except Exception as e:
        raise ConfigurationErrorException(
            f"Failed to load mail account configuration: {str(e)}"
        ) from e

    if not 0 < warning_threshold <= errors_threshold <= max_errors:
        raise ConfigurationErrorException(
            "Health thresholds must satisfy 0 < warning <= errors <= max, "
            f"got {warning_threshold}, {errors_threshold}, {max_errors}"
        )
    if refresh_lookahead_minutes < 0 or refresh_lease_seconds <= 0 or provider_timeout <= 0:
        raise ConfigurationErrorException("Refresh window, lease and provider timeout must be positive")

    return {
        "encryption_key": encryption_key,
        "max_errors": max_errors,
        "errors_threshold": errors_threshold,
        "warning_threshold": warning_threshold,
        "refresh_lookahead_minutes": refresh_lookahead_minutes,
        "refresh_lease_seconds": refresh_lease_seconds,
        "provider_timeout": provider_timeout,
        "google": {
            "client_id": google_client_id,
            "client_secret": google_client_secret,
            "redirect_uri": google_redirect_uri,
        },
        "microsoft": {
            "client_id": microsoft_client_id,
            "client_secret": microsoft_client_secret,
            "redirect_uri": microsoft_redirect_uri,
        },
    }
