"""
OAuth provider clients

Code exchange, token refresh and identity lookup against Google and Microsoft.
Failures are classified for the refresh orchestrator: a rejected grant raises
ProviderGrantException, everything else (network, timeout, 5xx) raises
ProviderTransportException.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

import requests

from app_mailaccount.consts.account_const import DEFAULT_ACCESS_TOKEN_TTL_SECONDS, DEFAULT_PROVIDER_TIMEOUT_SECONDS
from app_mailaccount.consts.provider_const import (
    GOOGLE_AUTH_URL,
    GOOGLE_TOKEN_URL,
    GOOGLE_USERINFO_URL,
    GOOGLE_SCOPES,
    MICROSOFT_AUTH_URL,
    MICROSOFT_TOKEN_URL,
    MICROSOFT_USERINFO_URL,
    MICROSOFT_SCOPES,
    PERMANENT_GRANT_ERRORS,
)
from app_mailaccount.enums.provider_enum import ProviderEnum
from app_mailaccount.exceptions.provider_exception import ProviderGrantException, ProviderTransportException
from common.components.singleton import Singleton
from common.consts.http_const import HEADER_AUTHORIZATION, BEARER_PREFIX

logger = logging.getLogger(__name__)


@dataclass
class TokenGrant:
    access_token: str
    refresh_token: Optional[str] = None
    expires_in: int = DEFAULT_ACCESS_TOKEN_TTL_SECONDS
    scopes: List[str] = field(default_factory=list)


@dataclass
class ProviderIdentity:
    provider_id: str
    email: str
    display_name: str = ''


class OAuthProvider(Singleton):
    """Base OAuth client, subclasses fill in the endpoints"""

    provider = None
    auth_url = None
    token_url = None
    userinfo_url = None
    scopes: List[str] = []

    def __init__(self, client_id: str, client_secret: str, redirect_uri: str,
                 timeout: float = DEFAULT_PROVIDER_TIMEOUT_SECONDS):
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.timeout = timeout

    def get_authorization_url(self, state: str) -> str:
        return f"{self.auth_url}?{urlencode(self._authorization_params(state))}"

    def _authorization_params(self, state: str) -> Dict[str, str]:
        return {
            'client_id': self.client_id,
            'redirect_uri': self.redirect_uri,
            'response_type': 'code',
            'scope': ' '.join(self.scopes),
            'state': state,
        }

    def exchange_code(self, code: str) -> TokenGrant:
        """Exchange an authorization code for tokens"""
        payload = self._post_token({
            'grant_type': 'authorization_code',
            'code': code,
            'redirect_uri': self.redirect_uri,
            'client_id': self.client_id,
            'client_secret': self.client_secret,
        })
        return self._to_grant(payload)

    def refresh(self, refresh_secret: str) -> TokenGrant:
        """
        Get a new access token with the refresh token

        Raises:
            ProviderGrantException: The refresh token was rejected
            ProviderTransportException: The provider could not be reached or failed
        """
        payload = self._post_token({
            'grant_type': 'refresh_token',
            'refresh_token': refresh_secret,
            'client_id': self.client_id,
            'client_secret': self.client_secret,
        })
        return self._to_grant(payload)

    def get_identity(self, access_secret: str) -> ProviderIdentity:
        """
        Look up the mailbox owner of the access token

        Raises:
            ProviderGrantException: The access token is expired or invalid
            ProviderTransportException: The provider could not be reached or failed
        """
        try:
            response = requests.get(
                self.userinfo_url,
                headers={HEADER_AUTHORIZATION: f"{BEARER_PREFIX}{access_secret}"},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise ProviderTransportException(f"{self.provider} userinfo request failed: {e}") from e

        if response.status_code in (401, 403):
            raise ProviderGrantException(f"{self.provider} rejected the access token",
                                         provider_code='invalid_token', status_code=response.status_code)
        if response.status_code != 200:
            raise ProviderTransportException(f"{self.provider} userinfo returned {response.status_code}",
                                             status_code=response.status_code)
        return self._to_identity(self._json(response))

    def _post_token(self, data: Dict[str, str]) -> Dict[str, Any]:
        try:
            response = requests.post(self.token_url, data=data, timeout=self.timeout)
        except requests.RequestException as e:
            raise ProviderTransportException(f"{self.provider} token request failed: {e}") from e

        if response.status_code == 200:
            return self._json(response)

        body = self._json(response, strict=False)
        error = body.get('error') if isinstance(body, dict) else None
        description = body.get('error_description') if isinstance(body, dict) else None
        message = f"{self.provider} token endpoint returned {response.status_code}: {description or error or ''}"
        # only an OAuth error code rejects the grant itself; 408, 429 and unknown 4xx bodies are transient
        if error in PERMANENT_GRANT_ERRORS:
            raise ProviderGrantException(message, provider_code=error, status_code=response.status_code)
        raise ProviderTransportException(message, provider_code=error, status_code=response.status_code)

    def _json(self, response, strict: bool = True) -> Dict[str, Any]:
        try:
            return response.json()
        except ValueError as e:
            if not strict:
                return {}
            raise ProviderTransportException(f"{self.provider} returned a non-JSON body",
                                             status_code=response.status_code) from e

    def _to_grant(self, payload: Dict[str, Any]) -> TokenGrant:
        access_token = payload.get('access_token')
        if not access_token:
            raise ProviderTransportException(f"{self.provider} token response has no access_token")
        scope = payload.get('scope') or ''
        return TokenGrant(
            access_token=access_token,
            refresh_token=payload.get('refresh_token'),
            expires_in=int(payload.get('expires_in') or DEFAULT_ACCESS_TOKEN_TTL_SECONDS),
            scopes=scope.split() if scope else list(self.scopes),
        )

    def _to_identity(self, payload: Dict[str, Any]) -> ProviderIdentity:
        raise NotImplementedError


class GoogleOAuthProvider(OAuthProvider):
    provider = ProviderEnum.GMAIL.value
    auth_url = GOOGLE_AUTH_URL
    token_url = GOOGLE_TOKEN_URL
    userinfo_url = GOOGLE_USERINFO_URL
    scopes = GOOGLE_SCOPES

    def _authorization_params(self, state: str) -> Dict[str, str]:
        params = super()._authorization_params(state)
        # refresh token is only issued with offline access and explicit consent
        params['access_type'] = 'offline'
        params['prompt'] = 'consent'
        return params

    def _to_identity(self, payload: Dict[str, Any]) -> ProviderIdentity:
        return ProviderIdentity(
            provider_id=str(payload.get('sub') or ''),
            email=(payload.get('email') or '').lower(),
            display_name=payload.get('name') or '',
        )


class MicrosoftOAuthProvider(OAuthProvider):
    provider = ProviderEnum.OUTLOOK.value
    auth_url = MICROSOFT_AUTH_URL
    token_url = MICROSOFT_TOKEN_URL
    userinfo_url = MICROSOFT_USERINFO_URL
    scopes = MICROSOFT_SCOPES

    def _authorization_params(self, state: str) -> Dict[str, str]:
        params = super()._authorization_params(state)
        params['response_mode'] = 'query'
        return params

    def _to_identity(self, payload: Dict[str, Any]) -> ProviderIdentity:
        return ProviderIdentity(
            provider_id=str(payload.get('id') or ''),
            email=(payload.get('mail') or payload.get('userPrincipalName') or '').lower(),
            display_name=payload.get('displayName') or '',
        )


def get_oauth_provider(provider: str) -> OAuthProvider:
    """
    Get the OAuth client of a provider built from configuration

    Raises:
        ValueError: If the provider does not support OAuth
    """
    from app_mailaccount.config import get_app_config

    config = get_app_config()
    if provider == ProviderEnum.GMAIL.value:
        google = config["google"]
        return GoogleOAuthProvider(google["client_id"], google["client_secret"], google["redirect_uri"],
                                   timeout=config["provider_timeout"])
    if provider == ProviderEnum.OUTLOOK.value:
        microsoft = config["microsoft"]
        return MicrosoftOAuthProvider(microsoft["client_id"], microsoft["client_secret"], microsoft["redirect_uri"],
                                      timeout=config["provider_timeout"])
    raise ValueError(f"Provider {provider} does not support OAuth")
