from app_mailaccount.services.credential_cipher import CredentialCipher, get_credential_cipher
from app_mailaccount.services.health_service import HealthService, get_health_service
from app_mailaccount.services.default_account_service import DefaultAccountService
from app_mailaccount.services.token_refresh_service import TokenRefreshService, get_token_refresh_service
from app_mailaccount.services.connection_test_service import ConnectionTestService, get_connection_test_service
from app_mailaccount.services.account_query_service import AccountQueryService, get_account_query_service
from app_mailaccount.services.email_account_service import EmailAccountService, get_email_account_service

__all__ = [
    'CredentialCipher',
    'get_credential_cipher',
    'HealthService',
    'get_health_service',
    'DefaultAccountService',
    'TokenRefreshService',
    'get_token_refresh_service',
    'ConnectionTestService',
    'get_connection_test_service',
    'AccountQueryService',
    'get_account_query_service',
    'EmailAccountService',
    'get_email_account_service',
]
