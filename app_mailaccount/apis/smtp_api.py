"""
SMTP/IMAP provider client

Verifies password based mailbox credentials: SMTP login through Django's SMTP
email backend, IMAP login through imapclient. Nothing is sent or modified.
"""
import logging
import smtplib
from typing import Any, Dict

from django.core.mail.backends.smtp import EmailBackend
from imapclient import IMAPClient
from imapclient.exceptions import IMAPClientError, LoginError

from app_mailaccount.consts.account_const import DEFAULT_PROVIDER_TIMEOUT_SECONDS
from app_mailaccount.exceptions.provider_exception import ProviderGrantException, ProviderTransportException
from common.components.singleton import Singleton

logger = logging.getLogger(__name__)


class SmtpImapProvider(Singleton):
    """
    Credentials are passed as a dict:
    {"username", "password", "smtp": {"host", "port", "secure", "require_tls"}, "imap": {"host", "port", "secure"}}
    """

    def __init__(self, timeout: float = DEFAULT_PROVIDER_TIMEOUT_SECONDS):
        self.timeout = timeout

    def test_send(self, credentials: Dict[str, Any]) -> Dict[str, Any]:
        """
        Log in to the SMTP server

        Raises:
            ProviderGrantException: The server rejected the username or password
            ProviderTransportException: The server could not be reached
        """
        smtp = credentials.get('smtp') or {}
        host, port = smtp.get('host'), int(smtp.get('port') or 587)
        secure = bool(smtp.get('secure'))
        backend = EmailBackend(
            host=host,
            port=port,
            username=credentials.get('username'),
            password=credentials.get('password'),
            use_ssl=secure,
            use_tls=not secure and bool(smtp.get('require_tls', True)),
            timeout=self.timeout,
            fail_silently=False,
        )
        try:
            backend.open()
        except smtplib.SMTPAuthenticationError as e:
            raise ProviderGrantException(f"SMTP authentication failed for {host}:{port}",
                                         provider_code=str(e.smtp_code)) from e
        except (smtplib.SMTPException, OSError) as e:
            raise ProviderTransportException(f"SMTP connection to {host}:{port} failed: {e}") from e
        finally:
            backend.close()

        logger.info(f"[SmtpImapProvider.test_send] SMTP login ok {host}:{port}")
        return {'success': True, 'host': host, 'port': port, 'message': 'SMTP connection successful'}

    def test_receive(self, credentials: Dict[str, Any]) -> Dict[str, Any]:
        """
        Log in to the IMAP server and open the inbox read-only

        Returns:
            Result dict; skipped when no IMAP host is configured

        Raises:
            ProviderGrantException: The server rejected the username or password
            ProviderTransportException: The server could not be reached
        """
        imap = credentials.get('imap') or {}
        host = imap.get('host')
        if not host:
            return {'success': True, 'skipped': True, 'message': 'IMAP not configured'}
        port = int(imap.get('port') or 993)

        try:
            with IMAPClient(host, port=port, ssl=bool(imap.get('secure', True)), timeout=self.timeout) as server:
                server.login(credentials.get('username'), credentials.get('password'))
                server.select_folder('INBOX', readonly=True)
        except LoginError as e:
            raise ProviderGrantException(f"IMAP authentication failed for {host}:{port}") from e
        except (IMAPClientError, OSError) as e:
            raise ProviderTransportException(f"IMAP connection to {host}:{port} failed: {e}") from e

        logger.info(f"[SmtpImapProvider.test_receive] IMAP login ok {host}:{port}")
        return {'success': True, 'host': host, 'port': port, 'message': 'IMAP connection successful'}


def get_smtp_provider() -> SmtpImapProvider:
    from app_mailaccount.config import get_app_config

    return SmtpImapProvider(timeout=get_app_config()["provider_timeout"])
