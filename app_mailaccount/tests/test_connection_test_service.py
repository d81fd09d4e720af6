"""
单元测试：ConnectionTestService

测试覆盖：
- OAuth 账户：身份查询成功 / 访问令牌失效后刷新一次 / 刷新进行中不计错误
- SMTP 账户：SMTP + IMAP 测试成功、失败计数、跳过 IMAP
"""
from unittest import mock

from django.test import TransactionTestCase

from app_mailaccount.apis.oauth_api import ProviderIdentity, TokenGrant
from app_mailaccount.exceptions.account_exception import NotFoundException
from app_mailaccount.exceptions.provider_exception import ProviderGrantException, ProviderTransportException
from app_mailaccount.repos import email_account_repo
from app_mailaccount.services.connection_test_service import ConnectionTestService, load_smtp_credentials
from app_mailaccount.services.credential_cipher import get_credential_cipher
from app_mailaccount.services.health_service import HealthService
from app_mailaccount.services.token_refresh_service import TokenRefreshService
from app_mailaccount.tests.factories import clear_accounts, make_oauth_account, make_smtp_account


class TestConnectionTestService(TransactionTestCase):
    """测试连接测试"""

    databases = {'default', 'mailaccount_rw'}

    def setUp(self):
        clear_accounts()
        TokenRefreshService.clear_instances()
        ConnectionTestService.clear_instances()
        self.cipher = get_credential_cipher()
        self.health = HealthService()
        self.oauth = mock.Mock()
        self.smtp = mock.Mock()
        refresh_service = TokenRefreshService(
            cipher=self.cipher,
            health_service=self.health,
            provider_factory=self._provider_factory,
        )
        self.tester = ConnectionTestService(
            cipher=self.cipher,
            health_service=self.health,
            refresh_service=refresh_service,
            provider_factory=self._provider_factory,
            smtp_provider=self.smtp,
        )

    def tearDown(self):
        clear_accounts()

    def _provider_factory(self, provider):
        return self.oauth

    def test_oauth_identity_ok(self):
        account = make_oauth_account(access_secret='at-1', error_count=2)
        self.oauth.get_identity.return_value = ProviderIdentity(provider_id='1', email='user@gmail.com')

        result = self.tester.test(account.id, 1)

        self.assertTrue(result['healthy'])
        self.assertFalse(result['refreshed'])
        self.oauth.get_identity.assert_called_once_with('at-1')
        self.oauth.refresh.assert_not_called()
        updated = email_account_repo.get_account_by_id(account.id)
        self.assertEqual(updated.error_count, 0)
        self.assertGreater(updated.last_used, 0)
        self.assertTrue(updated.settings['last_test']['healthy'])

    def test_oauth_rejected_token_refreshes_once(self):
        account = make_oauth_account(refresh_secret='rt-1')
        self.oauth.get_identity.side_effect = ProviderGrantException("expired")
        self.oauth.refresh.return_value = TokenGrant(access_token='at-2', expires_in=3600)

        result = self.tester.test(account.id, 1)

        self.assertTrue(result['healthy'])
        self.assertTrue(result['refreshed'])
        self.oauth.refresh.assert_called_once_with('rt-1')

    def test_oauth_refresh_rejected_counts_one_error(self):
        account = make_oauth_account()
        self.oauth.get_identity.side_effect = ProviderGrantException("expired")
        self.oauth.refresh.side_effect = ProviderGrantException("invalid_grant")

        result = self.tester.test(account.id, 1)

        self.assertFalse(result['healthy'])
        self.assertTrue(result['reauth_required'])
        self.assertEqual(email_account_repo.get_account_by_id(account.id).error_count, 1)

    def test_oauth_refresh_in_progress_records_nothing(self):
        account = make_oauth_account(error_count=1)
        email_account_repo.acquire_refresh_lease(account.id, 60000)
        self.oauth.get_identity.side_effect = ProviderGrantException("expired")

        result = self.tester.test(account.id, 1)

        self.assertIsNone(result['healthy'])
        self.assertTrue(result['in_progress'])
        self.oauth.refresh.assert_not_called()
        updated = email_account_repo.get_account_by_id(account.id)
        self.assertEqual(updated.error_count, 1)
        self.assertNotIn('last_test', updated.settings)

    def test_oauth_provider_down(self):
        account = make_oauth_account()
        self.oauth.get_identity.side_effect = ProviderTransportException("timeout")

        result = self.tester.test(account.id, 1)

        self.assertFalse(result['healthy'])
        self.oauth.refresh.assert_not_called()
        self.assertEqual(email_account_repo.get_account_by_id(account.id).error_count, 1)

    def test_smtp_and_imap_ok(self):
        account = make_smtp_account(password='pw', error_count=3)
        self.smtp.test_send.return_value = {'success': True, 'message': 'ok'}
        self.smtp.test_receive.return_value = {'success': True, 'message': 'ok'}

        result = self.tester.test(account.id, 1)

        self.assertTrue(result['healthy'])
        credentials = self.smtp.test_send.call_args[0][0]
        self.assertEqual(credentials['password'], 'pw')
        self.assertEqual(credentials['smtp']['host'], 'smtp.example.com')
        self.assertEqual(email_account_repo.get_account_by_id(account.id).error_count, 0)

    def test_smtp_failure_records_error(self):
        account = make_smtp_account()
        self.smtp.test_send.side_effect = ProviderGrantException("535 auth failed")
        self.smtp.test_receive.return_value = {'success': True, 'message': 'ok'}

        result = self.tester.test(account.id, 1)

        self.assertFalse(result['healthy'])
        self.assertIn('SMTP', result['detail'])
        updated = email_account_repo.get_account_by_id(account.id)
        self.assertEqual(updated.error_count, 1)
        self.assertEqual(updated.last_error_code, 'CONNECTION_FAILED')

    def test_skip_receive(self):
        account = make_smtp_account()
        self.smtp.test_send.return_value = {'success': True, 'message': 'ok'}

        result = self.tester.test(account.id, 1, skip_receive=True)

        self.assertTrue(result['healthy'])
        self.assertTrue(result['imap']['skipped'])
        self.smtp.test_receive.assert_not_called()

    def test_other_users_account(self):
        account = make_smtp_account(user_id=2)

        with self.assertRaises(NotFoundException):
            self.tester.test(account.id, 1)

    def test_load_smtp_credentials(self):
        account = make_smtp_account(email='me@example.com', password='pw', imap_host=None)

        credentials = load_smtp_credentials(self.cipher, account)

        self.assertEqual(credentials['username'], 'me@example.com')
        self.assertEqual(credentials['password'], 'pw')
        self.assertEqual(credentials['imap'], {})
