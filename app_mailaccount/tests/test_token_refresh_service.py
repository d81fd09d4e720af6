"""
单元测试：TokenRefreshService

测试覆盖：
- 刷新成功（存储新凭证、清除错误）
- 永久失败 -> AuthException
- 临时失败 -> SystemException（可重试）
- 并发刷新只调用一次服务商
- 其他进程持有租约 -> RefreshInProgressException
- 过期令牌批量刷新、统计、失败账户清理
"""
import threading
import time
from unittest import mock

from django.db import connections
from django.test import TransactionTestCase

from app_mailaccount.apis.oauth_api import TokenGrant
from app_mailaccount.enums.refresh_outcome_enum import RefreshOutcomeEnum
from app_mailaccount.exceptions.account_exception import (
    AuthException,
    NotFoundException,
    RefreshInProgressException,
    SystemException,
    ValidationException,
)
from app_mailaccount.exceptions.provider_exception import ProviderGrantException, ProviderTransportException
from app_mailaccount.repos import email_account_repo
from app_mailaccount.services.credential_cipher import get_credential_cipher
from app_mailaccount.services.health_service import HealthService
from app_mailaccount.services.token_refresh_service import TokenRefreshService
from app_mailaccount.tests.factories import clear_accounts, make_oauth_account, make_smtp_account
from common.utils.date_util import get_now_timestamp_ms


class StubOAuthProvider:
    """Provider double: returns a grant, or raises the configured error"""

    def __init__(self, error=None, started=None, release=None):
        self.error = error
        self.started = started
        self.release = release
        self.calls = []
        self._lock = threading.Lock()

    def refresh(self, refresh_secret):
        with self._lock:
            self.calls.append(refresh_secret)
        if self.started is not None:
            self.started.set()
        if self.release is not None:
            self.release.wait(5)
        if self.error is not None:
            raise self.error
        return TokenGrant(access_token=f"new-access-{len(self.calls)}", refresh_token='new-refresh', expires_in=3600)


class TestTokenRefreshService(TransactionTestCase):
    """测试令牌刷新编排"""

    databases = {'default', 'mailaccount_rw'}

    def setUp(self):
        clear_accounts()
        TokenRefreshService.clear_instances()
        self.cipher = get_credential_cipher()
        self.health = HealthService()

    def tearDown(self):
        clear_accounts()

    def _service(self, provider):
        return TokenRefreshService(
            cipher=self.cipher,
            health_service=self.health,
            provider_factory=lambda name: provider,
        )

    def test_refresh_success(self):
        account = make_oauth_account(refresh_secret='rt-1', error_count=3, token_expiry=1)
        provider = StubOAuthProvider()

        before = get_now_timestamp_ms()
        result = self._service(provider).refresh_account(account.id, user_id=1)

        self.assertEqual(provider.calls, ['rt-1'])
        self.assertEqual(result['outcome'], RefreshOutcomeEnum.SUCCEEDED.value)
        updated = email_account_repo.get_account_by_id(account.id)
        self.assertEqual(self.cipher.decrypt(updated.id, updated.access_token), 'new-access-1')
        self.assertEqual(self.cipher.decrypt(updated.id, updated.refresh_token), 'new-refresh')
        self.assertGreaterEqual(updated.token_expiry, before + 3600 * 1000)
        self.assertEqual(updated.error_count, 0)
        self.assertEqual(updated.refresh_lease_until, 0)
        self.assertIsNotNone(updated.last_sync_at)

    def test_permanent_failure_raises_auth_exception(self):
        account = make_oauth_account()
        provider = StubOAuthProvider(error=ProviderGrantException("invalid_grant", provider_code='invalid_grant'))

        with self.assertRaises(AuthException) as ctx:
            self._service(provider).refresh_account(account.id)

        self.assertTrue(ctx.exception.reauth_required)
        updated = email_account_repo.get_account_by_id(account.id)
        self.assertEqual(updated.error_count, 1)
        self.assertEqual(updated.last_error_code, 'TOKEN_REVOKED')
        self.assertEqual(updated.refresh_lease_until, 0)

    def test_transient_failure_raises_retryable_system_exception(self):
        account = make_oauth_account()
        provider = StubOAuthProvider(error=ProviderTransportException("timeout"))

        with self.assertRaises(SystemException) as ctx:
            self._service(provider).refresh_account(account.id)

        self.assertTrue(ctx.exception.retryable)
        updated = email_account_repo.get_account_by_id(account.id)
        self.assertEqual(updated.error_count, 1)
        self.assertEqual(updated.refresh_lease_until, 0)

    def test_refresh_other_users_account(self):
        account = make_oauth_account(user_id=2)

        with self.assertRaises(NotFoundException):
            self._service(StubOAuthProvider()).refresh_account(account.id, user_id=1)

    def test_refresh_smtp_account_rejected(self):
        account = make_smtp_account()

        with self.assertRaises(ValidationException):
            self._service(StubOAuthProvider()).refresh_account(account.id)

    def test_refresh_inactive_account_rejected(self):
        account = make_oauth_account(is_active=False)
        provider = StubOAuthProvider()

        with self.assertRaises(AuthException):
            self._service(provider).refresh_account(account.id)
        self.assertEqual(provider.calls, [])

    def test_lease_held_by_other_process(self):
        account = make_oauth_account()
        email_account_repo.acquire_refresh_lease(account.id, 60000)
        provider = StubOAuthProvider()

        with self.assertRaises(RefreshInProgressException):
            self._service(provider).refresh_account(account.id)
        self.assertEqual(provider.calls, [])

    def test_concurrent_refresh_calls_provider_once(self):
        account = make_oauth_account()
        started, release = threading.Event(), threading.Event()
        provider = StubOAuthProvider(started=started, release=release)
        service = self._service(provider)
        results, errors = [], []

        def refresh():
            try:
                results.append(service.refresh_account(account.id))
            except Exception as e:
                errors.append(e)
            finally:
                connections.close_all()

        leader = threading.Thread(target=refresh)
        leader.start()
        self.assertTrue(started.wait(5))
        follower = threading.Thread(target=refresh)
        follower.start()
        # let the follower join the in-flight attempt
        time.sleep(0.5)
        release.set()
        leader.join()
        follower.join()

        self.assertEqual(errors, [])
        self.assertEqual(len(provider.calls), 1)
        self.assertEqual(len(results), 2)
        self.assertEqual(results[0], results[1])

    def test_caller_with_outdated_read_does_not_refresh_again(self):
        account = make_oauth_account(refresh_secret='rt-1')
        provider = StubOAuthProvider()
        service = self._service(provider)
        read_done, resume = threading.Event(), threading.Event()
        get_account_by_id = email_account_repo.get_account_by_id
        paused = []
        results, errors = [], []

        def read_then_wait(account_id):
            found = get_account_by_id(account_id)
            if threading.current_thread().name == 'late-caller' and not paused:
                paused.append(account_id)
                read_done.set()
                resume.wait(5)
            return found

        def late_refresh():
            try:
                results.append(service.refresh_account(account.id))
            except Exception as e:
                errors.append(e)
            finally:
                connections.close_all()

        with mock.patch.object(email_account_repo, 'get_account_by_id', side_effect=read_then_wait):
            late = threading.Thread(target=late_refresh, name='late-caller')
            late.start()
            self.assertTrue(read_done.wait(5))
            # a complete refresh runs while the late caller holds its first read
            first = service.refresh_account(account.id)
            resume.set()
            late.join()

        self.assertEqual(errors, [])
        self.assertEqual(provider.calls, ['rt-1'])
        self.assertEqual(first['outcome'], RefreshOutcomeEnum.SUCCEEDED.value)
        self.assertEqual(results[0]['outcome'], RefreshOutcomeEnum.SUCCEEDED.value)
        self.assertEqual(results[0]['token_expiry'], first['token_expiry'])
        updated = get_account_by_id(account.id)
        self.assertEqual(self.cipher.decrypt(updated.id, updated.refresh_token), 'new-refresh')
        self.assertEqual(updated.error_count, 0)

    def test_stale_token_refreshed_with_current_refresh_secret(self):
        account = make_oauth_account(refresh_secret='rt-1')
        email_account_repo.update_credentials(self.cipher, account.id, access_secret='rotated',
                                              refresh_secret='rt-2', token_expiry=1)
        provider = StubOAuthProvider()

        # the caller's copy still carries rt-1
        result = self._service(provider)._refresh_leased(account)

        self.assertEqual(result['outcome'], RefreshOutcomeEnum.SUCCEEDED.value)
        self.assertEqual(provider.calls, ['rt-2'])

    def test_concurrent_refresh_failure_shared(self):
        account = make_oauth_account()
        started, release = threading.Event(), threading.Event()
        provider = StubOAuthProvider(error=ProviderGrantException("revoked"), started=started, release=release)
        service = self._service(provider)
        errors = []

        def refresh():
            try:
                service.refresh_account(account.id)
            except Exception as e:
                errors.append(e)
            finally:
                connections.close_all()

        leader = threading.Thread(target=refresh)
        leader.start()
        self.assertTrue(started.wait(5))
        follower = threading.Thread(target=refresh)
        follower.start()
        time.sleep(0.5)
        release.set()
        leader.join()
        follower.join()

        self.assertEqual(len(provider.calls), 1)
        self.assertEqual(len(errors), 2)
        self.assertTrue(all(isinstance(e, AuthException) for e in errors))
        self.assertEqual(email_account_repo.get_account_by_id(account.id).error_count, 1)

    def test_refresh_expired_tokens(self):
        now = get_now_timestamp_ms()
        make_oauth_account(email='stale@gmail.com', token_expiry=now - 1000)
        make_oauth_account(email='soon@gmail.com', token_expiry=now + 10 * 60 * 1000)
        make_oauth_account(email='fresh@gmail.com', token_expiry=now + 120 * 60 * 1000)
        make_oauth_account(email='broken@gmail.com', token_expiry=now - 1000, error_count=5)
        provider = StubOAuthProvider()

        result = self._service(provider).refresh_expired_tokens()

        self.assertEqual(result['total'], 2)
        self.assertEqual(result['refreshed'], 2)
        self.assertEqual(result['failed'], 0)
        self.assertEqual(len(provider.calls), 2)

    def test_refresh_all_for_user_reports_failures(self):
        make_oauth_account(email='a@gmail.com')
        make_oauth_account(email='b@gmail.com')
        make_oauth_account(user_id=2, email='c@gmail.com')
        provider = StubOAuthProvider(error=ProviderTransportException("503"))

        result = self._service(provider).refresh_all_for_user(1)

        self.assertEqual(result['total'], 2)
        self.assertEqual(result['failed'], 2)
        self.assertTrue(all(r['outcome'] == RefreshOutcomeEnum.TRANSIENT_FAILURE.value for r in result['results']))

    def test_get_refresh_stats(self):
        now = get_now_timestamp_ms()
        make_oauth_account(email='expired@gmail.com', token_expiry=now - 1000)
        make_oauth_account(email='fresh@outlook.com', provider='outlook', token_expiry=now + 120 * 60 * 1000)
        make_oauth_account(email='err@gmail.com', token_expiry=now + 120 * 60 * 1000, error_count=2)
        make_smtp_account()

        stats = self._service(StubOAuthProvider()).get_refresh_stats()

        self.assertEqual(stats['total'], 3)
        self.assertEqual(stats['expired'], 1)
        self.assertEqual(stats['needs_refresh'], 1)
        self.assertEqual(stats['with_errors'], 1)
        self.assertEqual(stats['healthy'], 1)
        self.assertEqual(stats['by_provider']['gmail']['total'], 2)
        self.assertEqual(stats['by_provider']['outlook']['total'], 1)

    def test_cleanup_failed_accounts(self):
        failed = make_oauth_account(email='f@gmail.com', error_count=4)
        make_oauth_account(email='ok@gmail.com', error_count=1)

        account_ids = self._service(StubOAuthProvider()).cleanup_failed_accounts(max_errors=3)

        self.assertEqual(account_ids, [str(failed.id)])

    def test_cleanup_failed_accounts_invalid_max(self):
        with self.assertRaises(ValidationException):
            self._service(StubOAuthProvider()).cleanup_failed_accounts(max_errors=0)
