"""
单元测试：HealthService

测试覆盖：
- compute_health_status 优先级
- record_error 达到上限自动停用
- 并发 record_error 不丢失计数
- clear_errors 恢复
- build_health_report 建议
"""
import threading

from django.db import connections
from django.test import SimpleTestCase, TransactionTestCase

from app_mailaccount.enums.health_status_enum import HealthStatusEnum
from app_mailaccount.models.email_account import EmailAccount
from app_mailaccount.repos import email_account_repo
from app_mailaccount.services.health_service import HealthService, compute_health_status
from app_mailaccount.tests.factories import clear_accounts, make_oauth_account
from common.utils.date_util import MS_PER_DAY

NOW = 1_714_521_600_000


def _account(**fields):
    values = {'is_active': True, 'error_count': 0, 'token_expiry': NOW + 3600 * 1000}
    values.update(fields)
    return EmailAccount(**values)


class TestComputeHealthStatus(SimpleTestCase):
    """测试健康状态计算"""

    def test_healthy(self):
        self.assertEqual(compute_health_status(_account(), NOW), HealthStatusEnum.HEALTHY)

    def test_warning(self):
        for count in (1, 4):
            self.assertEqual(compute_health_status(_account(error_count=count), NOW), HealthStatusEnum.WARNING)

    def test_errors(self):
        for count in (5, 9):
            self.assertEqual(compute_health_status(_account(error_count=count), NOW), HealthStatusEnum.ERRORS)

    def test_critical(self):
        self.assertEqual(compute_health_status(_account(error_count=10), NOW), HealthStatusEnum.CRITICAL)

    def test_token_expired(self):
        account = _account(token_expiry=NOW - 1)
        self.assertEqual(compute_health_status(account, NOW), HealthStatusEnum.TOKEN_EXPIRED)

    def test_priority_order(self):
        # inactive wins over everything
        self.assertEqual(compute_health_status(_account(is_active=False, error_count=10, token_expiry=NOW - 1), NOW),
                         HealthStatusEnum.INACTIVE)
        # errors wins over token_expired
        self.assertEqual(compute_health_status(_account(error_count=5, token_expiry=NOW - 1), NOW),
                         HealthStatusEnum.ERRORS)
        # token_expired wins over warning
        self.assertEqual(compute_health_status(_account(error_count=2, token_expiry=NOW - 1), NOW),
                         HealthStatusEnum.TOKEN_EXPIRED)

    def test_smtp_account_never_expires(self):
        self.assertEqual(compute_health_status(_account(token_expiry=None), NOW), HealthStatusEnum.HEALTHY)

    def test_custom_thresholds(self):
        service = HealthService(max_errors=3, errors_threshold=2, warning_threshold=1)
        self.assertEqual(service.status_of(_account(error_count=2), NOW), HealthStatusEnum.ERRORS)
        self.assertEqual(service.status_of(_account(error_count=3), NOW), HealthStatusEnum.CRITICAL)


class TestHealthService(TransactionTestCase):
    """测试错误记录与恢复"""

    databases = {'default', 'mailaccount_rw'}

    def setUp(self):
        clear_accounts()
        self.service = HealthService()

    def tearDown(self):
        clear_accounts()

    def test_ten_errors_deactivate_then_clear_restores(self):
        account = make_oauth_account(is_default=True)

        for i in range(10):
            self.service.record_error(account.id, f"error {i}", 'TEST')

        failed = email_account_repo.get_account_by_id(account.id)
        self.assertEqual(failed.error_count, 10)
        self.assertFalse(failed.is_active)
        self.assertFalse(failed.is_default)
        self.assertEqual(self.service.status_of(failed), HealthStatusEnum.INACTIVE)

        self.service.clear_errors(account.id)

        restored = email_account_repo.get_account_by_id(account.id)
        self.assertEqual(restored.error_count, 0)
        self.assertTrue(restored.is_active)
        self.assertIsNone(restored.last_error_message)

    def test_nine_errors_keep_account_active(self):
        account = make_oauth_account()

        for _ in range(9):
            self.service.record_error(account.id, "error", 'TEST')

        updated = email_account_repo.get_account_by_id(account.id)
        self.assertTrue(updated.is_active)
        self.assertEqual(self.service.status_of(updated), HealthStatusEnum.ERRORS)

    def _record_concurrently(self, service, account_id, count):
        errors = []
        barrier = threading.Barrier(count)

        def record(i):
            try:
                barrier.wait()
                service.record_error(account_id, f"error {i}", 'CONNECTION_FAILED')
            except Exception as e:
                errors.append(e)
            finally:
                connections.close_all()

        threads = [threading.Thread(target=record, args=(i,)) for i in range(count)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        return errors

    def test_concurrent_errors_all_counted(self):
        account = make_oauth_account(is_default=True)

        errors = self._record_concurrently(self.service, account.id, 8)

        self.assertEqual(errors, [])
        updated = email_account_repo.get_account_by_id(account.id)
        self.assertEqual(updated.error_count, 8)
        self.assertTrue(updated.is_active)
        self.assertTrue(updated.is_default)

    def test_concurrent_errors_reaching_max_deactivate(self):
        account = make_oauth_account(is_default=True)
        service = HealthService(max_errors=5, errors_threshold=3, warning_threshold=1)

        errors = self._record_concurrently(service, account.id, 5)

        self.assertEqual(errors, [])
        updated = email_account_repo.get_account_by_id(account.id)
        self.assertEqual(updated.error_count, 5)
        self.assertFalse(updated.is_active)
        self.assertFalse(updated.is_default)

    def test_record_error_unknown_account(self):
        self.assertFalse(self.service.record_error('00000000-0000-0000-0000-000000000000', "error"))

    def test_health_report_recommendations(self):
        account = make_oauth_account(error_count=6, token_expiry=NOW - 1, last_used=NOW - 31 * MS_PER_DAY)

        report = self.service.build_health_report(account, now=NOW)

        self.assertEqual(report['status'], HealthStatusEnum.ERRORS.value)
        self.assertTrue(report['is_token_expired'])
        self.assertEqual(report['error_count'], 6)
        self.assertEqual(len(report['recommendations']), 3)

    def test_health_report_healthy_account(self):
        account = make_oauth_account(token_expiry=NOW + 3600 * 1000, last_used=NOW - MS_PER_DAY)

        report = self.service.build_health_report(account, now=NOW)

        self.assertEqual(report['status'], HealthStatusEnum.HEALTHY.value)
        self.assertEqual(report['recommendations'], [])
