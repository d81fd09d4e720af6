"""
单元测试：DefaultAccountService

测试覆盖：
- set_default 切换
- ensure_default 选择最近使用的账户
- 不存在 / 已停用 / 他人账户
- 并发 set_default 后只有一个默认账户
"""
import threading

from django.db import connections
from django.test import TransactionTestCase

from app_mailaccount.consts.account_const import DB_ALIAS
from app_mailaccount.exceptions.account_exception import NotFoundException
from app_mailaccount.models.email_account import EmailAccount
from app_mailaccount.repos import email_account_repo
from app_mailaccount.services.default_account_service import DefaultAccountService
from app_mailaccount.tests.factories import clear_accounts, make_oauth_account


def _default_ids(user_id):
    return [str(a.id) for a in EmailAccount.objects.using(DB_ALIAS).filter(user_id=user_id, is_default=True)]


class TestDefaultAccountService(TransactionTestCase):
    """测试默认账户协调"""

    databases = {'default', 'mailaccount_rw'}

    def setUp(self):
        clear_accounts()
        self.service = DefaultAccountService()

    def tearDown(self):
        clear_accounts()

    def test_ensure_default_then_set_default_flips(self):
        a = make_oauth_account(email='a@gmail.com', last_used=2000, ct=1)
        b = make_oauth_account(email='b@gmail.com', last_used=1000, ct=2)

        promoted = self.service.ensure_default(1)
        self.assertEqual(promoted.id, a.id)
        self.assertEqual(_default_ids(1), [str(a.id)])

        self.service.set_default(b.id, 1)
        self.assertEqual(_default_ids(1), [str(b.id)])

    def test_ensure_default_tie_broken_by_ct(self):
        make_oauth_account(email='old@gmail.com', last_used=0, ct=1)
        newer = make_oauth_account(email='new@gmail.com', last_used=0, ct=2)

        self.assertEqual(self.service.ensure_default(1).id, newer.id)

    def test_ensure_default_keeps_existing(self):
        make_oauth_account(email='a@gmail.com', last_used=9000)
        current = make_oauth_account(email='b@gmail.com', last_used=1, is_default=True)

        self.assertEqual(self.service.ensure_default(1).id, current.id)
        self.assertEqual(_default_ids(1), [str(current.id)])

    def test_ensure_default_skips_inactive(self):
        make_oauth_account(email='off@gmail.com', last_used=9000, is_active=False)
        active = make_oauth_account(email='on@gmail.com', last_used=1)

        self.assertEqual(self.service.ensure_default(1).id, active.id)

    def test_ensure_default_without_active_accounts(self):
        make_oauth_account(is_active=False)
        self.assertIsNone(self.service.ensure_default(1))
        self.assertIsNone(self.service.ensure_default(42))

    def test_set_default_other_users_account(self):
        account = make_oauth_account(user_id=2)

        with self.assertRaises(NotFoundException):
            self.service.set_default(account.id, 1)

    def test_set_default_inactive_account(self):
        account = make_oauth_account(is_active=False)

        with self.assertRaises(NotFoundException):
            self.service.set_default(account.id, 1)

    def test_set_default_is_idempotent(self):
        account = make_oauth_account()

        self.service.set_default(account.id, 1)
        result = self.service.set_default(account.id, 1)

        self.assertTrue(result.is_default)
        self.assertEqual(_default_ids(1), [str(account.id)])

    def test_unset_all_defaults(self):
        make_oauth_account(is_default=True)

        self.assertEqual(self.service.unset_all_defaults(1), 1)
        self.assertEqual(_default_ids(1), [])
        self.assertIsNone(email_account_repo.get_default_account(1))

    def test_concurrent_set_default_leaves_one_default(self):
        accounts = [make_oauth_account(email=f"u{i}@gmail.com") for i in range(4)]
        errors = []
        barrier = threading.Barrier(len(accounts) * 2)

        def switch(account_id):
            try:
                barrier.wait()
                self.service.set_default(account_id, 1)
            except Exception as e:
                errors.append(e)
            finally:
                connections.close_all()

        threads = [threading.Thread(target=switch, args=(a.id,)) for a in accounts * 2]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        self.assertEqual(errors, [])
        self.assertEqual(len(_default_ids(1)), 1)
