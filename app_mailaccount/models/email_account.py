import uuid

from django.db import models
from django.db.models import Q

from app_mailaccount.enums.connection_type_enum import ConnectionTypeEnum
from app_mailaccount.enums.provider_enum import ProviderEnum


class EmailAccount(models.Model):
    """用户绑定的外部邮箱账户模型"""
    # 主键在写入前生成，用作凭证加密的关联数据
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    # 所属用户
    user_id = models.BigIntegerField(db_index=True)

    # 邮箱地址（小写）
    email = models.CharField(max_length=255)

    # 显示名称
    display_name = models.CharField(max_length=100, blank=True, default='')

    # 服务商
    provider = models.CharField(
        max_length=16,
        choices=[(p.value, p.value) for p in ProviderEnum],
        default=ProviderEnum.OTHER.value,
    )

    # 服务商侧的账户标识
    provider_id = models.CharField(max_length=255, blank=True, default='')

    # 连接方式 oauth | smtp
    connection_type = models.CharField(
        max_length=8,
        choices=[(c.value, c.value) for c in ConnectionTypeEnum],
        default=ConnectionTypeEnum.OAUTH.value,
    )

    # 访问凭证（密文信封；SMTP 账户为用户名/密码的密文）
    access_token = models.TextField(blank=True, default='')

    # 刷新凭证（密文信封，SMTP 账户为空）
    refresh_token = models.TextField(null=True, blank=True)

    # 访问凭证过期时间（UNIX时间戳，毫秒；SMTP 账户为空）
    token_expiry = models.BigIntegerField(null=True, blank=True, db_index=True)

    # 授权范围
    scopes = models.JSONField(default=list, blank=True)

    # 是否激活
    is_active = models.BooleanField(default=True)

    # 是否已验证
    is_verified = models.BooleanField(default=False)

    # 是否默认账户
    is_default = models.BooleanField(default=False)

    # 连续错误次数
    error_count = models.IntegerField(default=0)

    # 最近一次错误
    last_error_message = models.CharField(max_length=1000, null=True, blank=True)
    last_error_code = models.CharField(max_length=64, null=True, blank=True)
    last_error_at = models.BigIntegerField(null=True, blank=True)

    # 发信次数
    emails_sent = models.IntegerField(default=0)

    # 最近使用时间（UNIX时间戳，毫秒）
    last_used = models.BigIntegerField(default=0, db_index=True)

    # 最近同步时间（UNIX时间戳，毫秒）
    last_sync_at = models.BigIntegerField(null=True, blank=True)

    # 服务商相关设置（SMTP/IMAP 主机端口、签名、自动回复、别名）
    settings = models.JSONField(default=dict, blank=True)

    # 刷新租约到期时间（UNIX时间戳，毫秒；0 表示空闲）
    refresh_lease_until = models.BigIntegerField(default=0)

    # 创建时间（UNIX时间戳，毫秒）
    ct = models.BigIntegerField(default=0, db_index=True)

    # 更新时间（UNIX时间戳，毫秒）
    ut = models.BigIntegerField(default=0, db_index=True)

    class Meta:
        db_table = "email_account"
        constraints = [
            models.UniqueConstraint(
                fields=['user_id', 'email'],
                name='uniq_email_account_user_email',
            ),
            models.UniqueConstraint(
                fields=['user_id'],
                condition=Q(is_default=True, is_active=True),
                name='uniq_email_account_active_default',
            ),
        ]
        indexes = [
            models.Index(fields=['user_id', 'is_active'], name='idx_email_account_user_active'),
            models.Index(fields=['provider'], name='idx_email_account_provider'),
        ]

    def __str__(self):
        return f"EmailAccount({self.id}, user={self.user_id}, {self.email})"
