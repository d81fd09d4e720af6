import uuid

from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='EmailAccount',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('user_id', models.BigIntegerField(db_index=True)),
                ('email', models.CharField(max_length=255)),
                ('display_name', models.CharField(blank=True, default='', max_length=100)),
                ('provider', models.CharField(
                    choices=[('gmail', 'gmail'), ('outlook', 'outlook'), ('yahoo', 'yahoo'), ('other', 'other')],
                    default='other', max_length=16)),
                ('provider_id', models.CharField(blank=True, default='', max_length=255)),
                ('connection_type', models.CharField(
                    choices=[('oauth', 'oauth'), ('smtp', 'smtp')], default='oauth', max_length=8)),
                ('access_token', models.TextField(blank=True, default='')),
                ('refresh_token', models.TextField(blank=True, null=True)),
                ('token_expiry', models.BigIntegerField(blank=True, db_index=True, null=True)),
                ('scopes', models.JSONField(blank=True, default=list)),
                ('is_active', models.BooleanField(default=True)),
                ('is_verified', models.BooleanField(default=False)),
                ('is_default', models.BooleanField(default=False)),
                ('error_count', models.IntegerField(default=0)),
                ('last_error_message', models.CharField(blank=True, max_length=1000, null=True)),
                ('last_error_code', models.CharField(blank=True, max_length=64, null=True)),
                ('last_error_at', models.BigIntegerField(blank=True, null=True)),
                ('emails_sent', models.IntegerField(default=0)),
                ('last_used', models.BigIntegerField(db_index=True, default=0)),
                ('last_sync_at', models.BigIntegerField(blank=True, null=True)),
                ('settings', models.JSONField(blank=True, default=dict)),
                ('refresh_lease_until', models.BigIntegerField(default=0)),
                ('ct', models.BigIntegerField(db_index=True, default=0)),
                ('ut', models.BigIntegerField(db_index=True, default=0)),
            ],
            options={
                'db_table': 'email_account',
            },
        ),
        migrations.AddIndex(
            model_name='emailaccount',
            index=models.Index(fields=['user_id', 'is_active'], name='idx_email_account_user_active'),
        ),
        migrations.AddIndex(
            model_name='emailaccount',
            index=models.Index(fields=['provider'], name='idx_email_account_provider'),
        ),
        migrations.AddConstraint(
            model_name='emailaccount',
            constraint=models.UniqueConstraint(fields=('user_id', 'email'), name='uniq_email_account_user_email'),
        ),
        migrations.AddConstraint(
            model_name='emailaccount',
            constraint=models.UniqueConstraint(
                condition=models.Q(('is_active', True), ('is_default', True)),
                fields=('user_id',),
                name='uniq_email_account_active_default',
            ),
        ),
    ]
