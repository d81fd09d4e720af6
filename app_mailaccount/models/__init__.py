from app_mailaccount.models.email_account import EmailAccount

__all__ = [
    'EmailAccount',
]
