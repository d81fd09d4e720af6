"""
Known SMTP/IMAP server presets and OAuth endpoints per provider
"""

PROVIDER_PRESETS = {
    "gmail": {
        "smtp": {"host": "smtp.gmail.com", "port": 587, "secure": False, "require_tls": True},
        "imap": {"host": "imap.gmail.com", "port": 993, "secure": True},
        "auth_type": "oauth",
        "display_name": "Gmail",
    },
    "outlook": {
        "smtp": {"host": "smtp.office365.com", "port": 587, "secure": False, "require_tls": True},
        "imap": {"host": "outlook.office365.com", "port": 993, "secure": True},
        "auth_type": "oauth",
        "display_name": "Outlook",
    },
    "yahoo": {
        "smtp": {"host": "smtp.mail.yahoo.com", "port": 587, "secure": False, "require_tls": True},
        "imap": {"host": "imap.mail.yahoo.com", "port": 993, "secure": True},
        "auth_type": "password",
        "display_name": "Yahoo Mail",
    },
    "other": {
        "smtp": {"host": None, "port": 587, "secure": False, "require_tls": True},
        "imap": {"host": None, "port": 993, "secure": True},
        "auth_type": "password",
        "display_name": "Custom server",
    },
}

# email domain fragment -> provider
DOMAIN_PROVIDER_MAP = (
    ("gmail.com", "gmail"),
    ("googlemail.com", "gmail"),
    ("outlook.", "outlook"),
    ("hotmail.", "outlook"),
    ("live.", "outlook"),
    ("yahoo.", "yahoo"),
)

# google
GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_USERINFO_URL = "https://openidconnect.googleapis.com/v1/userinfo"
GOOGLE_SCOPES = [
    "https://www.googleapis.com/auth/gmail.send",
    "https://www.googleapis.com/auth/gmail.readonly",
    "openid",
    "email",
    "profile",
]

# microsoft
MICROSOFT_AUTH_URL = "https://login.microsoftonline.com/common/oauth2/v2.0/authorize"
MICROSOFT_TOKEN_URL = "https://login.microsoftonline.com/common/oauth2/v2.0/token"
MICROSOFT_USERINFO_URL = "https://graph.microsoft.com/v1.0/me"
MICROSOFT_SCOPES = [
    "offline_access",
    "https://graph.microsoft.com/Mail.Send",
    "https://graph.microsoft.com/Mail.Read",
    "https://graph.microsoft.com/User.Read",
]

# oauth error codes that mean the grant is gone and the user must reconnect
PERMANENT_GRANT_ERRORS = (
    "invalid_grant",
    "invalid_client",
    "unauthorized_client",
    "invalid_scope",
    "interaction_required",
    "consent_required",
)
