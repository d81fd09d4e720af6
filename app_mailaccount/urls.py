from django.urls import path

from app_mailaccount.views.email_account_view import (
    EmailAccountListView,
    EmailAccountDetailView,
    EmailAccountDefaultView,
    EmailAccountRefreshView,
    EmailAccountRefreshAllView,
    EmailAccountTestView,
    EmailAccountHealthView,
    EmailAccountUsageView,
)
from app_mailaccount.views.maintenance_view import (
    RefreshStatsView,
    RefreshExpiredView,
    CleanupFailedAccountsView,
)
from app_mailaccount.views.oauth_view import (
    OAuthAuthorizeView,
    OAuthConnectView,
    ProviderPresetView,
)

# The owning user is taken from the url; authenticating the caller as that
# user is done in front of this service

urlpatterns = [
    # Accounts of a user
    path('users/<int:user_id>/accounts', EmailAccountListView.as_view(), name='email-account-list'),
    path('users/<int:user_id>/accounts/refresh', EmailAccountRefreshAllView.as_view(),
         name='email-account-refresh-all'),
    path('users/<int:user_id>/accounts/<uuid:account_id>', EmailAccountDetailView.as_view(),
         name='email-account-detail'),
    path('users/<int:user_id>/accounts/<uuid:account_id>/default', EmailAccountDefaultView.as_view(),
         name='email-account-default'),
    path('users/<int:user_id>/accounts/<uuid:account_id>/refresh', EmailAccountRefreshView.as_view(),
         name='email-account-refresh'),
    path('users/<int:user_id>/accounts/<uuid:account_id>/test', EmailAccountTestView.as_view(),
         name='email-account-test'),
    path('users/<int:user_id>/accounts/<uuid:account_id>/health', EmailAccountHealthView.as_view(),
         name='email-account-health'),
    path('users/<int:user_id>/accounts/<uuid:account_id>/usage', EmailAccountUsageView.as_view(),
         name='email-account-usage'),
    # OAuth
    path('oauth/<str:provider>/authorize', OAuthAuthorizeView.as_view(), name='oauth-authorize'),
    path('users/<int:user_id>/oauth/<str:provider>/connect', OAuthConnectView.as_view(), name='oauth-connect'),
    path('providers', ProviderPresetView.as_view(), name='provider-presets'),
    # Maintenance
    path('maintenance/refresh-stats', RefreshStatsView.as_view(), name='refresh-stats'),
    path('maintenance/refresh-expired', RefreshExpiredView.as_view(), name='refresh-expired'),
    path('maintenance/cleanup-failed', CleanupFailedAccountsView.as_view(), name='cleanup-failed'),
]
