"""account_service URL Configuration

The `urlpatterns` list routes URLs to views. For more information please see:
    https://docs.djangoproject.com/en/5.1/topics/http/urls/
"""

from django.conf import settings
from django.contrib import admin
from django.urls import path, include

urlpatterns = [
    path("admin/", admin.site.urls),
]

# Dynamically add URL patterns based on enabled apps
if settings.APP_MAILACCOUNT_ENABLED:
    from app_mailaccount import urls as app_mailaccount_urls
    urlpatterns.append(path('api/mail-accounts/', include(app_mailaccount_urls)))
