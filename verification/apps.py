"""
App configuration for the verification app.

Django discovers this configuration through ``INSTALLED_APPS``.
"""

from django.apps import AppConfig


class VerificationConfig(AppConfig):
    """Configuration class for the verification app."""

    name = "verification"
    default_auto_field = "django.db.models.BigAutoField"
    verbose_name = "Attendance Verification"
