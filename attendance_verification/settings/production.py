"""Production settings overriding the defaults with hardened options."""

from __future__ import annotations

from .base import *  # noqa: F401,F403
from .base import DATABASES, build_postgres_database_config
from .sentry import initialize_sentry

DEBUG = False

# The SQLite default only exists for development and the test suite.
if DATABASES["default"].get("ENGINE") == "django.db.backends.sqlite3":
    DATABASES["default"] = build_postgres_database_config()


initialize_sentry()
