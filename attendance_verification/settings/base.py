"""
Django settings for the attendance verification service.

This file contains the configuration for the Django project, including the
database used by the ORM-backed stores, installed applications, logging and
the tunables of the biometric verification engine. Sensitive values are read
from environment variables.
"""

import json
import os
import secrets
import sys
import warnings
from pathlib import Path

from django.core.exceptions import ImproperlyConfigured

import dj_database_url

# Define the project's base directory.
# `BASE_DIR` points to the root of the Django project.
BASE_DIR = Path(__file__).resolve().parent.parent.parent
LOCAL_ENV_PATH = Path(os.environ.get("LOCAL_ENV_PATH", BASE_DIR / ".env"))
DEV_SECRET_CACHE_PATH = Path(
    os.environ.get("DEV_TEMPLATE_SECRET_FILE", BASE_DIR / ".dev_template_secret.json")
)


# --- Environment helpers ---


def _get_bool_env(var_name: str, default: bool = False) -> bool:
    """Return a boolean from an environment variable."""

    raw_value = os.environ.get(var_name)
    if raw_value is None:
        return default
    return raw_value.lower() in {"1", "true", "yes", "on"}


def _parse_int_env(var_name: str, default: int, *, minimum: int | None = None) -> int:
    """Return an integer from the environment, enforcing an optional minimum."""

    raw_value = os.environ.get(var_name)
    if raw_value is None:
        return default

    try:
        value = int(raw_value)
    except ValueError as exc:
        raise ImproperlyConfigured(f"{var_name} must be an integer if provided.") from exc

    if minimum is not None and value < minimum:
        raise ImproperlyConfigured(f"{var_name} must be >= {minimum} if provided.")

    return value


def _get_float_env(
    var_name: str,
    default: float | None,
    *,
    minimum: float | None = None,
    maximum: float | None = None,
) -> float | None:
    """Return a float from the environment with optional bound enforcement."""

    raw_value = os.environ.get(var_name)
    if raw_value is None or raw_value == "":
        return default

    try:
        value = float(raw_value)
    except ValueError as exc:
        raise ImproperlyConfigured(f"{var_name} must be a float if provided.") from exc

    if minimum is not None and value < minimum:
        raise ImproperlyConfigured(f"{var_name} must be >= {minimum} if provided.")
    if maximum is not None and value > maximum:
        raise ImproperlyConfigured(f"{var_name} must be <= {maximum} if provided.")

    return value


# Detect if we're running tests
TESTING = "test" in sys.argv or (len(sys.argv) > 0 and "pytest" in sys.argv[0])

DEFAULT_SECRET_KEY = "a-secure-default-key-for-development-only"

# Automatically enable DEBUG mode when running tests.
DEBUG = _get_bool_env("DJANGO_DEBUG", default=TESTING)

SECRET_KEY = os.environ.get("DJANGO_SECRET_KEY", DEFAULT_SECRET_KEY)
if SECRET_KEY == DEFAULT_SECRET_KEY and not DEBUG:
    raise ImproperlyConfigured(
        "DJANGO_SECRET_KEY must be set to a secure value when DJANGO_DEBUG is not enabled."
    )

ALLOWED_HOSTS: list[str] = []


# --- Template secret ---


def _read_local_env_value(var_name: str) -> str | None:
    """Return a value from a local ``.env`` file if present."""

    if not LOCAL_ENV_PATH.exists():
        return None

    try:
        for raw_line in LOCAL_ENV_PATH.read_text().splitlines():
            line = raw_line.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue
            key, _, value = line.partition("=")
            if key.strip() != var_name:
                continue
            return value.strip().strip("\"").strip("'")
    except OSError as exc:
        warnings.warn(f"Unable to read {LOCAL_ENV_PATH}: {exc}")

    return None


def _read_configured_secret(var_name: str, *, allow_dotenv: bool) -> str | None:
    """Resolve a secret from the environment and, optionally, a ``.env`` file."""

    value = os.environ.get(var_name)
    if value:
        return value

    if allow_dotenv:
        return _read_local_env_value(var_name)

    return None


def _persisted_dev_secret(var_name: str) -> str:
    """Return a stable secret for DEBUG/TESTING sessions, persisting when generated."""

    existing: dict[str, str] = {}
    if DEV_SECRET_CACHE_PATH.exists():
        try:
            existing = json.loads(DEV_SECRET_CACHE_PATH.read_text())
        except (OSError, json.JSONDecodeError) as exc:
            warnings.warn(f"Ignoring invalid dev secret cache file: {exc}")
            existing = {}

    cached_value = existing.get(var_name)
    if cached_value:
        return cached_value

    generated = secrets.token_hex(32)
    existing[var_name] = generated
    try:
        DEV_SECRET_CACHE_PATH.write_text(json.dumps(existing, indent=2))
    except OSError as exc:
        warnings.warn(f"Unable to persist dev template secret: {exc}")
    return generated


def _load_template_secret() -> str:
    """Load the service secret that biometric template keys are derived from."""

    secret = _read_configured_secret("VERIFICATION_TEMPLATE_SECRET", allow_dotenv=DEBUG or TESTING)
    if secret:
        return secret

    if DEBUG or TESTING:
        return _persisted_dev_secret("VERIFICATION_TEMPLATE_SECRET")

    raise ImproperlyConfigured(
        "VERIFICATION_TEMPLATE_SECRET environment variable must be set in production environments."
    )


VERIFICATION_TEMPLATE_SECRET = _load_template_secret()
VERIFICATION_TEMPLATE_SALT = os.environ.get("VERIFICATION_TEMPLATE_SALT", "biometric-salt")


# --- Application Configuration ---

INSTALLED_APPS = [
    "verification.apps.VerificationConfig",
]


# --- Database ---
# The ORM-backed enrollment and attendance stores use this connection.

default_db_url = os.environ.get("DATABASE_URL", f"sqlite:///{(BASE_DIR / 'db.sqlite3').as_posix()}")

DATABASES = {
    "default": dj_database_url.parse(
        default_db_url,
        conn_max_age=_parse_int_env("DATABASE_CONN_MAX_AGE", default=0, minimum=0),
    )
}


def build_postgres_database_config() -> dict:
    """Return a PostgreSQL configuration derived from discrete environment variables."""

    return {
        "ENGINE": "django.db.backends.postgresql",
        "NAME": os.environ.get("DB_NAME", "attendance"),
        "USER": os.environ.get("DB_USER", "attendance"),
        "PASSWORD": os.environ.get("DB_PASSWORD", "attendance"),
        "HOST": os.environ.get("DB_HOST", "localhost"),
        "PORT": os.environ.get("DB_PORT", "5432"),
        "CONN_MAX_AGE": _parse_int_env("DB_CONN_MAX_AGE", default=60, minimum=0),
    }


DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"


# --- Internationalization ---

LANGUAGE_CODE = "en-us"
TIME_ZONE = os.environ.get("DJANGO_TIME_ZONE", "UTC")
USE_I18N = True
USE_TZ = True  # Enable timezone-aware datetimes


# --- Logging ---

VERIFICATION_LOG_LEVEL = os.environ.get("VERIFICATION_LOG_LEVEL", "INFO").upper()

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "standard": {
            "format": "%(asctime)s %(levelname)s [%(name)s] %(message)s",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "standard",
        },
    },
    "loggers": {
        "verification": {
            "handlers": ["console"],
            "level": VERIFICATION_LOG_LEVEL,
            "propagate": True,
        },
        "src.common": {
            "handlers": ["console"],
            "level": VERIFICATION_LOG_LEVEL,
            "propagate": True,
        },
    },
}


# --- Verification engine tunables ---

# Composite quality score a capture must reach before matching or enrollment.
VERIFICATION_QUALITY_FLOOR = _get_float_env(
    "VERIFICATION_QUALITY_FLOOR", default=0.7, minimum=0.0, maximum=1.0
)
# Divisor that maps the mean gradient magnitude onto the [0, 1] sharpness scale.
VERIFICATION_SHARPNESS_DIVISOR = _get_float_env(
    "VERIFICATION_SHARPNESS_DIVISOR", default=50.0, minimum=1.0
)
VERIFICATION_SIMILARITY_THRESHOLD = _get_float_env(
    "VERIFICATION_SIMILARITY_THRESHOLD", default=0.7, minimum=0.0, maximum=1.0
)
VERIFICATION_HIGH_CONFIDENCE_THRESHOLD = _get_float_env(
    "VERIFICATION_HIGH_CONFIDENCE_THRESHOLD", default=0.8, minimum=0.0, maximum=1.0
)
VERIFICATION_LATE_THRESHOLD_MINUTES = _parse_int_env(
    "VERIFICATION_LATE_THRESHOLD_MINUTES", default=10, minimum=0
)
VERIFICATION_CHECK_IN_WINDOW_MINUTES = _parse_int_env(
    "VERIFICATION_CHECK_IN_WINDOW_MINUTES", default=15, minimum=0
)
VERIFICATION_CHECK_OUT_WINDOW_MINUTES = _parse_int_env(
    "VERIFICATION_CHECK_OUT_WINDOW_MINUTES", default=15, minimum=0
)
VERIFICATION_SIGNAL_TIMEOUT_SECONDS = _get_float_env(
    "VERIFICATION_SIGNAL_TIMEOUT_SECONDS", default=10.0, minimum=0.1
)
VERIFICATION_WORKER_POOL_SIZE = _parse_int_env(
    "VERIFICATION_WORKER_POOL_SIZE", default=4, minimum=1
)
# Unset disables the accuracy gate on GPS fixes.
VERIFICATION_MAX_GPS_ACCURACY_METERS = _get_float_env(
    "VERIFICATION_MAX_GPS_ACCURACY_METERS", default=None, minimum=0.0
)
VERIFICATION_REQUEST_SIGNATURE_TOLERANCE_SECONDS = _parse_int_env(
    "VERIFICATION_REQUEST_SIGNATURE_TOLERANCE_SECONDS", default=300, minimum=1
)

# DeepFace configuration for the detector adapter.
VERIFICATION_FACE_MODEL = os.environ.get("VERIFICATION_FACE_MODEL", "Facenet")
VERIFICATION_FACE_DETECTOR_BACKEND = os.environ.get(
    "VERIFICATION_FACE_DETECTOR_BACKEND", "retinaface"
)
VERIFICATION_DETECTION_THRESHOLD = _get_float_env(
    "VERIFICATION_DETECTION_THRESHOLD", default=0.5, minimum=0.0, maximum=1.0
)

# Number of escalated integrity alerts kept in memory for operators.
VERIFICATION_ALERT_HISTORY = _parse_int_env("VERIFICATION_ALERT_HISTORY", default=50, minimum=1)
