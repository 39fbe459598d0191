"""
Centralized configuration for the cohort sync service.

All settings come from environment variables (loaded from .env / .env.local
by main.py and conftest.py).
"""

import os

from .enums import UnenrolAction


def is_dev_mode() -> bool:
    """Check if running in development mode (--dev flag or DEV_MODE env)."""
    return os.getenv("DEV_MODE", "").lower() in ("true", "1", "yes")


def get_api_port() -> int:
    """Get API server port from env or default."""
    return int(os.getenv("API_PORT", "8000"))


def get_site_course_id() -> int:
    """Id of the site pseudo-course, which is never a valid sync target."""
    return int(os.getenv("SITE_COURSE_ID", "1"))


def get_default_unenrol_action() -> UnenrolAction:
    """Unenrol policy given to new instances that don't choose one."""
    value = os.getenv("SYNC_DEFAULT_UNENROL_ACTION", UnenrolAction.unenrol.value)
    try:
        return UnenrolAction(value.lower())
    except ValueError:
        raise ValueError(
            f"SYNC_DEFAULT_UNENROL_ACTION must be one of "
            f"{[a.value for a in UnenrolAction]}, got {value!r}"
        )


def get_store_timeout_seconds() -> float:
    """Upper bound for a single store call made by the reconciler."""
    return float(os.getenv("SYNC_STORE_TIMEOUT_SECONDS", "30"))


def get_sync_max_concurrency() -> int:
    """How many sync instances a full reconcile processes at once."""
    return max(1, int(os.getenv("SYNC_MAX_CONCURRENCY", "4")))


def get_sync_interval_minutes() -> int:
    """Interval of the scheduled full sync. 0 disables the job."""
    return int(os.getenv("SYNC_INTERVAL_MINUTES", "60"))


def get_group_name_template() -> str:
    """Name for groups created on first enrolment ({name}, {increment})."""
    return os.getenv("SYNC_GROUP_NAME_TEMPLATE", "{name} cohort {increment}")


def is_event_sync_enabled() -> bool:
    """Whether cohort membership changes trigger an immediate sync."""
    return os.getenv("SYNC_ON_COHORT_EVENTS", "true").lower() in ("true", "1", "yes")


def get_allowed_origins() -> list[str]:
    """CORS origins: localhost variants plus ADMIN_FRONTEND_URL if set."""
    hosts = ["localhost", "127.0.0.1"]
    ports = [get_api_port(), 3000]
    origins = [f"http://{host}:{port}" for host in hosts for port in ports]

    frontend_url = os.environ.get("ADMIN_FRONTEND_URL")
    if frontend_url and frontend_url not in origins:
        origins.append(frontend_url.rstrip("/"))

    return origins


# Required environment variables
# Format: (name, description, required_in_dev)
REQUIRED_ENV_VARS = [
    ("DATABASE_URL", "PostgreSQL connection string", True),
    ("JWT_SECRET", "Secret key for verifying session JWTs", True),
    ("SENTRY_DSN", "Sentry DSN for error reporting", False),
]


def check_required_env_vars() -> tuple[bool, list[str]]:
    """
    Check that required environment variables are set.

    Returns:
        (all_ok, warnings): Tuple of success flag and list of warning messages
    """
    warnings = []
    errors = []
    in_dev = is_dev_mode()

    for name, description, required_in_dev in REQUIRED_ENV_VARS:
        if os.environ.get(name):
            continue
        if required_in_dev or not in_dev:
            if required_in_dev:
                errors.append(f"  ✗ {name}: Not set ({description})")
            else:
                warnings.append(f"  ⚠ {name}: Not set ({description})")

    if errors:
        for error in errors:
            print(error)
        return False, warnings

    return True, warnings
