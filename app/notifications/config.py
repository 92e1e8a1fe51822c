# ============================================================================
# Priority Transfers Notify - Configuration
# ============================================================================
# Environment-backed configuration with type casting and defaults.
# Values are read once into a cache and treated as read-only afterwards.
# ============================================================================

import os
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

# key -> (env variable, default, value type, category)
DEFAULT_CONFIG = {
    # Reminders
    "reminder_hours_before_pickup": ("REMINDER_HOURS_BEFORE_PICKUP", 1.0, "float", "reminders"),
    "misfire_grace_seconds": ("REMINDER_MISFIRE_GRACE_SECONDS", 300, "int", "reminders"),
    "timezone": ("NOTIFY_TIMEZONE", "UTC", "string", "general"),

    # Email configuration
    "email_provider": ("EMAIL_PROVIDER", "smtp", "string", "email"),
    "smtp_host": ("SMTP_HOST", "smtp.gmail.com", "string", "email"),
    "smtp_port": ("SMTP_PORT", 587, "int", "email"),
    "smtp_user": ("EMAIL_USER", "", "string", "email"),
    "smtp_pass": ("EMAIL_PASS", "", "string", "email"),
    "sendgrid_api_key": ("SENDGRID_API_KEY", "", "string", "email"),
    "resend_api_key": ("RESEND_API_KEY", "", "string", "email"),
    "from_email": ("EMAIL_FROM", "", "string", "email"),
    "from_name": ("EMAIL_FROM_NAME", "Priority Transfers Team", "string", "email"),
    "email_timeout_seconds": ("EMAIL_TIMEOUT_SECONDS", 30, "int", "email"),

    # Server
    "host": ("HOST", "0.0.0.0", "string", "server"),
    "port": ("PORT", 3001, "int", "server"),
    "log_level": ("LOG_LEVEL", "INFO", "string", "server"),
}

_SECRET_KEYS = {"smtp_pass", "sendgrid_api_key", "resend_api_key"}


class NotifyConfig:
    """
    Process-wide configuration read from the environment.

    Every key in DEFAULT_CONFIG is resolved from its environment variable
    (falling back to the default) and cast to the declared type. Tests can
    layer explicit values on top with override().
    """

    _cache: Dict[str, Any] = {}
    _cache_loaded: bool = False

    @classmethod
    def _load_cache(cls):
        if cls._cache_loaded:
            return

        for key, (env_var, default, vtype, category) in DEFAULT_CONFIG.items():
            raw = os.environ.get(env_var)
            if raw is None or raw == "":
                cls._cache[key] = default
            else:
                cls._cache[key] = cls._cast_value(raw, vtype, default)

        # Sender defaults to the SMTP login, as Gmail requires
        if not cls._cache.get("from_email"):
            cls._cache["from_email"] = cls._cache.get("smtp_user", "")

        cls._cache_loaded = True

    @classmethod
    def _cast_value(cls, value: str, value_type: str, default: Any = None) -> Any:
        """Cast string value to appropriate type."""
        if value_type == "bool":
            return value.strip().lower() in ("true", "1", "yes", "on")
        if value_type == "int":
            try:
                return int(value)
            except ValueError:
                return default
        if value_type == "float":
            try:
                return float(value)
            except ValueError:
                return default
        return value

    @classmethod
    def get(cls, key: str, default: Any = None) -> Any:
        cls._load_cache()
        return cls._cache.get(key, default)

    @classmethod
    def get_all(cls, category: str = None, redact: bool = True) -> Dict[str, Any]:
        """Get all configuration values, optionally filtered by category."""
        cls._load_cache()

        result = {}
        for key, (_, default, _, cat) in DEFAULT_CONFIG.items():
            if category is not None and cat != category:
                continue
            value = cls._cache.get(key, default)
            if redact and key in _SECRET_KEYS and value:
                value = "********"
            result[key] = value
        return result

    @classmethod
    def override(cls, **values):
        cls._load_cache()
        cls._cache.update(values)

    @classmethod
    def reset_cache(cls):
        cls._cache = {}
        cls._cache_loaded = False


# Convenience functions
def get_config(key: str, default: Any = None) -> Any:
    """Get a configuration value."""
    return NotifyConfig.get(key, default)


def get_all_config(category: str = None) -> Dict[str, Any]:
    """Get all configuration values with secrets redacted."""
    return NotifyConfig.get_all(category)


def override_config(**values):
    """Replace configuration values in-process (used by tests and scripts)."""
    NotifyConfig.override(**values)


def reload_config():
    """Drop cached values so the next read picks up the environment again."""
    NotifyConfig.reset_cache()


# ============================================================================
# Timezone Helpers
# ============================================================================

def get_timezone():
    """Get the configured timezone object."""
    tz_name = get_config("timezone", "UTC")
    try:
        return ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        return timezone.utc


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_datetime(value: str, tz=None) -> Optional[datetime]:
    """Parse an ISO-8601 string into an aware datetime.

    A trailing 'Z' is accepted. Naive values are read in the configured
    timezone. Returns None when the value cannot be parsed.
    """
    if not isinstance(value, str) or not value.strip():
        return None

    text = value.strip()
    if text.endswith("Z") or text.endswith("z"):
        text = text[:-1] + "+00:00"

    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=tz or get_timezone())
    return parsed


def isoformat_utc(dt: datetime) -> str:
    """Format as UTC ISO-8601 with millisecond precision, e.g. 2026-01-05T09:00:00.000Z."""
    dt = dt.astimezone(timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"


def format_time_for_display(dt: datetime) -> str:
    """Format a datetime for emails in the configured timezone."""
    return dt.astimezone(get_timezone()).strftime("%Y-%m-%d %H:%M %Z")
