"""Centralized environment configuration for hookdesk.

All environment variables are read through this module using the HOOKDESK_
prefix for consistency. Values are read on every call so the short-lived hook
process and the daemon always see the current environment.

Usage:
    from hookdesk.settings import settings

    if settings.interactive_permission():
        ...
    interval = settings.permission_poll_interval()
"""

from __future__ import annotations

import os


def _get(name: str, default: str = "") -> str:
    """Get an environment variable value."""
    return os.environ.get(name, "").strip() or default


def _get_bool(name: str, default: bool = False) -> bool:
    """Get a boolean environment variable."""
    value = os.environ.get(name, "").strip()
    if not value:
        return default
    return value.lower() in ("1", "true", "yes")


def _get_int(name: str, default: int = 0) -> int:
    """Get an integer environment variable."""
    value = os.environ.get(name, "").strip()
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        return default


class Settings:
    """Centralized settings for hookdesk.

    Environment variables use the HOOKDESK_ prefix.
    """

    # -------------------------------------------------------------------------
    # Storage
    # -------------------------------------------------------------------------

    @staticmethod
    def state_dir() -> str:
        """Directory shared by hook processes and the daemon.

        Holds the preference database, the permission request/response
        directories and the change signal files.

        Env: HOOKDESK_STATE_DIR (default: ~/.hookdesk)
        """
        value = _get("HOOKDESK_STATE_DIR")
        if value:
            return os.path.abspath(os.path.expanduser(value))
        return os.path.join(os.path.expanduser("~"), ".hookdesk")

    @staticmethod
    def data_dir() -> str:
        """Directory for transcript archives and usage statistics.

        Env: HOOKDESK_DATA_DIR (default: XDG_DATA_HOME/hookdesk)
        """
        value = _get("HOOKDESK_DATA_DIR")
        if value:
            return os.path.abspath(os.path.expanduser(value))

        from hookdesk.config import data_dir_default

        return str(data_dir_default())

    # -------------------------------------------------------------------------
    # Hook behaviour
    # -------------------------------------------------------------------------

    @staticmethod
    def interactive_permission() -> bool:
        """Answer permission requests from the daemon instead of the CLI's UI.

        Env: HOOKDESK_INTERACTIVE_PERMISSION (default: 0)
        """
        return _get_bool("HOOKDESK_INTERACTIVE_PERMISSION")

    @staticmethod
    def notifications() -> bool:
        """Master switch for hook notifications.

        Env: HOOKDESK_NOTIFICATIONS (default: 1)
        """
        return _get_bool("HOOKDESK_NOTIFICATIONS", default=True)

    @staticmethod
    def notify_pre_tool_use() -> bool:
        """Notify when a filtered tool is about to run.

        Env: HOOKDESK_NOTIFY_PRE_TOOL_USE (default: 0)
        """
        return _get_bool("HOOKDESK_NOTIFY_PRE_TOOL_USE")

    @staticmethod
    def pre_tool_use_tools() -> list[str]:
        """Comma-separated tool names that trigger a PreToolUse notification.

        An empty list matches every tool.

        Env: HOOKDESK_PRE_TOOL_USE_TOOLS (default: AskUserQuestion)
        """
        raw = os.environ.get("HOOKDESK_PRE_TOOL_USE_TOOLS")
        if raw is None:
            raw = "AskUserQuestion"
        return [part.strip() for part in raw.split(",") if part.strip()]

    @staticmethod
    def notify_stop() -> bool:
        """Notify when a response completes.

        Env: HOOKDESK_NOTIFY_STOP (default: 1)
        """
        return _get_bool("HOOKDESK_NOTIFY_STOP", default=True)

    @staticmethod
    def notify_permission() -> bool:
        """Notify when a permission request arrives.

        Env: HOOKDESK_NOTIFY_PERMISSION (default: 1)
        """
        return _get_bool("HOOKDESK_NOTIFY_PERMISSION", default=True)

    @staticmethod
    def debug() -> bool:
        """Capture every raw hook payload into the debug ring.

        Env: HOOKDESK_DEBUG (default: 0)
        """
        return _get_bool("HOOKDESK_DEBUG")

    @staticmethod
    def debug_log_limit() -> int:
        """Number of most recent hook payloads kept in the debug ring.

        Env: HOOKDESK_DEBUG_LOG_LIMIT (default: 200)
        """
        return max(1, _get_int("HOOKDESK_DEBUG_LOG_LIMIT", default=200))

    # -------------------------------------------------------------------------
    # Permission gateway
    # -------------------------------------------------------------------------

    @staticmethod
    def permission_poll_interval() -> float:
        """Seconds between checks while a hook waits for a decision.

        Env: HOOKDESK_PERMISSION_POLL_MS (default: 500)
        """
        return max(10, _get_int("HOOKDESK_PERMISSION_POLL_MS", default=500)) / 1000.0

    @staticmethod
    def permission_max_wait() -> float:
        """Maximum seconds a hook waits for a decision. 0 waits indefinitely.

        Env: HOOKDESK_PERMISSION_MAX_WAIT_SECONDS (default: 0)
        """
        return float(max(0, _get_int("HOOKDESK_PERMISSION_MAX_WAIT_SECONDS", default=0)))

    @staticmethod
    def permission_expiry() -> float:
        """Age in seconds after which stale request/response files are removed.

        Env: HOOKDESK_PERMISSION_EXPIRY_SECONDS (default: 86400)
        """
        return float(_get_int("HOOKDESK_PERMISSION_EXPIRY_SECONDS", default=86400))

    # -------------------------------------------------------------------------
    # Change signals
    # -------------------------------------------------------------------------

    @staticmethod
    def signal_poll_interval() -> float:
        """Seconds between checks of the change signal files.

        Env: HOOKDESK_SIGNAL_POLL_MS (default: 250)
        """
        return max(10, _get_int("HOOKDESK_SIGNAL_POLL_MS", default=250)) / 1000.0

    @staticmethod
    def signal_debounce() -> float:
        """Quiet period used to coalesce bursts of change signals.

        Env: HOOKDESK_SIGNAL_DEBOUNCE_MS (default: 150)
        """
        return max(0, _get_int("HOOKDESK_SIGNAL_DEBOUNCE_MS", default=150)) / 1000.0

    # -------------------------------------------------------------------------
    # Logging Settings
    # -------------------------------------------------------------------------

    @staticmethod
    def log_level() -> str:
        """Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).

        Env: HOOKDESK_LOG_LEVEL (default: INFO)
        """
        return _get("HOOKDESK_LOG_LEVEL", default="INFO").upper()

    @staticmethod
    def log_format() -> str:
        """Log format: "console" for dev-friendly, "json" for structured.

        Env: HOOKDESK_LOG_FORMAT (default: console)
        """
        return _get("HOOKDESK_LOG_FORMAT", default="console").lower()

    @staticmethod
    def log_file() -> str:
        """Path to an optional log file. Empty means no file logging.

        Env: HOOKDESK_LOG_FILE
        """
        return _get("HOOKDESK_LOG_FILE")

    # -------------------------------------------------------------------------
    # Daemon
    # -------------------------------------------------------------------------

    @staticmethod
    def host() -> str:
        """Host to bind the daemon's HTTP server to.

        Env: HOOKDESK_HOST (default: 127.0.0.1)
        """
        return _get("HOOKDESK_HOST", default="127.0.0.1")

    @staticmethod
    def port() -> int:
        """Port to bind the daemon's HTTP server to.

        Env: HOOKDESK_PORT (default: 8797)
        """
        return _get_int("HOOKDESK_PORT", default=8797)

    @staticmethod
    def token() -> str:
        """Bearer token for API authentication. Empty disables auth.

        Env: HOOKDESK_TOKEN
        """
        return _get("HOOKDESK_TOKEN")


# Singleton instance for convenient imports
settings = Settings()
