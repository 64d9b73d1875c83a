"""Layered ``.env`` configuration for hookdesk.

Hook processes are spawned by the coding CLI and inherit its environment, not
the user's shell, so toggles such as ``HOOKDESK_INTERACTIVE_PERMISSION`` are
usually set in a config file. Sources, highest precedence first:

    1. Variables already present in the environment
    2. ``./.env`` in the current working directory
    3. ``$XDG_CONFIG_HOME/hookdesk/config.env`` (``~/.config`` by default)
"""

from __future__ import annotations

import os
from pathlib import Path

_QUOTES = ('"', "'")


def _xdg_base(var: str, *fallback: str) -> Path:
    base = os.environ.get(var, "").strip()
    return Path(base) if base else Path.home().joinpath(*fallback)


def config_dir() -> Path:
    """``$XDG_CONFIG_HOME/hookdesk``."""
    return _xdg_base("XDG_CONFIG_HOME", ".config") / "hookdesk"


def config_file() -> Path:
    return config_dir() / "config.env"


def data_dir_default() -> Path:
    """``$XDG_DATA_HOME/hookdesk``, i.e. ``~/.local/share/hookdesk`` by default."""
    return _xdg_base("XDG_DATA_HOME", ".local", "share") / "hookdesk"


def _unquote(value: str) -> str:
    if len(value) >= 2 and value[0] in _QUOTES and value[-1] == value[0]:
        return value[1:-1]
    # Unquoted values may carry a trailing " # comment".
    if value.startswith("#"):
        return ""
    head, sep, _ = value.partition(" #")
    return head.rstrip() if sep else value


def parse_env_file(path: str | Path) -> dict[str, str]:
    """Read ``KEY=value`` lines from ``path``.

    Blank lines, ``#`` comments and an optional ``export`` prefix are
    ignored. A missing or unreadable file yields an empty dict.
    """
    try:
        lines = Path(path).read_text(encoding="utf-8").splitlines()
    except (OSError, UnicodeDecodeError):
        return {}

    values: dict[str, str] = {}
    for raw in lines:
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        line = line.removeprefix("export ").lstrip()
        key, sep, value = line.partition("=")
        key = key.strip()
        if not sep or not key:
            continue
        values[key] = _unquote(value.strip())
    return values


def load_config() -> list[Path]:
    """Copy config file values into ``os.environ`` without overriding it.

    Returns:
        The config files that existed and were read, lowest precedence first.
    """
    sources = [config_file(), Path.cwd() / ".env"]
    merged: dict[str, str] = {}
    loaded: list[Path] = []
    for source in sources:
        if source.is_file():
            merged.update(parse_env_file(source))
            loaded.append(source)

    for key, value in merged.items():
        os.environ.setdefault(key, value)
    return loaded
