"""Payload-less change signals between hook processes and the daemon.

A signal is a small file under ``<state_dir>/signals/`` whose content is
rewritten on every broadcast. The daemon polls those files and coalesces
bursts, so listeners always re-read full state instead of applying deltas.
"""

from __future__ import annotations

import asyncio
import os
import time
from collections.abc import Awaitable, Callable, Iterable
from pathlib import Path

import structlog

from hookdesk.fileio import atomic_write_text
from hookdesk.settings import settings

logger = structlog.get_logger(__name__)

SESSIONS_SIGNAL = "sessions"
PERMISSIONS_SIGNAL = "permissions"
ALL_SIGNALS = (SESSIONS_SIGNAL, PERMISSIONS_SIGNAL)

Listener = Callable[[set[str]], Awaitable[None] | None]


def signals_dir() -> Path:
    return Path(settings.state_dir()) / "signals"


def broadcast(name: str) -> None:
    """Announce that the state behind ``name`` changed. Never raises."""
    try:
        atomic_write_text(signals_dir() / name, f"{time.time_ns()} {os.getpid()}\n")
    except OSError:
        logger.warning("Failed to broadcast change signal", signal=name, exc_info=True)


def read_token(name: str) -> str | None:
    try:
        return (signals_dir() / name).read_text(encoding="utf-8")
    except OSError:
        return None


class SignalWatcher:
    """Polls signal files and notifies listeners once per burst of changes."""

    def __init__(
        self,
        names: Iterable[str] = ALL_SIGNALS,
        *,
        poll_interval: float | None = None,
        debounce: float | None = None,
    ) -> None:
        self._names = tuple(names)
        self._poll_interval = (
            poll_interval if poll_interval is not None else settings.signal_poll_interval()
        )
        self._debounce = debounce if debounce is not None else settings.signal_debounce()
        self._listeners: list[Listener] = []
        self._tokens: dict[str, str | None] = {}

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def prime(self) -> None:
        """Record current tokens so pre-existing signals are not replayed."""
        self._tokens = {name: read_token(name) for name in self._names}

    def poll(self) -> set[str]:
        """Return the names whose token changed since the last poll."""
        changed: set[str] = set()
        for name in self._names:
            token = read_token(name)
            if token != self._tokens.get(name):
                self._tokens[name] = token
                changed.add(name)
        return changed

    async def dispatch(self, changed: set[str]) -> None:
        for listener in list(self._listeners):
            try:
                result = listener(set(changed))
                if asyncio.iscoroutine(result):
                    await result
            except Exception:
                logger.exception("Signal listener failed", signals=sorted(changed))

    async def run(self) -> None:
        """Watch forever; cancel the task to stop."""
        self.prime()
        while True:
            changed = self.poll()
            if changed:
                # Keep absorbing signals until the burst settles.
                while self._debounce > 0:
                    await asyncio.sleep(self._debounce)
                    more = self.poll()
                    if not more:
                        break
                    changed |= more
                logger.debug("Change signals received", signals=sorted(changed))
                await self.dispatch(changed)
            await asyncio.sleep(self._poll_interval)
