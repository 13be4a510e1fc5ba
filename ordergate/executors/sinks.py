from __future__ import annotations

from datetime import datetime, timezone
import logging
from typing import Protocol

import requests

from ordergate.errors import ActionDispatchError


logger = logging.getLogger("ordergate.executors")


class ActionSink(Protocol):
    name: str

    def dispatch(self, action: str, identity: str) -> None:
        ...


class LoggingActionSink:
    """Logs every action instead of running it. Used for dry runs."""

    name = "log"

    def dispatch(self, action: str, identity: str) -> None:
        logger.info("Dispatching action", extra={"event_type": "action_dispatched", "action": action, "player": identity})


class RecordingActionSink:
    name = "recording"

    def __init__(self):
        self.dispatched: list[tuple[str, str]] = []

    @property
    def actions(self) -> list[str]:
        return [action for action, _identity in self.dispatched]

    def dispatch(self, action: str, identity: str) -> None:
        self.dispatched.append((action, identity))


class HttpActionSink:
    """Forwards actions to a remote console endpoint (``POST <base_url>/commands``)."""

    name = "http"

    def __init__(self, base_url: str, timeout_seconds: int = 5, token: str | None = None):
        if not str(base_url or "").strip():
            raise ValueError("HttpActionSink requires a base_url")
        self._url = f"{str(base_url).strip().rstrip('/')}/commands"
        self._timeout_seconds = timeout_seconds
        self._token = token

    def dispatch(self, action: str, identity: str) -> None:
        payload = {
            "command": action,
            "player": identity,
            "requested_at": datetime.now(timezone.utc).isoformat(),
        }
        headers = {"Authorization": f"Bearer {self._token}"} if self._token else None

        try:
            response = requests.post(self._url, json=payload, headers=headers, timeout=self._timeout_seconds)
        except requests.RequestException as exc:
            raise ActionDispatchError(f"action sink unreachable: {exc}") from exc

        if not 200 <= response.status_code < 300:
            raise ActionDispatchError(f"action sink returned HTTP {response.status_code}: {response.text[:200]}")
