from __future__ import annotations

from dataclasses import dataclass, field
import logging

from ordergate.config import Settings
from ordergate.errors import ConfigurationError
from ordergate.executors.sinks import ActionSink, HttpActionSink, LoggingActionSink
from ordergate.orders import PLAYER_PLACEHOLDER


logger = logging.getLogger("ordergate.executors")


@dataclass
class ExecutionReport:
    identity: str
    quantity: int
    attempted: list[str] = field(default_factory=list)
    dispatched: int = 0
    failed: int = 0

    @property
    def ok(self) -> bool:
        return self.failed == 0


def render_action(template: str, identity: str) -> str:
    return template.replace(PLAYER_PLACEHOLDER, identity)


def normalize_quantity(quantity) -> int:
    try:
        value = int(quantity)
    except (TypeError, ValueError):
        return 1
    return max(1, value)


class ActionExecutor:
    def __init__(self, sink: ActionSink):
        self._sink = sink

    @property
    def sink(self) -> ActionSink:
        return self._sink

    def execute(self, templates: list[str], identity: str, quantity: int = 1) -> ExecutionReport:
        repetitions = normalize_quantity(quantity)
        report = ExecutionReport(identity=identity, quantity=repetitions)

        # Every template runs once per repetition before the next repetition starts.
        for _ in range(repetitions):
            for template in templates:
                action = render_action(template, identity)
                report.attempted.append(action)
                try:
                    self._sink.dispatch(action, identity)
                except Exception:
                    report.failed += 1
                    logger.exception(
                        "Failed to dispatch action",
                        extra={"event_type": "action_failed", "action": action, "sink": self._sink.name},
                    )
                    continue
                report.dispatched += 1

        return report


def build_action_sink(settings: Settings) -> ActionSink:
    if settings.action_sink == "log":
        return LoggingActionSink()
    if settings.action_sink == "http":
        return HttpActionSink(
            settings.action_sink_url,
            timeout_seconds=settings.action_timeout_seconds,
            token=settings.action_sink_token or None,
        )
    raise ConfigurationError(f"unknown action sink: {settings.action_sink}")
