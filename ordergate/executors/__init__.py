from ordergate.executors.action_executor import ActionExecutor, ExecutionReport, build_action_sink
from ordergate.executors.sinks import ActionSink, HttpActionSink, LoggingActionSink, RecordingActionSink

__all__ = [
    "ActionExecutor",
    "ActionSink",
    "ExecutionReport",
    "HttpActionSink",
    "LoggingActionSink",
    "RecordingActionSink",
    "build_action_sink",
]
