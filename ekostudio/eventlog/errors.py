from __future__ import annotations


class EventLogError(RuntimeError):
    """Base class for record/replay failures. `kind` is the stable name surfaced to clients."""

    kind = "event_log_error"


class LogNotFound(EventLogError):
    kind = "not_found"


class EmptyLog(EventLogError):
    kind = "empty_log"


class MalformedRecord(EventLogError):
    """A single unreadable block. The reader logs and skips these."""

    kind = "malformed_record"


class WriteFailure(EventLogError):
    kind = "write_failure"


class ConsumerCallbackFailure(EventLogError):
    kind = "consumer_callback_failure"


def error_kind(exc: BaseException) -> str:
    return getattr(exc, "kind", None) or type(exc).__name__
