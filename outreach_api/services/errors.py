"""
Failure taxonomy for calls to the AI backend.

The forwarder retries TransportError and BackendError alike; LogicalFailure
and EmptyResult are raised by callers after a call has succeeded on the wire.
"""


class ForwarderError(Exception):
    """Base class for every failure surfaced by the outbound call path."""

    reason = "error"


class TransportError(ForwarderError):
    """Network failure: the backend never produced a response."""

    reason = "transport_error"


class BackendError(ForwarderError):
    """Non-success HTTP status, or a 2xx whose body could not be parsed."""

    reason = "backend_error"

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class LogicalFailure(ForwarderError):
    """2xx response whose payload says the operation did not happen."""

    reason = "logical_failure"


class EmptyResult(ForwarderError):
    """Generation succeeded but returned no usable variants."""

    reason = "empty_result"
