"""
errors.py
- Exception taxonomy shared by the adapter's controllers and clients.
- Controllers decide per class whether a failure is fatal, retried, or isolated:
    - ConfigError      : required input missing/malformed, fatal for the command
    - StateError       : state file unreadable or invariant violated
    - ConnectionFailure: dashboard or Docker unreachable, retried with backoff
    - ApiError         : dashboard rejected a call (auth, validation, conflict, not found)
"""


class AdapterError(Exception):
    """Base class for every failure the adapter knows how to report."""


class ConfigError(AdapterError):
    pass


class StateError(AdapterError):
    pass


class SetupError(AdapterError):
    pass


class ConnectionFailure(AdapterError):
    pass


class ApiError(AdapterError):
    """
    The dashboard answered but refused the call.

    Args:
        message (str): Human readable reason (usually the tRPC error message).
        status_code (int): HTTP status returned by the dashboard.
        procedure (str): tRPC procedure that failed, e.g. "app.create".
    """

    def __init__(self, message, status_code=None, procedure=None):
        super().__init__(message)
        self.status_code = status_code
        self.procedure = procedure

    def __str__(self):
        base = super().__str__()
        if self.procedure:
            return f"{self.procedure}: {base} (HTTP {self.status_code})"
        return base


class AuthFailure(ApiError):
    pass


class NotFound(ApiError):
    pass


class Conflict(ApiError):
    pass


class ValidationFailure(ApiError):
    pass
