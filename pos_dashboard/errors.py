"""
Dashboard Error Taxonomy

Errors raised by the fetch pipeline. Only the service boundary turns these
into user-facing messages.
"""

from typing import Optional


class DashboardError(Exception):
    """Base class for dashboard pipeline errors"""

    #: Whether the user may simply retry
    retryable: bool = True

    def user_message(self) -> Optional[str]:
        """Message shown on the dashboard, or None when nothing should be shown"""
        return str(self) or None


class NotAuthenticated(DashboardError):
    """No active session when a fetch was about to start"""

    def __init__(self, message: str = "User session not found. Please log in."):
        super().__init__(message)


class AuthStuck(DashboardError):
    """Authentication never became ready within the watchdog window"""

    def __init__(self, message: str = "Connection slow. Please refresh."):
        super().__init__(message)


class SourceReadError(DashboardError):
    """A single source read reported a definitive error"""

    retryable = False

    def __init__(self, source: str, message: str):
        self.source = source
        self.message = message
        super().__init__(f"{source.capitalize()}: {message}")


class FetchTimedOut(DashboardError):
    """The hard latency budget elapsed before every read completed"""

    def __init__(self, timeout_seconds: float):
        self.timeout_seconds = timeout_seconds
        super().__init__(f"Request timed out after {timeout_seconds:g}s.")

    def user_message(self) -> Optional[str]:
        return "Connection timed out. Please try again."


class FetchCancelled(DashboardError):
    """The run was superseded or its caller went away"""

    def __init__(self, reason: str = "superseded"):
        self.reason = reason
        super().__init__(f"Fetch cancelled ({reason})")

    def user_message(self) -> Optional[str]:
        return None
