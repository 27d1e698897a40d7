"""
Error taxonomy for Relay.

Network and pagination faults are absorbed close to the source; only
misconfiguration and AI hard failures travel up to the caller.
"""

from typing import Optional


class RelayError(Exception):
    """Base class for all Relay errors."""
    pass


class ConfigurationError(RelayError):
    """A required credential or setting is missing. Fatal, never retried."""
    pass


class ConnectivityError(RelayError):
    """The provider identity check failed; the reference store cannot be built."""
    pass


class SlackApiError(RelayError):
    """A single Slack Web API call failed (HTTP status or ``ok: false``)."""

    def __init__(self, method: str, error: str, status_code: Optional[int] = None):
        self.method = method
        self.error = error
        self.status_code = status_code
        detail = f"{method}: {error}"
        if status_code is not None:
            detail += f" (HTTP {status_code})"
        super().__init__(detail)


class AiHardFailError(RelayError):
    """The AI cascade was aborted. The message is meant to be shown verbatim."""

    def __init__(self, message: str, model: Optional[str] = None):
        self.model = model
        super().__init__(message)


class MalformedResponseError(AiHardFailError):
    """A backend answered successfully but not with the expected JSON shape."""
    pass
