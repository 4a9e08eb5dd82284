"""Custom exceptions for the incremental agent package."""


class AgentError(Exception):
    """Base exception for all agent errors."""
    pass


class ProtocolError(AgentError):
    """The scanner used the snapshot protocol incorrectly."""
    pass


class BusyError(ProtocolError):
    """A generation is already open for paging."""
    pass


class InvalidCursorError(ProtocolError):
    """Cursor does not belong to the active generation."""
    pass


class InvalidStateError(ProtocolError):
    """Generation is stale, already committed, or not fully delivered."""
    pass


class AgentAlreadyRunningError(AgentError):
    """Agent process is already running."""
    pass


class AgentAPIError(AgentError):
    """Unexpected response or transport failure talking to an agent."""

    def __init__(self, message: str, status_code: int = 0):
        super().__init__(message)
        self.status_code = status_code
