"""Exceptions raised by popcall."""


class PopCallError(Exception):
    """Base class for popcall errors."""


class AuthenticationError(PopCallError):
    """The authentication service rejected the request or answered garbage."""


class InvalidStateError(PopCallError):
    """An operation was requested in a session state that does not allow it."""

    def __init__(self, operation: str, state: object) -> None:
        self.operation = operation
        self.state = state
        super().__init__(f"Cannot {operation} while session is {state}")
