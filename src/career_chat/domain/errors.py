"""Typed failures raised by the chat core."""

from typing import Optional


class ChatError(Exception):
    """Base class for all chat core errors."""

    status_code = 500

    def __init__(self, message: str, *, cause: Optional[BaseException] = None) -> None:
        super().__init__(message)
        self.message = message
        self.cause = cause


class ValidationError(ChatError):
    """Input was malformed or violated a precondition. Nothing was written."""

    status_code = 422


class NotFoundError(ChatError):
    """A referenced session does not exist."""

    status_code = 404


class PersistenceError(ChatError):
    """The record store failed a read or write."""

    status_code = 500


class GenerationError(ChatError):
    """The generation provider failed or returned an unusable result."""

    status_code = 502
