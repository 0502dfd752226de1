from typing import Any, Optional

NO_RESPONSE_MESSAGE = "No response from server. Please check your connection."


class XpenseMateError(Exception):
    """Base class for every error raised by the sync layer."""


class TransportError(XpenseMateError):
    """The request never reached the server or no response came back."""

    def __init__(self, message: str = NO_RESPONSE_MESSAGE):
        super().__init__(message)
        self.message = message


class ApiError(XpenseMateError):
    """The server answered with a non-2xx status."""

    def __init__(self, status: int, body: Any = None):
        self.status = status
        self.body = body
        super().__init__(f"HTTP {status}: {server_message(body) or 'no error message'}")


class ValidationError(XpenseMateError):
    """Client-side check failed; the mutation is never submitted."""

    def __init__(self, errors: list[str]):
        self.errors = list(errors)
        super().__init__(", ".join(self.errors))


class RecordNotFound(XpenseMateError):
    def __init__(self, key: str):
        self.key = key
        super().__init__(f"Record {key} is not in the list")


class ResponseShapeError(XpenseMateError):
    pass


class MutationCancelled(XpenseMateError):
    pass


def server_message(body: Any) -> Optional[str]:
    if isinstance(body, dict):
        for field in ("error", "message"):
            value = body.get(field)
            if value:
                return str(value)
    return None


def user_message(error: BaseException, fallback: str) -> str:
    """Pick the text shown to the user for a failed operation.

    Server bodies win (``error`` then ``message``), transport failures get the
    connection hint, validation failures list their problems, and everything
    else falls back to the per-operation string.
    """
    if isinstance(error, ApiError):
        return server_message(error.body) or fallback
    if isinstance(error, TransportError):
        return error.message
    if isinstance(error, ValidationError):
        return str(error) or fallback
    return fallback
