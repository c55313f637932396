from typing import Iterable, List


class TodoAppError(Exception):
    """Base class for errors the web layer knows how to render."""


class ValidationError(TodoAppError):
    """Bad user input; shown back to the user as form feedback."""

    def __init__(self, messages: Iterable[str]):
        self.messages: List[str] = list(messages)
        super().__init__("; ".join(self.messages))


class AuthError(TodoAppError):
    """Bad credentials or an unusable session token."""


class IntegrityError(AuthError):
    """A stored password hash could not be parsed."""


class TokenError(AuthError):
    pass


class TokenSignatureError(TokenError):
    pass


class TokenExpiredError(TokenError):
    pass


class TokenMalformedError(TokenError):
    pass


class NotFound(TodoAppError):
    """Missing resource, or one that belongs to somebody else."""


class StorageError(TodoAppError):
    """The database failed; details go to the log, never to the user."""
