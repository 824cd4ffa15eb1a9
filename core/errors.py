"""
core/errors.py -- Application error kinds and their HTTP status codes.

Three kinds of failure flow out of the auth flows:

  ValidationFailed -- 400 with a {field: message} map. The caller must fix
      the input; every field's first failing rule is reported at once.

  Domain errors (BadRequest, Unauthorized, NotFound, Conflict) -- a single
      safe-to-show message. These are the expected failure paths: duplicate
      email, unknown reference data, bad credentials, invalid tokens.

  InternalFault -- 500 with a generic message. The real cause stays on the
      exception (and in the server log) and only reaches the client when
      DEBUG is on.

The exception handlers in api/main.py turn any AppError into the response
envelope. Handlers and flows raise the most specific kind they can.

Layer rule: core/ is the kernel. No imports from api/ or auth/.
"""

from __future__ import annotations


class AppError(Exception):
    """Base class for errors that map onto an HTTP status and a safe message."""

    status_code: int = 500

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    @property
    def errors(self) -> dict[str, str] | None:
        return None


class ValidationFailed(AppError):
    status_code = 400

    def __init__(self, errors: dict[str, str], message: str = "Validation Error") -> None:
        super().__init__(message)
        self._errors = dict(errors)

    @property
    def errors(self) -> dict[str, str]:
        return self._errors


class BadRequest(AppError):
    status_code = 400


class Unauthorized(AppError):
    status_code = 401


class NotFound(AppError):
    status_code = 404


class Conflict(AppError):
    status_code = 409


class InternalFault(AppError):
    """Wraps an unexpected collaborator failure (store I/O, signing, hashing)."""

    status_code = 500

    def __init__(self, cause: BaseException | str | None = None) -> None:
        super().__init__("Internal Server Error")
        self.cause = cause

    def __str__(self) -> str:
        if self.cause is None:
            return self.message
        return str(self.cause)
