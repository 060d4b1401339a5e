"""
Error Types
===========

Exception hierarchy shared by the hosted backend surface, the data-access
layer and the API.

KINDS
-----
- UnauthenticatedError: no resolvable current user. Raised before any table
  access, so it never costs a round trip.
- BackendError: opaque failure from the hosted backend (constraint violation,
  permission denial, connection failure). The backend's message is kept
  verbatim; kpidash/utils/errors.py translates it for display.
- AuthApiError: BackendError raised by the auth surface (bad credentials,
  duplicate sign-up, missing session).
- ImmutableRecordError: attempt to update or delete an append-only record.
- FormValidationError: raised by routers when a form validator rejects a
  submission (rendered as 422 with field errors).

Validators themselves return results rather than raising. See
kpidash/validation.py.

RELATED FILES
-------------
- kpidash/hosted/tables.py: Raises BackendError
- kpidash/queries.py: Raises UnauthenticatedError, ImmutableRecordError
- kpidash/main.py: Maps these to HTTP responses
"""

from typing import Optional


class KpiDashError(Exception):
    """Base exception for all kpidash errors."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class UnauthenticatedError(KpiDashError):
    """No authenticated user could be resolved for the call."""

    def __init__(self, message: str = "Not authenticated"):
        super().__init__(message)


class BackendError(KpiDashError):
    """
    Failure reported by the hosted backend.

    ATTRIBUTES:
        message: The backend's message, unmodified
        code: Machine-readable code when one is known (e.g. "not_found",
              "IntegrityError")
        status: HTTP-like status hint (401 auth, 403 permission, 404 missing)
    """

    def __init__(self, message: str, code: Optional[str] = None, status: Optional[int] = None):
        super().__init__(message)
        self.code = code
        self.status = status

    def __repr__(self) -> str:
        return f"BackendError(message={self.message!r}, code={self.code!r}, status={self.status!r})"


class AuthApiError(BackendError):
    """Auth surface failure (invalid credentials, duplicate sign-up, no session)."""

    def __init__(self, message: str, status: int = 400, code: Optional[str] = None):
        super().__init__(message, code=code, status=status)


class ImmutableRecordError(KpiDashError):
    """Raised when an append-only or never-deleted record would be mutated."""

    def __init__(self, table: str, operation: str):
        super().__init__(f"{operation} is not permitted on {table}")
        self.table = table
        self.operation = operation


class FormValidationError(KpiDashError):
    """A submitted form failed validation. Carries every field error."""

    def __init__(self, errors):
        super().__init__("Validation failed")
        self.errors = list(errors)
