"""Translate backend failures into user-facing messages.

Backend messages arrive verbatim from the database driver (Postgres in
production, SQLite in tests), so each rule matches both dialects' wording.
"""

from typing import Any, Optional


# (substrings, message) - first match wins
_MESSAGE_RULES = (
    (("duplicate key", "unique constraint failed"), "This record already exists"),
    (("foreign key",), "Invalid reference to related data"),
    (("not null", "not-null"), "Required field is missing"),
    (("check constraint",), "Invalid value provided"),
)


def _message(error: Any) -> Optional[str]:
    message = getattr(error, "message", None)
    if message is None and isinstance(error, dict):
        message = error.get("message")
    if message is None and isinstance(error, Exception):
        message = str(error) or None
    return message


def _status(error: Any) -> Optional[int]:
    if isinstance(error, dict):
        return error.get("status")
    return getattr(error, "status", None)


def parse_backend_error(error: Any) -> str:
    """Map a backend error to a short message safe to show to the user."""
    message = _message(error)
    if not message:
        return "An unexpected error occurred"

    lowered = message.lower()
    for needles, friendly in _MESSAGE_RULES:
        if any(needle in lowered for needle in needles):
            return friendly
    return message


def is_auth_error(error: Any) -> bool:
    message = _message(error) or ""
    return "JWT" in message or "auth" in message.lower() or _status(error) == 401


def is_permission_error(error: Any) -> bool:
    message = _message(error) or ""
    return "permission" in message.lower() or "RLS" in message or _status(error) == 403
