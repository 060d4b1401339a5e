"""
Form Validation
===============

Validators for the KPI, profile and integration forms.

WHAT:
    Each `validate_*_form` takes the raw form mapping (strings straight from
    the inputs, or already-typed values) and returns a ValidationResult:
    either ok with a typed payload ready for the data layer, or not ok with
    every field error collected at once.

WHY:
    Validation failures are expected user input, not exceptions. Routers
    turn a failed result into a 422 before the data layer is reached;
    kpidash/session.py hands it back to the caller.

REFERENCES:
    - kpidash/schemas.py (payload models produced on success)
    - kpidash/routers/kpis.py, profile.py, integrations.py (422 responses)
"""

import logging
import math
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Generic, List, Mapping, Optional, Set, TypeVar

from email_validator import EmailNotValidError, validate_email

from .exceptions import FormValidationError
from .models import KpiUnitEnum, PlatformEnum, SyncFrequencyEnum, TrendEnum
from .schemas import IntegrationInsert, KpiDataInsert, ProfileUpdate

logger = logging.getLogger(__name__)

T = TypeVar("T")

REQUIRED = "required"
NOT_A_NUMBER = "not_a_number"
INVALID_CHOICE = "invalid_choice"
INVALID_EMAIL = "invalid_email"

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

UNITS = {unit.value for unit in KpiUnitEnum}
PLATFORMS = {platform.value for platform in PlatformEnum}
SYNC_FREQUENCIES = {frequency.value for frequency in SyncFrequencyEnum}
TRENDS = {trend.value for trend in TrendEnum}


@dataclass
class FieldError:
    """
    One rejected form field.

    ATTRIBUTES:
        field: Form field name as the form submits it (e.g. "name", "target")
        code: Machine-readable code (required, not_a_number, ...)
        message: Message shown next to the field
    """
    field: str
    code: str
    message: str

    def to_dict(self) -> Dict[str, str]:
        return {"field": self.field, "code": self.code, "message": self.message}


@dataclass
class ValidationResult(Generic[T]):
    value: Optional[T] = None
    errors: List[FieldError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    def add_error(self, field_name: str, code: str, message: str) -> None:
        self.errors.append(FieldError(field=field_name, code=code, message=message))

    def error_map(self) -> Dict[str, str]:
        """First message per field, the shape the form renders."""
        messages: Dict[str, str] = {}
        for error in self.errors:
            messages.setdefault(error.field, error.message)
        return messages


def is_valid_email(email: Any) -> bool:
    """Loose shape check first, then the same rules EmailStr applies on the payload."""
    if not isinstance(email, str) or not _EMAIL_RE.match(email):
        return False
    try:
        validate_email(email, check_deliverability=False)
    except EmailNotValidError:
        return False
    return True


def _is_choice(value: Any, choices: Set[str]) -> bool:
    return isinstance(value, str) and value in choices


def _blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _number(value: Any) -> Optional[float]:
    """Parse a numeric form value; None when it is not a finite number."""
    if isinstance(value, bool):
        return None
    try:
        number = float(value.strip() if isinstance(value, str) else value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def parse_tags(raw: Any) -> List[str]:
    """Comma-separated tag input to a clean list. Lists pass through trimmed."""
    if not raw:
        return []
    parts = raw.split(",") if isinstance(raw, str) else list(raw)
    return [str(part).strip() for part in parts if str(part).strip()]


# =============================================================================
# KPI form
# =============================================================================

def validate_kpi_form(data: Mapping[str, Any]) -> ValidationResult[KpiDataInsert]:
    """
    Validate the add/edit KPI form.

    Accepts the form's own field name `name` or the column name
    `metric_name`. On success `result.value` is a KpiDataInsert.
    """
    result: ValidationResult[KpiDataInsert] = ValidationResult()
    name = data.get("name", data.get("metric_name"))

    if _blank(name):
        result.add_error("name", REQUIRED, "KPI name is required")

    value = None
    if _blank(data.get("value")):
        result.add_error("value", REQUIRED, "Current value is required")
    else:
        value = _number(data.get("value"))
        if value is None:
            result.add_error("value", NOT_A_NUMBER, "Value must be a number")

    target = None
    if _blank(data.get("target")):
        result.add_error("target", REQUIRED, "Target value is required")
    else:
        target = _number(data.get("target"))
        if target is None:
            result.add_error("target", NOT_A_NUMBER, "Target must be a number")

    if _blank(data.get("category")):
        result.add_error("category", REQUIRED, "Category is required")

    unit = data.get("unit")
    if _blank(unit):
        result.add_error("unit", REQUIRED, "Unit type is required")
    elif not _is_choice(unit, UNITS):
        result.add_error("unit", INVALID_CHOICE, "Unit type is invalid")

    change_percent = 0.0
    if not _blank(data.get("change_percent")):
        change_percent = _number(data.get("change_percent"))
        if change_percent is None:
            result.add_error("change_percent", NOT_A_NUMBER, "Change must be a number")

    trend = data.get("trend") or None
    if trend is not None and not _is_choice(trend, TRENDS):
        result.add_error("trend", INVALID_CHOICE, "Trend is invalid")

    if not result.ok:
        logger.debug("[VALIDATION] KPI form rejected: %s", result.error_map())
        return result

    result.value = KpiDataInsert(
        metric_name=str(name).strip(),
        value=value,
        target=target,
        unit=unit,
        category=str(data["category"]).strip(),
        change_percent=change_percent,
        trend=trend,
    )
    return result


def validate_kpi_data(data: Mapping[str, Any]) -> List[str]:
    """Flat message list for a KpiData-shaped mapping (column names)."""
    errors = []
    if _blank(data.get("metric_name")):
        errors.append("Metric name is required")
    if data.get("value") is None:
        errors.append("Value is required")
    elif _number(data["value"]) is None:
        errors.append("Value must be a number")
    if data.get("target") is None:
        errors.append("Target is required")
    elif _number(data["target"]) is None:
        errors.append("Target must be a number")
    if _blank(data.get("category")):
        errors.append("Category is required")
    if not data.get("unit"):
        errors.append("Unit is required")
    return errors


# =============================================================================
# Profile form
# =============================================================================

def validate_profile_form(data: Mapping[str, Any]) -> ValidationResult[ProfileUpdate]:
    result: ValidationResult[ProfileUpdate] = ValidationResult()

    if _blank(data.get("first_name")):
        result.add_error("first_name", REQUIRED, "First name is required")
    if _blank(data.get("last_name")):
        result.add_error("last_name", REQUIRED, "Last name is required")

    email = data.get("email")
    if _blank(email):
        result.add_error("email", REQUIRED, "Email is required")
    elif not isinstance(email, str) or not is_valid_email(email.strip()):
        result.add_error("email", INVALID_EMAIL, "Please enter a valid email address")

    if not result.ok:
        return result

    result.value = ProfileUpdate(
        first_name=str(data["first_name"]).strip(),
        last_name=str(data["last_name"]).strip(),
        email=email.strip(),
        avatar_url=str(data.get("avatar_url") or "").strip() or None,
    )
    return result


# =============================================================================
# Integration form
# =============================================================================

def validate_integration_form(data: Mapping[str, Any]) -> ValidationResult[IntegrationInsert]:
    result: ValidationResult[IntegrationInsert] = ValidationResult()

    platform = data.get("platform")
    if _blank(platform):
        result.add_error("platform", REQUIRED, "Platform is required")
    elif not _is_choice(platform, PLATFORMS):
        result.add_error("platform", INVALID_CHOICE, "Platform is not supported")

    if _blank(data.get("store_name")):
        result.add_error("store_name", REQUIRED, "Store name is required")

    frequency = data.get("sync_frequency") or SyncFrequencyEnum.daily.value
    if not _is_choice(frequency, SYNC_FREQUENCIES):
        result.add_error("sync_frequency", INVALID_CHOICE, "Sync frequency is invalid")

    if not result.ok:
        return result

    result.value = IntegrationInsert(
        platform=platform,
        store_name=str(data["store_name"]).strip(),
        sync_frequency=frequency,
        api_key=str(data.get("api_key") or "").strip() or None,
    )
    return result


def require_valid(result: ValidationResult[T]) -> T:
    """Unwrap an ok result; raise FormValidationError (422 at the API) otherwise."""
    if not result.ok:
        raise FormValidationError(result.errors)
    return result.value
