"""
Field-level validators shared by request schemas and the CSV import pipeline.

Each validator takes a raw value and returns the normalized value, or raises
FieldValidationError carrying the offending field and a readable message.
"""
import re
import uuid
from datetime import date, datetime
from enum import Enum
from typing import Any, Optional, Type

from email_validator import validate_email as _check_email, EmailNotValidError


VIN_RE = re.compile(r"^[A-HJ-NPR-Z0-9]+$", re.IGNORECASE)
PHONE_RE = re.compile(r"^[\d\s\-()+]+$")
FORMULA_PREFIXES = ("=", "+", "-", "@")

YEAR_MIN = 1900
YEAR_MAX = 2100
# largest value an INTEGER column accepts
INT_MAX = 2 ** 31 - 1

_TRUE_FLAGS = {"true", "yes", "y", "1"}
_FALSE_FLAGS = {"false", "no", "n", "0", ""}


class FieldValidationError(ValueError):
    def __init__(self, field: str, message: str):
        super().__init__(message)
        self.field = field
        self.message = message

    def __str__(self) -> str:
        return self.message


def validate_vin(value: Any, field: str = "vin") -> str:
    vin = str(value or "").strip()
    if len(vin) != 17:
        raise FieldValidationError(field, "VIN must be exactly 17 characters")
    if not VIN_RE.match(vin):
        raise FieldValidationError(field, "VIN contains invalid characters (I, O, Q not allowed)")
    return vin.upper()


def validate_year(value: Any, field: str = "year") -> int:
    if isinstance(value, bool):
        raise FieldValidationError(field, "Year must be a whole number")
    if isinstance(value, str):
        text = value.strip()
        if not re.fullmatch(r"-?\d+", text):
            raise FieldValidationError(field, "Year must be a whole number")
        year = int(text)
    elif isinstance(value, int):
        year = value
    elif isinstance(value, float) and value.is_integer():
        year = int(value)
    else:
        raise FieldValidationError(field, "Year must be a whole number")
    if year < YEAR_MIN:
        raise FieldValidationError(field, f"Year must be {YEAR_MIN} or later")
    if year > YEAR_MAX:
        raise FieldValidationError(field, f"Year must be {YEAR_MAX} or earlier")
    return year


def validate_email(value: Any, field: str = "email") -> str:
    email = str(value or "").strip()
    if len(email) > 255:
        raise FieldValidationError(field, "Email must be less than 255 characters")
    try:
        result = _check_email(email, check_deliverability=False)
    except EmailNotValidError:
        raise FieldValidationError(field, "Invalid email address")
    return result.normalized.lower()


def validate_password(value: Any, field: str = "password") -> str:
    password = str(value or "")
    if len(password) < 8:
        raise FieldValidationError(field, "Password must be at least 8 characters")
    if not re.search(r"[A-Z]", password):
        raise FieldValidationError(field, "Password must contain at least one uppercase letter")
    if not re.search(r"[a-z]", password):
        raise FieldValidationError(field, "Password must contain at least one lowercase letter")
    if not re.search(r"[0-9]", password):
        raise FieldValidationError(field, "Password must contain at least one number")
    if not re.search(r"[^A-Za-z0-9]", password):
        raise FieldValidationError(field, "Password must contain at least one special character")
    return password


def validate_uuid(value: Any, field: str = "id") -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value).strip())
    except (ValueError, AttributeError):
        raise FieldValidationError(field, "Invalid ID format")


def validate_text(
    value: Any,
    field: str,
    label: Optional[str] = None,
    max_length: int = 50,
    required: bool = True,
) -> Optional[str]:
    label = label or field
    text = "" if value is None else str(value).strip()
    if not text:
        if required:
            raise FieldValidationError(field, f"{label} is required")
        return None
    if len(text) > max_length:
        raise FieldValidationError(field, f"{label} must be less than {max_length} characters")
    return text


def short_text(value: Any, field: str, label: Optional[str] = None, max_length: int = 50) -> str:
    return validate_text(value, field, label, max_length, required=True)


def medium_text(value: Any, field: str, label: Optional[str] = None, max_length: int = 200) -> str:
    return validate_text(value, field, label, max_length, required=True)


def long_text(value: Any, field: str, label: Optional[str] = None, max_length: int = 1000) -> Optional[str]:
    return validate_text(value, field, label, max_length, required=False)


def validate_phone(value: Any, field: str = "phone") -> str:
    phone = str(value or "").strip()
    if not PHONE_RE.match(phone):
        raise FieldValidationError(field, "Invalid phone number format")
    if len(phone) < 10:
        raise FieldValidationError(field, "Phone number must be at least 10 digits")
    if len(phone) > 20:
        raise FieldValidationError(field, "Phone number must be less than 20 characters")
    return phone


def validate_non_negative_int(value: Any, field: str, label: Optional[str] = None, maximum: int = INT_MAX) -> int:
    label = label or field
    text = str(value).strip() if value is not None else ""
    if isinstance(value, bool) or not re.fullmatch(r"-?\d+", text):
        raise FieldValidationError(field, f"{label} must be a whole number")
    number = int(text)
    if number < 0:
        raise FieldValidationError(field, f"{label} must be positive")
    if number > maximum:
        raise FieldValidationError(field, f"{label} must be at most {maximum}")
    return number


def validate_percentage(value: Any, field: str = "percent_complete") -> int:
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise FieldValidationError(field, "Percentage must be a number")
    if number < 0:
        raise FieldValidationError(field, "Percentage must be at least 0")
    if number > 100:
        raise FieldValidationError(field, "Percentage must be at most 100")
    return int(round(number))


def validate_choice(value: Any, enum_cls: Type[Enum], field: str, label: Optional[str] = None) -> str:
    label = label or field
    text = "" if value is None else str(value.value if isinstance(value, Enum) else value).strip()
    allowed = [m.value for m in enum_cls]
    if text not in allowed:
        raise FieldValidationError(field, f"{label} must be one of: {', '.join(allowed)}")
    return text


def validate_bool_flag(value: Any, field: str, label: Optional[str] = None) -> bool:
    if isinstance(value, bool):
        return value
    text = "" if value is None else str(value).strip().lower()
    if text in _TRUE_FLAGS:
        return True
    if text in _FALSE_FLAGS:
        return False
    raise FieldValidationError(field, f"{label or field} must be True or False")


def validate_date(value: Any, field: str, label: Optional[str] = None, required: bool = False) -> Optional[date]:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = "" if value is None else str(value).strip()
    if not text:
        if required:
            raise FieldValidationError(field, f"{label or field} is required")
        return None
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        raise FieldValidationError(field, f"{label or field} must be a date (YYYY-MM-DD)")


def sanitize_csv_cell(value: Any) -> str:
    """Neutralize spreadsheet formula injection by quote-prefixing =, +, -, @."""
    trimmed = "" if value is None else str(value).strip()
    if trimmed.startswith(FORMULA_PREFIXES):
        return "'" + trimmed
    return trimmed
