from __future__ import annotations

import re
from enum import Enum
from typing import Optional, Type, TypeVar

from ..core.exceptions import ValidationError

E = TypeVar("E", bound=Enum)

_MOBILE_RE = re.compile(r"^[0-9]{10}$")
_EMAIL_RE = re.compile(r"^\w+([.-]?\w+)*@\w+([.-]?\w+)*(\.\w{2,3})+$")


def require_non_empty(value: str, field_name: str) -> str:
    if not value or not str(value).strip():
        raise ValidationError(f"{field_name} is required")
    return str(value).strip()


def require_min_length(value: str, field_name: str, min_len: int) -> str:
    if value is None or len(value) < min_len:
        raise ValidationError(f"{field_name} must be at least {min_len} characters long")
    return value


def require_positive_id(value, field_name: str) -> int:
    try:
        ident = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field_name} is invalid")
    if ident <= 0:
        raise ValidationError(f"{field_name} is invalid")
    return ident


def require_choice(value, enum_cls: Type[E], field_name: str) -> E:
    """Coerce ``value`` into ``enum_cls`` or raise a ValidationError listing the choices."""

    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        choices = ", ".join(m.value for m in enum_cls)
        raise ValidationError(f"{field_name} must be one of: {choices}")


def require_mobile(value: str) -> str:
    mobile = require_non_empty(value, "Mobile number")
    if not _MOBILE_RE.match(mobile):
        raise ValidationError("Please enter a valid 10-digit mobile number")
    return mobile


def optional_email(value: Optional[str]) -> Optional[str]:
    email = str(value or "").strip().lower()
    if not email:
        return None
    if not _EMAIL_RE.match(email):
        raise ValidationError("Please enter a valid email address")
    return email


def optional_text(value: Optional[str]) -> Optional[str]:
    text = str(value or "").strip()
    return text or None
