from __future__ import annotations

from typing import Any


class ServiceError(Exception):
    """
    Base for every expected service failure.

    `kind` is the machine-distinguishable error code returned to clients;
    `details` carries the state a caller needs to correct the request
    (available stock, current debt, offending ids).
    """
    kind = "service_error"
    status_code = 400
    retryable = False

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}

    def to_dict(self) -> dict:
        body = {"error": self.kind, "message": str(self)}
        if self.details:
            body["details"] = self.details
        if self.retryable:
            body["retryable"] = True
        return body


class ValidationError(ServiceError, ValueError):
    """400-level input problem."""
    kind = "validation_error"


class NotFoundError(ServiceError):
    """404-level missing (or foreign-tenant) resource."""
    kind = "not_found"
    status_code = 404


class BusinessRuleError(ServiceError):
    """400-level business rule violation (insufficient stock, overpayment)."""
    kind = "business_rule"


class ConflictError(ServiceError):
    """409-level transient conflict; the transaction failed to serialize."""
    kind = "conflict"
    status_code = 409
    retryable = True


def require_int(value: Any, field: str) -> int:
    """Strict integer: rejects bools, floats, decimals and blank strings."""
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if stripped.lstrip("-").isdigit():
            return int(stripped)
    raise ValidationError(f"{field} must be an integer")


def require_positive_int(value: Any, field: str) -> int:
    number = require_int(value, field)
    if number < 1:
        raise ValidationError(f"{field} must be at least 1")
    return number


def optional_int(value: Any, field: str) -> int | None:
    if value is None or value == "":
        return None
    return require_int(value, field)


def optional_text(value: Any, field: str, max_length: int = 1000) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    if len(text) > max_length:
        raise ValidationError(f"{field} must be at most {max_length} characters")
    return text


def require_choice(value: Any, field: str, choices, default: str | None = None) -> str:
    if value is None or value == "":
        if default is None:
            raise ValidationError(f"{field} is required")
        return default
    choice = str(value).strip()
    if choice not in choices:
        raise ValidationError(f"{field} must be one of {sorted(choices)}")
    return choice
