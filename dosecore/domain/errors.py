"""
Error hierarchy for the dose analytics core.

Only parameter-domain violations are raised. Analyzers that cannot meet their
minimum data thresholds return None or an empty list instead of raising.
"""

from typing import Any


class DoseCoreError(Exception):
    """Base exception for all dose analytics errors."""

    code: str = "dosecore_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidParameterError(DoseCoreError):
    """
    A parameter is outside its valid domain.

    Not a ValueError subclass, so it propagates out of pydantic validators
    unwrapped instead of becoming a ValidationError.
    """

    code = "invalid_parameter"

    def __init__(self, field: str, value: Any, reason: str) -> None:
        super().__init__(f"Invalid {field}={value!r}: {reason}")
        self.field = field
        self.value = value
        self.reason = reason
