"""
Error types raised by the pixel engine.
Each carries a stable error_code that the tool layer reports verbatim.
"""

from __future__ import annotations

from typing import Optional


class PixelEngineError(Exception):
    """Base class for engine errors."""

    default_code = "ENGINE_ERROR"

    def __init__(self, message: str, *, error_code: Optional[str] = None, field: Optional[str] = None):
        super().__init__(message)
        self.error_code = error_code or self.default_code
        self.field = field


class ParameterError(PixelEngineError):
    """A numeric parameter is outside its allowed range."""

    default_code = "INVALID_PARAMETER"


class ConfigurationError(PixelEngineError):
    """An algorithm, pattern, style or direction name is not recognized."""

    default_code = "UNKNOWN_OPTION"


class ColorParseError(PixelEngineError, ValueError):
    """A hex color string could not be parsed."""

    default_code = "INVALID_COLOR"


def require_range(name: str, value: float, low: float, high: float) -> None:
    if value < low or value > high:
        raise ParameterError(f"{name} must be between {low} and {high}, got {value}", field=name)
