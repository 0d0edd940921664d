"""
Exceptions for screenmatch.

Load-time errors (malformed documents) propagate to the caller.
Matching-time errors are folded into a "no match" result by the matcher.
"""

from typing import Optional


class TemplateError(Exception):
    """Base exception for template loading and matching errors."""

    def __init__(
        self,
        message: str,
        component: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        self.message = message
        self.component = component
        self.original_error = original_error
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        msg = self.message
        if self.component:
            msg += f" (component: {self.component})"
        if self.original_error:
            msg += f" [original: {type(self.original_error).__name__}: {self.original_error}]"
        return msg


class DeserializationError(TemplateError):
    """Template document is structurally malformed."""
    pass


class HashDecodeError(TemplateError):
    """Fingerprint string is not valid hexadecimal."""
    pass


class DistanceComputationError(TemplateError):
    """Two hashes cannot be compared (different algorithm or size)."""
    pass


class CropOutOfBoundsError(TemplateError):
    """Crop rectangle does not fit inside the image."""
    pass
