class ImagingError(Exception):
    """Base exception for image derivative errors."""


class DecodeError(ImagingError):
    """Raised when an uploaded buffer cannot be decoded as an image."""
