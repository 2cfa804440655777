"""Custom exception classes for the QR capture scanner."""

from __future__ import annotations

from typing import Optional


class QrScannerError(Exception):
    """Base exception for all scanner errors."""

    pass


class CaptureError(QrScannerError):
    """Base exception for capture-related errors."""

    def __init__(self, message: str, device_id: Optional[str] = None):
        self.device_id = device_id
        super().__init__(message)


class UnsupportedPlatformError(CaptureError):
    """Raised when no usable capture API exists on this platform."""

    pass


class AcquisitionDeniedError(CaptureError):
    """Raised when the capture stream cannot be acquired (denied or no device)."""

    pass


class TransientCaptureError(CaptureError):
    """Raised when a single tick fails to paint a frame."""

    pass


class EnumerationError(CaptureError):
    """Raised when listing capture devices fails."""

    pass


class DecodeError(QrScannerError):
    """Raised when the decode oracle fails on a raster."""

    pass


class ConfigError(QrScannerError):
    """Base exception for configuration errors."""

    pass


class InvalidConfigError(ConfigError):
    """Raised when configuration file is invalid or corrupted."""

    pass


class ConfigValidationError(ConfigError):
    """Raised when configuration fails schema validation."""

    def __init__(self, message: str, validation_errors: Optional[list] = None):
        self.validation_errors = validation_errors or []
        super().__init__(message)
