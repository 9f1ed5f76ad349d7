"""
Fingerprinting Errors
=====================

Exception hierarchy for the fingerprinting pipeline.

Invariants:
- Configuration errors are raised before any processing begins
- Numeric and worker errors are fatal to the whole invocation
- No partial fingerprint set ever escapes a failed call
"""

from typing import Optional


class FingerprintingError(Exception):
    """Base class for all fingerprinting failures."""


class ConfigurationError(FingerprintingError, ValueError):
    """Raised when a configuration value is out of range or inconsistent."""


class InvalidAudioError(FingerprintingError, ValueError):
    """Raised when input samples do not match what the configuration expects."""


class NumericalError(FingerprintingError, ArithmeticError):
    """
    Raised when a stage produces non-finite values.

    Dropping a single frame would break sequence number continuity,
    so the whole invocation fails instead.
    """

    def __init__(self, stage: str, message: str, sequence_number: Optional[int] = None):
        self.stage = stage
        self.detail = message
        self.sequence_number = sequence_number
        where = f" (image #{sequence_number})" if sequence_number is not None else ""
        super().__init__(f"{stage}: {message}{where}")


class WorkerFailure(FingerprintingError):
    """
    Raised when a parallel worker fails while processing a spectral image.

    The original exception is chained as ``__cause__``.
    """

    def __init__(self, sequence_number: Optional[int], message: str):
        self.sequence_number = sequence_number
        super().__init__(f"Worker failed on image #{sequence_number}: {message}")
