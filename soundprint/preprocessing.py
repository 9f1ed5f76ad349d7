"""
Audio Preprocessing Module
==========================

Deterministic preprocessing applied before spectral analysis.

Features:
- Input validation (mono, expected sample rate, finite values)
- RMS-based amplitude normalization with hard limiting
- Peak normalization

All operations work in place on float buffers and are pure functions of
the sample values.
"""

import logging

import numpy as np

from .audio import AudioSamples
from .config import FingerprintConfig, DEFAULT_CONFIG, NORMALIZATION_METHODS
from .errors import ConfigurationError, InvalidAudioError, NumericalError

logger = logging.getLogger(__name__)

# RMS normalization bounds (RMS is scaled by 10 before clamping)
MIN_RMS = 0.1
MAX_RMS = 3.0


class AudioSamplesNormalizer:
    """
    Amplitude normalizer.

    ``rms`` divides by ten times the RMS level (clamped to
    [MIN_RMS, MAX_RMS]) then hard clips to [-1, 1]. ``peak`` scales to unit
    peak amplitude.
    """

    def __init__(self, method: str = "rms"):
        if method not in NORMALIZATION_METHODS:
            raise ConfigurationError(f"Unknown normalization method {method!r}")
        self.method = method
        logger.info(f"AudioSamplesNormalizer initialized (method={method})")

    def compute_rms(self, samples: np.ndarray) -> float:
        if len(samples) == 0:
            return 0.0
        return float(np.sqrt(np.mean(np.square(samples, dtype=np.float64))))

    def normalize_in_place(self, samples: np.ndarray) -> None:
        """
        Normalize a float sample buffer in place.

        Args:
            samples: 1-D float array, modified in place
        """
        if len(samples) == 0:
            return

        if self.method == "peak":
            self._normalize_peak(samples)
        else:
            self._normalize_rms(samples)

    def _normalize_rms(self, samples: np.ndarray) -> None:
        rms = self.compute_rms(samples) * 10
        gain_divisor = min(max(rms, MIN_RMS), MAX_RMS)

        samples /= samples.dtype.type(gain_divisor)
        np.clip(samples, -1.0, 1.0, out=samples)
        logger.debug(f"RMS normalization: rms*10={rms:.4f}, divisor={gain_divisor:.4f}")

    def _normalize_peak(self, samples: np.ndarray) -> None:
        peak = float(np.max(np.abs(samples)))
        if peak > 0:
            samples /= samples.dtype.type(peak)
            logger.debug(f"Peak normalization: peak={peak:.4f}")


def validate_samples(audio: AudioSamples, config: FingerprintConfig = None) -> None:
    """
    Validate decoded audio before fingerprinting.

    Args:
        audio: AudioSamples to check
        config: FingerprintConfig (uses DEFAULT if None)

    Raises:
        InvalidAudioError: multi-channel buffer or wrong sample rate
        NumericalError: NaN or infinite samples
    """
    config = config or DEFAULT_CONFIG.fingerprint
    expected_sr = config.spectrogram.SAMPLE_RATE

    samples = np.asarray(audio.samples)
    if samples.ndim != 1:
        raise InvalidAudioError(f"Expected mono samples, got array of shape {samples.shape}")

    if audio.sample_rate != expected_sr:
        raise InvalidAudioError(f"Wrong sample rate: {audio.sample_rate}Hz != {expected_sr}Hz")

    if not np.all(np.isfinite(samples)):
        raise NumericalError("input", "samples contain NaN or infinite values")
