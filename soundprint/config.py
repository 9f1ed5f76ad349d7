"""
Pipeline Configuration Module
=============================

FROZEN fingerprinting parameters and runtime settings.
DO NOT MODIFY defaults without version bump and documentation.

All settings are deterministic for reproducibility: the same samples and
the same configuration always produce the same fingerprints.
"""

import hashlib
import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterator

import numpy as np

from .errors import ConfigurationError


def _require(condition: bool, message: str):
    if not condition:
        raise ConfigurationError(message)


def _is_power_of_two(value: int) -> bool:
    return value > 0 and (value & (value - 1)) == 0


# ============================================================================
# STRIDES
# ============================================================================

class Stride(ABC):
    """
    Policy controlling how far the analysis advances between spectral images.

    ``first_stride`` samples are skipped before the first image. After each
    image, the next value from ``advances()`` is skipped before the next one.
    Strides are immutable; every call to ``advances()`` starts over.
    """

    first_stride: int

    @abstractmethod
    def advances(self) -> Iterator[int]:
        """Yield the number of samples skipped after each image."""

    @abstractmethod
    def to_dict(self) -> Dict:
        pass

    @staticmethod
    def from_dict(data: Dict) -> "Stride":
        kind = data.get("type")
        if kind == "static":
            return StaticStride(data["next_stride"], data.get("first_stride", 0))
        if kind == "random":
            return RandomStride(
                data["min_stride"],
                data["max_stride"],
                data.get("first_stride", 0),
                data.get("seed", 0),
            )
        raise ConfigurationError(f"Unknown stride type: {kind!r}")


@dataclass(frozen=True)
class StaticStride(Stride):
    """Fixed step between images. ``StaticStride(0)`` gives contiguous images."""
    next_stride: int
    first_stride: int = 0

    def __post_init__(self):
        _require(self.next_stride >= 0, f"next_stride must be >= 0, got {self.next_stride}")
        _require(self.first_stride >= 0, f"first_stride must be >= 0, got {self.first_stride}")

    def advances(self) -> Iterator[int]:
        while True:
            yield self.next_stride

    def to_dict(self) -> Dict:
        return {
            "type": "static",
            "next_stride": self.next_stride,
            "first_stride": self.first_stride,
        }


@dataclass(frozen=True)
class RandomStride(Stride):
    """
    Fixed step ``min_stride`` plus jitter bounded by ``max_stride``.

    Jitter is drawn from a generator seeded with ``seed`` and recreated on
    every ``advances()`` call, so two runs over the same input agree.
    """
    min_stride: int
    max_stride: int
    first_stride: int = 0
    seed: int = 0

    def __post_init__(self):
        _require(self.min_stride >= 0, f"min_stride must be >= 0, got {self.min_stride}")
        _require(
            self.max_stride >= self.min_stride,
            f"max_stride ({self.max_stride}) must be >= min_stride ({self.min_stride})",
        )
        _require(self.first_stride >= 0, f"first_stride must be >= 0, got {self.first_stride}")

    def advances(self) -> Iterator[int]:
        rng = np.random.default_rng(self.seed)
        while True:
            yield int(rng.integers(self.min_stride, self.max_stride, endpoint=True))

    def to_dict(self) -> Dict:
        return {
            "type": "random",
            "min_stride": self.min_stride,
            "max_stride": self.max_stride,
            "first_stride": self.first_stride,
            "seed": self.seed,
        }


# ============================================================================
# FROZEN FINGERPRINTING PARAMETERS - DO NOT MODIFY
# ============================================================================

@dataclass(frozen=True)
class SpectrogramConfig:
    """
    Frozen spectrogram configuration.

    One spectral image spans IMAGE_LENGTH frames advancing by OVERLAP
    samples, so it covers IMAGE_LENGTH * OVERLAP samples of audio.
    """
    # Audio is expected mono at this rate (decode providers resample to it)
    SAMPLE_RATE: int = 5512

    # Framing
    WDFT_SIZE: int = 2048                 # Transform window, samples
    OVERLAP: int = 64                     # Hop between frames, samples

    # Log-frequency bucketing
    MIN_FREQUENCY: float = 318.0          # Hz
    MAX_FREQUENCY: float = 2000.0         # Hz
    LOG_BINS: int = 32                    # Columns of a spectral image
    LOG_BASE: float = 2.0

    # Spectral images
    IMAGE_LENGTH: int = 128               # Rows (frames) of a spectral image
    STRIDE: Stride = StaticStride(5115)   # Samples skipped between images

    # Version tracking
    CONFIG_VERSION: str = "1.0.0"

    def __post_init__(self):
        _require(self.SAMPLE_RATE > 0, f"SAMPLE_RATE must be positive, got {self.SAMPLE_RATE}")
        _require(self.WDFT_SIZE > 0, f"WDFT_SIZE must be positive, got {self.WDFT_SIZE}")
        _require(self.OVERLAP > 0, f"OVERLAP must be positive, got {self.OVERLAP}")
        _require(self.LOG_BINS > 0, f"LOG_BINS must be positive, got {self.LOG_BINS}")
        _require(self.IMAGE_LENGTH > 0, f"IMAGE_LENGTH must be positive, got {self.IMAGE_LENGTH}")

        # Standard Haar decomposition halves each axis down to one value
        _require(_is_power_of_two(self.LOG_BINS), f"LOG_BINS must be a power of two, got {self.LOG_BINS}")
        _require(
            _is_power_of_two(self.IMAGE_LENGTH),
            f"IMAGE_LENGTH must be a power of two, got {self.IMAGE_LENGTH}",
        )

        _require(self.MIN_FREQUENCY > 0, f"MIN_FREQUENCY must be positive, got {self.MIN_FREQUENCY}")
        _require(
            self.MIN_FREQUENCY < self.MAX_FREQUENCY,
            f"Invalid frequency range: {self.MIN_FREQUENCY}Hz >= {self.MAX_FREQUENCY}Hz",
        )
        _require(
            self.MAX_FREQUENCY <= self.SAMPLE_RATE / 2,
            f"MAX_FREQUENCY {self.MAX_FREQUENCY}Hz exceeds Nyquist ({self.SAMPLE_RATE / 2}Hz)",
        )
        _require(self.LOG_BASE > 1, f"LOG_BASE must be > 1, got {self.LOG_BASE}")
        _require(isinstance(self.STRIDE, Stride), f"STRIDE must be a Stride, got {type(self.STRIDE).__name__}")

    @property
    def samples_per_image(self) -> int:
        return self.IMAGE_LENGTH * self.OVERLAP

    def to_dict(self) -> Dict:
        data = {k: v for k, v in self.__dict__.items() if k != "STRIDE"}
        data["STRIDE"] = self.STRIDE.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: Dict) -> "SpectrogramConfig":
        values = dict(data)
        if "STRIDE" in values:
            values["STRIDE"] = Stride.from_dict(values["STRIDE"])
        return cls(**values)


NORMALIZATION_METHODS = ("rms", "peak")


@dataclass(frozen=True)
class FingerprintConfig:
    """
    Frozen fingerprint configuration.

    Shared read-only across all parallel workers.
    """
    spectrogram: SpectrogramConfig = field(default_factory=SpectrogramConfig)

    # Positive and negative coefficients kept per image
    TOP_WAVELETS: int = 200

    # Amplitude normalization before analysis
    NORMALIZE_SIGNAL: bool = False
    NORMALIZATION_METHOD: str = "rms"

    def __post_init__(self):
        _require(self.TOP_WAVELETS > 0, f"TOP_WAVELETS must be positive, got {self.TOP_WAVELETS}")
        _require(
            self.NORMALIZATION_METHOD in NORMALIZATION_METHODS,
            f"Unknown normalization method {self.NORMALIZATION_METHOD!r}, "
            f"expected one of {NORMALIZATION_METHODS}",
        )

    @property
    def signature_length(self) -> int:
        return self.spectrogram.IMAGE_LENGTH * self.spectrogram.LOG_BINS

    def to_dict(self) -> Dict:
        return {
            "spectrogram": self.spectrogram.to_dict(),
            "TOP_WAVELETS": self.TOP_WAVELETS,
            "NORMALIZE_SIGNAL": self.NORMALIZE_SIGNAL,
            "NORMALIZATION_METHOD": self.NORMALIZATION_METHOD,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "FingerprintConfig":
        values = dict(data)
        values["spectrogram"] = SpectrogramConfig.from_dict(values.get("spectrogram", {}))
        return cls(**values)


@dataclass
class PipelineConfig:
    """
    Main pipeline configuration.

    Combines the frozen fingerprint config with runtime settings.
    """
    fingerprint: FingerprintConfig = field(default_factory=FingerprintConfig)

    # Runtime settings (can be modified)
    n_workers: int = 4                    # Parallel workers
    show_progress: bool = False           # tqdm progress bar
    verbose: bool = False                 # Detailed logging

    def __post_init__(self):
        _require(self.n_workers >= 1, f"n_workers must be >= 1, got {self.n_workers}")
        self._created_at = datetime.now().isoformat()

    def _compute_hash(self) -> str:
        """Compute deterministic hash of frozen parameters"""
        config_str = json.dumps(self.fingerprint.to_dict(), sort_keys=True)
        return hashlib.sha256(config_str.encode()).hexdigest()[:16]

    @property
    def config_hash(self) -> str:
        return self._compute_hash()

    def to_dict(self) -> Dict:
        """Export configuration as dictionary"""
        return {
            "fingerprint": self.fingerprint.to_dict(),
            "runtime": {
                "n_workers": self.n_workers,
                "show_progress": self.show_progress,
                "verbose": self.verbose,
            },
            "meta": {
                "config_hash": self.config_hash,
                "created_at": self._created_at,
                "version": self.fingerprint.spectrogram.CONFIG_VERSION,
            },
        }

    def save(self, path: str):
        """Save configuration to JSON file"""
        with open(path, "w") as f:
            json.dump(self.to_dict(), f, indent=2)

    @classmethod
    def load(cls, path: str) -> "PipelineConfig":
        """Load configuration from JSON file"""
        with open(path, "r") as f:
            data = json.load(f)

        return cls(
            fingerprint=FingerprintConfig.from_dict(data["fingerprint"]),
            n_workers=data["runtime"]["n_workers"],
            show_progress=data["runtime"]["show_progress"],
            verbose=data["runtime"]["verbose"],
        )


# ============================================================================
# DEFAULT CONFIGURATION INSTANCE
# ============================================================================

DEFAULT_CONFIG = PipelineConfig()
