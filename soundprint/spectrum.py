"""
Spectrogram Module
==================

Log-frequency spectrogram construction from framed audio.

Features:
- Hann-windowed STFT frames (librosa) advancing by OVERLAP samples
- Power spectrum folded into LOG_BINS logarithmically spaced bands
- Consecutive frames grouped into spectral images (time x log-frequency)
- Stride policy applied between images

This stage is sequential: the full ordered image sequence is produced
before any parallel work starts. Identical input and configuration always
yield bit-identical images.
"""

import logging
import math
from dataclasses import dataclass
from typing import List

import librosa
import numpy as np

from .config import SpectrogramConfig, DEFAULT_CONFIG
from .errors import ConfigurationError, NumericalError

logger = logging.getLogger(__name__)


@dataclass
class SpectralImage:
    """
    IMAGE_LENGTH x LOG_BINS magnitude matrix for one run of frames.

    ``starts_at`` is the sample offset of the first frame.
    """
    image: np.ndarray
    starts_at: int
    sequence_number: int

    @property
    def rows(self) -> int:
        return self.image.shape[0]

    @property
    def cols(self) -> int:
        return self.image.shape[1]

    def starts_at_seconds(self, sample_rate: int) -> float:
        return self.starts_at / sample_rate


class SpectrogramBuilder:
    """
    Build ordered spectral images from mono samples.

    Usage:
        builder = SpectrogramBuilder(config.fingerprint.spectrogram)
        images = builder.build(samples)
    """

    def __init__(self, config: SpectrogramConfig = None):
        """
        Initialize builder and precompute log-frequency band edges.

        Args:
            config: SpectrogramConfig instance (uses DEFAULT if None)

        Raises:
            ConfigurationError: if two band edges fall on the same FFT bin
        """
        self.config = config or DEFAULT_CONFIG.fingerprint.spectrogram
        self.edges = self.log_frequency_edges()

        if np.any(np.diff(self.edges) <= 0):
            raise ConfigurationError(
                f"Log-frequency bands collapse: {self.config.LOG_BINS} bins between "
                f"{self.config.MIN_FREQUENCY}Hz and {self.config.MAX_FREQUENCY}Hz "
                f"need a larger WDFT_SIZE (edges={self.edges.tolist()})"
            )

        self.band_widths = np.diff(self.edges).astype(np.float32)
        logger.info(
            f"SpectrogramBuilder initialized: {self.config.IMAGE_LENGTH}x{self.config.LOG_BINS} images, "
            f"WDFT={self.config.WDFT_SIZE}, overlap={self.config.OVERLAP}, "
            f"bins {self.edges[0]}..{self.edges[-1]}"
        )

    def frequency_to_index(self, frequency: float) -> int:
        """Map a frequency in Hz to its FFT bin index."""
        nyquist = self.config.SAMPLE_RATE / 2
        return int(round(frequency / nyquist * (self.config.WDFT_SIZE / 2)))

    def log_frequency_edges(self) -> np.ndarray:
        """
        FFT bin indices bounding each log band.

        Returns:
            Array of LOG_BINS + 1 bin indices; band i spans [edges[i], edges[i+1])
        """
        cfg = self.config
        log_min = math.log(cfg.MIN_FREQUENCY, cfg.LOG_BASE)
        log_max = math.log(cfg.MAX_FREQUENCY, cfg.LOG_BASE)
        delta = (log_max - log_min) / cfg.LOG_BINS

        return np.array(
            [self.frequency_to_index(cfg.LOG_BASE ** (log_min + delta * i)) for i in range(cfg.LOG_BINS + 1)],
            dtype=np.intp,
        )

    def log_spectrum(self, segment: np.ndarray) -> np.ndarray:
        """
        Compute the log-frequency power spectrogram of one segment.

        Args:
            segment: Samples covering exactly the frames of one image

        Returns:
            float32 array of shape (frames, LOG_BINS)
        """
        cfg = self.config
        stft = librosa.stft(
            segment,
            n_fft=cfg.WDFT_SIZE,
            hop_length=cfg.OVERLAP,
            window="hann",
            center=False,
        )
        power = np.square(np.abs(stft) / cfg.WDFT_SIZE)

        # Sum each band then average by its width
        banded = np.add.reduceat(power[:self.edges[-1]], self.edges[:-1], axis=0)
        banded /= self.band_widths[:, np.newaxis]

        return np.ascontiguousarray(banded.T, dtype=np.float32)

    def build(self, samples: np.ndarray) -> List[SpectralImage]:
        """
        Cut the sample buffer into ordered spectral images.

        The buffer is padded with WDFT_SIZE - OVERLAP trailing zeros so that
        every sample can start a frame; with a zero stride this yields
        floor(len(samples) / (IMAGE_LENGTH * OVERLAP)) images.

        Args:
            samples: 1-D float samples at SAMPLE_RATE

        Returns:
            List of SpectralImage in increasing sequence_number / starts_at

        Raises:
            NumericalError: if an image contains non-finite values
        """
        cfg = self.config
        samples = np.asarray(samples, dtype=np.float32)
        if not np.all(np.isfinite(samples)):
            raise NumericalError("spectrogram", "input samples contain NaN or infinite values")

        pad =max(0, cfg.WDFT_SIZE - cfg.OVERLAP)
        padded = np.concatenate([samples, np.zeros(pad, dtype=np.float32)])

        span = (cfg.IMAGE_LENGTH - 1) * cfg.OVERLAP + cfg.WDFT_SIZE
        strides = cfg.STRIDE.advances()
        start = cfg.STRIDE.first_stride
        images = []

        while start + span <= len(padded):
            sequence_number = len(images)
            image = self.log_spectrum(padded[start:start + span])

            if not np.all(np.isfinite(image)):
                raise NumericalError("spectrogram", "non-finite magnitude", sequence_number)

            images.append(SpectralImage(image=image, starts_at=start, sequence_number=sequence_number))
            start += cfg.samples_per_image + next(strides)

        if not images:
            logger.warning(
                f"No spectral images: {len(samples)} samples < {cfg.samples_per_image} required per image"
            )
        else:
            logger.debug(f"Built {len(images)} spectral images from {len(samples)} samples")

        return images
