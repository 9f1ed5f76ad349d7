"""
soundprint Test Configuration

Provides deterministic synthetic audio and a small fingerprint configuration.
"""

from dataclasses import replace

import matplotlib
matplotlib.use("Agg")

import numpy as np
import pytest

from soundprint.audio import AudioSamples
from soundprint.config import FingerprintConfig, PipelineConfig, SpectrogramConfig, StaticStride

SAMPLE_RATE = 5512

# 16 frames x 32 hop = 512 samples per image, 16 x 8 = 128 bit signatures
SMALL_SPECTROGRAM = SpectrogramConfig(
    SAMPLE_RATE=SAMPLE_RATE,
    WDFT_SIZE=256,
    OVERLAP=32,
    IMAGE_LENGTH=16,
    LOG_BINS=8,
    STRIDE=StaticStride(0),
)
SAMPLES_PER_IMAGE = 512
SIGNATURE_LENGTH = 128


def make_config(top_wavelets: int = 10,
                stride=None,
                normalize: bool = False,
                n_workers: int = 4) -> PipelineConfig:
    """Small, fast configuration for unit tests."""
    spectrogram = SMALL_SPECTROGRAM
    if stride is not None:
        spectrogram = replace(SMALL_SPECTROGRAM, STRIDE=stride)

    return PipelineConfig(
        fingerprint=FingerprintConfig(
            spectrogram=spectrogram,
            TOP_WAVELETS=top_wavelets,
            NORMALIZE_SIGNAL=normalize,
        ),
        n_workers=n_workers,
    )


def make_signal(num_samples: int, sr: int = SAMPLE_RATE, seed: int = 7) -> np.ndarray:
    """
    Deterministic music-like test signal: stepped tones, a chirp and noise.
    """
    rng = np.random.default_rng(seed)
    t = np.arange(num_samples) / sr

    # Tone frequency changes every 0.25s
    steps = (t // 0.25).astype(int)
    tone_freqs = 400 + 150 * (steps % 9)
    tones = 0.3 * np.sin(2 * np.pi * tone_freqs * t)

    chirp = 0.2 * np.sin(2 * np.pi * (300 * t + 120 * t ** 2))
    noise = 0.05 * rng.standard_normal(num_samples)

    return (tones + chirp + noise).astype(np.float32)


def make_noise(num_samples: int, seed: int = 11) -> np.ndarray:
    rng = np.random.default_rng(seed)
    return (0.2 * rng.standard_normal(num_samples)).astype(np.float32)


@pytest.fixture
def small_config() -> PipelineConfig:
    return make_config()


@pytest.fixture
def music_audio() -> AudioSamples:
    """Four seconds of deterministic test signal at 5512 Hz."""
    return AudioSamples(samples=make_signal(4 * SAMPLE_RATE), sample_rate=SAMPLE_RATE, source="music")


@pytest.fixture
def noise_audio() -> AudioSamples:
    """Seeded white noise; no spectral image of it is silent."""
    return AudioSamples(samples=make_noise(SAMPLES_PER_IMAGE * 7 + 100), sample_rate=SAMPLE_RATE, source="noise")
