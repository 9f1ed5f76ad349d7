"""
Audio Decode Providers
======================

Decoded-audio container and the providers that produce it.

Library Stack:
    - librosa: decoding + resampling in one call
    - soundfile: WAV/FLAC I/O (libsndfile-backed)
    - scipy.signal.resample_poly: deterministic integer-factor resampling

The fingerprinting core never opens files itself; it consumes AudioSamples
produced here (or by any other provider honouring the same contract).
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from math import gcd
from pathlib import Path
from typing import Optional

import librosa
import numpy as np
import soundfile as sf
from scipy.signal import resample_poly

logger = logging.getLogger(__name__)


@dataclass
class AudioSamples:
    """Mono PCM samples (float32) at a known sample rate."""
    samples: np.ndarray
    sample_rate: int
    source: Optional[str] = None

    def __len__(self) -> int:
        return len(self.samples)

    @property
    def duration(self) -> float:
        """Duration in seconds."""
        return len(self.samples) / self.sample_rate


class AudioService(ABC):
    """
    Abstract decode provider.

    Implementations return mono samples resampled to the requested rate.
    """

    @abstractmethod
    def read_mono_samples(self, path: str,
                          sample_rate: int,
                          seconds: Optional[float] = None,
                          start_at: float = 0.0) -> AudioSamples:
        """
        Decode an audio file to mono at ``sample_rate``.

        Args:
            path: Path to the audio file
            sample_rate: Target sample rate
            seconds: Read at most this many seconds (None = whole file)
            start_at: Offset in seconds to start reading from

        Returns:
            AudioSamples
        """
        pass

    @property
    @abstractmethod
    def name(self) -> str:
        pass


class LibrosaAudioService(AudioService):
    """Decode and resample with ``librosa.load``."""

    @property
    def name(self) -> str:
        return "librosa"

    def read_mono_samples(self, path: str,
                          sample_rate: int,
                          seconds: Optional[float] = None,
                          start_at: float = 0.0) -> AudioSamples:
        try:
            audio, sr = librosa.load(
                path,
                sr=sample_rate,
                mono=True,
                offset=start_at,
                duration=seconds,
            )
        except Exception as e:
            logger.error(f"Failed to load {path}: {e}")
            raise

        logger.debug(f"Loaded {path}: {len(audio)/sr:.2f}s @ {sr}Hz via librosa")
        return AudioSamples(samples=audio.astype(np.float32), sample_rate=sr, source=str(path))


class SoundfileAudioService(AudioService):
    """
    Decode with ``soundfile`` and resample with ``resample_poly``.

    Integer up/down factors keep the resampling deterministic.
    """

    @property
    def name(self) -> str:
        return "soundfile"

    def read_mono_samples(self, path: str,
                          sample_rate: int,
                          seconds: Optional[float] = None,
                          start_at: float = 0.0) -> AudioSamples:
        try:
            info = sf.info(path)
            start = int(round(start_at * info.samplerate))
            stop = None if seconds is None else start + int(round(seconds * info.samplerate))
            audio, sr = sf.read(path, dtype="float32", always_2d=False, start=start, stop=stop)
        except Exception as e:
            logger.error(f"Failed to load {path}: {e}")
            raise

        # Mono downmix by arithmetic mean
        if audio.ndim > 1:
            audio = np.mean(audio, axis=1)

        if sr != sample_rate:
            g = gcd(sr, sample_rate)
            audio = resample_poly(audio, sample_rate // g, sr // g)

        logger.debug(f"Loaded {path}: {len(audio)/sample_rate:.2f}s @ {sample_rate}Hz via soundfile")
        return AudioSamples(samples=audio.astype(np.float32), sample_rate=sample_rate, source=str(path))


def write_mono_wav(path: str, samples: np.ndarray, sample_rate: int) -> None:
    """
    Write mono samples as PCM 16-bit WAV.

    Hard clips to [-1, 1] before writing; no dithering.
    """
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    clipped = np.clip(samples, -1.0, 1.0)
    sf.write(path, clipped, sample_rate, subtype="PCM_16")
    logger.debug(f"Saved audio to {path}")
