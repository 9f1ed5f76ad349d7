"""
soundprint - Audio Fingerprint Generation
=========================================

Deterministic, parallel generation of compact binary fingerprints from
decoded mono audio, for content-based audio identification.

Modules:
- config: Frozen fingerprinting parameters, strides and runtime settings
- audio: AudioSamples and decode providers (librosa, soundfile)
- preprocessing: Input validation and amplitude normalization
- spectrum: Log-frequency spectrogram and spectral images
- wavelets: In-place Haar decomposition
- encoding: Top-wavelet signature encoding and Fingerprint
- orchestrator: Parallel fingerprint pipeline
- storage: Track/fingerprint model service
- reporting: Fingerprint summaries and plots
"""

from .audio import AudioSamples, LibrosaAudioService, SoundfileAudioService
from .config import (
    DEFAULT_CONFIG, FingerprintConfig, PipelineConfig,
    RandomStride, SpectrogramConfig, StaticStride,
)
from .encoding import Fingerprint
from .errors import (
    ConfigurationError, FingerprintingError, InvalidAudioError,
    NumericalError, WorkerFailure,
)
from .orchestrator import FingerprintPipeline, fingerprint_file

__version__ = "1.0.0"
