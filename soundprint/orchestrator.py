"""
Pipeline Orchestrator
=====================

Fingerprint generation with parallel per-image work.

Phases:
1. Validate and copy the input samples (the caller's buffer is never mutated)
2. Normalize amplitude if configured
3. Build the ordered spectral image sequence (sequential)
4. Fan images out over a thread pool: decompose + encode + drop silence

Each worker owns one scratch buffer for the whole call and its own result
list; lists are merged at the end. Output order is undefined, callers
needing chronological order sort by ``sequence_number``.

A failure in any worker aborts the remaining work and no partial result
is returned.
"""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import List, Optional

import numpy as np
from tqdm import tqdm

from .audio import AudioSamples, AudioService, LibrosaAudioService
from .config import PipelineConfig, DEFAULT_CONFIG
from .encoding import EncoderScratch, Fingerprint, SignatureEncoder, is_silence
from .errors import ConfigurationError, NumericalError, WorkerFailure
from .preprocessing import AudioSamplesNormalizer, validate_samples
from .spectrum import SpectralImage, SpectrogramBuilder
from .wavelets import HaarWaveletDecomposition

logger = logging.getLogger(__name__)


class FingerprintPipeline:
    """
    Create fingerprints from decoded mono audio.

    Usage:
        pipeline = FingerprintPipeline(config)
        fingerprints = pipeline.create_fingerprints(audio_samples)
    """

    def __init__(self, config: PipelineConfig = None,
                 normalizer: AudioSamplesNormalizer = None,
                 spectrogram_builder: SpectrogramBuilder = None,
                 wavelet_decomposition: HaarWaveletDecomposition = None,
                 encoder: SignatureEncoder = None):
        """
        Initialize pipeline with explicit collaborators.

        Args:
            config: PipelineConfig instance (uses DEFAULT if None)
            normalizer: Amplitude normalizer (built from config if None)
            spectrogram_builder: Spectrogram builder (built from config if None)
            wavelet_decomposition: Wavelet transform (Haar if None)
            encoder: Signature encoder (default if None)
        """
        self.config = config or DEFAULT_CONFIG
        fingerprint_config = self.config.fingerprint

        self.normalizer = normalizer or AudioSamplesNormalizer(fingerprint_config.NORMALIZATION_METHOD)
        self.spectrogram_builder = spectrogram_builder or SpectrogramBuilder(fingerprint_config.spectrogram)
        self.wavelet_decomposition = wavelet_decomposition or HaarWaveletDecomposition()
        self.encoder = encoder or SignatureEncoder()

        logger.info(
            f"FingerprintPipeline initialized (config {self.config.config_hash}, "
            f"workers={self.config.n_workers})"
        )

    def create_spectral_images(self, audio: AudioSamples) -> List[SpectralImage]:
        """
        Validate, normalize and build the ordered spectral image sequence.

        Args:
            audio: Mono AudioSamples at the configured sample rate

        Returns:
            List of SpectralImage ordered by sequence_number
        """
        fingerprint_config = self.config.fingerprint
        validate_samples(audio, fingerprint_config)

        samples = np.array(audio.samples, dtype=np.float32, copy=True)
        if fingerprint_config.NORMALIZE_SIGNAL:
            self.normalizer.normalize_in_place(samples)

        return self.spectrogram_builder.build(samples)

    def create_fingerprints(self, audio: AudioSamples,
                            n_workers: int = None) -> List[Fingerprint]:
        """
        Create the non-silent fingerprints of a track.

        Args:
            audio: Mono AudioSamples at the configured sample rate
            n_workers: Number of parallel workers (None = use config)

        Returns:
            Fingerprints in no particular order

        Raises:
            ConfigurationError: invalid worker count
            InvalidAudioError: multi-channel input or wrong sample rate
            NumericalError: non-finite values in any stage
            WorkerFailure: any other worker failure
        """
        start_time = time.time()

        n_workers = n_workers if n_workers is not None else self.config.n_workers
        if n_workers < 1:
            raise ConfigurationError(f"n_workers must be >= 1, got {n_workers}")

        images = self.create_spectral_images(audio)
        fingerprints = self._process_parallel(images, n_workers)

        elapsed = time.time() - start_time
        logger.info(
            f"Created {len(fingerprints)} fingerprints from {len(images)} spectral images "
            f"({len(images) - len(fingerprints)} silent) in {elapsed:.2f}s"
        )
        if images and not fingerprints:
            logger.warning(f"All {len(images)} spectral images were silent for {audio.source}")

        return fingerprints

    def fingerprint_image(self, spectral_image: SpectralImage,
                          scratch: EncoderScratch) -> Optional[Fingerprint]:
        """
        Decompose and encode one spectral image.

        The image is consumed: its buffer holds wavelet coefficients afterwards.

        Returns:
            Fingerprint, or None if the signature is silent
        """
        self.wavelet_decomposition.decompose_image_in_place(spectral_image.image)
        signature = self.encoder.encode(spectral_image.image, self.config.fingerprint.TOP_WAVELETS, scratch)

        if is_silence(signature):
            logger.debug(f"Dropping silent image #{spectral_image.sequence_number}")
            return None

        return Fingerprint(
            signature=signature,
            starts_at=spectral_image.starts_at,
            sequence_number=spectral_image.sequence_number,
        )

    def _process_partition(self, images: List[SpectralImage],
                           abort: threading.Event) -> List[Fingerprint]:
        """
        Worker body: one scratch buffer for all images of the partition.
        """
        scratch = EncoderScratch(self.config.fingerprint.signature_length)
        results = []

        for spectral_image in images:
            if abort.is_set():
                break
            try:
                fingerprint = self.fingerprint_image(spectral_image, scratch)
            except NumericalError as e:
                raise NumericalError(e.stage, e.detail, spectral_image.sequence_number) from e
            except Exception as e:
                raise WorkerFailure(spectral_image.sequence_number, str(e)) from e

            if fingerprint is not None:
                results.append(fingerprint)

        return results

    def _process_parallel(self, images: List[SpectralImage],
                          n_workers: int) -> List[Fingerprint]:
        """
        Statically partition images over a thread pool and merge the results.
        """
        if not images:
            return []

        # Round-robin partitions, each owned by exactly one worker
        partitions = [images[i::n_workers] for i in range(min(n_workers, len(images)))]
        abort = threading.Event()

        if len(partitions) == 1:
            return self._process_partition(partitions[0], abort)

        fingerprints = []
        with ThreadPoolExecutor(max_workers=len(partitions)) as executor:
            futures = [executor.submit(self._process_partition, partition, abort) for partition in partitions]

            iterator = as_completed(futures)
            if self.config.show_progress:
                iterator = tqdm(iterator, total=len(futures), desc="Fingerprinting")

            for future in iterator:
                try:
                    fingerprints.extend(future.result())
                except Exception as e:
                    abort.set()
                    for pending in futures:
                        pending.cancel()
                    logger.error(f"Fingerprinting aborted: {e}")
                    raise

        return fingerprints


def setup_logging(verbose: bool = False, log_file: str = None):
    """Configure logging for the pipeline."""
    level = logging.DEBUG if verbose else logging.INFO

    handlers = [logging.StreamHandler()]
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=level,
        format='%(asctime)s | %(levelname)-8s | %(name)s | %(message)s',
        handlers=handlers
    )

    # Reduce noise from third-party libraries
    logging.getLogger('matplotlib').setLevel(logging.WARNING)
    logging.getLogger('numba').setLevel(logging.WARNING)


def fingerprint_file(path: str,
                     config: PipelineConfig = None,
                     audio_service: AudioService = None,
                     n_workers: int = None,
                     seconds: float = None,
                     start_at: float = 0.0) -> List[Fingerprint]:
    """
    Convenience function: decode a file and fingerprint it.

    Args:
        path: Audio file path
        config: PipelineConfig (uses DEFAULT if None)
        audio_service: Decode provider (librosa if None)
        n_workers: Number of parallel workers (None = use config)
        seconds: Decode at most this many seconds
        start_at: Decode offset in seconds

    Returns:
        Fingerprints in no particular order
    """
    config = config or DEFAULT_CONFIG
    audio_service = audio_service or LibrosaAudioService()

    audio = audio_service.read_mono_samples(
        path,
        config.fingerprint.spectrogram.SAMPLE_RATE,
        seconds=seconds,
        start_at=start_at,
    )

    pipeline = FingerprintPipeline(config)
    return pipeline.create_fingerprints(audio, n_workers=n_workers)
