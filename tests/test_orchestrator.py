"""
soundprint Pipeline Tests

Coverage:
- Determinism across runs and worker counts
- Fixed-length and no-silence invariants
- Monotonic filtering (never more fingerprints than images)
- Window-count example with contiguous images
- Caller buffer is never mutated
- Fail-fast on worker and numeric failures
- Explicit collaborators
"""

import threading

import numpy as np
import pytest

from soundprint.audio import AudioSamples
from soundprint.config import RandomStride
from soundprint.errors import ConfigurationError, InvalidAudioError, NumericalError, WorkerFailure
from soundprint.orchestrator import FingerprintPipeline
from soundprint.preprocessing import AudioSamplesNormalizer
from soundprint.wavelets import HaarWaveletDecomposition
from tests.conftest import (
    SAMPLE_RATE,
    SAMPLES_PER_IMAGE,
    SIGNATURE_LENGTH,
    make_config,
    make_noise,
    make_signal,
)


def by_sequence(fingerprints):
    return sorted(fingerprints, key=lambda fp: fp.sequence_number)


def signatures(fingerprints):
    return [(fp.sequence_number, fp.starts_at, fp.to_bytes()) for fp in by_sequence(fingerprints)]


class ExplodingDecomposition(HaarWaveletDecomposition):
    """Fails on the n-th image it sees."""

    def __init__(self, fail_on_call: int):
        self.fail_on_call = fail_on_call
        self.calls = 0
        self._lock = threading.Lock()

    def decompose_image_in_place(self, image):
        with self._lock:
            self.calls += 1
            call = self.calls
        if call == self.fail_on_call:
            raise RuntimeError("decomposition exploded")
        super().decompose_image_in_place(image)


class PoisoningDecomposition(HaarWaveletDecomposition):
    """Injects a NaN before decomposing."""

    def decompose_image_in_place(self, image):
        image[0, 0] = np.nan
        super().decompose_image_in_place(image)


class CountingNormalizer(AudioSamplesNormalizer):

    def __init__(self):
        super().__init__("peak")
        self.calls = 0

    def normalize_in_place(self, samples):
        self.calls += 1
        super().normalize_in_place(samples)


class TestDeterminism:

    def test_repeated_runs_identical(self, music_audio, small_config):
        pipeline = FingerprintPipeline(small_config)
        first = pipeline.create_fingerprints(music_audio)
        second = pipeline.create_fingerprints(music_audio)
        assert signatures(first) == signatures(second)

    @pytest.mark.parametrize("n_workers", [2, 3, 8])
    def test_worker_count_does_not_matter(self, music_audio, n_workers):
        config = make_config(stride=RandomStride(0, 128, seed=3))
        sequential = FingerprintPipeline(config).create_fingerprints(music_audio, n_workers=1)
        parallel = FingerprintPipeline(config).create_fingerprints(music_audio, n_workers=n_workers)
        assert signatures(sequential) == signatures(parallel)

    def test_normalized_runs_identical(self, music_audio):
        """Normalization works on a copy, so repeated calls agree."""
        pipeline = FingerprintPipeline(make_config(normalize=True))
        first = pipeline.create_fingerprints(music_audio)
        second = pipeline.create_fingerprints(music_audio)
        assert signatures(first) == signatures(second)


class TestInvariants:

    @pytest.mark.parametrize("top", [1, 10, 50])
    def test_fixed_signature_length(self, music_audio, top):
        fingerprints = FingerprintPipeline(make_config(top_wavelets=top)).create_fingerprints(music_audio)
        assert fingerprints
        assert {len(fp.signature) for fp in fingerprints} == {SIGNATURE_LENGTH}

    def test_no_silent_fingerprints(self, music_audio, small_config):
        fingerprints = FingerprintPipeline(small_config).create_fingerprints(music_audio)
        assert all(fp.bits_set > 0 for fp in fingerprints)

    def test_never_more_fingerprints_than_images(self, music_audio, small_config):
        pipeline = FingerprintPipeline(small_config)
        images = pipeline.create_spectral_images(music_audio)
        fingerprints = pipeline.create_fingerprints(music_audio)

        assert len(fingerprints) <= len(images)
        assert len({fp.sequence_number for fp in fingerprints}) == len(fingerprints)

    def test_metadata_inherited_from_images(self, music_audio, small_config):
        pipeline = FingerprintPipeline(small_config)
        starts = {img.sequence_number: img.starts_at for img in pipeline.create_spectral_images(music_audio)}

        for fp in pipeline.create_fingerprints(music_audio):
            assert starts[fp.sequence_number] == fp.starts_at

    def test_silent_images_are_dropped(self, small_config):
        """Leading digital silence yields no fingerprints for the images it covers."""
        samples = np.concatenate([
            np.zeros(4 * SAMPLES_PER_IMAGE, dtype=np.float32),
            make_noise(4 * SAMPLES_PER_IMAGE),
        ])
        audio = AudioSamples(samples, SAMPLE_RATE)
        pipeline = FingerprintPipeline(small_config)

        fingerprints = pipeline.create_fingerprints(audio)

        # Images 0-2 end before the noise starts; image 3 overlaps it
        assert [fp.sequence_number for fp in by_sequence(fingerprints)] == [3, 4, 5, 6, 7]

    def test_all_silent_track(self, small_config):
        audio = AudioSamples(np.zeros(5 * SAMPLES_PER_IMAGE, dtype=np.float32), SAMPLE_RATE)
        assert FingerprintPipeline(small_config).create_fingerprints(audio) == []

    def test_short_track(self, small_config):
        audio = AudioSamples(make_signal(100), SAMPLE_RATE)
        assert FingerprintPipeline(small_config).create_fingerprints(audio) == []


class TestWindowCount:

    @pytest.mark.parametrize("num_images", [1, 7, 20])
    def test_count_with_zero_stride(self, small_config, num_images):
        """Contiguous images: count == floor(len / samples_per_image)."""
        audio = AudioSamples(make_noise(num_images * SAMPLES_PER_IMAGE + 300), SAMPLE_RATE)
        fingerprints = FingerprintPipeline(small_config).create_fingerprints(audio)
        assert len(fingerprints) == num_images


class TestCallerBuffer:

    def test_samples_not_mutated(self, music_audio):
        original = music_audio.samples.copy()
        FingerprintPipeline(make_config(normalize=True)).create_fingerprints(music_audio)
        assert np.array_equal(music_audio.samples, original)

    def test_normalizer_only_when_enabled(self, music_audio):
        normalizer = CountingNormalizer()

        FingerprintPipeline(make_config(normalize=False), normalizer=normalizer).create_fingerprints(music_audio)
        assert normalizer.calls == 0

        FingerprintPipeline(make_config(normalize=True), normalizer=normalizer).create_fingerprints(music_audio)
        assert normalizer.calls == 1


class TestFailures:

    def test_worker_failure_aborts(self, music_audio, small_config):
        pipeline = FingerprintPipeline(small_config, wavelet_decomposition=ExplodingDecomposition(3))

        with pytest.raises(WorkerFailure) as excinfo:
            pipeline.create_fingerprints(music_audio)

        assert isinstance(excinfo.value.__cause__, RuntimeError)
        assert excinfo.value.sequence_number is not None

    def test_worker_failure_sequential(self, music_audio, small_config):
        pipeline = FingerprintPipeline(small_config, wavelet_decomposition=ExplodingDecomposition(1))
        with pytest.raises(WorkerFailure):
            pipeline.create_fingerprints(music_audio, n_workers=1)

    def test_numeric_failure_is_fatal(self, music_audio, small_config):
        pipeline = FingerprintPipeline(small_config, wavelet_decomposition=PoisoningDecomposition())

        with pytest.raises(NumericalError) as excinfo:
            pipeline.create_fingerprints(music_audio)

        assert excinfo.value.stage == "wavelet"
        assert excinfo.value.sequence_number is not None

    def test_wrong_sample_rate(self, small_config):
        audio = AudioSamples(make_signal(4096), 11025)
        with pytest.raises(InvalidAudioError):
            FingerprintPipeline(small_config).create_fingerprints(audio)

    def test_invalid_worker_count(self, music_audio, small_config):
        with pytest.raises(ConfigurationError):
            FingerprintPipeline(small_config).create_fingerprints(music_audio, n_workers=0)

    def test_progress_bar_enabled(self, music_audio):
        config = make_config()
        config.show_progress = True
        assert FingerprintPipeline(config).create_fingerprints(music_audio)
