"""
Signature Encoding Module
=========================

Top-wavelet selection and fixed-length boolean signatures.

Ranking rule:
- Coefficient indexes are stable-sorted by descending |coefficient|,
  so exact ties keep original index order
- The first TOP_WAVELETS positive and the first TOP_WAVELETS negative
  coefficients in that ranking set their bit
- Zero coefficients never set a bit; sign is not encoded separately

Signature length is IMAGE_LENGTH * LOG_BINS regardless of TOP_WAVELETS.
"""

import logging
from dataclasses import dataclass
from typing import Dict

import numpy as np

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class Fingerprint:
    """
    Boolean signature of one spectral image.

    ``starts_at`` and ``sequence_number`` are inherited from the source
    image; storage identity is assigned later by the model service.
    """
    signature: np.ndarray
    starts_at: int
    sequence_number: int

    def __len__(self) -> int:
        return len(self.signature)

    @property
    def bits_set(self) -> int:
        return int(np.count_nonzero(self.signature))

    def is_silence(self) -> bool:
        return is_silence(self.signature)

    def same_signature(self, other: "Fingerprint") -> bool:
        return np.array_equal(self.signature, other.signature)

    def to_bytes(self) -> bytes:
        """Pack the signature 8 bits per byte (big-endian bit order)."""
        return np.packbits(self.signature).tobytes()

    @staticmethod
    def signature_from_bytes(data: bytes, length: int) -> np.ndarray:
        bits = np.unpackbits(np.frombuffer(data, dtype=np.uint8), count=length)
        return bits.astype(bool)

    @classmethod
    def from_bytes(cls, data: bytes, length: int,
                   starts_at: int, sequence_number: int) -> "Fingerprint":
        return cls(
            signature=cls.signature_from_bytes(data, length),
            starts_at=starts_at,
            sequence_number=sequence_number,
        )

    def to_dict(self) -> Dict:
        return {
            "sequence_number": self.sequence_number,
            "starts_at": self.starts_at,
            "bits_set": self.bits_set,
            "signature_hex": self.to_bytes().hex(),
        }


def is_silence(signature: np.ndarray) -> bool:
    """True iff no bit of the signature is set."""
    return not np.any(signature)


class EncoderScratch:
    """
    Reusable per-worker buffers for ranking coefficients.

    Allocated once per worker and reused for every image it encodes.
    """

    def __init__(self, size: int):
        self.size = size
        self.indexes = np.arange(size, dtype=np.intp)
        self.magnitudes = np.empty(size, dtype=np.float64)

    def reset(self) -> None:
        """Repopulate ``indexes`` with 0..size-1."""
        self.indexes[:] = np.arange(self.size, dtype=np.intp)


class SignatureEncoder:
    """Encode decomposed spectral images into boolean signatures."""

    def rank(self, coefficients: np.ndarray, scratch: EncoderScratch) -> np.ndarray:
        """
        Rank coefficient positions by descending magnitude.

        Args:
            coefficients: Flat coefficient vector
            scratch: Worker-owned buffers sized len(coefficients)

        Returns:
            ``scratch.indexes`` reordered by rank
        """
        scratch.reset()
        np.abs(coefficients, out=scratch.magnitudes)
        np.negative(scratch.magnitudes, out=scratch.magnitudes)

        # Stable sort: equal magnitudes keep ascending index order
        order = np.argsort(scratch.magnitudes, kind="stable")
        scratch.indexes[:] = scratch.indexes[order]
        return scratch.indexes

    def encode(self, image: np.ndarray, top_wavelets: int, scratch: EncoderScratch) -> np.ndarray:
        """
        Select top coefficients and encode them as a boolean vector.

        Args:
            image: Decomposed spectral image (rows x cols)
            top_wavelets: Positive and negative coefficients kept
            scratch: EncoderScratch of size rows * cols

        Returns:
            bool array of length rows * cols
        """
        coefficients = image.ravel()
        if scratch.size != coefficients.size:
            raise ValueError(
                f"Scratch buffer size {scratch.size} does not match image size {coefficients.size}"
            )

        ranking = self.rank(coefficients, scratch)
        ranked_values = coefficients[ranking]

        positive = ranking[ranked_values > 0][:top_wavelets]
        negative = ranking[ranked_values < 0][:top_wavelets]

        signature = np.zeros(coefficients.size, dtype=bool)
        signature[positive] = True
        signature[negative] = True
        return signature
