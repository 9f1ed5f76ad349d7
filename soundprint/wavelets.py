"""
Wavelet Decomposition Module
============================

Standard 2-D Haar decomposition of spectral images, in place.

Every row is fully decomposed, then every column. Each 1-D pass scales by
1/sqrt(n) and repeatedly replaces the leading h values with pairwise
averages (a+b)/sqrt(2) followed by details (a-b)/sqrt(2), halving h until
one value is left.

The sequence of floating-point operations is fixed, so identical images
always yield identical coefficients.
"""

import logging
import math

import numpy as np

from .errors import ConfigurationError, NumericalError

logger = logging.getLogger(__name__)

SQRT2 = math.sqrt(2.0)


class HaarWaveletDecomposition:
    """In-place standard Haar decomposition."""

    def decompose_image_in_place(self, image: np.ndarray) -> None:
        """
        Decompose a 2-D image in place (rows first, then columns).

        Args:
            image: Float matrix; both dimensions must be powers of two

        Raises:
            NumericalError: if the decomposition produces non-finite values
        """
        if image.ndim != 2:
            raise ConfigurationError(f"Expected a 2-D image, got shape {image.shape}")

        # Rows
        self.decompose_axis_in_place(image)
        # Columns (transposed view writes through to the image)
        self.decompose_axis_in_place(image.T)

        if not np.all(np.isfinite(image)):
            raise NumericalError("wavelet", "non-finite coefficient")

    def decompose_axis_in_place(self, array: np.ndarray) -> None:
        """Fully decompose every 1-D vector along the last axis of ``array``."""
        n = array.shape[-1]
        if n & (n - 1):
            raise ConfigurationError(f"Haar decomposition needs a power-of-two length, got {n}")

        scale = array.dtype.type(math.sqrt(n))
        root2 = array.dtype.type(SQRT2)
        array /= scale

        h = n
        while h > 1:
            half = h // 2
            even = array[..., 0:h:2].copy()
            odd = array[..., 1:h:2].copy()
            array[..., :half] = (even + odd) / root2
            array[..., half:h] = (even - odd) / root2
            h = half
