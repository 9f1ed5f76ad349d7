"""
Reporting and Visualization Module
==================================

Diagnostics for fingerprint sets.

Features:
- Per-fingerprint summary table (pandas)
- Pairwise bit comparison of two fingerprint sets
- Signature raster and spectral image plots (matplotlib)

Use a non-interactive backend (e.g. Agg) when plotting headless.
"""

import logging
from pathlib import Path
from typing import Dict, List, Sequence

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd

from .encoding import Fingerprint

logger = logging.getLogger(__name__)

REPORT_COLUMNS = ["sequence_number", "starts_at", "starts_at_sec", "bits_set", "signature_hex"]


def fingerprints_to_dataframe(fingerprints: Sequence[Fingerprint], sample_rate: int) -> pd.DataFrame:
    """
    One row per fingerprint, sorted by sequence number.
    """
    rows = []
    for fingerprint in fingerprints:
        row = fingerprint.to_dict()
        row["starts_at_sec"] = fingerprint.starts_at / sample_rate
        rows.append(row)

    df = pd.DataFrame(rows, columns=REPORT_COLUMNS)
    return df.sort_values("sequence_number", kind="stable").reset_index(drop=True)


def compare_fingerprint_sets(first: Sequence[Fingerprint],
                             second: Sequence[Fingerprint]) -> Dict:
    """
    Compare two fingerprint sets bit by bit across matching sequence numbers.

    Returns:
        Dictionary with counts and the bit error rate over matched pairs
    """
    by_sequence = {fp.sequence_number: fp for fp in second}

    matched = 0
    mismatched_bits = 0
    total_bits = 0
    for fingerprint in first:
        other = by_sequence.get(fingerprint.sequence_number)
        if other is None:
            continue
        matched += 1
        mismatched_bits += int(np.count_nonzero(fingerprint.signature != other.signature))
        total_bits += len(fingerprint.signature)

    bit_error_rate = mismatched_bits / total_bits if total_bits else 0.0

    summary = {
        "count_a": len(first),
        "count_b": len(second),
        "matched": matched,
        "mismatched_bits": mismatched_bits,
        "total_bits": total_bits,
        "bit_error_rate": bit_error_rate,
    }
    logger.debug(f"Fingerprint comparison: {summary}")
    return summary


class FingerprintReporter:
    """
    Generate fingerprint reports and visualizations.
    """

    def __init__(self, fingerprints: List[Fingerprint], sample_rate: int, output_dir: str = "reports"):
        """
        Initialize reporter.

        Args:
            fingerprints: Fingerprints of one track (any order)
            sample_rate: Sample rate the fingerprints were computed at
            output_dir: Output directory for reports
        """
        self.fingerprints = sorted(fingerprints, key=lambda fp: fp.sequence_number)
        self.sample_rate = sample_rate
        self.df = fingerprints_to_dataframe(self.fingerprints, sample_rate)
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)

    def save_csv(self, filename: str = "fingerprints.csv") -> Path:
        csv_path = self.output_dir / filename
        self.df.to_csv(csv_path, index=False)
        logger.info(f"Saved CSV: {csv_path}")
        return csv_path

    def plot_signatures(self, save: bool = True) -> plt.Figure:
        """
        Raster of all signatures: one row per fingerprint, one column per bit.
        """
        fig, ax = plt.subplots(figsize=(12, 6))

        if self.fingerprints:
            raster = np.vstack([fp.signature for fp in self.fingerprints])
            ax.imshow(raster, aspect="auto", interpolation="nearest", cmap="Greys")
        else:
            logger.warning("No fingerprints to plot")

        ax.set_title("Fingerprint signatures")
        ax.set_xlabel("Bit index")
        ax.set_ylabel("Sequence number")
        fig.tight_layout()

        if save:
            save_path = self.output_dir / "signatures.png"
            fig.savefig(save_path, bbox_inches="tight")
            logger.info(f"Saved: {save_path}")

        return fig

    def plot_spectral_image(self, image: np.ndarray, name: str = "spectral_image",
                            save: bool = True) -> plt.Figure:
        """
        Plot one spectral image (time x log-frequency) in dB.
        """
        fig, ax = plt.subplots(figsize=(10, 4))
        db = 10 * np.log10(np.maximum(image, 1e-12))
        mesh = ax.imshow(db.T, origin="lower", aspect="auto", interpolation="nearest")
        fig.colorbar(mesh, ax=ax, format="%+2.0f dB")

        ax.set_title("Log-frequency spectral image")
        ax.set_xlabel("Frame")
        ax.set_ylabel("Log band")
        fig.tight_layout()

        if save:
            save_path = self.output_dir / f"{name}.png"
            fig.savefig(save_path, bbox_inches="tight")
            logger.info(f"Saved: {save_path}")

        return fig
