"""
Fingerprint Storage Module
==========================

In-memory model service for tracks and fingerprints, backed by pandas.

Contract:
- Signatures read back are bit-for-bit identical to what was written
- Each stored fingerprint keeps its track association and sequence number
- Persistent ids are assigned at insert time
- save()/load() round-trip through CSV with hex-encoded packed signatures
"""

import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Optional

import pandas as pd

from .encoding import Fingerprint

logger = logging.getLogger(__name__)

TRACK_COLUMNS = ["track_id", "artist", "title", "isrc"]
FINGERPRINT_COLUMNS = [
    "fingerprint_id", "track_id", "sequence_number",
    "starts_at", "signature_length", "signature_hex",
]


@dataclass
class Track:
    """Stored track"""
    id: int
    artist: str
    title: str
    isrc: Optional[str] = None

    def to_dict(self) -> Dict:
        return {
            "track_id": self.id,
            "artist": self.artist,
            "title": self.title,
            "isrc": self.isrc,
        }


@dataclass
class StoredFingerprint:
    """Fingerprint with its storage-assigned identity"""
    id: int
    track_id: int
    fingerprint: Fingerprint


def _append(frame: pd.DataFrame, rows: List[Dict], columns: List[str]) -> pd.DataFrame:
    new_rows = pd.DataFrame(rows, columns=columns)
    if frame.empty:
        return new_rows
    return pd.concat([frame, new_rows], ignore_index=True)


class FingerprintStore:
    """
    Track and fingerprint storage.

    Usage:
        store = FingerprintStore()
        track = store.insert_track("Artist", "Title")
        store.insert_fingerprints(fingerprints, track.id)
        stored = store.read_fingerprints_by_track_id(track.id)
    """

    def __init__(self):
        self.tracks = pd.DataFrame(columns=TRACK_COLUMNS)
        self.fingerprints = pd.DataFrame(columns=FINGERPRINT_COLUMNS)
        self._next_track_id = 1
        self._next_fingerprint_id = 1
        self._lock = threading.Lock()

    # =========================================================================
    # TRACKS
    # =========================================================================

    def insert_track(self, artist: str, title: str, isrc: str = None) -> Track:
        with self._lock:
            track = Track(id=self._next_track_id, artist=artist, title=title, isrc=isrc)
            self._next_track_id += 1
            self.tracks = _append(self.tracks, [track.to_dict()], TRACK_COLUMNS)

        logger.debug(f"Inserted track {track.id}: {artist} - {title}")
        return track

    def read_tracks(self) -> List[Track]:
        return [self._row_to_track(row) for row in self.tracks.itertuples(index=False)]

    def read_track_by_id(self, track_id: int) -> Track:
        matches = self.tracks[self.tracks["track_id"] == track_id]
        if matches.empty:
            raise KeyError(f"Unknown track id {track_id}")
        return self._row_to_track(next(matches.itertuples(index=False)))

    def delete_track(self, track_id: int) -> int:
        """
        Delete a track and all of its fingerprints.

        Returns:
            Number of fingerprints deleted
        """
        with self._lock:
            if not (self.tracks["track_id"] == track_id).any():
                raise KeyError(f"Unknown track id {track_id}")

            owned = self.fingerprints["track_id"] == track_id
            deleted = int(owned.sum())
            self.fingerprints = self.fingerprints[~owned].reset_index(drop=True)
            self.tracks = self.tracks[self.tracks["track_id"] != track_id].reset_index(drop=True)

        logger.info(f"Deleted track {track_id} and {deleted} fingerprints")
        return deleted

    # =========================================================================
    # FINGERPRINTS
    # =========================================================================

    def insert_fingerprints(self, fingerprints: Iterable[Fingerprint], track_id: int) -> List[int]:
        """
        Store fingerprints for a track.

        Args:
            fingerprints: Fingerprints to store (any order)
            track_id: Owning track

        Returns:
            Assigned fingerprint ids, in input order
        """
        self.read_track_by_id(track_id)

        with self._lock:
            rows = []
            ids = []
            for fingerprint in fingerprints:
                fingerprint_id = self._next_fingerprint_id
                self._next_fingerprint_id += 1
                ids.append(fingerprint_id)
                rows.append({
                    "fingerprint_id": fingerprint_id,
                    "track_id": track_id,
                    "sequence_number": fingerprint.sequence_number,
                    "starts_at": fingerprint.starts_at,
                    "signature_length": len(fingerprint.signature),
                    "signature_hex": fingerprint.to_bytes().hex(),
                })

            if rows:
                self.fingerprints = _append(self.fingerprints, rows, FINGERPRINT_COLUMNS)

        logger.info(f"Inserted {len(ids)} fingerprints for track {track_id}")
        return ids

    def read_fingerprints_by_track_id(self, track_id: int) -> List[StoredFingerprint]:
        """
        Read a track's fingerprints ordered by sequence number.
        """
        self.read_track_by_id(track_id)

        owned = self.fingerprints[self.fingerprints["track_id"] == track_id]
        owned = owned.sort_values("sequence_number", kind="stable")

        return [
            StoredFingerprint(
                id=int(row.fingerprint_id),
                track_id=int(row.track_id),
                fingerprint=Fingerprint.from_bytes(
                    bytes.fromhex(row.signature_hex),
                    int(row.signature_length),
                    starts_at=int(row.starts_at),
                    sequence_number=int(row.sequence_number),
                ),
            )
            for row in owned.itertuples(index=False)
        ]

    def count_fingerprints(self, track_id: int = None) -> int:
        if track_id is None:
            return len(self.fingerprints)
        return int((self.fingerprints["track_id"] == track_id).sum())

    # =========================================================================
    # PERSISTENCE
    # =========================================================================

    def save(self, directory: str):
        """Save tracks and fingerprints as CSV files"""
        output_path = Path(directory)
        output_path.mkdir(parents=True, exist_ok=True)

        self.tracks.to_csv(output_path / "tracks.csv", index=False)
        self.fingerprints.to_csv(output_path / "fingerprints.csv", index=False)
        logger.info(f"Saved {len(self.tracks)} tracks, {len(self.fingerprints)} fingerprints to {output_path}")

    @classmethod
    def load(cls, directory: str) -> "FingerprintStore":
        """Load a store written by save()"""
        input_path = Path(directory)
        store = cls()

        store.tracks = pd.read_csv(
            input_path / "tracks.csv",
            dtype={"artist": str, "title": str, "isrc": str},
            keep_default_na=False,
        )
        store.fingerprints = pd.read_csv(
            input_path / "fingerprints.csv",
            dtype={"signature_hex": str},
            keep_default_na=False,
        )

        if not store.tracks.empty:
            store._next_track_id = int(store.tracks["track_id"].max()) + 1
        if not store.fingerprints.empty:
            store._next_fingerprint_id = int(store.fingerprints["fingerprint_id"].max()) + 1

        logger.info(f"Loaded {len(store.tracks)} tracks, {len(store.fingerprints)} fingerprints from {input_path}")
        return store

    @staticmethod
    def _row_to_track(row) -> Track:
        isrc = row.isrc if isinstance(row.isrc, str) and row.isrc else None
        return Track(id=int(row.track_id), artist=str(row.artist), title=str(row.title), isrc=isrc)
