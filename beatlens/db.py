import logging
import os
import pickle
import threading
from dataclasses import dataclass, field
from datetime import datetime
from functools import lru_cache
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

from .base import FingerprintIndex, FingerprintLookup, IndexEntry
from .config import FINGERPRINTS_FILE, SONGS_FILE
from .errors import ConfigError, SongNotFound

log = logging.getLogger(__name__)


def load_db(path: str):
    if os.path.exists(path):
        with open(path, "rb") as f:
            return pickle.load(f)
    return {}


def save_db(path: str, table):
    with open(path, "wb") as f:
        pickle.dump(table, f)


@dataclass
class SongRecord:
    song_id: int
    title: str
    artist: Optional[str] = None
    duration_seconds: float = 0.0
    fingerprint_count: int = 0
    indexed_at: str = field(default_factory=lambda: datetime.now().isoformat(timespec="seconds"))


@dataclass
class IndexStats:
    total_songs: int
    total_fingerprints: int
    avg_fingerprints_per_song: Optional[float]


class InMemoryFingerprintIndex(FingerprintIndex):
    """
    hash -> [IndexEntry] table kept in a dict.

    Writers take a lock; lookup() returns a copy so callers never see a list
    that is being appended to.
    """

    def __init__(self):
        self.hash_table: Dict[int, List[IndexEntry]] = {}
        self._count = 0
        self._lock = threading.Lock()

    def lookup(self, hash_value: int) -> List[IndexEntry]:
        return list(self.hash_table.get(int(hash_value), ()))

    def add_fingerprints(self, triples: Iterable[Tuple[int, int, int]]) -> int:
        added = 0
        with self._lock:
            for h, song_id, time_offset in triples:
                self.hash_table.setdefault(int(h), []).append(IndexEntry(song_id, time_offset))
                added += 1
            self._count += added
        return added

    def remove_fingerprints(self, song_id: int) -> int:
        removed = 0
        with self._lock:
            for h in list(self.hash_table):
                entries = self.hash_table[h]
                kept = [e for e in entries if e.song_id != song_id]
                removed += len(entries) - len(kept)
                if kept:
                    self.hash_table[h] = kept
                else:
                    del self.hash_table[h]
            self._count -= removed
        return removed

    @property
    def num_fingerprints(self) -> int:
        return self._count

    @property
    def num_hashes(self) -> int:
        return len(self.hash_table)


class CachedLookup(FingerprintLookup):
    """LRU cache in front of another lookup; call invalidate() after any write."""

    def __init__(self, inner: FingerprintLookup, maxsize: int = 100_000):
        self.inner = inner
        self.maxsize = maxsize
        self._cached = lru_cache(maxsize=maxsize)(self._fetch)

    def _fetch(self, hash_value: int) -> Tuple[IndexEntry, ...]:
        return tuple(self.inner.lookup(hash_value))

    def lookup(self, hash_value: int) -> List[IndexEntry]:
        return list(self._cached(int(hash_value)))

    def invalidate(self):
        self._cached.cache_clear()
        log.debug("Fingerprint lookup cache invalidated")

    def cache_info(self):
        return self._cached.cache_info()


class SongCatalog:
    """Song metadata keyed by id, plus the fingerprint index the songs live in."""

    def __init__(self, index: Optional[InMemoryFingerprintIndex] = None, profile: Optional[str] = None):
        self.index = index if index is not None else InMemoryFingerprintIndex()
        self.songs: Dict[int, SongRecord] = {}
        self.profile = profile
        self._next_id = 1
        self._lock = threading.Lock()

    def add_song(self, title: str, artist: Optional[str] = None,
                 duration_seconds: float = 0.0, fingerprint_count: int = 0) -> SongRecord:
        with self._lock:
            song = SongRecord(self._next_id, title, artist, duration_seconds, fingerprint_count)
            self.songs[song.song_id] = song
            self._next_id += 1
        return song

    def get_song(self, song_id: int) -> SongRecord:
        try:
            return self.songs[song_id]
        except KeyError:
            raise SongNotFound(song_id) from None

    def find_by_title(self, title: str) -> Optional[SongRecord]:
        for song in self.songs.values():
            if song.title == title:
                return song
        return None

    def list_songs(self) -> List[SongRecord]:
        return sorted(self.songs.values(), key=lambda s: s.song_id)

    def remove_song(self, song_id: int) -> int:
        """Delete a song and its fingerprints; returns the number of fingerprints removed."""
        with self._lock:
            if song_id not in self.songs:
                raise SongNotFound(song_id)
            del self.songs[song_id]
        removed = self.index.remove_fingerprints(song_id)
        log.info(f"Deleted song id={song_id} ({removed} fingerprints)")
        return removed

    def stats(self) -> IndexStats:
        total_songs = len(self.songs)
        total_fingerprints = self.index.num_fingerprints
        avg = total_fingerprints / total_songs if total_songs else None
        return IndexStats(total_songs, total_fingerprints, avg)

    def __len__(self):
        return len(self.songs)

    # ----- persistence ----- #

    def save(self, path):
        path = Path(path)
        path.mkdir(parents=True, exist_ok=True)
        save_db(str(path / FINGERPRINTS_FILE), self.index.hash_table)
        save_db(str(path / SONGS_FILE), {
            "profile": self.profile,
            "next_id": self._next_id,
            "songs": self.songs,
        })
        log.info(f"Saved {len(self.songs)} songs / {self.index.num_fingerprints} fingerprints to {path}")

    @classmethod
    def load(cls, path, profile: Optional[str] = None) -> "SongCatalog":
        """
        Load a catalog saved with save(). A missing directory gives an empty
        catalog. Raises ConfigError when the stored hash profile differs from
        `profile`, since the hashes would never match.
        """
        path = Path(path)
        hash_table = load_db(str(path / FINGERPRINTS_FILE))
        song_data = load_db(str(path / SONGS_FILE))

        stored_profile = song_data.get("profile")
        if profile and stored_profile and stored_profile != profile:
            raise ConfigError(
                f"Index at {path} was built with profile '{stored_profile}', "
                f"current profile is '{profile}'; reindex or switch profiles"
            )

        index = InMemoryFingerprintIndex()
        index.hash_table = hash_table
        index._count = sum(len(v) for v in hash_table.values())
        catalog = cls(index, profile or stored_profile)
        catalog.songs = song_data.get("songs", {})
        catalog._next_id = song_data.get("next_id", len(catalog.songs) + 1)
        log.debug(f"Loaded {len(catalog.songs)} songs from {path}")
        return catalog
