"""
Interfaces between the matching core and whatever stores the fingerprints.
"""

from abc import ABC, abstractmethod
from typing import Iterable, List, NamedTuple, Tuple


class IndexEntry(NamedTuple):
    """One occurrence of a hash in the catalog."""
    song_id: int
    time_offset: int   # anchor frame index in the indexed song


class FingerprintLookup(ABC):
    """
    Lookup strategy used by the matcher.

    The matcher never talks to a database or a cache directly; it only calls
    lookup() through this interface, so any backend can be plugged in.
    """

    @abstractmethod
    def lookup(self, hash_value: int) -> List[IndexEntry]:
        """
        Return every stored occurrence of a hash.

        Args:
            hash_value: Packed fingerprint hash

        Returns:
            List of IndexEntry; an empty list when the hash is unknown.
            Must be safe to call from several threads at once.
        """
        pass


class FingerprintIndex(FingerprintLookup):
    """
    A lookup that can also be populated.
    """

    @abstractmethod
    def add_fingerprints(self, triples: Iterable[Tuple[int, int, int]]) -> int:
        """
        Store (hash, song_id, time_offset) rows.

        Returns:
            Number of rows stored
        """
        pass

    @abstractmethod
    def remove_fingerprints(self, song_id: int) -> int:
        """
        Drop every row of a song.

        Returns:
            Number of rows removed
        """
        pass

    @property
    @abstractmethod
    def num_fingerprints(self) -> int:
        pass
