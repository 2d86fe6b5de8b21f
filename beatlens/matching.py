"""
Time-alignment histogram matching.

Every query hash that is found in the index votes for the offset between the
position of the hash in the indexed song and its position in the query. A
true match piles its votes into one offset bucket; random hash collisions
spread theirs across the histogram.
"""

import logging
import math
from collections import defaultdict
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Union

from .base import FingerprintLookup, IndexEntry
from .hashing import Fingerprint

log = logging.getLogger(__name__)

LookupFn = Callable[[int], List[IndexEntry]]


@dataclass(frozen=True)
class MatchResult:
    song_id: int
    aligned_matches: int
    total_matches: int
    time_offset_seconds: float
    confidence: float


@dataclass
class SongVotes:
    """Offset histogram of one candidate song."""
    histogram: Dict[int, int] = field(default_factory=dict)
    total_matches: int = 0

    def add(self, bucket: int, count: int = 1):
        self.histogram[bucket] = self.histogram.get(bucket, 0) + count
        self.total_matches += count

    def best_bucket(self):
        """(bucket, count) with the highest count; the first one seen wins ties."""
        best_offset, peak_count = 0, 0
        for bucket, count in self.histogram.items():
            if count > peak_count:
                best_offset, peak_count = bucket, count
        return best_offset, peak_count


def calculate_confidence(aligned_matches: int, total_matches: int,
                         query_fingerprint_count: int, histogram_buckets: int) -> float:
    """
    Score in [0, 100] from the aligned vote count, weighted by
      - coherence: share of the song's hits that are aligned,
      - match rate: share of the query that aligned,
      - sharpness: how few distinct offsets the song collected.
    """
    coherence = aligned_matches / max(1, total_matches)
    match_rate = aligned_matches / max(1, query_fingerprint_count)
    sharpness = 1.0 / max(1.0, math.sqrt(histogram_buckets))

    confidence = aligned_matches * (0.5 + 0.3 * coherence + 0.2 * match_rate) * (1 + sharpness)
    return max(0.0, min(100.0, confidence / 2.0))


def _as_lookup_fn(lookup: Union[FingerprintLookup, LookupFn]) -> LookupFn:
    if isinstance(lookup, FingerprintLookup):
        return lookup.lookup
    if callable(lookup):
        return lookup
    raise TypeError(f"lookup must be a FingerprintLookup or a callable, got {type(lookup).__name__}")


class Matcher:

    def __init__(self, offset_tolerance: int = 3, min_aligned_matches: int = 3,
                 min_confidence: float = 5.0, hop_size: int = 2048, sample_rate: int = 44100,
                 max_workers: Optional[int] = None):
        self.offset_tolerance = offset_tolerance
        self.min_aligned_matches = min_aligned_matches
        self.min_confidence = min_confidence
        self.time_resolution = hop_size / sample_rate
        self.max_workers = max_workers

    @classmethod
    def from_config(cls, config):
        m = config.matching
        return cls(m.offset_tolerance, m.min_aligned_matches, m.min_confidence,
                   config.spectrogram.hop_size, config.audio.sample_rate, m.max_workers)

    def bucket(self, offset: int) -> int:
        # floor division: -1 lands in [-tol, 0), not in [0, tol)
        return (offset // self.offset_tolerance) * self.offset_tolerance

    def _lookup_all(self, query: Sequence[Fingerprint], lookup_fn: LookupFn):
        if self.max_workers and self.max_workers > 1 and len(query) > 1:
            with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
                # map() yields in query order, whatever order the lookups finish in
                return list(pool.map(lambda fp: lookup_fn(fp.hash), query))
        return [lookup_fn(fp.hash) for fp in query]

    def collect_votes(self, query: Sequence[Fingerprint],
                      lookup: Union[FingerprintLookup, LookupFn]) -> Dict[int, SongVotes]:
        lookup_fn = _as_lookup_fn(lookup)
        votes: Dict[int, SongVotes] = defaultdict(SongVotes)

        for fp, entries in zip(query, self._lookup_all(query, lookup_fn)):
            if not entries:
                continue
            for song_id, time_offset in entries:
                votes[song_id].add(self.bucket(time_offset - fp.anchor_time))
        return dict(votes)

    def score(self, votes: Dict[int, SongVotes], query_fingerprint_count: int) -> List[MatchResult]:
        results = []
        window = 2 * self.offset_tolerance

        for song_id, song_votes in votes.items():
            best_offset, _ = song_votes.best_bucket()
            aligned = sum(count for bucket, count in song_votes.histogram.items()
                          if abs(bucket - best_offset) <= window)
            if aligned < self.min_aligned_matches:
                continue

            confidence = calculate_confidence(aligned, song_votes.total_matches,
                                              query_fingerprint_count, len(song_votes.histogram))
            if confidence < self.min_confidence:
                continue

            results.append(MatchResult(
                song_id=song_id,
                aligned_matches=aligned,
                total_matches=song_votes.total_matches,
                time_offset_seconds=best_offset * self.time_resolution,
                confidence=confidence,
            ))

        results.sort(key=lambda r: r.confidence, reverse=True)
        return results

    def match(self, query: Sequence[Fingerprint],
              lookup: Union[FingerprintLookup, LookupFn]) -> List[MatchResult]:
        """
        Rank indexed songs against the fingerprints of a query clip.

        Args:
            query: Fingerprints of the query
            lookup: FingerprintLookup, or a plain callable hash -> list of IndexEntry

        Returns:
            MatchResults sorted by descending confidence; empty when nothing
            clears min_aligned_matches and min_confidence.
        """
        if not query:
            return []

        votes = self.collect_votes(query, lookup)
        results = self.score(votes, len(query))
        log.debug(f"Matched {len(query)} query fingerprints -> {len(votes)} candidates, "
                  f"{len(results)} above threshold")
        return results
