import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

import numpy as np
from tqdm import tqdm

from .audio import cut_audio, decode_pcm, inject_noise, load_audio, read_wav_bytes
from .config import DB_PATH, BeatLensConfig, get_preset
from .db import CachedLookup, IndexStats, SongCatalog, SongRecord
from .errors import FormatError, InvalidInput
from .hashing import Fingerprint, FingerprintHasher, index_triples
from .matching import Matcher, MatchResult
from .peaks import PeakExtractor
from .spectrogram import SpectrogramBuilder

log = logging.getLogger(__name__)


class Timer:
    """Context manager for timing code blocks with optional debug logging."""

    def __init__(self, debug: bool = False):
        self.debug = debug
        self.timings: Dict[str, float] = {}

    @contextmanager
    def measure(self, label: str):
        start = time.perf_counter()
        yield
        elapsed = time.perf_counter() - start
        self.timings[label] = elapsed
        if self.debug:
            log.info(f"{label}: {elapsed:.4f}s")

    def log(self, message: str):
        if self.debug:
            log.info(message)

    @property
    def total(self) -> float:
        return sum(self.timings.values())


@dataclass
class RankedMatch:
    song_id: int
    title: str
    artist: Optional[str]
    confidence: float
    aligned_matches: int
    total_matches: int
    time_offset_seconds: float


@dataclass
class MatchReport:
    matches: List[RankedMatch]
    query_fingerprint_count: int
    query_duration_seconds: float
    timings: Dict[str, float] = field(default_factory=dict)

    @property
    def best(self) -> Optional[RankedMatch]:
        return self.matches[0] if self.matches else None


class ShazamRecognizer:
    """
    Indexes songs into a SongCatalog and identifies query clips against it.

    Audio -> spectrogram -> peaks -> fingerprints, then either stored
    (indexing) or matched through a cached lookup (recognition).
    """

    def __init__(self, config: Optional[BeatLensConfig] = None,
                 catalog: Optional[SongCatalog] = None, cache_size: int = 100_000):
        self.config = (config or get_preset("full_spectrum")).validate()
        self.spectrogram_builder = SpectrogramBuilder.from_config(self.config)
        self.peak_extractor = PeakExtractor.from_config(self.config)
        self.hasher = FingerprintHasher.from_config(self.config)
        self.matcher = Matcher.from_config(self.config)
        self.catalog = catalog if catalog is not None else SongCatalog(profile=self.config.profile)
        self.lookup = CachedLookup(self.catalog.index, maxsize=cache_size)

    @property
    def num_indexed_songs(self) -> int:
        return len(self.catalog)

    @property
    def sample_rate(self) -> int:
        return self.config.audio.sample_rate

    def load(self, path=None) -> None:
        """Replace the catalog with the one stored under `path`."""
        self.catalog = SongCatalog.load(Path(path or DB_PATH), profile=self.config.profile)
        self.lookup = CachedLookup(self.catalog.index, maxsize=self.lookup.maxsize)

    def save(self, path=None) -> None:
        self.catalog.save(Path(path or DB_PATH))

    # ----- pipeline ----- #

    def check_length(self, samples) -> None:
        needed = self.config.min_samples
        if len(samples) < needed:
            raise InvalidInput(
                f"Audio too short: need at least {needed} samples "
                f"({needed / self.sample_rate:.1f}s), got {len(samples)}"
            )

    def fingerprint(self, samples, timer: Optional[Timer] = None) -> List[Fingerprint]:
        timer = timer or Timer()
        self.check_length(samples)
        with timer.measure("Extract spectrogram"):
            spectrogram = self.spectrogram_builder.generate(samples)
        with timer.measure("Find peaks"):
            peaks = self.peak_extractor.extract(spectrogram)
        with timer.measure("Build hashes"):
            fingerprints = self.hasher.generate(peaks)
        timer.log(f"  Frames: {len(spectrogram)}, peaks: {len(peaks)}, hashes: {len(fingerprints)}")
        return fingerprints

    # ----- indexing ----- #

    def index_samples(self, samples, title: str, artist: Optional[str] = None) -> SongRecord:
        samples = np.asarray(samples, dtype=np.float64)
        fingerprints = self.fingerprint(samples)
        duration = len(samples) / self.sample_rate

        song = self.catalog.add_song(title, artist, duration, len(fingerprints))
        self.catalog.index.add_fingerprints(index_triples(fingerprints, song.song_id))
        self.lookup.invalidate()

        log.info(f"Indexed \"{title}\" ({duration:.1f}s): id={song.song_id}, "
                 f"fingerprints={len(fingerprints)}")
        return song

    def index_wav_bytes(self, data: bytes, title: str, artist: Optional[str] = None) -> SongRecord:
        return self.index_samples(read_wav_bytes(data, self.sample_rate), title, artist)

    def index_song(self, audio_path: Path, artist: Optional[str] = None) -> Optional[SongRecord]:
        """Index one file, titled after its stem. Returns None if already indexed."""
        audio_path = Path(audio_path)
        song_name = audio_path.stem
        if self.catalog.find_by_title(song_name) is not None:
            return None
        signal = load_audio(audio_path, self.sample_rate)
        return self.index_samples(signal, song_name, artist)

    def index_folder(self, folder: Path, pattern: str = "*.wav") -> int:
        """
        Index every file under `folder` (recursively) matching `pattern`.

        Files that cannot be decoded or are too short are logged and skipped.
        Returns the number of new songs.
        """
        audio_paths = sorted(Path(folder).rglob(pattern))
        count = 0
        for audio_path in tqdm(audio_paths, desc="Indexing songs", unit='song'):
            try:
                if self.index_song(audio_path) is not None:
                    count += 1
            except (FormatError, InvalidInput) as e:
                log.warning(f"Skipped {audio_path.name}: {e}")
        return count

    def delete_song(self, song_id: int) -> int:
        removed = self.catalog.remove_song(song_id)
        self.lookup.invalidate()
        return removed

    def list_songs(self) -> List[SongRecord]:
        return self.catalog.list_songs()

    def get_song(self, song_id: int) -> SongRecord:
        return self.catalog.get_song(song_id)

    def stats(self) -> IndexStats:
        return self.catalog.stats()

    # ----- recognition ----- #

    def _rank(self, results: List[MatchResult]) -> List[RankedMatch]:
        ranked = []
        for r in results:
            song = self.catalog.songs.get(r.song_id)
            ranked.append(RankedMatch(
                song_id=r.song_id,
                title=song.title if song else "Unknown",
                artist=song.artist if song else "Unknown",
                confidence=r.confidence,
                aligned_matches=r.aligned_matches,
                total_matches=r.total_matches,
                time_offset_seconds=r.time_offset_seconds,
            ))
        return ranked

    def recognize_samples(self, samples, clip_length_sec: Optional[float] = None,
                          snr_db: Optional[float] = None, debug: bool = False) -> MatchReport:
        """
        Identify a query clip.

        Args:
            samples: Mono float samples at the configured sample rate
            clip_length_sec: Optional random clip length (robustness testing)
            snr_db: Optional SNR in dB for white-noise injection
            debug: If True, log timing information for each step

        Returns:
            MatchReport with matches sorted by descending confidence
        """
        timer = Timer(debug=debug)
        samples = np.asarray(samples, dtype=np.float64)

        if clip_length_sec is not None:
            with timer.measure("Cut audio"):
                samples = cut_audio(samples, self.sample_rate, clip_length_sec)
        if snr_db is not None:
            with timer.measure("Inject noise"):
                samples = inject_noise(samples, snr_db)

        duration = len(samples) / self.sample_rate
        log.info(f"Matching query: {duration:.2f}s, {len(samples)} samples")

        fingerprints = self.fingerprint(samples, timer)
        if not fingerprints:
            return MatchReport([], 0, duration, timer.timings)

        with timer.measure("Hash matching and voting"):
            results = self.matcher.match(fingerprints, self.lookup)
        matches = self._rank(results)

        timer.log(f"Total recognition time: {timer.total:.4f}s")
        if matches:
            log.info(f"Best match: \"{matches[0].title}\" (confidence {matches[0].confidence:.1f})")
        else:
            log.info(f"No match among {len(fingerprints)} query fingerprints")
        return MatchReport(matches, len(fingerprints), duration, timer.timings)

    def recognize(self, query_path: Path, clip_length_sec: Optional[float] = None,
                  snr_db: Optional[float] = None, debug: bool = False) -> MatchReport:
        signal = load_audio(query_path, self.sample_rate)
        return self.recognize_samples(signal, clip_length_sec, snr_db, debug)

    def recognize_wav_bytes(self, data: bytes) -> MatchReport:
        return self.recognize_samples(read_wav_bytes(data, self.sample_rate))

    def recognize_pcm(self, data: bytes) -> MatchReport:
        """Raw 16-bit little-endian mono PCM at the configured sample rate."""
        return self.recognize_samples(decode_pcm(data))
