import logging
from dataclasses import dataclass
from typing import Iterable, List, NamedTuple, Sequence, Tuple

from .errors import ConfigError
from .peaks import Peak

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class HashLayout:
    """
    Bit layout of a fingerprint hash (MSB -> LSB):

        [freq_bits f_anchor][freq_bits f_target][delta_bits dt]

    The packed value is the key of every stored index entry: changing either
    width invalidates an existing index.
    """

    freq_bits: int = 12
    delta_bits: int = 10

    def __post_init__(self):
        if self.freq_bits <= 0 or self.delta_bits <= 0:
            raise ConfigError("Hash field widths must be positive")

    @property
    def freq_mask(self) -> int:
        return (1 << self.freq_bits) - 1

    @property
    def delta_mask(self) -> int:
        return (1 << self.delta_bits) - 1

    @property
    def total_bits(self) -> int:
        return 2 * self.freq_bits + self.delta_bits

    def pack(self, freq1: int, freq2: int, time_delta: int) -> int:
        return ((freq1 & self.freq_mask) << (self.freq_bits + self.delta_bits)
                | (freq2 & self.freq_mask) << self.delta_bits
                | (time_delta & self.delta_mask))

    def unpack(self, value: int) -> Tuple[int, int, int]:
        return ((value >> (self.freq_bits + self.delta_bits)) & self.freq_mask,
                (value >> self.delta_bits) & self.freq_mask,
                value & self.delta_mask)


class Fingerprint(NamedTuple):
    hash: int
    anchor_time: int    # frame index of the anchor peak
    freq1: int
    freq2: int
    time_delta: int


IndexTriple = Tuple[int, int, int]   # (hash, song_id, time_offset)


class FingerprintHasher:
    """Pairs each anchor peak with up to fan_out later peaks of its target zone."""

    def __init__(self, target_zone_size: int = 5, fan_out: int = 20, max_time_delta: int = 200,
                 layout: HashLayout = HashLayout()):
        self.target_zone_size = target_zone_size
        self.fan_out = fan_out
        self.max_time_delta = max_time_delta
        self.layout = layout

    @classmethod
    def from_config(cls, config):
        f = config.fingerprint
        return cls(f.target_zone_size, f.fan_out, f.max_time_delta,
                   HashLayout(f.freq_bits, f.delta_bits))

    def make_fingerprint(self, anchor: Peak, target: Peak) -> Fingerprint:
        dt = target.frame_index - anchor.frame_index
        return Fingerprint(
            hash=self.layout.pack(anchor.frequency_bin, target.frequency_bin, dt),
            anchor_time=anchor.frame_index,
            freq1=anchor.frequency_bin,
            freq2=target.frequency_bin,
            time_delta=dt,
        )

    def generate(self, peaks: Sequence[Peak]) -> List[Fingerprint]:
        fingerprints: List[Fingerprint] = []
        if not peaks:
            return fingerprints

        ordered = sorted(peaks, key=lambda p: p.frame_index)
        n_peaks = len(ordered)
        append = fingerprints.append

        for i, anchor in enumerate(ordered):
            paired = 0
            j = i + 1
            while j < n_peaks and paired < self.fan_out:
                target = ordered[j]
                dt = target.frame_index - anchor.frame_index
                j += 1
                if dt < self.target_zone_size:
                    continue
                if dt > self.max_time_delta:
                    # sorted by time: every later target is even further away
                    break
                append(self.make_fingerprint(anchor, target))
                paired += 1

        log.debug(f"Generated {len(fingerprints)} fingerprints from {n_peaks} peaks")
        return fingerprints


def index_triples(fingerprints: Iterable[Fingerprint], song_id: int) -> List[IndexTriple]:
    """(hash, song_id, anchor_time) rows handed to the index for storage."""
    return [(fp.hash, song_id, fp.anchor_time) for fp in fingerprints]
