# ---------- CONFIG ---------- #

import dataclasses
import math
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import yaml

from .errors import ConfigError

DB_PATH = "fingerprints/beatlens"
FINGERPRINTS_FILE = "fingerprints.db"
SONGS_FILE = "songs.db"
CONFIG_ENV_VAR = "BEATLENS_CONFIG"
DEFAULT_PROFILE = "full_spectrum"
CORS_ENV_VAR = "BEATLENS_CORS_ALLOWED_ORIGINS"
DEFAULT_CORS_ORIGINS = "http://localhost:3000,http://localhost:5173"

# Full spectrum up to Nyquist at 44.1 kHz (7 bands)
FULL_SPECTRUM_BANDS = (0, 300, 600, 1200, 2400, 5000, 10000, 22050)
# Older tuning that stops at 5 kHz (5 bands)
LEGACY_BANDS = (0, 300, 600, 1200, 2400, 5000)


@dataclass(frozen=True)
class AudioSettings:
    sample_rate: int = 44100
    bit_depth: int = 16
    channels: int = 1
    min_duration_seconds: float = 0.0


@dataclass(frozen=True)
class SpectrogramSettings:
    frame_size: int = 4096
    hop_size: int = 2048


@dataclass(frozen=True)
class PeakSettings:
    frequency_bands: Tuple[int, ...] = FULL_SPECTRUM_BANDS
    peaks_per_frame: int = 8
    neighborhood_size: int = 15
    min_amplitude: float = 0.01


@dataclass(frozen=True)
class FingerprintSettings:
    target_zone_size: int = 5
    fan_out: int = 20
    max_time_delta: int = 200
    freq_bits: int = 12
    delta_bits: int = 10


@dataclass(frozen=True)
class MatchSettings:
    offset_tolerance: int = 3
    min_aligned_matches: int = 3
    min_confidence: float = 5.0
    max_workers: Optional[int] = None


@dataclass(frozen=True)
class BeatLensConfig:
    """Every tunable of the pipeline, grouped the way the stages consume them."""

    profile: str = DEFAULT_PROFILE
    audio: AudioSettings = field(default_factory=AudioSettings)
    spectrogram: SpectrogramSettings = field(default_factory=SpectrogramSettings)
    peaks: PeakSettings = field(default_factory=PeakSettings)
    fingerprint: FingerprintSettings = field(default_factory=FingerprintSettings)
    matching: MatchSettings = field(default_factory=MatchSettings)

    @property
    def frequency_resolution(self) -> float:
        """Width of one FFT bin in Hz."""
        return self.audio.sample_rate / self.spectrogram.frame_size

    @property
    def time_resolution(self) -> float:
        """Duration of one hop in seconds."""
        return self.spectrogram.hop_size / self.audio.sample_rate

    @property
    def num_frequency_bins(self) -> int:
        return self.spectrogram.frame_size // 2

    @property
    def min_samples(self) -> int:
        by_duration = int(math.ceil(self.audio.min_duration_seconds * self.audio.sample_rate))
        return max(self.spectrogram.frame_size, by_duration)

    def band_bins(self) -> Tuple[int, ...]:
        return tuple(
            frequency_to_bin(hz, self.audio.sample_rate, self.spectrogram.frame_size)
            for hz in self.peaks.frequency_bands
        )

    def max_peak_bin(self) -> int:
        """Highest frequency bin the band layout can ever report as a peak."""
        bins = self.band_bins()
        return min(bins[-1], self.num_frequency_bins) - 1

    def validate(self) -> "BeatLensConfig":
        audio = self.audio
        if audio.sample_rate <= 0:
            raise ConfigError(f"sample_rate must be positive, got {audio.sample_rate}")
        if audio.bit_depth != 16:
            raise ConfigError(f"Only 16-bit PCM is supported, got {audio.bit_depth}")
        if audio.channels != 1:
            raise ConfigError(f"Only mono audio is supported, got {audio.channels} channels")
        if audio.min_duration_seconds < 0:
            raise ConfigError("min_duration_seconds must not be negative")

        frame_size = self.spectrogram.frame_size
        if frame_size <= 0 or frame_size & (frame_size - 1):
            raise ConfigError(f"Frame size must be a power of 2, got {frame_size}")
        if self.spectrogram.hop_size <= 0:
            raise ConfigError(f"hop_size must be positive, got {self.spectrogram.hop_size}")

        peaks = self.peaks
        bands = list(peaks.frequency_bands)
        if len(bands) < 2:
            raise ConfigError("frequency_bands needs at least two boundaries")
        if any(hz < 0 for hz in bands) or bands != sorted(bands):
            raise ConfigError(f"frequency_bands must be ascending and non-negative, got {bands}")
        if peaks.peaks_per_frame <= 0:
            raise ConfigError("peaks_per_frame must be positive")
        if peaks.neighborhood_size < 0:
            raise ConfigError("neighborhood_size must not be negative")
        if not 0.0 <= peaks.min_amplitude <= 1.0:
            raise ConfigError("min_amplitude is a fraction of the global max and must be in [0, 1]")

        fp = self.fingerprint
        if fp.target_zone_size < 0 or fp.fan_out <= 0:
            raise ConfigError("target_zone_size must be >= 0 and fan_out > 0")
        if fp.max_time_delta < fp.target_zone_size:
            raise ConfigError("max_time_delta must be >= target_zone_size")
        max_bin = self.max_peak_bin()
        if max_bin.bit_length() > fp.freq_bits:
            raise ConfigError(
                f"freq_bits={fp.freq_bits} truncates frequency bins up to {max_bin}; "
                f"need at least {max_bin.bit_length()} bits"
            )
        if fp.max_time_delta.bit_length() > fp.delta_bits:
            raise ConfigError(
                f"delta_bits={fp.delta_bits} cannot hold max_time_delta={fp.max_time_delta}"
            )

        m = self.matching
        if m.offset_tolerance <= 0:
            raise ConfigError("offset_tolerance must be positive")
        if m.max_workers is not None and m.max_workers <= 0:
            raise ConfigError("max_workers must be positive when set")
        return self


def frequency_to_bin(frequency: float, sample_rate: int, frame_size: int) -> int:
    """Convert a frequency in Hz to the nearest FFT bin (halves round up)."""
    return int(math.floor(frequency / (sample_rate / frame_size) + 0.5))


PRESETS: Dict[str, BeatLensConfig] = {
    "full_spectrum": BeatLensConfig(),
    "legacy": BeatLensConfig(
        profile="legacy",
        peaks=PeakSettings(
            frequency_bands=LEGACY_BANDS,
            peaks_per_frame=5,
            neighborhood_size=20,
            min_amplitude=0.01,
        ),
        fingerprint=FingerprintSettings(
            target_zone_size=5,
            fan_out=15,
            max_time_delta=200,
            freq_bits=10,
            delta_bits=10,
        ),
        matching=MatchSettings(offset_tolerance=2, min_aligned_matches=3, min_confidence=5.0),
    ),
}

_SECTIONS = ("audio", "spectrogram", "peaks", "fingerprint", "matching")


def get_preset(name: str) -> BeatLensConfig:
    try:
        return PRESETS[name]
    except KeyError:
        raise ConfigError(f"Unknown profile '{name}'. Choose from {sorted(PRESETS)}") from None


def config_from_dict(raw: Optional[Dict[str, Any]]) -> BeatLensConfig:
    """Build a config from a nested dict: a profile name plus per-section overrides."""
    raw = dict(raw or {})
    base = get_preset(raw.pop("profile", DEFAULT_PROFILE))

    overrides = {}
    for name in _SECTIONS:
        values = raw.pop(name, None)
        if not values:
            continue
        if not isinstance(values, dict):
            raise ConfigError(f"Section '{name}' must be a mapping")
        if name == "peaks" and "frequency_bands" in values:
            values = dict(values, frequency_bands=tuple(values["frequency_bands"]))
        try:
            overrides[name] = dataclasses.replace(getattr(base, name), **values)
        except TypeError as e:
            raise ConfigError(f"Invalid key in section '{name}': {e}") from e

    if raw:
        raise ConfigError(f"Unknown configuration keys: {sorted(raw)}")
    return dataclasses.replace(base, **overrides).validate()


def load_config(config_path: Optional[str] = None) -> BeatLensConfig:
    """Load a YAML config file; falls back to $BEATLENS_CONFIG, then the default profile."""
    config_path = config_path or os.environ.get(CONFIG_ENV_VAR)
    if not config_path:
        return get_preset(DEFAULT_PROFILE).validate()
    try:
        with open(config_path, 'r') as f:
            raw = yaml.safe_load(f)
    except OSError as e:
        raise ConfigError(f"Cannot read config file {config_path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Malformed YAML in {config_path}: {e}") from e
    if raw is not None and not isinstance(raw, dict):
        raise ConfigError(f"{config_path} must contain a mapping at the top level")
    return config_from_dict(raw)


def cors_origins() -> List[str]:
    """Browser origins allowed by the API, comma separated in $BEATLENS_CORS_ALLOWED_ORIGINS."""
    raw = os.environ.get(CORS_ENV_VAR, DEFAULT_CORS_ORIGINS)
    return [origin.strip() for origin in raw.split(",") if origin.strip()]
