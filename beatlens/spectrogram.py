"""
Log-magnitude spectrogram extraction.

Pipeline: framing -> Hann window -> real FFT (numpy) -> log1p(|X|).

Log compression keeps loud and quiet passages on a comparable scale. The
peak extractor thresholds against the global maximum of the whole
spectrogram, so with plain magnitudes a loud chorus would starve a fade-out
of peaks when the full song is indexed, while the same fade-out queried on
its own would still produce them.

There is no spectral whitening (subtracting the per-bin mean over
time): that mean depends on how much audio is being processed, so a 3-minute
indexed song and a 5-second query would end up with different spectra and
different hashes. log1p already turns spectral coloring into a small additive
shift, and the neighbourhood check in the peak extractor ignores shifts that
hit all neighbours equally.
"""

import logging

import numpy as np

from .errors import ConfigError, InvalidInput

log = logging.getLogger(__name__)

# frames transformed per FFT call; bounds memory on full-length songs
BLOCK_FRAMES = 256


def hann_window(size: int) -> np.ndarray:
    """Symmetric Hann window, w[i] = 0.5 * (1 - cos(2*pi*i / (size - 1)))."""
    if size == 1:
        return np.ones(1)
    i = np.arange(size)
    return 0.5 * (1.0 - np.cos(2.0 * np.pi * i / (size - 1)))


class SpectrogramBuilder:

    def __init__(self, frame_size: int = 4096, hop_size: int = 2048, sample_rate: int = 44100):
        if frame_size <= 0 or frame_size & (frame_size - 1):
            raise ConfigError(f"Frame size must be a power of 2, got {frame_size}")
        if hop_size <= 0:
            raise ConfigError(f"Hop size must be positive, got {hop_size}")
        self.frame_size = frame_size
        self.hop_size = hop_size
        self.sample_rate = sample_rate
        self.window = hann_window(frame_size)

    @classmethod
    def from_config(cls, config):
        return cls(config.spectrogram.frame_size, config.spectrogram.hop_size,
                   config.audio.sample_rate)

    @property
    def num_bins(self) -> int:
        return self.frame_size // 2

    @property
    def time_resolution(self) -> float:
        return self.hop_size / self.sample_rate

    @property
    def frequency_resolution(self) -> float:
        return self.sample_rate / self.frame_size

    def num_frames(self, sample_count: int) -> int:
        return max(0, (sample_count - self.frame_size) // self.hop_size + 1)

    def frame_to_seconds(self, frame_index: int) -> float:
        return frame_index * self.hop_size / self.sample_rate

    def generate(self, samples) -> np.ndarray:
        """
        Build the spectrogram of a mono signal.

        Returns an array of shape (num_frames, frame_size // 2) holding
        log1p magnitudes. Raises InvalidInput if the signal is shorter than
        one frame.
        """
        samples = np.asarray(samples, dtype=np.float64)
        n_frames = self.num_frames(len(samples))
        if n_frames <= 0:
            raise InvalidInput(
                f"Audio too short: need at least {self.frame_size} samples, got {len(samples)}"
            )

        # zero-pad so that every frame start + frame_size is addressable
        needed = (n_frames - 1) * self.hop_size + self.frame_size
        if needed > len(samples):
            samples = np.concatenate([samples, np.zeros(needed - len(samples))])

        spectrogram = np.empty((n_frames, self.num_bins), dtype=np.float64)
        offsets = np.arange(self.frame_size)
        for start in range(0, n_frames, BLOCK_FRAMES):
            stop = min(start + BLOCK_FRAMES, n_frames)
            idx = (np.arange(start, stop) * self.hop_size)[:, None] + offsets
            frames = samples[idx] * self.window
            spectrum = np.fft.rfft(frames, axis=1)[:, :self.num_bins]
            spectrogram[start:stop] = np.log1p(np.abs(spectrum))

        log.debug(f"Generated spectrogram: {n_frames} frames x {self.num_bins} bins (log-magnitude)")
        return spectrogram
