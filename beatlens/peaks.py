import logging
from typing import List, NamedTuple, Sequence

import numpy as np
from scipy.ndimage import maximum_filter1d

from .config import FULL_SPECTRUM_BANDS, frequency_to_bin

log = logging.getLogger(__name__)


class Peak(NamedTuple):
    """A star of the constellation map."""
    frame_index: int
    frequency_bin: int
    magnitude: float


def neighbourhood_max_excluding_center(spectrogram: np.ndarray, radius: int) -> np.ndarray:
    """
    For every cell, the max over its (2r+1) x (2r+1) neighbourhood without the
    cell itself. The neighbourhood is clamped to the array; cells with no
    neighbour at all get -inf.
    """
    out = np.full(spectrogram.shape, -np.inf)
    if radius <= 0:
        return out

    # max over [bin - r, bin + r] within each frame
    rows = maximum_filter1d(spectrogram, size=2 * radius + 1, axis=1,
                            mode='constant', cval=-np.inf)
    for k in range(1, radius + 1):
        # frames before / after: whole row window
        np.maximum(out[k:], rows[:-k], out=out[k:])
        np.maximum(out[:-k], rows[k:], out=out[:-k])
        # same frame: bins on either side
        np.maximum(out[:, k:], spectrogram[:, :-k], out=out[:, k:])
        np.maximum(out[:, :-k], spectrogram[:, k:], out=out[:, :-k])
    return out


class PeakExtractor:
    """
    Finds strict local maxima of a spectrogram inside frequency bands.

    A cell is a peak when
      - its magnitude is >= global_max * min_amplitude,
      - it lies inside one of the bands,
      - every other cell of the (2r+1) x (2r+1) neighbourhood (clamped to the
        array) is strictly smaller. An equal neighbour rejects the cell.
    Each frame keeps at most max_peaks_per_frame peaks, strongest first.
    """

    def __init__(self, neighborhood_size: int = 15, min_amplitude: float = 0.01,
                 max_peaks_per_frame: int = 8,
                 frequency_bands: Sequence[float] = FULL_SPECTRUM_BANDS,
                 sample_rate: int = 44100, frame_size: int = 4096):
        self.neighborhood_size = neighborhood_size
        self.min_amplitude = min_amplitude
        self.max_peaks_per_frame = max_peaks_per_frame
        self.band_bins = [frequency_to_bin(hz, sample_rate, frame_size) for hz in frequency_bands]

    @classmethod
    def from_config(cls, config):
        p = config.peaks
        return cls(p.neighborhood_size, p.min_amplitude, p.peaks_per_frame, p.frequency_bands,
                   config.audio.sample_rate, config.spectrogram.frame_size)

    def band_mask(self, n_bins: int) -> np.ndarray:
        mask = np.zeros(n_bins, dtype=bool)
        for band_start, band_end in zip(self.band_bins[:-1], self.band_bins[1:]):
            mask[band_start:min(band_end, n_bins)] = True
        return mask

    def extract(self, spectrogram) -> List[Peak]:
        spectrogram = np.asarray(spectrogram, dtype=np.float64)
        if spectrogram.ndim != 2 or spectrogram.shape[0] == 0 or spectrogram.shape[1] == 0:
            return []

        n_frames, n_bins = spectrogram.shape
        threshold = max(0.0, float(spectrogram.max())) * self.min_amplitude

        others = neighbourhood_max_excluding_center(spectrogram, self.neighborhood_size)
        mask = (spectrogram >= threshold) & (spectrogram > others)
        mask &= self.band_mask(n_bins)[None, :]

        peaks: List[Peak] = []
        for frame in np.flatnonzero(mask.any(axis=1)):
            bins = np.flatnonzero(mask[frame])
            # bins come out ascending (band scan order); the sort is stable
            frame_peaks = sorted(
                (Peak(int(frame), int(b), float(spectrogram[frame, b])) for b in bins),
                key=lambda p: p.magnitude, reverse=True,
            )
            peaks.extend(frame_peaks[:self.max_peaks_per_frame])

        log.debug(f"Detected {len(peaks)} peaks across {n_frames} frames")
        return peaks
