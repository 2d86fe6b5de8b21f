import numpy as np
import pytest

from beatlens.config import get_preset
from beatlens.peaks import Peak, PeakExtractor, neighbourhood_max_excluding_center
from beatlens.spectrogram import SpectrogramBuilder


@pytest.fixture
def extractor():
    return PeakExtractor.from_config(get_preset("full_spectrum"))


def test_empty_spectrogram(extractor):
    assert extractor.extract(np.zeros((0, 2048))) == []


def test_flat_spectrogram_has_no_peaks(extractor):
    """VERIFY: equal neighbours reject every cell, including all-zero silence."""
    assert extractor.extract(np.zeros((20, 2048))) == []
    assert extractor.extract(np.full((20, 2048), 3.0)) == []


def test_single_spike(extractor):
    spec = np.zeros((10, 100))
    spec[5, 50] = 1.0
    assert extractor.extract(spec) == [Peak(5, 50, 1.0)]


def test_equal_neighbour_rejects_both(extractor):
    spec = np.zeros((10, 100))
    spec[5, 50] = 1.0
    spec[5, 51] = 1.0
    assert extractor.extract(spec) == []


def test_neighbourhood_is_clamped_at_edges(extractor):
    """VERIFY: a spike in the corner still counts; only in-bounds cells compete."""
    spec = np.zeros((10, 100))
    spec[0, 1] = 2.0
    spec[9, 99] = 1.5
    found = {(p.frame_index, p.frequency_bin) for p in extractor.extract(spec)}
    assert found == {(0, 1), (9, 99)}


def test_global_threshold(extractor):
    """VERIFY: peaks below min_amplitude * global max are dropped."""
    spec = np.zeros((10, 200))
    spec[2, 20] = 100.0
    spec[2, 150] = 0.5   # below 1% of 100
    spec[7, 150] = 2.0
    found = {(p.frame_index, p.frequency_bin) for p in extractor.extract(spec)}
    assert found == {(2, 20), (7, 150)}


def test_per_frame_cap_keeps_strongest():
    extractor = PeakExtractor(neighborhood_size=1, max_peaks_per_frame=3)
    spec = np.zeros((3, 120))
    for i, b in enumerate(range(10, 110, 10)):
        spec[1, b] = 1.0 + i
    peaks = extractor.extract(spec)
    assert [p.frequency_bin for p in peaks] == [100, 90, 80]
    assert all(p.frame_index == 1 for p in peaks)


def test_out_of_band_peaks_are_ignored():
    extractor = PeakExtractor(frequency_bands=(0, 300))
    spec = np.zeros((10, 200))
    spec[5, 10] = 1.0
    spec[5, 120] = 5.0
    assert [p.frequency_bin for p in extractor.extract(spec)] == [10]


def test_band_mask_follows_band_boundaries():
    extractor = PeakExtractor(frequency_bands=(0, 300, 600, 1200, 2400, 5000))
    mask = extractor.band_mask(2048)
    # 5000 Hz -> bin 464
    assert mask[:464].all()
    assert not mask[464:].any()


def test_neighbourhood_max_excluding_center():
    spec = np.arange(25, dtype=np.float64).reshape(5, 5)
    others = neighbourhood_max_excluding_center(spec, 1)
    assert others[0, 0] == 6.0
    assert others[2, 2] == 18.0
    assert others[4, 4] == 23.0
    assert np.all(np.isneginf(neighbourhood_max_excluding_center(spec, 0)))


def test_sine_strongest_peak_is_on_its_bin(sine):
    """VERIFY: the strongest peak of a rising tone sits on the tone's bin."""
    builder = SpectrogramBuilder()
    samples = sine(93 * builder.frequency_resolution, seconds=2.0)
    samples = samples * np.linspace(0.1, 1.0, len(samples))
    peaks = PeakExtractor().extract(builder.generate(samples))
    assert peaks
    strongest = max(peaks, key=lambda p: p.magnitude)
    assert strongest.frequency_bin == 93


def test_peaks_are_plain_python_values(extractor):
    spec = np.zeros((10, 100))
    spec[5, 50] = 1.0
    peak = extractor.extract(spec)[0]
    assert type(peak.frame_index) is int
    assert type(peak.frequency_bin) is int
    assert type(peak.magnitude) is float
