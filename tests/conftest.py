"""
Shared fixtures: deterministic synthetic "songs" and recognizers built on them.

A synthetic song is faint noise plus three decaying random tones struck every
quarter second, which gives a dense, song-specific constellation map.
"""

import numpy as np
import pytest

from beatlens.config import get_preset
from beatlens.recognizer import ShazamRecognizer

SR = 44100
HOP = 2048


def make_song(seed, duration=12.0, sr=SR):
    rng = np.random.RandomState(seed)
    n = int(duration * sr)
    signal = 0.001 * rng.randn(n)
    segment = int(0.25 * sr)
    for start in range(0, n, segment):
        stop = min(start + segment, n)
        t = np.arange(stop - start) / sr
        # plucked notes: the onset frame is clearly the loudest one
        envelope = np.exp(-t / 0.08)
        for freq in rng.uniform(150.0, 8000.0, size=3):
            signal[start:stop] += 0.2 * envelope * np.sin(2 * np.pi * freq * t)
    return np.clip(signal, -1.0, 1.0)


def make_clip(song, start_frame, seconds, sr=SR):
    """Slice starting on a hop boundary so the clip frames line up with the song frames."""
    start = start_frame * HOP
    return song[start:start + int(seconds * sr)]


@pytest.fixture(scope="session")
def songs():
    return {
        "Alpha": make_song(1),
        "Bravo": make_song(2),
        "Charlie": make_song(3),
    }


@pytest.fixture(scope="session")
def indexed_recognizer(songs):
    """Recognizer with every synthetic song indexed. Tests must not mutate it."""
    recognizer = ShazamRecognizer(get_preset("full_spectrum"))
    for title, samples in songs.items():
        recognizer.index_samples(samples, title, artist="Synth")
    return recognizer


@pytest.fixture
def recognizer(songs):
    """Fresh recognizer with the synthetic songs indexed, safe to modify."""
    recognizer = ShazamRecognizer(get_preset("full_spectrum"))
    for title, samples in songs.items():
        recognizer.index_samples(samples, title, artist="Synth")
    return recognizer


@pytest.fixture
def sine():
    def _sine(freq, seconds=1.0, amplitude=0.5, sr=SR):
        t = np.arange(int(seconds * sr)) / sr
        return amplitude * np.sin(2 * np.pi * freq * t)
    return _sine
