import numpy as np
import pytest

from beatlens.errors import ConfigError, InvalidInput
from beatlens.spectrogram import SpectrogramBuilder, hann_window


def test_hann_window_shape():
    w = hann_window(4096)
    assert w[0] == pytest.approx(0.0)
    assert w[-1] == pytest.approx(0.0)
    assert w.max() == pytest.approx(1.0, abs=1e-6)
    assert np.allclose(w, w[::-1])


def test_frame_count():
    """VERIFY: frames = floor((len - frame) / hop) + 1."""
    builder = SpectrogramBuilder()
    assert builder.generate(np.zeros(4096)).shape == (1, 2048)
    assert builder.generate(np.zeros(4096 + 2047)).shape == (1, 2048)
    assert builder.generate(np.zeros(4096 + 2048)).shape == (2, 2048)
    assert builder.num_frames(44100) == 20


def test_too_short_raises():
    with pytest.raises(InvalidInput):
        SpectrogramBuilder().generate(np.zeros(4095))


def test_invalid_frame_size():
    with pytest.raises(ConfigError):
        SpectrogramBuilder(frame_size=3000)
    with pytest.raises(ConfigError):
        SpectrogramBuilder(hop_size=0)


def test_silence_is_all_zero():
    spec = SpectrogramBuilder().generate(np.zeros(44100))
    assert np.all(spec == 0.0)


def test_sine_energy_lands_on_its_bin(sine):
    """VERIFY: a tone centred on bin 93 peaks at bin 93 in every frame."""
    builder = SpectrogramBuilder()
    freq = 93 * builder.frequency_resolution
    spec = builder.generate(sine(freq, seconds=1.0))
    assert np.all(np.argmax(spec, axis=1) == 93)
    assert np.all(spec >= 0.0)


def test_blocked_fft_matches_single_pass(sine):
    """VERIFY: chunking frames through the FFT does not change the output."""
    builder = SpectrogramBuilder(frame_size=256, hop_size=128)
    samples = sine(440.0, seconds=1.0) + sine(3000.0, seconds=1.0, amplitude=0.2)
    spec = builder.generate(samples)
    assert spec.shape[0] > 256

    frames = np.stack([samples[i * 128:i * 128 + 256] * builder.window
                       for i in range(spec.shape[0])])
    expected = np.log1p(np.abs(np.fft.rfft(frames, axis=1)[:, :128]))
    assert np.allclose(spec, expected)


def test_resolutions():
    builder = SpectrogramBuilder()
    assert builder.time_resolution == pytest.approx(2048 / 44100)
    assert builder.frequency_resolution == pytest.approx(44100 / 4096)
    assert builder.frame_to_seconds(100) == pytest.approx(100 * 2048 / 44100)
