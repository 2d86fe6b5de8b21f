import io
import logging

import librosa
import numpy as np
import soundfile as sf

from .errors import FormatError

log = logging.getLogger(__name__)

PCM_SCALE_IN = 32768.0
PCM_SCALE_OUT = 32767
BYTES_PER_SAMPLE = 2


def decode_pcm(data) -> np.ndarray:
    """
    16-bit little-endian signed PCM bytes -> float64 samples in [-1.0, 1.0].

    A trailing odd byte is dropped, the same way integer division of the
    buffer length would drop it.
    """
    if not isinstance(data, (bytes, bytearray, memoryview)):
        raise FormatError(f"Expected a PCM byte buffer, got {type(data).__name__}")
    n_samples = len(data) // BYTES_PER_SAMPLE
    pcm = np.frombuffer(bytes(data[:n_samples * BYTES_PER_SAMPLE]), dtype='<i2')
    return pcm.astype(np.float64) / PCM_SCALE_IN


def encode_pcm(samples) -> bytes:
    """Float samples -> 16-bit little-endian PCM. Out-of-range values saturate."""
    clipped = np.clip(np.asarray(samples, dtype=np.float64), -1.0, 1.0)
    return np.rint(clipped * PCM_SCALE_OUT).astype('<i2').tobytes()


def _to_target(signal, sr, target_sr):
    signal = np.asarray(signal, dtype=np.float64)
    if signal.ndim > 1:
        # signal is (num_samples, num_channels); librosa wants (channels, samples)
        signal = librosa.to_mono(signal.T)
    if sr != target_sr:
        signal = librosa.resample(signal, orig_sr=sr, target_sr=target_sr)
    return np.clip(signal, -1.0, 1.0)


def load_audio(path, target_sr: int = 44100) -> np.ndarray:
    """Read any file soundfile understands, as mono float samples at target_sr."""
    try:
        signal, sr = sf.read(str(path), dtype='float64')
    except RuntimeError as e:
        # soundfile.LibsndfileError derives from RuntimeError
        raise FormatError(f"Failed to decode audio file {path}: {e}") from e
    log.debug(f"Read {path}: {len(signal)} samples at {sr} Hz")
    return _to_target(signal, sr, target_sr)


def read_wav_bytes(data: bytes, target_sr: int = 44100) -> np.ndarray:
    """Same as load_audio, for an in-memory WAV (or FLAC/OGG) upload."""
    if not data:
        raise FormatError("Empty audio buffer")
    try:
        signal, sr = sf.read(io.BytesIO(data), dtype='float64')
    except RuntimeError as e:
        raise FormatError(f"Failed to decode audio: {e}") from e
    return _to_target(signal, sr, target_sr)


def cut_audio(signal, sample_rate, clip_length_sec, seed=42):
    """Random clip of clip_length_sec seconds; the whole signal if it is shorter."""
    rng = np.random.RandomState(seed)
    total_samples = len(signal)
    clip_samples = int(clip_length_sec * sample_rate)
    if clip_samples >= total_samples:
        return signal
    start = rng.randint(0, total_samples - clip_samples)
    end = start + clip_samples
    return signal[start:end]


def inject_noise(signal, snr_db, seed=None):
    """
    Add white Gaussian noise to `signal` to get the desired SNR in dB.
    Assumes `signal` is a 1D float numpy array.
    """
    signal = np.asarray(signal, dtype=np.float64)
    signal_power = np.mean(signal ** 2)
    if signal_power == 0:
        # nothing to scale the noise against
        return signal

    noise_power = signal_power / (10 ** (snr_db / 10))
    rng = np.random.RandomState(seed)
    noise = rng.normal(0.0, np.sqrt(noise_power), size=signal.shape)
    return signal + noise
