"""
BeatLens - content-based audio identification.

Constellation fingerprinting in the style of Shazam:
1. Convert PCM audio to a log-magnitude spectrogram
2. Find strict local peaks inside frequency bands
3. Hash anchor/target peak pairs
4. Match query hashes against an index with a time-alignment histogram
"""

from .audio import decode_pcm, encode_pcm
from .base import FingerprintIndex, FingerprintLookup, IndexEntry
from .config import BeatLensConfig, PRESETS, get_preset, load_config
from .errors import BeatLensError, ConfigError, FormatError, InvalidInput, SongNotFound
from .hashing import Fingerprint, FingerprintHasher, HashLayout
from .matching import Matcher, MatchResult
from .peaks import Peak, PeakExtractor
from .recognizer import MatchReport, RankedMatch, ShazamRecognizer
from .spectrogram import SpectrogramBuilder

__all__ = [
    'decode_pcm', 'encode_pcm',
    'FingerprintIndex', 'FingerprintLookup', 'IndexEntry',
    'BeatLensConfig', 'PRESETS', 'get_preset', 'load_config',
    'BeatLensError', 'ConfigError', 'FormatError', 'InvalidInput', 'SongNotFound',
    'Fingerprint', 'FingerprintHasher', 'HashLayout',
    'Matcher', 'MatchResult',
    'Peak', 'PeakExtractor',
    'MatchReport', 'RankedMatch', 'ShazamRecognizer',
    'SpectrogramBuilder',
]
