"""
Exceptions raised by the fingerprinting pipeline and its store.

Empty outcomes (no peaks, no fingerprints, no candidate songs) are never
errors; they come back as empty lists.
"""


class BeatLensError(Exception):
    """Base class for every error raised by beatlens."""


class ConfigError(BeatLensError):
    """Invalid configuration, detected at construction time."""


class FormatError(BeatLensError):
    """Input bytes that cannot be interpreted as audio."""


class InvalidInput(BeatLensError):
    """Audio that is too short to fingerprint."""


class SongNotFound(BeatLensError):
    def __init__(self, song_id: int):
        super().__init__(f"Song not found: id={song_id}")
        self.song_id = song_id
