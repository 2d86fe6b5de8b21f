"""
End-to-end recognition on synthetic songs.

Query clips start on a hop boundary of the indexed song, so the clip frames
are exactly a run of the song frames and the true offset is known.
"""

import numpy as np
import pytest
import soundfile as sf

from beatlens.audio import encode_pcm
from beatlens.config import config_from_dict, get_preset
from beatlens.errors import InvalidInput, SongNotFound
from beatlens.recognizer import ShazamRecognizer, Timer

from conftest import make_clip, make_song

TIME_RES = 2048 / 44100


@pytest.mark.parametrize("title", ["Alpha", "Bravo", "Charlie"])
def test_recognizes_each_song(indexed_recognizer, songs, title):
    report = indexed_recognizer.recognize_samples(make_clip(songs[title], 100, 5.0))
    assert report.best is not None
    assert report.best.title == title
    assert report.best.artist == "Synth"
    assert report.best.aligned_matches >= 3
    # true offset is 100 frames; the reported one is its bucket start
    assert abs(report.best.time_offset_seconds - 100 * TIME_RES) <= 3 * TIME_RES
    assert report.query_fingerprint_count > 0
    assert report.query_duration_seconds == pytest.approx(5.0, abs=1e-3)


def test_matches_are_sorted(indexed_recognizer, songs):
    report = indexed_recognizer.recognize_samples(make_clip(songs["Bravo"], 40, 4.0))
    confidences = [m.confidence for m in report.matches]
    assert confidences == sorted(confidences, reverse=True)
    assert all(0.0 <= c <= 100.0 for c in confidences)


def test_unknown_audio_scores_far_below_a_true_match(indexed_recognizer, songs):
    true_match = indexed_recognizer.recognize_samples(make_clip(songs["Alpha"], 10, 5.0)).best
    report = indexed_recognizer.recognize_samples(make_clip(make_song(99), 10, 5.0))
    if report.best is not None:
        assert report.best.confidence < true_match.confidence / 2


def test_silence_gives_empty_report(indexed_recognizer):
    report = indexed_recognizer.recognize_samples(np.zeros(44100 * 3))
    assert report.matches == []
    assert report.best is None
    assert report.query_fingerprint_count == 0


def test_too_short_query(indexed_recognizer):
    with pytest.raises(InvalidInput):
        indexed_recognizer.recognize_samples(np.zeros(4095))


def test_min_duration_is_enforced(songs):
    recognizer = ShazamRecognizer(config_from_dict({"audio": {"min_duration_seconds": 3.0}}))
    with pytest.raises(InvalidInput):
        recognizer.recognize_samples(make_clip(songs["Alpha"], 0, 2.0))


def test_recognize_pcm(indexed_recognizer, songs):
    """VERIFY: raw 16-bit PCM queries go through the same pipeline."""
    pcm = encode_pcm(make_clip(songs["Charlie"], 60, 5.0))
    report = indexed_recognizer.recognize_pcm(pcm + b"\x01")
    assert report.best.title == "Charlie"


def test_noisy_clip_still_matches(indexed_recognizer, songs):
    clip = make_clip(songs["Alpha"], 120, 6.0)
    report = indexed_recognizer.recognize_samples(clip, snr_db=15.0)
    assert report.best is not None
    assert report.best.title == "Alpha"


def test_parallel_lookups_same_report(songs, indexed_recognizer):
    recognizer = ShazamRecognizer(config_from_dict({"matching": {"max_workers": 4}}),
                                  catalog=indexed_recognizer.catalog)
    clip = make_clip(songs["Bravo"], 80, 5.0)
    assert recognizer.recognize_samples(clip).matches == \
        indexed_recognizer.recognize_samples(clip).matches


def test_delete_song(recognizer, songs):
    alpha = recognizer.catalog.find_by_title("Alpha")
    removed = recognizer.delete_song(alpha.song_id)
    assert removed == alpha.fingerprint_count
    with pytest.raises(SongNotFound):
        recognizer.get_song(alpha.song_id)

    report = recognizer.recognize_samples(make_clip(songs["Alpha"], 100, 5.0))
    assert all(m.song_id != alpha.song_id for m in report.matches)


def test_save_and_load(recognizer, songs, tmp_path):
    recognizer.save(tmp_path / "db")
    restored = ShazamRecognizer()
    restored.load(tmp_path / "db")
    assert restored.num_indexed_songs == 3
    assert restored.stats().total_fingerprints == recognizer.stats().total_fingerprints
    report = restored.recognize_samples(make_clip(songs["Bravo"], 100, 5.0))
    assert report.best.title == "Bravo"


def test_index_song_from_file_skips_duplicates(tmp_path, songs):
    path = tmp_path / "Delta.wav"
    sf.write(str(path), songs["Alpha"][:44100 * 6], 44100)
    recognizer = ShazamRecognizer()
    song = recognizer.index_song(path)
    assert song.title == "Delta"
    assert song.duration_seconds == pytest.approx(6.0)
    assert recognizer.index_song(path) is None
    assert recognizer.index_folder(tmp_path) == 0


def test_legacy_profile_end_to_end(songs):
    recognizer = ShazamRecognizer(get_preset("legacy"))
    for title in ("Alpha", "Bravo"):
        recognizer.index_samples(songs[title], title)
    report = recognizer.recognize_samples(make_clip(songs["Bravo"], 50, 5.0))
    assert report.best.title == "Bravo"


def test_timer_records_steps(indexed_recognizer, songs):
    timer = Timer()
    fps = indexed_recognizer.fingerprint(make_clip(songs["Alpha"], 0, 3.0), timer)
    assert fps
    assert set(timer.timings) == {"Extract spectrogram", "Find peaks", "Build hashes"}
    assert timer.total >= 0.0


def test_index_folder_recurses_and_skips_bad_files(tmp_path, songs):
    """VERIFY: nested files are found and unreadable or too-short files are skipped."""
    nested = tmp_path / "album" / "disc1"
    nested.mkdir(parents=True)
    sf.write(str(nested / "Foxtrot.wav"), songs["Bravo"][:44100 * 4], 44100)
    sf.write(str(tmp_path / "Golf.wav"), songs["Charlie"][:44100 * 4], 44100)
    (tmp_path / "broken.wav").write_bytes(b"not a wav file")
    sf.write(str(tmp_path / "blip.wav"), np.zeros(100), 44100)

    recognizer = ShazamRecognizer()
    assert recognizer.index_folder(tmp_path) == 2
    assert sorted(s.title for s in recognizer.list_songs()) == ["Foxtrot", "Golf"]
    assert recognizer.index_folder(tmp_path) == 0
