#!/usr/bin/env python3
"""
Song recognition CLI.

Usage:
    python scripts/recognize.py --query audio.wav
    python scripts/recognize.py --query audio.wav --clip-length 10 --snr 5 --debug
"""

import argparse
import logging
from pathlib import Path
import sys

sys.path.insert(0, str(Path(__file__).parent.parent))

from beatlens.config import DB_PATH, load_config
from beatlens.errors import BeatLensError
from beatlens.log import setup_logging
from beatlens.recognizer import ShazamRecognizer


def main():
    parser = argparse.ArgumentParser(description='BeatLens - Song Recognition')
    parser.add_argument('--query', '-q', type=str, required=True,
                        help='Path to query audio file')
    parser.add_argument('--db-path', type=str, default=DB_PATH,
                        help=f'Database directory (default: {DB_PATH})')
    parser.add_argument('--config', '-c', type=str, default=None,
                        help='YAML configuration file')
    parser.add_argument('--clip-length', type=float, default=None,
                        help='Clip length in seconds (for testing with shorter clips)')
    parser.add_argument('--snr', type=float, default=None,
                        help='SNR in dB for noise injection (for testing robustness)')
    parser.add_argument('--top', type=int, default=5, help='Number of candidates to print')
    parser.add_argument('--debug', action='store_true', help='Print per-step timings')
    args = parser.parse_args()

    log = setup_logging(logging.DEBUG if args.debug else logging.INFO)
    query_path = Path(args.query)
    if not query_path.exists():
        print(f"Error: Query file not found: {query_path}")
        sys.exit(1)

    recognizer = ShazamRecognizer(load_config(args.config))
    recognizer.load(Path(args.db_path))

    print(f"Recognizing: {query_path.name}")
    print(f"Database: {recognizer.num_indexed_songs} songs indexed")

    try:
        report = recognizer.recognize(
            query_path,
            clip_length_sec=args.clip_length,
            snr_db=args.snr,
            debug=args.debug,
        )
    except BeatLensError as e:
        log.error(f"Recognition failed: {e}")
        sys.exit(2)

    if report.best:
        best = report.best
        print(f"\n✓ Match found: {best.title}" + (f" - {best.artist}" if best.artist else ""))
        print(f"  Confidence: {best.confidence:.1f}")
        print(f"  Aligned / total matches: {best.aligned_matches} / {best.total_matches}")
        print(f"  Offset in song: {best.time_offset_seconds:.2f}s")
        for other in report.matches[1:args.top]:
            print(f"  - {other.title} ({other.confidence:.1f})")
    else:
        print(f"\n✗ No match found ({report.query_fingerprint_count} query fingerprints)")


if __name__ == '__main__':
    main()
