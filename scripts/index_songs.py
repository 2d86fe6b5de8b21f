#!/usr/bin/env python3
"""
Index songs into the fingerprint database.

Usage:
    python scripts/index_songs.py --folder ~/music --pattern "*.wav"
    python scripts/index_songs.py --folder ~/music --config config/beatlens.yaml --db-path fingerprints/legacy
"""

import argparse
import logging
from pathlib import Path
import sys

sys.path.insert(0, str(Path(__file__).parent.parent))

from beatlens.config import DB_PATH, load_config
from beatlens.log import log_detail, log_section, log_success, setup_logging
from beatlens.recognizer import ShazamRecognizer


def main():
    parser = argparse.ArgumentParser(description='BeatLens - index songs')
    parser.add_argument('--folder', '-f', type=str, required=True,
                        help='Folder containing audio files (searched recursively)')
    parser.add_argument('--pattern', '-p', type=str, default='*.wav',
                        help='Glob pattern for audio files (default: *.wav)')
    parser.add_argument('--db-path', type=str, default=DB_PATH,
                        help=f'Database directory (default: {DB_PATH})')
    parser.add_argument('--config', '-c', type=str, default=None,
                        help='YAML configuration file')
    parser.add_argument('--verbose', '-v', action='store_true')
    args = parser.parse_args()

    log = setup_logging(logging.DEBUG if args.verbose else logging.INFO)
    folder = Path(args.folder).expanduser()
    output_dir = Path(args.db_path)

    if not folder.is_dir():
        log.error(f"Folder not found: {folder}")
        sys.exit(1)

    log_section("🎵 BeatLens Indexing")
    config = load_config(args.config)
    recognizer = ShazamRecognizer(config)
    recognizer.load(output_dir)
    log_detail("Profile", config.profile)
    log_detail("Already indexed", str(recognizer.num_indexed_songs))

    added = recognizer.index_folder(folder, args.pattern)

    recognizer.save(output_dir)
    log_success(f"Added {added} songs, {recognizer.num_indexed_songs} total in {output_dir}")


if __name__ == '__main__':
    main()
