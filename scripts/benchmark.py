#!/usr/bin/env python3
"""
Benchmark script: recognition accuracy and latency under clip length / noise.

Prerequisites:
    1. Run index_songs.py first to build the fingerprint database
    2. Have the same audio files (or a subset) available for queries

Usage:
    python scripts/benchmark.py --db-path ./fingerprints/beatlens \
                                --test-dir ~/music \
                                --n-test 100
"""

import argparse
import logging
import json
import random
import time
from dataclasses import asdict, dataclass, field
from pathlib import Path
import sys
from typing import Dict, List, Optional

sys.path.insert(0, str(Path(__file__).parent.parent))

import numpy as np
from tqdm import tqdm

from beatlens.audio import cut_audio, inject_noise, load_audio
from beatlens.config import DB_PATH, load_config
from beatlens.errors import BeatLensError
from beatlens.log import setup_logging
from beatlens.recognizer import ShazamRecognizer


@dataclass
class TestCondition:
    name: str
    clip_length_sec: float
    snr_db: Optional[float] = None


@dataclass
class BenchmarkResults:
    profile: str
    n_db_songs: int
    n_queries: int
    db_load_time_ms: float
    conditions: Dict[str, dict] = field(default_factory=dict)


# Test conditions to evaluate
TEST_CONDITIONS = [
    TestCondition("clean_10s", clip_length_sec=10.0),
    TestCondition("clean_5s", clip_length_sec=5.0),
    TestCondition("clean_3s", clip_length_sec=3.0),
    TestCondition("snr_10db", clip_length_sec=10.0, snr_db=10.0),
    TestCondition("snr_5db", clip_length_sec=10.0, snr_db=5.0),
    TestCondition("snr_0db", clip_length_sec=10.0, snr_db=0.0),
]


def create_query(signal: np.ndarray, condition: TestCondition, sr: int, seed: int) -> np.ndarray:
    """Cut a random clip and optionally add white noise at the requested SNR."""
    query = cut_audio(signal, sr, condition.clip_length_sec, seed=seed)
    if condition.snr_db is not None:
        query = inject_noise(query, condition.snr_db, seed=seed)
    return query


def run_benchmark(recognizer: ShazamRecognizer, test_files: List[Path],
                  conditions: List[TestCondition], db_load_time: float,
                  seed: int) -> BenchmarkResults:
    results = BenchmarkResults(
        profile=recognizer.config.profile,
        n_db_songs=recognizer.num_indexed_songs,
        n_queries=len(test_files),
        db_load_time_ms=db_load_time,
    )

    # decode once, every condition reuses the same signals
    signals = {}
    for test_file in tqdm(test_files, desc="Loading queries", unit='file'):
        try:
            signals[test_file] = load_audio(test_file, recognizer.sample_rate)
        except BeatLensError as e:
            print(f"    Skipping {test_file.name}: {e}")

    for condition in conditions:
        correct = 0
        total = 0
        failed = 0
        query_times = []

        for i, (test_file, signal) in enumerate(signals.items()):
            expected = test_file.stem
            query = create_query(signal, condition, recognizer.sample_rate, seed + i)
            total += 1
            try:
                start = time.time()
                report = recognizer.recognize_samples(query)
                query_times.append((time.time() - start) * 1000)
            except BeatLensError as e:
                print(f"    Error {test_file.name}: {e}")
                failed += 1
                continue

            if report.best and report.best.title == expected:
                correct += 1

        accuracy = correct / total * 100 if total > 0 else 0
        avg_time = float(np.mean(query_times)) if query_times else 0.0

        results.conditions[condition.name] = {
            "accuracy": accuracy,
            "avg_query_time_ms": avg_time,
            "correct": correct,
            "failed": failed,
            "total": total,
        }
        print(f"  {condition.name}: {accuracy:.1f}% ({correct}/{total}), {avg_time:.1f}ms/query")

    return results


def main():
    parser = argparse.ArgumentParser(description='Benchmark BeatLens recognition')
    parser.add_argument('--db-path', type=str, default=DB_PATH,
                        help='Directory with the indexed fingerprints')
    parser.add_argument('--test-dir', type=str, required=True,
                        help='Directory with test audio files')
    parser.add_argument('--pattern', type=str, default='*.wav')
    parser.add_argument('--n-test', type=int, default=50,
                        help='Number of test queries')
    parser.add_argument('--config', type=str, default=None,
                        help='YAML configuration file')
    parser.add_argument('--output', type=str, default='benchmark_results.json')
    parser.add_argument('--seed', type=int, default=42)
    args = parser.parse_args()

    # keep per-query logging out of the benchmark output
    setup_logging(logging.WARNING)
    random.seed(args.seed)

    db_dir = Path(args.db_path).expanduser()
    test_dir = Path(args.test_dir).expanduser()
    print(f"DB: {db_dir}")
    print(f"Test: {test_dir}")

    test_files = sorted(test_dir.rglob(args.pattern))
    random.shuffle(test_files)
    test_files = test_files[:args.n_test]
    print(f"Test files: {len(test_files)}")

    start = time.time()
    recognizer = ShazamRecognizer(load_config(args.config))
    recognizer.load(db_dir)
    db_load_time = (time.time() - start) * 1000
    print(f"Loaded {recognizer.num_indexed_songs} songs in {db_load_time:.1f}ms")

    print(f"\n=== BeatLens Benchmark ({recognizer.config.profile}) ===")
    results = run_benchmark(recognizer, test_files, TEST_CONDITIONS, db_load_time, args.seed)

    with open(args.output, 'w') as f:
        json.dump(asdict(results), f, indent=2)
    print(f"\nSaved to {args.output}")


if __name__ == '__main__':
    main()
