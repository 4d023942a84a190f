import asyncio
import random
import time
from typing import List, Tuple

from signalminer.batch import is_failure
from signalminer.config import BatchOptions, PipelineOptions, RateLimit
from signalminer.pipeline import Pipeline
from signalminer.utils.logger import setup_logger

logger = setup_logger("benchmark")

OPENERS = ["Honestly", "Well", "So", "Update:", "Overall"]
SUBJECTS = ["the battery", "shipping", "the screen", "customer service", "the price", "the app"]
OPINIONS = [
    "is excellent",
    "was really bad",
    "is not good",
    "was fast and reliable",
    "is okay but could be better",
    "was absolutely terrible",
]


def make_reviews(count: int, seed: int = 7) -> List[str]:
    """Build synthetic review texts from a fixed vocabulary."""
    rng = random.Random(seed)
    return [
        f"{rng.choice(OPENERS)} {rng.choice(SUBJECTS)} {rng.choice(OPINIONS)}. "
        f"Also {rng.choice(SUBJECTS)} {rng.choice(OPINIONS)}!"
        for _ in range(count)
    ]


def time_run(pipeline: Pipeline, items: List[str], batch: BatchOptions) -> Tuple[float, int]:
    """Run one batch configuration; returns elapsed seconds and failure count."""
    options = PipelineOptions(perform_topic_modeling=True, batch=batch)
    start_time = time.perf_counter()
    results = asyncio.run(pipeline.process_batch(items, options))
    elapsed = time.perf_counter() - start_time
    return elapsed, sum(1 for r in results if is_failure(r))


def run_benchmark(count: int = 200):
    logger.info("Initializing signalminer batch benchmark...")

    items = make_reviews(count)
    pipeline = Pipeline()
    logger.info(f"Generated {len(items)} synthetic reviews")

    # Unthrottled runs measure analyzer throughput at increasing concurrency
    rows = []
    for concurrency in (1, 4, 16):
        batch = BatchOptions(batch_size=50, concurrency=concurrency, rate_limit=None)
        elapsed, failed = time_run(pipeline, items, batch)
        rows.append((f"concurrency={concurrency}", elapsed, failed))
        logger.info(f"concurrency={concurrency}: {elapsed:.3f}s")

    # A throttled run must take at least (n / calls - 1) intervals
    limit = RateLimit(calls=20, interval_ms=100)
    throttled = items[:60]
    batch = BatchOptions(batch_size=60, concurrency=8, rate_limit=limit)
    elapsed, failed = time_run(pipeline, throttled, batch)
    floor = (len(throttled) / limit.calls - 1) * limit.interval_ms / 1000
    rows.append((f"rate={limit.calls}/{limit.interval_ms}ms", elapsed, failed))

    print("\n" + "=" * 50)
    print(" " * 15 + "BENCHMARK RESULTS")
    print("=" * 50)
    print(f"{'Run':<22} {'Time':>9} {'Items/s':>9} {'Failed':>7}")
    for name, run_time, run_failed in rows:
        n = len(throttled) if name.startswith("rate=") else len(items)
        print(f"{name:<22} {run_time:>8.3f}s {n / run_time:>9.1f} {run_failed:>7}")
    print("=" * 50)
    print(f"Rate limit floor:       {floor:.3f} seconds")
    print(f"Rate limit respected:   {'yes' if elapsed >= floor else 'NO'}")
    print("=" * 50)


if __name__ == "__main__":
    run_benchmark()
