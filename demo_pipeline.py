#!/usr/bin/env python3
"""
signalminer Demo - Full pipeline run over a sample collection job.

Usage:
    python3 demo_pipeline.py
"""

import asyncio
import json
import time
from collections import Counter
from datetime import datetime
from pathlib import Path


class Timer:
    def __init__(self, name):
        self.name = name
        self.start = None
        self.elapsed = None

    def __enter__(self):
        self.start = time.perf_counter()
        return self

    def __exit__(self, *args):
        self.elapsed = time.perf_counter() - self.start


def create_sample_job(source_dir: Path, job_id: str) -> Path:
    """Write a source results file with one scrape result per platform."""
    results = [
        {
            "id": "amazon-1",
            "platform": "amazon",
            "payload": {
                "asin": "B0DEMO",
                "reviews": [
                    {
                        "id": "a1",
                        "title": "Great headphones",
                        "content": "The sound quality is excellent and the battery lasts for days.",
                        "rating": 5,
                        "verified_purchase": True,
                    },
                    {
                        "id": "a2",
                        "title": "Not worth it",
                        "content": "Shipping was slow and the box arrived damaged. Very disappointed!",
                        "rating": 1,
                    },
                ],
            },
        },
        {
            "id": "reddit-1",
            "platform": "reddit",
            "payload": {
                "posts": [
                    {
                        "id": "p1",
                        "title": "Anyone tried the new Samsung earbuds?",
                        "selftext": "Thinking of buying them for $149 but the reviews are mixed.",
                        "subreddit": "headphones",
                    }
                ],
                "comments": [
                    {
                        "id": "c1",
                        "body": "Mine broke after two weeks, customer service never answered.",
                        "score": 42,
                    }
                ],
            },
        },
        {
            "id": "trustpilot-1",
            "platform": "trustpilot",
            "payload": {
                "business_domain": "soundshop.example",
                "reviews": [
                    {
                        "id": "t1",
                        "title": "Fast delivery",
                        "content": "Ordered on 2024-03-02, arrived next day. Support at help@soundshop.example was friendly.",
                        "rating": 5,
                        "author": {"name": "Jo", "location": "UK"},
                        "business_reply": {"content": "Thank you Jo, glad you love it!"},
                    }
                ],
            },
        },
        {
            "id": "tiktok-1",
            "platform": "tiktok",
            "payload": {
                "videos": [
                    {
                        "id": "v1",
                        "description": "Unboxing the cheapest noise cancelling headphones #unboxing #audio",
                        "comments": [{"id": "k1", "text": "not bad at all for the price @reviewer"}],
                    }
                ]
            },
        },
    ]

    source_dir.mkdir(parents=True, exist_ok=True)
    job_path = source_dir / f"{job_id}.json"
    job_path.write_text(json.dumps({"results": results}, ensure_ascii=False, indent=2), encoding="utf-8")
    return job_path


def print_section(title):
    print(f"\n{'=' * 60}")
    print(f" {title}")
    print(f"{'=' * 60}")


def format_time(seconds):
    if seconds < 0.001:
        return f"{seconds * 1000000:.0f}µs"
    elif seconds < 1:
        return f"{seconds * 1000:.1f}ms"
    else:
        return f"{seconds:.2f}s"


def run_demo():
    from signalminer.batch import is_failure
    from signalminer.config import BatchOptions, PipelineOptions, RateLimit, load_config
    from signalminer.pipeline import Pipeline
    from signalminer.utils.logger import setup_logger

    setup_logger()

    print_section("SIGNALMINER PIPELINE DEMO")
    print(f"Timestamp: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")

    base_dir = Path("/tmp/signalminer_demo")
    source_dir = base_dir / "sources"
    output_dir = base_dir / "output"
    job_id = "demo-job"

    timings = {}

    print_section("1. CREATING SAMPLE JOB")
    with Timer("job_creation") as t:
        job_path = create_sample_job(source_dir, job_id)
    timings["job_creation"] = t.elapsed
    print(f"Created {job_path} in {format_time(t.elapsed)}")

    print_section("2. PROCESSING COLLECTION")
    config = load_config()
    config["storage"] = {
        "results": "json",
        "output_dir": str(output_dir),
        "source_dir": str(source_dir),
    }
    pipeline = Pipeline.from_config(config)
    options = PipelineOptions(
        perform_topic_modeling=True,
        extract_insights=True,
        project_id="demo",
        batch=BatchOptions(batch_size=4, concurrency=4, rate_limit=RateLimit(20, 1000)),
    )

    with Timer("collection") as t:
        summary = asyncio.run(pipeline.process_source_collection(job_id, options))
    timings["collection"] = t.elapsed

    print(f"Source results: {summary.source_count}")
    print(f"Fragments:      {summary.fragment_count}")
    print(f"Processed:      {summary.processed_count}")
    print(f"Failed:         {summary.failed_count}")
    print(f"Linked:         {summary.linked_count}")
    print(f"Time:           {format_time(t.elapsed)}")

    print_section("3. PER-FRAGMENT RESULTS")
    analyzed = [r for r in summary.results if not is_failure(r)]
    for result in analyzed:
        sentiment = result.sentiment
        print(f"\n[{result.item.source_type}] {result.original_text[:70]}")
        print(
            f"  Sentiment: {sentiment.label} ({sentiment.intensity_level}) "
            f"score={sentiment.score:.3f} confidence={sentiment.confidence:.2f}"
        )
        if sentiment.emotions:
            top = max(sentiment.emotions.items(), key=lambda kv: kv[1])
            print(f"  Emotion:   {top[0]} {top[1]:.2f}")
        for aspect in sentiment.aspects[:3]:
            print(f"  Aspect:    {aspect.term} {aspect.score:+.2f}")
        for entity in result.entities:
            print(f"  Entity:    {entity.type.value} {entity.text!r}")
        if result.topics and result.topics.topics:
            print(f"  Topics:    {', '.join(t.name for t in result.topics.topics)}")
        if result.insights:
            for insight in result.insights.pain_points:
                print(f"  Pain:      [{insight.category}] {insight.text[:50]} ({insight.intensity})")
            for insight in result.insights.desires:
                print(f"  Desire:    [{insight.category}] {insight.text[:50]}")

    print_section("4. AGGREGATE STATISTICS")
    labels = Counter(r.sentiment.label for r in analyzed)
    entity_types = Counter(e.type.value for r in analyzed for e in r.entities)
    topics = Counter(
        t.name for r in analyzed if r.topics for t in r.topics.topics
    )

    print("\nSentiment Labels:")
    for label, count in labels.most_common():
        print(f"  {label}: {count}")

    print("\nEntity Types:")
    for entity_type, count in entity_types.most_common():
        print(f"  {entity_type}: {count}")

    print("\nTopics:")
    for topic, count in topics.most_common():
        print(f"  {topic}: {count}")

    print_section("5. TIMING SUMMARY")
    grand_total = sum(timings.values())
    print(f"\n{'Step':<25} {'Time':>12}")
    print("-" * 40)
    for step, elapsed in timings.items():
        print(f"{step:<25} {format_time(elapsed):>12}")
    print("-" * 40)
    print(f"{'TOTAL':<25} {format_time(grand_total):>12}")

    print_section("6. OUTPUT FILES")
    print(f"\nOutput directory: {output_dir}")
    for f in sorted(output_dir.iterdir()):
        print(f"  {f.name}: {f.stat().st_size} B")

    print_section("DEMO COMPLETE")
    return summary, timings


if __name__ == "__main__":
    run_demo()
