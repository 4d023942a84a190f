import argparse
import asyncio
import dataclasses
import json
import logging
import sys
from pathlib import Path
from typing import Any, List, Optional

import chardet

from ..utils.logger import setup_logger

logger = logging.getLogger(__name__)

_INPUT_SUFFIXES = (".txt", ".json")


def create_parser() -> argparse.ArgumentParser:
    """Create the main argument parser with subcommands."""
    parser = argparse.ArgumentParser(
        prog="signalminer",
        description="signalminer - Text signal mining for reviews and social media",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Enable verbose output"
    )
    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=None,
        help="YAML config file (default: $SIGNALMINER_CONFIG or built-in defaults)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    _add_analyze_subparser(subparsers)
    _add_batch_subparser(subparsers)
    _add_process_job_subparser(subparsers)

    return parser


def _add_analyze_subparser(subparsers):
    """Add the analyze subcommand."""
    analyze_parser = subparsers.add_parser(
        "analyze", help="Analyze a text or the .txt/.json files under a path"
    )
    source = analyze_parser.add_mutually_exclusive_group(required=True)
    source.add_argument("-t", "--text", type=str, help="Text to analyze")
    source.add_argument(
        "-i", "--input", type=Path, help="Input .txt/.json file or directory"
    )
    analyze_parser.add_argument(
        "-o",
        "--output",
        type=Path,
        default=None,
        help="Output directory for JSON results (default: print to stdout)",
    )
    analyze_parser.add_argument(
        "--topics", action="store_true", help="Also extract topics and n-grams"
    )
    analyze_parser.add_argument(
        "--insights", action="store_true", help="Also extract pain points and desires"
    )
    analyze_parser.add_argument(
        "--domain",
        type=str,
        default=None,
        help="Domain lexicon to apply (default: detected)",
    )
    analyze_parser.add_argument(
        "--language",
        type=str,
        default=None,
        help="Sentiment lexicon language (default: detected, English fallback)",
    )


def _add_batch_subparser(subparsers):
    """Add the batch subcommand."""
    batch_parser = subparsers.add_parser(
        "batch", help="Analyze every .txt/.json input in a directory"
    )
    batch_parser.add_argument(
        "-i", "--input", type=Path, required=True, help="Input directory"
    )
    batch_parser.add_argument(
        "-o",
        "--output",
        type=Path,
        default=Path("output"),
        help="Output directory (default: output)",
    )
    batch_parser.add_argument(
        "--concurrency", type=int, default=None, help="Items processed at once"
    )
    batch_parser.add_argument(
        "--batch-size", type=int, default=None, help="Items per batch"
    )
    batch_parser.add_argument(
        "--rate",
        type=str,
        default=None,
        help="Rate limit as CALLS/MS, e.g. 10/1000",
    )
    batch_parser.add_argument(
        "--topics", action="store_true", help="Also extract topics and n-grams"
    )
    batch_parser.add_argument(
        "--insights", action="store_true", help="Also extract pain points and desires"
    )


def _add_process_job_subparser(subparsers):
    """Add the process-job subcommand."""
    job_parser = subparsers.add_parser(
        "process-job", help="Analyze the source results of a collection job"
    )
    job_parser.add_argument("-j", "--job", type=str, required=True, help="Job id")
    job_parser.add_argument(
        "-s",
        "--source",
        type=Path,
        required=True,
        help="Directory holding <job_id>.json source results",
    )
    job_parser.add_argument(
        "-o",
        "--output",
        type=Path,
        default=Path("output"),
        help="Output directory (default: output)",
    )


def _read_text(path: Path) -> str:
    """Read a file as text, guessing the encoding when it is not UTF-8."""
    raw = path.read_bytes()
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError:
        encoding = chardet.detect(raw).get("encoding") or "latin-1"
        logger.debug(f"{path} is not UTF-8, decoding as {encoding}")
        return raw.decode(encoding, errors="replace")


def _items_from_json(data: Any, path: Path) -> list:
    from ..analyzers.base import AnalysisItem

    if isinstance(data, dict):
        data = data.get("items", [data])

    items = []
    for n, entry in enumerate(data):
        if isinstance(entry, str):
            items.append(AnalysisItem(text=entry, source_type="file", source_id=f"{path.stem}:{n}"))
        elif isinstance(entry, dict) and "text" in entry:
            items.append(
                AnalysisItem(
                    text=entry["text"],
                    source_type=entry.get("source_type", "file"),
                    source_id=str(entry.get("source_id", f"{path.stem}:{n}")),
                    source_result_id=entry.get("source_result_id"),
                    metadata=entry.get("metadata") or {},
                )
            )
        else:
            logger.warning(f"Skipping entry {n} in {path}: no text")
    return items


def _load_items(path: Path) -> list:
    """Load analysis items from a .txt/.json file or a directory of them."""
    from ..analyzers.base import AnalysisItem

    items = []
    for file_path in _collect_input_files(path):
        try:
            text = _read_text(file_path)
            if file_path.suffix.lower() == ".json":
                items.extend(_items_from_json(json.loads(text), file_path))
            else:
                items.append(
                    AnalysisItem(text=text, source_type="file", source_id=file_path.stem)
                )
        except (OSError, LookupError, ValueError) as e:
            logger.warning(f"Could not load {file_path}: {e}")
    return items


def _collect_input_files(path: Path) -> List[Path]:
    """Collect .txt and .json files from a path."""
    if path.is_file():
        return [path] if path.suffix.lower() in _INPUT_SUFFIXES else []
    return sorted(p for p in path.glob("*") if p.suffix.lower() in _INPUT_SUFFIXES)


def _print_json(payload) -> None:
    print(json.dumps(payload, ensure_ascii=False, indent=2))


def _configure(args, **storage) -> dict:
    config = dict(args.loaded_config)
    config["storage"] = {**config.get("storage", {}), **storage}
    return config


def cmd_analyze(args) -> int:
    """Execute the analyze command."""
    from ..batch import is_failure
    from ..config import PipelineOptions
    from ..pipeline import Pipeline

    if args.text is not None:
        items = [args.text]
    else:
        items = _load_items(args.input)
        if not items:
            print(f"No .txt or .json inputs found in {args.input}")
            return 1

    storage = {"results": "json", "output_dir": str(args.output)} if args.output else {}
    config = _configure(args, **storage)
    pipeline = Pipeline.from_config(config)

    options = PipelineOptions.from_config(config)
    options = dataclasses.replace(
        options,
        perform_topic_modeling=args.topics or options.perform_topic_modeling,
        extract_insights=args.insights or options.extract_insights,
        domain=args.domain or options.domain,
        language=args.language or options.language,
        save_results=args.output is not None,
    )
    results = pipeline.run(items, options)

    failed = [r for r in results if is_failure(r)]
    for failure in failed:
        logger.warning(f"Item {failure.index} failed: {failure.error}")

    if args.output is None:
        payload = [r.to_dict() for r in results if not is_failure(r)]
        _print_json(payload[0] if args.text is not None and payload else payload)
    else:
        print(f"Analyzed {len(results) - len(failed)}/{len(results)} item(s) into {args.output}")

    return 1 if failed and len(failed) == len(results) else 0


def cmd_batch(args) -> int:
    """Execute the batch command."""
    from rich.progress import Progress

    from ..batch import is_failure
    from ..config import PipelineOptions, RateLimit
    from ..errors import ConfigurationError
    from ..pipeline import Pipeline

    items = _load_items(args.input)
    if not items:
        print(f"No .txt or .json inputs found in {args.input}")
        return 1

    config = _configure(args, results="json", output_dir=str(args.output))
    options = PipelineOptions.from_config(config)

    overrides = {}
    if args.concurrency is not None:
        overrides["concurrency"] = args.concurrency
    if args.batch_size is not None:
        overrides["batch_size"] = args.batch_size
    try:
        if args.rate is not None:
            overrides["rate_limit"] = RateLimit.parse(args.rate)
        batch = dataclasses.replace(options.batch, **overrides)
    except ConfigurationError as e:
        print(f"Error: {e}")
        return 1

    options = dataclasses.replace(
        options,
        batch=batch,
        save_results=True,
        perform_topic_modeling=args.topics or options.perform_topic_modeling,
        extract_insights=args.insights or options.extract_insights,
    )
    pipeline = Pipeline.from_config(config)

    print(f"Processing {len(items)} item(s)...")
    with Progress() as progress:
        task = progress.add_task("Analyzing", total=len(items))
        pipeline.batch_runner.progress_callback = lambda done, total: progress.update(
            task, completed=done
        )
        results = pipeline.run(items, options)

    failures = [r.to_dict() for r in results if is_failure(r)]
    if failures:
        failures_path = args.output / "failures.json"
        failures_path.write_text(
            json.dumps(failures, ensure_ascii=False, indent=2, default=str), encoding="utf-8"
        )
        print(f"Failures written to {failures_path}")

    print(f"Processed {len(results) - len(failures)}/{len(results)} item(s)")
    return 0


def cmd_process_job(args) -> int:
    """Execute the process-job command."""
    from ..pipeline import Pipeline

    config = _configure(
        args, results="json", output_dir=str(args.output), source_dir=str(args.source)
    )
    pipeline = Pipeline.from_config(config)

    summary = asyncio.run(pipeline.process_source_collection(args.job))

    summary_path = Path(args.output) / f"{args.job}_summary.json"
    summary_path.parent.mkdir(parents=True, exist_ok=True)
    payload = summary.to_dict()
    payload.pop("results")
    summary_path.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")

    print(
        f"Job {summary.job_id}: {summary.source_count} source result(s), "
        f"{summary.fragment_count} fragment(s), {summary.processed_count} processed, "
        f"{summary.failed_count} failed, {summary.linked_count} linked"
    )
    return 0 if summary.source_count else 1


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    from ..config import load_config
    from ..errors import SignalMinerError

    parser = create_parser()
    args = parser.parse_args(argv)

    setup_logger(level=logging.DEBUG if args.verbose else logging.INFO)

    if args.command is None:
        parser.print_help()
        return 0

    commands = {
        "analyze": cmd_analyze,
        "batch": cmd_batch,
        "process-job": cmd_process_job,
    }

    try:
        args.loaded_config = load_config(args.config)
        return commands[args.command](args)
    except SignalMinerError as e:
        print(f"Error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
