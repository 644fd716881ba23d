"""Command-line interface for running the secondary-vertex producer on events."""

from __future__ import annotations

import argparse
import importlib.util
import logging
from pathlib import Path
from typing import Any

from .io import load_config_json, load_events_json, write_results_table
from .models import JetVertexingResult
from .presets import config_from_name
from .producer import SecondaryVertexProducer

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Define and return the CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="sv-producer",
        description="Reconstruct one secondary vertex per jet from track and impact-parameter inputs.",
    )
    parser.add_argument("--events", required=True, help="Input JSON with key 'events'.")
    parser.add_argument(
        "--config",
        default=None,
        help="Producer configuration JSON (trackSort, trackSelection, vertexReco, ...).",
    )
    parser.add_argument(
        "--preset",
        default="default",
        help="Named base configuration, overridden by --config (default: %(default)s).",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=1,
        help="Number of threads used to process the jets of one event.",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity.",
    )
    parser.add_argument(
        "--out",
        required=True,
        help="Output table file for per-jet results (.parquet, .csv, .pkl).",
    )
    parser.add_argument(
        "--custom-script",
        default=None,
        help="Path to Python file with process(results, context) function.",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    """CLI entrypoint: load inputs, run the producer, write table, optional custom hook."""
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    config = config_from_name(args.preset)
    if args.config:
        config = load_config_json(args.config, base=config)
    producer = SecondaryVertexProducer(config=config, max_workers=args.workers)

    events = load_events_json(args.events)
    results: list[JetVertexingResult] = []
    for event_results in producer.produce_events(events):
        results.extend(event_results)
    logger.info("Processed %d events, %d jets", len(events), len(results))
    write_results_table(args.out, results)

    if args.custom_script:
        run_custom_script(
            script_path=args.custom_script,
            results=results,
            context={
                "events_path": args.events,
                "config_path": args.config,
                "preset": args.preset,
                "config": config,
                "output_path": args.out,
            },
        )
    return 0


def run_custom_script(
    script_path: str, results: list[JetVertexingResult], context: dict[str, Any]
) -> None:
    """Execute user-supplied post-processing callback `process(results, context)`."""
    module = _load_module(script_path)
    process = getattr(module, "process", None)
    if process is None or not callable(process):
        raise ValueError(
            f"Custom script {script_path} must define callable process(results, context)."
        )
    process(results, context)


def _load_module(script_path: str):
    """Import a Python module from an arbitrary file path."""
    path = Path(script_path)
    spec = importlib.util.spec_from_file_location(path.stem, path)
    if spec is None or spec.loader is None:
        raise ValueError(f"Cannot import custom script: {script_path}")
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


if __name__ == "__main__":
    raise SystemExit(main())
