"""CLI entrypoint for the environmental risk aggregation engine."""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

from envrisk.common.config_loader import load_all_configs
from envrisk.common.constants import EXIT_HARD_FAIL, EXIT_PARTIAL, EXIT_SUCCESS
from envrisk.common.errors import EngineError
from envrisk.common.fs import write_json
from envrisk.common.ids import generate_run_id
from envrisk.common.logging import build_logger, log_event
from envrisk.common.models import Location, RunState
from envrisk.pipeline.orchestrator import AggregationOrchestrator


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("command", choices=["run", "sources"])
    parser.add_argument("--lat", type=float, default=None)
    parser.add_argument("--lng", type=float, default=None)
    parser.add_argument("--address", default="")
    parser.add_argument("--state", default=None)
    parser.add_argument("--zip", default=None)
    parser.add_argument("--county", default=None)
    parser.add_argument("--run-id", default=None)
    parser.add_argument("--config-dir", default="./config")
    parser.add_argument("--overlay-config-dir", default=None)
    parser.add_argument("--output", default=None)
    parser.add_argument("--log-file", default=None)
    parser.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARN", "ERROR"])
    return parser.parse_args(argv)


def _list_sources(bundle) -> int:
    for name, cfg in bundle.sources.items():
        state = "enabled" if cfg.get("enabled") else "disabled"
        profile = cfg.get("risk_profile", "water_system")
        print(f"{name}\t{cfg['kind']}\t{profile}\t{state}\t{cfg.get('label', name)}")
    return EXIT_SUCCESS


def run_command(args: argparse.Namespace) -> int:
    run_id = args.run_id or generate_run_id()
    config_dir = Path(args.config_dir)
    overlay_config_dir = Path(args.overlay_config_dir) if args.overlay_config_dir else None
    log_path = Path(args.log_file) if args.log_file else None

    logger = build_logger(run_id, level=args.log_level, log_path=log_path)
    bundle = load_all_configs(config_dir, overlay_config_dir=overlay_config_dir)

    if args.command == "sources":
        return _list_sources(bundle)

    location = Location(
        latitude=args.lat,
        longitude=args.lng,
        address=args.address,
        state=args.state,
        zip=args.zip,
        county=args.county,
    )
    orchestrator = AggregationOrchestrator.from_config(bundle, logger=logger)
    result = orchestrator.run(location, run_id=run_id)

    payload = result.to_dict()
    if args.output:
        write_json(Path(args.output), payload)
    else:
        print(json.dumps(payload, ensure_ascii=False, indent=2))

    for error in result.errors:
        log_event(logger, error, run_id=run_id, stage="report", event="SOURCE_ERROR_REPORTED", status="error")
    if result.status is RunState.COMPLETED_WITH_ERRORS:
        return EXIT_PARTIAL
    return EXIT_SUCCESS


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv if argv is not None else sys.argv[1:])
    try:
        return run_command(args)
    except EngineError as exc:
        print(f"error [{exc.error_code}]: {exc}", file=sys.stderr)
        return EXIT_HARD_FAIL
    except Exception as exc:
        print(f"error [UNEXPECTED_ERROR]: {type(exc).__name__}: {exc}", file=sys.stderr)
        return EXIT_HARD_FAIL


if __name__ == "__main__":
    raise SystemExit(main())
