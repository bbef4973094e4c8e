from __future__ import annotations

import argparse
import logging
from typing import List, Optional, Sequence

from core.runtime import ImpactRuntime
from delivery.sinks import FanoutSink, JsonLinesSink, NullSink, PrintSink, Sink
from shared.app_settings import (
    DEFAULT_FLAP_COOLDOWN_SEC,
    DEFAULT_FLAP_TOLERANCE,
    DEFAULT_FLAP_WINDOW_SEC,
    DEFAULT_PROBATION_SEC,
    DEFAULT_SENSITIVITY,
    RunSettings,
    parse_duration,
)
from shared.config import load_config
from shared.errors import ConfigError, InvalidLevelError

logger = logging.getLogger("impact")

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _duration(text: str) -> float:
    try:
        return parse_duration(text)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="impact",
        description="Turn miniSEED recordings into sparse shaking intensity change messages.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Print messages for a day of data, nothing else
  impact --verbose --dry-run --config impact.json NZ.WEL.2024.001.mseed

  # Append messages to a JSON-lines file, stamping them with the current time
  impact --replay --output messages.jsonl *.mseed
        """,
    )
    parser.add_argument("files", nargs="*", help="miniSEED files to process, in order")
    parser.add_argument("--config", default="impact.json", help="stream config file (default: %(default)s)")
    parser.add_argument("--verbose", "-v", action="store_true", help="print each message to stdout")
    parser.add_argument("--dry-run", action="store_true", help="don't actually send the messages")
    parser.add_argument("--replay", action="store_true", help="send current time rather than recorded time")
    parser.add_argument("--output", "-o", default=None, help="append messages to this JSON-lines file [IMPACT_OUTPUT]")
    parser.add_argument(
        "--probation",
        type=_duration,
        default=DEFAULT_PROBATION_SEC,
        help="startup probation window, e.g. 600, 10m, 30s (default: 10m)",
    )
    parser.add_argument(
        "--level",
        type=int,
        default=DEFAULT_SENSITIVITY,
        help=(
            "sensitivity level, the first armed threshold row; 0 arms every row, "
            "2 matches the older noise threshold level (default: %(default)s)"
        ),
    )
    parser.add_argument(
        "--flap-tolerance",
        type=int,
        default=DEFAULT_FLAP_TOLERANCE,
        help="level changes allowed per flap window before a channel is muted, 0 disables (default: %(default)s)",
    )
    parser.add_argument(
        "--flap-window",
        type=_duration,
        default=DEFAULT_FLAP_WINDOW_SEC,
        help="rolling window for counting level changes (default: 60s)",
    )
    parser.add_argument(
        "--flap-cooldown",
        type=_duration,
        default=DEFAULT_FLAP_COOLDOWN_SEC,
        help="how long a noisy channel stays muted (default: 5m)",
    )
    parser.add_argument(
        "--record-length",
        type=int,
        default=512,
        help="miniSEED record length in bytes, 0 to detect from the file (default: %(default)s)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        type=str.upper,
        choices=LOG_LEVELS,
        help="logging level (default: %(default)s)",
    )
    return parser


def settings_from_args(args: argparse.Namespace) -> RunSettings:
    return RunSettings(
        config_path=args.config,
        verbose=args.verbose,
        dry_run=args.dry_run,
        replay=args.replay,
        probation_sec=args.probation,
        sensitivity=args.level,
        flap_tolerance=args.flap_tolerance,
        flap_window_sec=args.flap_window,
        flap_cooldown_sec=args.flap_cooldown,
        output_path=args.output,
    ).with_environment()


def build_sink(settings: RunSettings) -> Sink:
    sinks: List[Sink] = []
    if settings.verbose:
        sinks.append(PrintSink())
    if settings.dry_run:
        sinks.append(NullSink())
    elif settings.output_path:
        sinks.append(JsonLinesSink(settings.output_path))
    if not sinks:
        raise ConfigError("no output configured: use --output, --verbose or --dry-run [IMPACT_OUTPUT]")
    if len(sinks) == 1:
        return sinks[0]
    return FanoutSink(sinks)


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.record_length < 0:
        parser.error("--record-length must not be negative")

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        settings = settings_from_args(args)
        sink = build_sink(settings)
        configs = load_config(settings.config_path)
        runtime = ImpactRuntime(configs, sink, settings=settings)
    except (ConfigError, InvalidLevelError, ValueError) as exc:
        logger.error("%s", exc)
        return 1

    # ObsPy is only needed once there are files to read.
    from daq.miniseed_source import MiniSeedFileSource

    record_length = args.record_length or None
    sources = (MiniSeedFileSource(path, record_length=record_length) for path in args.files)
    try:
        stats = runtime.run(sources)
    except OSError as exc:
        logger.error("%s", exc)
        return 1
    finally:
        close = getattr(sink, "close", None)
        if close is not None:
            close()

    logger.info("done: %s", stats)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
