"""CLI entrypoint: echo BIND log lines and forward recognized events to InfluxDB."""

from __future__ import annotations

import argparse
import io
import logging
import queue
import sys
import threading
from pathlib import Path
from typing import Iterable, Optional, TextIO

from bindmetrics import __version__
from bindmetrics.config import load_app_config
from bindmetrics.logging_setup import setup_logging
from bindmetrics.records import extract_record
from bindmetrics.tsdb import ConstructionError, DeliveryError, MetricsSender, PointValidationError, create_sender

logger = logging.getLogger("bindmetrics")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="bind-log-metrics",
        description="Echo BIND query log lines and send query/block counts to InfluxDB",
    )
    parser.add_argument("--config", type=Path, help="YAML config file")
    parser.add_argument("--influx-db-name", help="Database name of the InfluxDB")
    parser.add_argument("--influx-host", help="Hostname of the InfluxDB (URL, e.g. http://localhost:8086)")
    parser.add_argument("--influx-pass", help="Password of the InfluxDB")
    parser.add_argument("--influx-user", help="Username of the InfluxDB")
    parser.add_argument("--log-level", help="Log level (debug, info, warn, error, fatal)")
    parser.add_argument("--log-file", help="Also write logs to this rotating file")
    parser.add_argument("--version", action="store_true", help="Prints current version and exits")
    parser.add_argument("input", nargs="?", help="Log file to read (default: stdin)")
    return parser


def process_lines(lines: Iterable[str], sender: MetricsSender, out: TextIO) -> int:
    """Echo every line to ``out`` and enqueue a point per recognized record."""

    enqueued = 0
    for raw in lines:
        line = raw.rstrip("\r\n")
        out.write(line + "\n")
        out.flush()

        record = extract_record(line)
        if record is None:
            continue
        try:
            sender.enqueue(record.category.value, record.tags(), record.fields())
        except PointValidationError as exc:
            logger.error("processing line: adding metrics point: %s", exc)
            continue
        enqueued += 1
    return enqueued


def log_delivery_errors(errors: "queue.Queue[DeliveryError]", stop: threading.Event, poll_seconds: float = 0.2) -> None:
    """Log delivery errors until ``stop`` is set and the queue is drained."""

    while True:
        try:
            err = errors.get(timeout=poll_seconds)
        except queue.Empty:
            if stop.is_set():
                return
            continue
        logger.error("metrics processing caused an error: %s", err)


def _lenient_stdin() -> TextIO:
    """Stdin decoded as UTF-8, replacing undecodable bytes instead of failing."""

    buffer = getattr(sys.stdin, "buffer", None)
    if buffer is None:
        return sys.stdin
    return io.TextIOWrapper(buffer, encoding="utf-8", errors="replace")


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.version:
        print(f"bind-log-metrics {__version__}")
        return 0

    overrides = {
        "influx_db_name": args.influx_db_name,
        "influx_host": args.influx_host,
        "influx_pass": args.influx_pass,
        "influx_user": args.influx_user,
        "log_level": args.log_level,
        "log_file": args.log_file,
    }
    try:
        config = load_app_config(args.config, overrides=overrides)
    except (FileNotFoundError, ValueError) as exc:
        parser.error(f"parsing CLI options: {exc}")

    setup_logging(config.log_level, config.log_file)

    try:
        sender = create_sender(config)
    except ConstructionError as exc:
        logger.critical("creating metrics client: %s", exc)
        return 1

    stop_consumer = threading.Event()
    consumer = threading.Thread(
        target=log_delivery_errors,
        args=(sender.errors(), stop_consumer),
        name="metrics-errors",
        daemon=True,
    )
    consumer.start()

    exit_code = 0
    try:
        if args.input:
            with open(args.input, "r", encoding="utf-8", errors="replace") as handle:
                process_lines(handle, sender, sys.stdout)
        else:
            process_lines(_lenient_stdin(), sender, sys.stdout)
    except OSError as exc:
        logger.critical("reading input: %s", exc)
        exit_code = 1
    except KeyboardInterrupt:
        logger.info("Interrupted, flushing pending points")
    finally:
        sender.stop()
        stop_consumer.set()
        consumer.join(timeout=2)

    return exit_code


if __name__ == "__main__":
    sys.exit(main())
