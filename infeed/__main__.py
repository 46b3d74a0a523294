"""Command-line entry point for infeed."""
import argparse
import sys
from concurrent.futures import TimeoutError as FutureTimeoutError
from pathlib import Path

from .config import load_config
from .reader import Reader, ReadCancelledError


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="infeed - wait for a typed value to appear in an editable input file"
    )
    parser.add_argument("--config", help="Path to config.toml (searched for when omitted)")
    parser.add_argument("--input", help="Input file to watch (overrides config)")
    parser.add_argument("--log", help="Log file for --log-result (overrides config)")
    parser.add_argument(
        "--type",
        dest="kind",
        choices=["int", "float", "double"],
        default="int",
        help="Value type to read (default: int)",
    )
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--timeout", type=float, help="Give up after this many seconds")
    mode.add_argument("--try", dest="try_once", action="store_true", help="Check once and exit")
    mode.add_argument("--async", dest="use_async", action="store_true", help="Read on a background thread")
    parser.add_argument(
        "--polling",
        action="store_true",
        help="Disable native change notification and poll the file instead",
    )
    parser.add_argument(
        "--log-result",
        action="store_true",
        help="Append the value read to the log file",
    )
    return parser


def _wait_async(reader: Reader, kind: str):
    future = reader.read_async(kind)
    # Timed waits keep the main thread responsive to Ctrl+C.
    while True:
        try:
            return future.result(timeout=0.2)
        except FutureTimeoutError:
            continue


def main() -> None:
    """Main entry point."""
    args = _build_parser().parse_args()

    config = load_config(path=Path(args.config) if args.config else None, quiet=True)
    reader = Reader.from_config(config)
    if args.input:
        reader.set_input_path(args.input)
    if args.log:
        reader.set_log_path(args.log)
    if args.polling:
        reader.event_driven = False

    try:
        if args.try_once:
            found, value = reader.try_read(args.kind)
            if not found:
                print(f"[INFO] No value available in {reader.input_path}")
                sys.exit(1)
        elif args.timeout is not None:
            found, value = reader.read_timeout(args.kind, args.timeout)
            if not found:
                sys.exit(1)
        elif args.use_async:
            value = _wait_async(reader, args.kind)
        else:
            value = reader.read(args.kind)
    except KeyboardInterrupt:
        print("\n[INFO] Interrupted by user")
        reader.stop()
        sys.exit(130)
    except ReadCancelledError as e:
        print(f"[WARN] {e}")
        sys.exit(1)
    except ValueError as e:
        print(f"[ERR] {e}")
        sys.exit(1)

    if args.log_result:
        reader.log(value, "\n")
    print(value)


if __name__ == "__main__":
    main()
