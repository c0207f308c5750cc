from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from tqdm import tqdm

from . import __version__
from .errors import ConversionError
from .events import ConversionOutcome, ProgressEvent
from .processing import DEFAULT_PROGRESS_INTERVAL
from .service import ConversionService

LOG = logging.getLogger("mono_convert")


def positive_int(value: str) -> int:
    try:
        val = int(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc
    if val <= 0:
        raise argparse.ArgumentTypeError("Expected a positive value.")
    return val


class TqdmListener:
    """Render job progress events as a percentage bar."""

    def __init__(self, *, disable: bool = False):
        self._bar: tqdm | None = None
        self._disable = disable
        self._position = 0.0

    def on_progress(self, event: ProgressEvent) -> None:
        if self._bar is None:
            self._bar = tqdm(
                total=100.0,
                desc="Mono",
                unit="%",
                bar_format="{l_bar}{bar}| {n:.1f}/{total:.0f}% [{elapsed}<{remaining}]",
                disable=self._disable,
                leave=True,
            )
        if event.percent is not None:
            delta = event.percent - self._position
            if delta > 0:
                self._bar.update(delta)
                self._position = event.percent
        else:
            self._bar.set_postfix_str(event.message)

    def on_result(self, outcome: ConversionOutcome) -> None:
        if self._bar is None:
            return
        if outcome.success and self._position < 100.0:
            self._bar.update(100.0 - self._position)
            self._position = 100.0
        elif outcome.cancelled:
            self._bar.set_postfix_str("Cancelled")
        self._bar.close()
        self._bar = None


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mono-convert",
        description="Downmix any audio file to a mono 16-bit PCM WAV beside it.",
    )
    parser.add_argument("input_path", type=Path, help="Audio file to convert or inspect.")
    parser.add_argument(
        "--out",
        dest="output_path",
        type=Path,
        help="Output WAV path. Defaults to <name>_mono.wav alongside the input.",
    )
    parser.add_argument(
        "--inspect",
        dest="inspect",
        action="store_true",
        help="Print channel count, sample rate, bit depth and duration, then exit.",
    )
    parser.add_argument(
        "--json",
        dest="json",
        action="store_true",
        help="Emit --inspect output as JSON.",
    )
    parser.add_argument(
        "--format",
        dest="format_hint",
        help="Force the input container format (FFmpeg demuxer name, e.g. wav, mp3).",
    )
    parser.add_argument(
        "--progress-interval",
        dest="progress_interval",
        type=positive_int,
        default=DEFAULT_PROGRESS_INTERVAL,
        help="Report progress every N packets (default: 100).",
    )
    parser.add_argument(
        "--no-progress",
        dest="show_progress",
        action="store_false",
        help="Disable the progress bar.",
    )
    parser.add_argument(
        "--verbose",
        dest="verbose",
        action="store_true",
        help="Enable debug logging.",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=__version__,
        help="Print the mono-convert version and exit.",
    )
    return parser


def _print_info(service: ConversionService, path: Path, as_json: bool) -> int:
    try:
        info = service.inspect_audio(path)
    except ConversionError as exc:
        LOG.error("Error reading audio info: %s", exc)
        return 1
    if as_json:
        print(json.dumps(info.to_dict()))
        return 0
    duration = f"{info.duration_seconds:.2f}s" if info.duration_seconds is not None else "Unknown"
    print(
        f"Channels: {info.channels}, Sample Rate: {info.sample_rate} Hz, "
        f"Bits: {info.bits_per_sample}, Duration: {duration}"
    )
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.json and not args.inspect:
        parser.error("--json requires --inspect.")

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    listener = TqdmListener(disable=not args.show_progress)
    service = ConversionService(listener, progress_interval=args.progress_interval)

    if args.inspect:
        return _print_info(service, args.input_path, args.json)

    handle = service.start_conversion(
        args.input_path,
        output_path=args.output_path,
        format_hint=args.format_hint,
    )
    try:
        outcome = handle.wait()
    except KeyboardInterrupt:
        LOG.info("Cancelling conversion…")
        service.cancel_conversion(handle)
        outcome = handle.wait()

    if outcome is None:  # pragma: no cover - wait() without timeout always returns
        return 1
    if outcome.success:
        LOG.info(outcome.message)
        return 0
    if outcome.cancelled:
        LOG.info("Conversion cancelled by user.")
        return 130
    LOG.error("Conversion failed (%s): %s", outcome.error_kind, outcome.message)
    return 1


if __name__ == "__main__":
    sys.exit(main())
