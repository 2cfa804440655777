"""Scan QR codes from a camera and print what was decoded."""

from __future__ import annotations

import argparse
import sys
import threading
from pathlib import Path
from typing import List, Optional

import cv2

from app.events import DeviceNotAllowedEvent, ScanReadEvent, UnsupportedPlatformEvent
from app.scanner import CaptureScheduler
from app.scanner.preview import show_preview
from capture.providers import select_capture_provider
from capture.simulated_provider import SimulatedCaptureProvider
from configs.settings import CaptureConfig, load_config
from exceptions import ConfigError
from log_config.logger import enable_debug_logging, enable_file_logging, get_logger

logger = get_logger(__name__)

EXIT_OK = 0
EXIT_CONFIG = 1
EXIT_DEVICE_NOT_ALLOWED = 2
EXIT_UNSUPPORTED = 3
EXIT_INTERRUPTED = 130

WINDOW_NAME = "QR Scanner"


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Scan QR codes from a live camera.")
    parser.add_argument("--config", type=Path, default=None, help="YAML config (default: built-in defaults)")
    parser.add_argument("--facing", type=str, default=None, help="Camera facing: environment, user, or a label keyword")
    parser.add_argument("--interval-ms", type=int, default=None, help="Milliseconds between capture attempts")
    parser.add_argument("--continuous", action="store_true", help="Keep scanning after the first result")
    parser.add_argument("--mirror", action="store_true", default=None, help="Show a mirrored preview")
    parser.add_argument("--debug", action="store_true", default=None, help="Verbose per-tick logging")
    parser.add_argument("--preview", action="store_true", help="Show a live preview window")
    parser.add_argument("--simulate", type=str, default=None, metavar="TEXT",
                        help="Use a simulated camera showing a QR code with TEXT")
    parser.add_argument("--log-dir", type=Path, default=None, help="Also write rotating log files here")
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> CaptureConfig:
    config = load_config(args.config) if args.config is not None else CaptureConfig()
    return config.with_overrides(
        facing=args.facing,
        update_time_ms=args.interval_ms,
        stop_after_scan=False if args.continuous else None,
        mirror=args.mirror,
        debug=args.debug,
    )


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)

    try:
        config = build_config(args)
    except ConfigError as e:
        logger.error(f"Invalid configuration: {e}")
        return EXIT_CONFIG

    if config.debug:
        enable_debug_logging()
    if args.log_dir is not None:
        enable_file_logging(args.log_dir)

    if args.simulate is not None:
        provider = SimulatedCaptureProvider(text=args.simulate, fps=30)
    else:
        provider = select_capture_provider()

    done = threading.Event()
    exit_code = [EXIT_OK]

    def handle_read(event: ScanReadEvent) -> None:
        print(event.text, flush=True)
        if config.stop_after_scan:
            done.set()

    def handle_denied(event: DeviceNotAllowedEvent) -> None:
        logger.error(f"Camera not available: {event.message}")
        exit_code[0] = EXIT_DEVICE_NOT_ALLOWED
        done.set()

    def handle_unsupported(event: UnsupportedPlatformEvent) -> None:
        logger.error(f"Camera capture is not supported here: {event.reason}")
        exit_code[0] = EXIT_UNSUPPORTED
        done.set()

    with CaptureScheduler(config, provider=provider) as scanner:
        scanner.event_bus.subscribe(ScanReadEvent, handle_read)
        scanner.event_bus.subscribe(DeviceNotAllowedEvent, handle_denied)
        scanner.event_bus.subscribe(UnsupportedPlatformEvent, handle_unsupported)
        scanner.start()

        try:
            while not done.is_set():
                if args.preview:
                    frame = scanner.latest_frame
                    key = show_preview(
                        WINDOW_NAME,
                        frame.image if frame is not None else None,
                        config,
                        scanner.preview_mirrored,
                    )
                    if key in (ord("q"), 27):
                        break
                    done.wait(0.03)
                else:
                    done.wait(0.25)
        except KeyboardInterrupt:
            logger.info("Interrupted, stopping scanner")
            exit_code[0] = EXIT_INTERRUPTED
        finally:
            if args.preview:
                cv2.destroyAllWindows()

    return exit_code[0]


if __name__ == "__main__":
    sys.exit(main())
