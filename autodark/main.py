"""Main entry point and daemon loop for Auto Dark."""

import argparse
import logging
import queue
import sys
import time
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional

import pytz

from autodark.config import Config, create_default_config, get_default_config_path
from autodark.geocoding import GeocodingService
from autodark.location_provider import IPLocationProvider
from autodark.location_resolver import LocationResolver, ResolverObserver


logger = logging.getLogger(__name__)

# Longest time the daemon waits without re-checking the clock (seconds)
MAX_WAIT = 300


def setup_logging(verbose: bool = False):
    """Configure logging for stdout (systemd compatible)."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[logging.StreamHandler(sys.stdout)]
    )


class MainQueue:
    """Runs callbacks from worker threads on the thread that drains the queue."""

    def __init__(self):
        self._queue = queue.Queue()

    def dispatch(self, fn: Callable, *args) -> None:
        self._queue.put((fn, args))

    def run_pending(self, timeout: Optional[float] = None) -> int:
        """
        Run queued callbacks, waiting up to `timeout` seconds for the first one.

        Returns:
            Number of callbacks run
        """
        count = 0
        try:
            fn, args = self._queue.get(timeout=timeout)
            while True:
                fn(*args)
                count += 1
                fn, args = self._queue.get_nowait()
        except queue.Empty:
            pass
        return count


class ConsoleObserver(ResolverObserver):
    """Logs resolver updates."""

    def __init__(self):
        self.resolver: Optional[LocationResolver] = None

    def set_location_label(self, text: str) -> None:
        logger.info(f"Location: {text}")

    def set_information_label(self, text: str) -> None:
        logger.warning(text)

    def updated_next_transition(self) -> None:
        if self.resolver is not None:
            logger.info(f"Next toggle: {self.resolver.next_transition}")


def build_resolver(config: Config, main_queue: MainQueue, observer: ResolverObserver) -> LocationResolver:
    """Create a resolver whose callbacks are delivered through `main_queue`."""
    geocoder = GeocodingService(
        user_agent=config.geocoder_user_agent,
        timeout=config.geocoder_timeout,
        dispatch=main_queue.dispatch,
    )
    provider = IPLocationProvider(
        enabled=config.location_services,
        update_interval=config.update_interval,
        significant_change_km=config.significant_change_km,
        dispatch=main_queue.dispatch,
    )
    return LocationResolver(
        config.mode,
        config,
        observer=observer,
        geocoder=geocoder,
        provider=provider,
    )


def seconds_until(when: datetime) -> float:
    return (when - datetime.now(pytz.utc)).total_seconds()


def run_daemon(config: Config, verbose: bool = False):
    """
    Keep the next dark mode toggle up to date.

    Args:
        config: Configuration object
        verbose: Enable verbose logging
    """
    setup_logging(verbose)
    logger.info("Starting Auto Dark daemon...")

    main_queue = MainQueue()
    observer = ConsoleObserver()
    resolver = build_resolver(config, main_queue, observer)
    observer.resolver = resolver

    handled = None

    logger.info("Daemon loop started")
    while True:
        try:
            transition = resolver.next_transition
            wait = MAX_WAIT
            if transition is not None and transition != handled:
                wait = max(0, min(seconds_until(transition.timestamp), MAX_WAIT))
            main_queue.run_pending(timeout=wait)

            transition = resolver.next_transition
            if (transition is not None and transition != handled
                    and seconds_until(transition.timestamp) <= 0):
                handled = transition
                state = "on" if transition.dark else "off"
                logger.info(f"Toggle reached: dark mode {state}")
                resolver.calculate_next_transition()

        except KeyboardInterrupt:
            logger.info("Received interrupt signal, shutting down...")
            break
        except Exception as e:
            logger.error(f"Error in daemon loop: {e}", exc_info=True)
            time.sleep(MAX_WAIT)


def run_test(config: Config, timeout: float = 30):
    """
    Resolve the location once and show the next transition (for testing).

    Args:
        config: Configuration object
        timeout: Seconds to wait for a result
    """
    setup_logging(verbose=True)

    main_queue = MainQueue()
    observer = ConsoleObserver()
    resolver = build_resolver(config, main_queue, observer)
    observer.resolver = resolver

    deadline = time.monotonic() + timeout
    while resolver.next_transition is None:
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            break
        main_queue.run_pending(timeout=remaining)

    if resolver.provider is not None:
        resolver.provider.stop_monitoring_significant_changes()

    transition = resolver.next_transition
    if transition is None:
        print("\nCould not determine the next toggle.", file=sys.stderr)
        sys.exit(1)

    print(f"\nMode: {config.mode.value}")
    print(f"Location: {resolver.location_label} ({resolver.current_location})")
    print(f"Next toggle: {transition}")

    time_until = transition.timestamp - datetime.now(pytz.utc)
    hours = int(time_until.total_seconds() // 3600)
    minutes = int((time_until.total_seconds() % 3600) // 60)
    print(f"Time until toggle: {hours}h {minutes}m\n")


def init_config():
    """Generate a configuration template."""
    config_path = get_default_config_path()

    if config_path.exists():
        response = input(f"Config file already exists at {config_path}. Overwrite? [y/N] ")
        if response.lower() != 'y':
            print("Aborted.")
            return

    create_default_config(config_path)
    print(f"Configuration template created at: {config_path}")
    print("\nPlease edit this file with your location settings.")


def cli():
    """Command-line interface entry point."""
    parser = argparse.ArgumentParser(
        description="Auto Dark - switch dark mode at sunrise and sunset"
    )
    parser.add_argument(
        '--config', '-c',
        type=Path,
        help='Path to configuration file (default: ~/.config/autodark/config.yaml)'
    )
    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Enable verbose logging'
    )

    subparsers = parser.add_subparsers(dest='command', help='Commands')
    subparsers.add_parser('test', help='Resolve location and show the next toggle')
    subparsers.add_parser('run', help='Run the daemon (default)')
    subparsers.add_parser('init', help='Generate configuration template')

    args = parser.parse_args()

    # Handle init command (doesn't need config)
    if args.command == 'init':
        init_config()
        return

    config_path = args.config or get_default_config_path()

    try:
        config = Config.load(config_path)
    except FileNotFoundError:
        print(f"Error: Configuration file not found: {config_path}", file=sys.stderr)
        print("Run 'autodark init' to create a template.", file=sys.stderr)
        sys.exit(1)
    except ValueError as e:
        print(f"Error: Invalid configuration: {e}", file=sys.stderr)
        sys.exit(1)

    if args.command == 'test':
        run_test(config)
    else:
        run_daemon(config, verbose=args.verbose)


if __name__ == '__main__':
    cli()
