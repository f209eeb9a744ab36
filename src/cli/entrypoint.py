#!/usr/bin/env python3
"""
entrypoint.py
- Command-line entrypoint, invoked by the systemd service/timer or by hand.
- Usage:
    homarr-container-adapter [-c CONFIG] [-d] setup|sync|status
    homarr-container-adapter remove|restore <app_id>

- Exit codes: 0 success, 2 partial success (some apps failed), 1 fatal.
"""

import argparse
import os
import signal
import sys

import sentry_sdk
from loguru import logger

from core.config import CONFIG_FILE, load_config
from core.constants import EXIT_FATAL, EXIT_OK, EXIT_PARTIAL
from core.errors import AdapterError, ConfigError
from core.state import load_state, save_state
from runner.setup import run_setup
from runner.sync import run_sync


def setup_logging(debug=False):
    logger.remove()
    logger.add(
        sys.stderr,
        level="DEBUG" if debug else "INFO",
        colorize=True,
        format="<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
    )


def setup_error_reporting():
    dsn = os.getenv("SENTRY_DSN")
    if dsn:
        sentry_sdk.init(dsn=dsn, traces_sample_rate=0.0)


def handle_exit(signum, frame):
    print("📴 Received shutdown signal. Exiting...")
    sys.exit(EXIT_FATAL)


def build_parser():
    parser = argparse.ArgumentParser(
        prog="homarr-container-adapter",
        description="Adapter for the Homarr dashboard: first-boot setup and container auto-discovery",
    )
    parser.add_argument("-c", "--config", default=CONFIG_FILE, help="Config file path")
    parser.add_argument("-d", "--debug", action="store_true", help="Enable debug logging")

    commands = parser.add_subparsers(dest="command", required=True)
    commands.add_parser("sync", help="Run a single sync cycle (for the systemd timer)")
    commands.add_parser("setup", help="Run first-boot setup only")
    commands.add_parser("status", help="Show first-boot and sync status")
    remove = commands.add_parser("remove", help="Exclude an app from future syncs")
    remove.add_argument("app_id")
    restore = commands.add_parser("restore", help="Allow an excluded app to be synced again")
    restore.add_argument("app_id")
    return parser


# --- Commands ---
def cmd_setup(config):
    report = run_setup(config)
    if report.completed:
        print("Setup: complete")
        return EXIT_OK
    print(f"Setup: failed at step '{report.step}': {report.error}")
    return EXIT_FATAL


def cmd_sync(config):
    report = run_sync(config)
    print(
        f"Sync: {report.created} created, {report.existing} existing, {report.excluded} excluded, "
        f"{report.failed} failed, {report.invalid} invalid, {report.evicted} newly excluded"
    )
    return EXIT_PARTIAL if report.partial else EXIT_OK


def cmd_status(config):
    summary = load_state(config.state_file).summary()
    if summary["first_boot_completed"]:
        print("Status: First-boot setup completed")
    else:
        print("Status: First-boot setup pending")
    print(f"Permanent credential: {summary['permanent_credential']}")
    print(f"Board: {summary['board_id'] or '-'}")
    print(f"Discovered apps: {summary['discovered_apps']}")
    print(f"Removed apps: {summary['removed_apps']}")
    print(f"Last sync: {summary['last_sync_at'] or 'never'}")
    return EXIT_OK


def cmd_remove(config, app_id):
    state = load_state(config.state_file)
    tile_id = state.mark_removed(app_id)
    save_state(state, config.state_file)
    if tile_id:
        print(f"Excluded {app_id} (tile {tile_id} stays on the dashboard until deleted there)")
    else:
        print(f"Excluded {app_id}")
    return EXIT_OK


def cmd_restore(config, app_id):
    state = load_state(config.state_file)
    if not state.restore(app_id):
        print(f"{app_id} is not excluded")
        return EXIT_OK
    save_state(state, config.state_file)
    print(f"Restored {app_id}; it will be added on the next sync")
    return EXIT_OK


def main(argv=None):
    args = build_parser().parse_args(argv)
    setup_logging(args.debug)
    setup_error_reporting()
    signal.signal(signal.SIGTERM, handle_exit)

    try:
        config = load_config(args.config)
        if config.debug and not args.debug:
            setup_logging(True)

        if args.command == "setup":
            return cmd_setup(config)
        if args.command == "sync":
            return cmd_sync(config)
        if args.command == "status":
            return cmd_status(config)
        if args.command == "remove":
            return cmd_remove(config, args.app_id)
        return cmd_restore(config, args.app_id)
    except ConfigError as e:
        logger.error(f"[cli] Configuration error: {e}")
        print(f"❌ Configuration error: {e}")
        return EXIT_FATAL
    except AdapterError as e:
        logger.error(f"[cli] {args.command} failed: {e}")
        print(f"❌ {args.command} failed: {e}")
        return EXIT_FATAL


if __name__ == "__main__":
    sys.exit(main())
