from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import Optional, Sequence

import uvicorn

from habitsync.config_manager import ConfigManager, apply_overrides, env_overrides
from habitsync.errors import ConfigurationError
from habitsync.models import AppConfig, default_app_config
from habitsync.state_store import StateStore
from habitsync.sync_engine import SyncEngine


DEFAULT_CONFIG_PATH = Path("~/.config/habitsync/config.yaml")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="habitsync",
        description="Mirror Todoist tasks into Habitica.",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument(
        "--config",
        help="YAML config file (default: $HABITSYNC_CONFIG_PATH or ~/.config/habitsync/config.yaml)",
    )
    subparsers = parser.add_subparsers(dest="command")

    sync_parser = subparsers.add_parser("sync", help="Run one synchronization")
    sync_parser.add_argument("-u", "--uid", help="Your Habitica user id")
    sync_parser.add_argument("-t", "--token", help="Your Habitica API token")
    sync_parser.add_argument("-a", "--todoist", help="Your Todoist API token")
    sync_parser.add_argument("-f", "--file", help="Directory holding the sync history file")
    sync_parser.add_argument("--journal", help="Sqlite file to record the run in")

    serve_parser = subparsers.add_parser("serve", help="Run the scheduler and admin API")
    serve_parser.add_argument("--host", default=os.getenv("HABITSYNC_HOST", "0.0.0.0"))
    serve_parser.add_argument("--port", type=int, default=int(os.getenv("HABITSYNC_PORT", "8080")))
    return parser


def _config_path(explicit: Optional[str]) -> Path:
    return Path(explicit or os.getenv("HABITSYNC_CONFIG_PATH") or DEFAULT_CONFIG_PATH).expanduser()


def resolve_config(args: argparse.Namespace) -> AppConfig:
    """Defaults < config file < environment < command-line flags."""
    path = _config_path(args.config)
    config = ConfigManager(path).load() if path.exists() else default_app_config()
    config = apply_overrides(config, env_overrides())
    config = apply_overrides(
        config,
        {
            "source": {"api_token": args.todoist},
            "target": {"user_id": args.uid, "api_token": args.token},
            "sync": {"history_dir": args.file, "journal_path": args.journal},
        },
    )
    missing = config.missing_credentials()
    if missing:
        raise ConfigurationError(f"No {missing[0]} found")
    return config


def run_sync(args: argparse.Namespace) -> int:
    config = resolve_config(args)
    state_store = StateStore(config.sync.journal_path) if config.sync.journal_path else None
    engine = SyncEngine(lambda: config, state_store=state_store)
    result = engine.run_once(trigger="cli")
    if result.status != "success":
        print(f"Sync failed with error: {result.message}", file=sys.stderr)
        return 1
    print(f"Sync completed successfully, {result.changes_applied} changes applied. {result.message}")
    return 0


def run_server(args: argparse.Namespace) -> int:
    os.environ["HABITSYNC_CONFIG_PATH"] = str(_config_path(args.config))
    uvicorn.run("habitsync.web_admin:create_app", factory=True, host=args.host, port=args.port, reload=False)
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    if not args.command:
        parser.print_help()
        return 1
    try:
        if args.command == "sync":
            return run_sync(args)
        return run_server(args)
    except ConfigurationError as exc:
        print(str(exc), file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
