"""
ParsePal Relay command line.
Tails the WoW combat log and uploads every detected fight to ParsePal.
"""

import sys
import json
import logging
import argparse
import threading
import traceback
from pathlib import Path
from datetime import datetime

from parsepal.core.constants import APP_DISPLAY_NAME, APP_VERSION, LOG_DIR, GAME_VERSIONS

logger = logging.getLogger("parsepal")

def setup_logging(verbose: bool = False):
    """File log in LOG_DIR plus stderr."""
    LOG_DIR.mkdir(parents=True, exist_ok=True)
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[
            logging.FileHandler(LOG_DIR / "relay.log", encoding="utf-8"),
            logging.StreamHandler(sys.stderr),
        ],
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="parsepal-relay",
        description="Relay WoW combat log fights to ParsePal.",
    )
    parser.add_argument("--config", type=Path, help="Path to config.json")
    parser.add_argument("--wow-path", help="World of Warcraft install folder")
    parser.add_argument("--game-version", choices=GAME_VERSIONS)
    parser.add_argument("--detect", action="store_true",
                        help="Detect the WoW folder and save it to the config")
    parser.add_argument("--diagnostics", action="store_true",
                        help="Print diagnostics as JSON and exit")
    parser.add_argument("--history", action="store_true",
                        help="Print recent uploads and exit")
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser


def _print_entry(prefix: str, entry):
    extra = entry.analysis_url or entry.error or ""
    print(f"{prefix} {entry.fight.encounter_name} [{entry.status} {entry.progress}%] {extra}".rstrip())


def run(args: argparse.Namespace) -> int:
    from parsepal.core.config import AppConfig
    from parsepal.core.diagnostics import get_diagnostics
    from parsepal.core.game_paths import detect_wow_dir
    from parsepal.core.history_sqlite import HistoryStore
    from parsepal.core.relay import RelayService

    config = AppConfig(args.config)
    if args.wow_path:
        config.set('wow_path', args.wow_path)
    if args.game_version:
        config.set('game_version', args.game_version)
    if args.detect:
        found = detect_wow_dir()
        if not found:
            print("No World of Warcraft installation found", file=sys.stderr)
            return 1
        config.set('wow_path', found)
        print(f"Using {found}")

    if args.diagnostics:
        print(json.dumps(get_diagnostics(config), indent=2))
        return 0

    history = HistoryStore(limit=config.history_limit)
    try:
        if args.history:
            for item in history.get_history():
                print(f"{item.timestamp}  {item.status:5}  {item.encounter_name}  {item.analysis_url or item.error or ''}")
            return 0

        relay = RelayService(config, history)
        relay.status.subscribe(lambda s: print(f"watcher: {s}"))
        relay.fight_detected.subscribe(lambda e: _print_entry("detected:", e))
        relay.upload_progress.subscribe(
            lambda e: e.is_terminal and _print_entry("upload:", e)
        )

        if not relay.start():
            print("Watcher not running — check --wow-path and PARSEPAL_AUTH_TOKEN", file=sys.stderr)
            return 1

        stop = threading.Event()
        try:
            while not stop.wait(1.0):
                pass
        except KeyboardInterrupt:
            logger.info("Interrupted, stopping")
        finally:
            relay.stop()
        return 0
    finally:
        history.close()


def main():
    args = build_parser().parse_args()
    setup_logging(args.verbose)
    logger.info("=" * 60)
    logger.info("%s v%s starting at %s", APP_DISPLAY_NAME, APP_VERSION, datetime.now().isoformat())
    logger.info("Python: %s", sys.executable)
    logger.info("Package: %s", Path(__file__).resolve().parent)
    logger.info("=" * 60)

    try:
        sys.exit(run(args))
    except Exception as e:
        logger.critical("Fatal error: %s: %s\n%s", type(e).__name__, e, traceback.format_exc())
        sys.exit(1)


if __name__ == "__main__":
    main()
