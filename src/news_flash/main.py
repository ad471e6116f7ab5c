#!/usr/bin/env python3
# -*- coding: utf-8 -*-
from __future__ import annotations

import argparse
import logging
import signal
import sys
from typing import List, Optional

from rich.console import Console

from .app import FlashApp
from .config import (
    CONFIG_PATH,
    Settings,
    add_keyword,
    clamp_interval,
    load_settings,
    remove_keyword,
    save_settings,
    setup_logging,
)
from .poller import PollTimer, build_poller
from .speech import LogNotifier, Notification

logger = logging.getLogger("news_flash")


class ConsoleNotifier:
    """Print alerts to the terminal when running without the TUI."""

    def __init__(self, console: Console):
        self.console = console

    def notify(self, note: Notification) -> None:
        style = "bold red" if note.category == "IMPORTANT_NEWS" else "bold yellow"
        self.console.print(f"[{style}]{note.title}[/] {note.subtitle}")
        if note.body:
            self.console.print(f"  {note.body}", highlight=False)


def run_headless(settings: Settings, speak: bool = True) -> None:
    console = Console()
    poller = build_poller(
        settings,
        notifiers=[ConsoleNotifier(console), LogNotifier()],
        speak=speak,
    )
    items = poller.load_initial()
    console.print(f"Loaded {len(items)} items; polling every {poller.interval:.0f}s")

    timer = PollTimer(poller.interval, poller.refresh_background)

    def _reload(signum, frame) -> None:
        # Pick up keyword and interval edits made to the config file
        fresh = load_settings()
        settings.monitored_keywords = fresh.monitored_keywords
        poller.engine.set_keywords(fresh.monitored_keywords)
        timer.reschedule(poller.set_interval(fresh.refresh_interval))

    if hasattr(signal, "SIGHUP"):
        signal.signal(signal.SIGHUP, _reload)
    timer.start()
    try:
        timer.join()
    except KeyboardInterrupt:
        pass
    finally:
        timer.stop()
        poller.dispatcher.shutdown()


def manage_keywords(settings: Settings, args: argparse.Namespace) -> bool:
    """Apply keyword CLI options; returns True if any were given."""
    changed = False
    for keyword in args.add_keyword or []:
        if add_keyword(settings.monitored_keywords, keyword):
            print(f"Added keyword: {keyword.strip()}")
            changed = True
        else:
            print(f"Keyword not added (empty or duplicate): {keyword!r}", file=sys.stderr)
    for keyword in args.remove_keyword or []:
        trimmed = keyword.strip()
        if trimmed in settings.monitored_keywords:
            remove_keyword(
                settings.monitored_keywords, settings.monitored_keywords.index(trimmed)
            )
            print(f"Removed keyword: {trimmed}")
            changed = True
        else:
            print(f"Keyword not found: {keyword!r}", file=sys.stderr)
    if changed:
        save_settings(settings)
    if args.list_keywords:
        for keyword in settings.monitored_keywords:
            print(keyword)
    return bool(args.add_keyword or args.remove_keyword or args.list_keywords)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Flash news ticker with spoken alerts")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser.add_argument(
        "--interval",
        type=float,
        help="Set and save the refresh interval in seconds (5-60)",
    )
    parser.add_argument(
        "--headless", action="store_true", help="Poll and alert without the TUI"
    )
    parser.add_argument("--no-speech", action="store_true", help="Disable spoken alerts")
    parser.add_argument(
        "--add-keyword", action="append", metavar="KW", help="Monitor a keyword"
    )
    parser.add_argument(
        "--remove-keyword", action="append", metavar="KW", help="Stop monitoring a keyword"
    )
    parser.add_argument(
        "--list-keywords", action="store_true", help="Print monitored keywords"
    )
    return parser


# --- Entrypoint ---
def main(argv: Optional[List[str]] = None) -> None:
    args = build_parser().parse_args(argv)

    debug_path = setup_logging(args.debug)
    if debug_path:
        print(f"Debug logging enabled: {debug_path}", file=sys.stderr)

    settings = load_settings()
    logger.info("Using config %s", CONFIG_PATH)

    if manage_keywords(settings, args):
        return

    if args.interval is not None:
        settings.refresh_interval = clamp_interval(args.interval)
        save_settings(settings)

    try:
        if args.headless:
            run_headless(settings, speak=not args.no_speech)
        else:
            app = FlashApp(settings, speak=not args.no_speech)
            app.run()
    except Exception as e:
        logger.exception("Application crashed: %s", e)
        print(f"Application crashed: {e}", file=sys.stderr)


if __name__ == "__main__":
    main()
