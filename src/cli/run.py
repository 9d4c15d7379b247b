import argparse
import asyncio
import logging
import sys
import time
from pathlib import Path
from typing import List, Optional, Tuple

import httpx

from core.entities import GenerationKind
from display.base import GenerationUpdate
from display.console import ConsoleDisplay
from ingestion.base import SourceError
from ingestion.hackernews import HackerNewsSource
from services.config import (
    SETTING_RANGES,
    is_modified,
    load_config,
    load_settings,
    reset_setting,
    reset_settings,
    update_setting,
)
from services.llm import OllamaClient
from services.logging import setup_logging
from workflows.session import ReaderSession


def parse_assignment(text: str) -> Tuple[str, float]:
    """Parse a KEY=VALUE settings assignment."""
    key, sep, value = text.partition("=")
    key = key.strip()
    if not sep:
        raise argparse.ArgumentTypeError(f"expected KEY=VALUE, got {text!r}")
    if key not in SETTING_RANGES:
        raise argparse.ArgumentTypeError(
            f"unknown setting {key!r} (choose from {', '.join(SETTING_RANGES)})"
        )
    try:
        return key, float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"{key} needs a number, got {value!r}")


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="hn-brief",
        description="Ranked Hacker News reader with AI summaries and chat",
    )
    parser.add_argument("--story", type=int, metavar="ID", help="Open this story first")
    parser.add_argument("--summary", action="store_true", help="Summarize the selected story")
    parser.add_argument(
        "--regenerate",
        action="store_true",
        help="Discard the cached summary of the selected story and generate a new one",
    )
    parser.add_argument("--ask", metavar="QUESTION", help="Ask a question about the selected story")
    parser.add_argument("--clear-cache", action="store_true", help="Remove all cached state and exit")

    settings = parser.add_argument_group("settings")
    settings.add_argument("--settings", action="store_true", help="List the filter settings and exit")
    settings.add_argument(
        "--set",
        dest="assignments",
        type=parse_assignment,
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Change a filter setting, snapped to its range and step",
    )
    settings.add_argument(
        "--reset",
        dest="reset_keys",
        action="append",
        default=[],
        choices=list(SETTING_RANGES),
        metavar="KEY",
        help="Reset one filter setting to its default",
    )
    settings.add_argument("--reset-settings", action="store_true", help="Reset every filter setting")

    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level for the debug log",
    )
    return parser.parse_args(argv)


def apply_settings_args(args: argparse.Namespace, display: ConsoleDisplay, config_dir: Optional[Path] = None) -> bool:
    """
    Apply the settings flags and print the resulting listing.
    Returns False when no settings flag was given.
    """
    if not (args.settings or args.assignments or args.reset_keys or args.reset_settings):
        return False

    if args.reset_settings:
        reset_settings(config_dir)
    for key in args.reset_keys:
        reset_setting(key, config_dir)
    for key, value in args.assignments:
        update_setting(key, value, config_dir)

    modified = {key for key in SETTING_RANGES if is_modified(key, config_dir)}
    display.render_settings(load_settings(config_dir), modified)
    return True


async def main(argv: Optional[List[str]] = None) -> int:
    start_time = time.perf_counter()
    args = parse_args(argv)
    setup_logging(level=getattr(logging, args.log_level))
    logger = logging.getLogger(__name__)

    display = ConsoleDisplay()
    if apply_settings_args(args, display):
        return 0

    config = load_config()
    logger.info("Starting reader run")

    # ----------------------------
    # Initialize shared services
    # ----------------------------
    llm = OllamaClient(
        base_url=config.backend.OLLAMA_BASE_URL,
        model=config.backend.OLLAMA_MODEL,
        cheap_model=config.backend.OLLAMA_CHEAP_MODEL,
        timeout=config.backend.TIMEOUT_SECONDS,
    )
    wants_summary = args.summary or args.regenerate

    exit_code = 0
    async with httpx.AsyncClient(timeout=30.0) as client:
        session = ReaderSession(HackerNewsSource(client), llm, display)

        if args.clear_cache:
            await session.clear_caches()
            display.console.print("Cache cleared.")
            return 0

        try:
            found = await session.start(args.story)
            if not found:
                display.console.print(f"[yellow]Story {args.story} not found[/yellow]")

            display.render_items(session.items, session.selected_index)

            if session.selected_item is None and (wants_summary or args.ask) and session.items:
                await session.select(max(session.selected_index, 0))

            if (wants_summary or args.ask) and not await llm.health_check():
                display.console.print(
                    f"[yellow]Ollama is not reachable at {llm.base_url}; AI requests will fail[/yellow]"
                )

            item = await session.load_context_item()
            if item is not None:
                display.render_item(session.selected_item)

                if wants_summary:
                    cached = session.coordinator.summaries.get(item.id)
                    if cached is not None and not args.regenerate:
                        display.render_update(GenerationUpdate(item.id, GenerationKind.SUMMARY, result=cached))
                    else:
                        if args.regenerate:
                            task = session.coordinator.regenerate_summary(item)
                        else:
                            task = session.coordinator.request_summary(item)
                        if task is not None:
                            await task

                if args.ask:
                    await session.open_chat()
                    handle = session.coordinator.send_chat_message(item, args.ask)
                    if handle is not None:
                        await handle.wait()

            await session.coordinator.wait_idle()
            await session.save()

        except SourceError as e:
            logger.error(f"Refresh failed: {e}")
            display.console.print(f"[red]Could not load stories: {e}[/red]")
            exit_code = 1

        finally:
            display.close()
            await session.coordinator.shutdown()

    logger.info("Reader run completed")
    end_time = time.perf_counter()
    logger.info(f"Total time: {end_time - start_time}")
    return exit_code


def cli() -> None:
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    cli()
