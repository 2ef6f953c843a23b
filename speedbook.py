#!/usr/bin/env python3
"""
speedbook — Speed-read documents one word at a time in the terminal.

Supported input formats: EPUB, PDF, Markdown (.md), plain text (.txt)

Quick start:
  1. python speedbook.py book.epub --toc
  2. python speedbook.py book.epub --chapter 3 --wpm 400
  3. python speedbook.py --resume

Reading position and settings are saved on exit and every few seconds while
playing, under SPEEDBOOK_STORAGE_DIR (default ~/.speedbook).
"""

import argparse
import asyncio
import dataclasses
import functools
import logging
import sys
from pathlib import Path


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Speed-read EPUB, PDF, Markdown or text files word by word (RSVP)",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # List chapters, no playback:
  python speedbook.py novel.epub --toc

  # Read from chapter 2 at 450 words per minute:
  python speedbook.py book.pdf --chapter 2 --wpm 450

  # Remember 450 wpm as the default for future runs:
  python speedbook.py book.pdf --wpm 450 --save-wpm

  # Pick up where you left off:
  python speedbook.py --resume
        """,
    )
    parser.add_argument("input_path", type=Path, nargs="?", default=None,
                        help="Path to EPUB, PDF, Markdown or text file")
    parser.add_argument("--toc", action="store_true",
                        help="Print the table of contents and exit")
    parser.add_argument("--chapter", type=int, default=None, metavar="N",
                        help="Start at chapter N (1-based)")
    parser.add_argument("--wpm", type=int, default=None, metavar="N",
                        help="Reading speed in words per minute")
    parser.add_argument("--save-wpm", action="store_true",
                        help="Store --wpm in .env as the default speed")
    parser.add_argument("--pause-every", type=int, default=None, metavar="N",
                        help="Pause briefly every N words")
    parser.add_argument("--resume", action="store_true",
                        help="Resume the saved session instead of opening a file")
    parser.add_argument("--clear", action="store_true",
                        help="Delete the saved session and exit")
    parser.add_argument("--storage-dir", type=Path, default=None, metavar="DIR",
                        help="Where sessions are stored (default: SPEEDBOOK_STORAGE_DIR or ~/.speedbook)")
    parser.add_argument("-v", "--verbose", action="store_true",
                        help="Log ingestion and storage details")
    return parser.parse_args()


def print_chapter_list(loaded, title: str | None = None) -> None:
    if title:
        print(f"Title:  {title}")
    print(f"\nFound {len(loaded.toc)} chapters:")
    print("-" * 70)
    for entry in loaded.toc:
        indent = "  " * (entry.level - 1)
        label = f"{indent}{entry.title}"
        print(f"  {entry.chapter_index + 1:3d}. {label:<50} {entry.word_count:>7} words")
    print("-" * 70)
    print(f"  Total: {len(loaded.words):,} tokens")
    print()


def render_token(token: str, column: int = 20) -> str:
    """Format a token with its ORP letter highlighted at a fixed column."""
    from timing import split_word_for_display

    before, orp, after = split_word_for_display(token)
    pad = " " * max(0, column - len(before))
    return f"{pad}{before}\033[1;31m{orp}\033[0m{after}"


async def run(args: argparse.Namespace) -> int:
    from config import load_config, save_default_wpm
    from exceptions import IngestionError
    from models import PlaybackState, display_text
    from parsers import SUPPORTED_EXTENSIONS, decoder_for, parse_file
    from reader import Reader
    from session_store import SessionStore
    from storage import ArchiveStorage, LocalStorage

    config = load_config()
    if args.storage_dir:
        config = dataclasses.replace(config, storage_dir=args.storage_dir)

    store = SessionStore(
        LocalStorage(config.local_store_path, config.local_quota_bytes),
        ArchiveStorage(config.archive_dir),
        max_local_bytes=config.max_local_payload_bytes,
    )
    loop = asyncio.get_running_loop()
    reader = Reader(store, loop, config=config)

    if args.clear:
        ok = await reader.clear_session()
        print("Saved session cleared." if ok else "ERROR: could not clear saved session.")
        return 0 if ok else 1

    if args.resume:
        session = await reader.load_session()
        if session is None:
            print("No saved session to resume.")
            return 1
        print(f"Resuming at word {session.current_word_index + 1:,} of {session.total_words:,}")
    elif args.input_path is not None:
        path = args.input_path
        if path.is_dir():
            # Unpacked EPUB: the decoder reads the directory, not the bytes.
            decoder = lambda _: parse_file(path)  # noqa: E731
            data = b""
        elif path.suffix.lower() not in SUPPORTED_EXTENSIONS:
            print(f"ERROR: unsupported file '{path.name}'. "
                  f"Supported: {', '.join(sorted(SUPPORTED_EXTENSIONS))}")
            return 1
        else:
            decoder = decoder_for(path.suffix)
            if path.suffix.lower() == ".pdf":
                decoder = functools.partial(decoder, show_progress=True)
            data = None
        print(f"Parsing: {path}")
        try:
            if data is None:
                data = path.read_bytes()
            loaded = await reader.load_document(data, decoder)
        except (OSError, IngestionError) as e:
            print(f"ERROR: {e}")
            return 1
        print_chapter_list(loaded, reader.state.structure.title or path.stem)
        if args.toc:
            return 0
    else:
        print("ERROR: give a file to read or --resume")
        return 1

    changes = {}
    if args.wpm:
        changes["wpm"] = args.wpm
        if args.save_wpm:
            save_default_wpm(args.wpm)
    if args.pause_every is not None:
        changes["pause_after_words"] = args.pause_every
    if changes:
        reader.update_settings(**changes)

    if args.chapter is not None and not reader.navigate_to_chapter(args.chapter - 1):
        print(f"ERROR: no chapter {args.chapter} "
              f"(document has {len(reader.state.structure.chapters)} chapters)")
        return 1

    finished = asyncio.Event()

    def show(state) -> None:
        token = reader.playback.current_token
        if token is not None:
            status = "" if state.playback == PlaybackState.PLAYING else f"  [{state.playback.value}]"
            line = render_token(token) if display_text(token) else ""
            sys.stdout.write(f"\r\033[K{line}   {reader.playback.time_remaining()}{status}")
            sys.stdout.flush()
        if state.playback == PlaybackState.STOPPED:
            finished.set()

    reader.playback.add_listener(show)
    print(f"Reading at {reader.settings.wpm} wpm. Ctrl-C to stop.\n")
    try:
        if reader.play():
            await finished.wait()
    finally:
        reader.stop()
        saved = await reader.flush()
        print("\n\nPosition saved." if saved else "\n\nWARNING: could not save position.")
    return 0


def main():
    args = parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    try:
        sys.exit(asyncio.run(run(args)))
    except KeyboardInterrupt:
        sys.exit(130)


if __name__ == "__main__":
    main()
