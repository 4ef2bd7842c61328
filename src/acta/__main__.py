"""Entry point: python -m acta <command>

- list:    Print entries, newest first
- add:     Append an entry to today's file
- update:  Replace body/tags of an entry
- delete:  Remove an entry
- chat:    Interactive AI chat REPL
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from acta.config import ActaConfig, load_config


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="acta", description="Dated Markdown journal")
    sub = parser.add_subparsers(dest="command", required=True)

    p_list = sub.add_parser("list", help="Print entries, newest first")
    p_list.add_argument("--tag", help="Only entries carrying this tag")

    p_add = sub.add_parser("add", help="Append an entry to today's file")
    p_add.add_argument("body")
    p_add.add_argument("-t", "--tag", dest="tags", action="append", default=[])

    p_update = sub.add_parser("update", help="Replace body and tags of an entry")
    p_update.add_argument("id")
    p_update.add_argument("body")
    p_update.add_argument("-t", "--tag", dest="tags", action="append", default=[])

    p_delete = sub.add_parser("delete", help="Remove an entry")
    p_delete.add_argument("id")

    p_chat = sub.add_parser("chat", help="Interactive AI chat")
    p_chat.add_argument("--cli", help="Path to the AI CLI executable")

    return parser


def _print_entry(entry) -> None:
    tags = f"  [{', '.join(entry.tags)}]" if entry.tags else ""
    print(f"── {entry.created}  {entry.id}{tags}")
    print(entry.body)
    print()


def _run_entries(config: ActaConfig, args: argparse.Namespace) -> int:
    from acta.entries.codec import normalize_tag
    from acta.entries.store import EntryStore

    store = EntryStore(config.data_dir)

    if args.command == "list":
        wanted = normalize_tag(args.tag) if args.tag else None
        for entry in store.list():
            if wanted is None or wanted in entry.tags:
                _print_entry(entry)
        return 0

    if args.command == "add":
        entry = store.add(args.body, args.tags)
        print(f"Added {entry.id} to {entry.source_file}")
        return 0

    if args.command == "update":
        if not store.update(args.id, args.body, args.tags):
            print(f"Entry not found: {args.id}", file=sys.stderr)
            return 1
        print(f"Updated {args.id}")
        return 0

    if not store.delete(args.id):
        print(f"Entry not found: {args.id}", file=sys.stderr)
        return 1
    print(f"Deleted {args.id}")
    return 0


def _run_chat(config: ActaConfig, args: argparse.Namespace) -> int:
    from acta.ai.session import SessionManager
    from acta.console import ChatConsole

    cli_path = args.cli or config.ai.cli_path
    if not cli_path:
        print("No AI CLI configured (use --cli or set ACTA_AI_CLI)", file=sys.stderr)
        return 1

    async def _chat() -> None:
        sessions = SessionManager(history_turns=config.ai.history_turns, cwd=config.ai.cwd)
        console = ChatConsole(
            sessions,
            cli_path,
            instruction=config.ai.instruction,
            data_dir=config.data_dir,
            poll_interval=config.ai.poll_interval,
        )
        try:
            await console.start()
        finally:
            await sessions.shutdown()

    try:
        asyncio.run(_chat())
    except KeyboardInterrupt:
        pass
    return 0


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    config = load_config()
    _setup_logging(config.log_level)

    from acta.entries.store import ValidationError

    try:
        if args.command == "chat":
            return _run_chat(config, args)
        return _run_entries(config, args)
    except ValidationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2
    except OSError as e:
        print(f"I/O error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
