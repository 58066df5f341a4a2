"""CLI entry point for tooltalk."""

from __future__ import annotations

import argparse
import asyncio
import sys

from tooltalk.app import ToolTalkApp
from tooltalk.config import AppConfig, load_config
from tooltalk.errors import ToolTalkError
from tooltalk.log import setup_logging

EXIT_COMMANDS = {"exit", "quit", "/exit", "/quit"}


def _add_config_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("-c", "--config", default="config.yaml", help="Path to config file")
    parser.add_argument("-e", "--env", default=".env", help="Path to .env file")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tooltalk",
        description="Tool-calling conversations with persistent sessions",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # chat command
    chat_parser = subparsers.add_parser("chat", help="Interactive chat in a session")
    _add_config_args(chat_parser)
    chat_parser.add_argument("-s", "--session", default=None, help="Resume an existing session id")
    chat_parser.add_argument("-n", "--name", default=None, help="Name for a new session")

    # sessions command
    sessions_parser = subparsers.add_parser("sessions", help="List stored sessions")
    _add_config_args(sessions_parser)
    sessions_parser.add_argument("--limit", type=int, default=20)
    sessions_parser.add_argument("--offset", type=int, default=0)

    # delete command
    delete_parser = subparsers.add_parser("delete", help="Delete a stored session")
    _add_config_args(delete_parser)
    delete_parser.add_argument("session_id")

    # config-check command
    check_parser = subparsers.add_parser("config-check", help="Validate configuration")
    _add_config_args(check_parser)

    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        # Default to chat
        args = parser.parse_args(["chat", *(argv or [])])

    try:
        config = load_config(args.config, args.env)
    except ToolTalkError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    if args.command == "config-check":
        _check_config(config, args.config)
        return

    setup_logging(config.log_level, json=config.log_json)

    match args.command:
        case "chat":
            coro = _chat(config, args.session, args.name)
        case "sessions":
            coro = _sessions(config, args.limit, args.offset)
        case "delete":
            coro = _delete(config, args.session_id)
        case _:
            parser.error(f"Unknown command: {args.command}")

    try:
        asyncio.run(coro)
    except ToolTalkError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    except KeyboardInterrupt:
        pass


def _check_config(config: AppConfig, config_path: str) -> None:
    """Print a summary of a configuration that already loaded cleanly."""
    print(f"Configuration valid: {config_path}")
    print(f"  Data directory: {config.data_dir}")
    print(f"  Backend: {config.ai.backend} ({config.ai.model})")
    print(f"  Max turns: {config.ai.max_turns}")
    print(f"  Tools: {', '.join(config.ai.tools) if config.ai.tools else '(none)'}")
    print(f"  Cache: {config.manager.max_cached_sessions} sessions, {config.manager.eviction} eviction")
    if config.storage.backend == "sqlite":
        print(f"  Storage: sqlite at {config.storage.db_path}")
    else:
        print(f"  Storage: {config.storage.backend}")


async def _chat(config: AppConfig, session_id: str | None, name: str | None) -> None:
    async with ToolTalkApp(config) as app:
        manager = app.session_manager
        if session_id is None:
            session_id = await manager.create(name=name)
            print(f"Started session {session_id}")
        else:
            handle = await manager.get(session_id)
            print(f"Resumed session {session_id} ({handle.engine.message_count} messages)")
        print("Type 'exit' to quit.")

        while True:
            try:
                text = await asyncio.to_thread(input, "> ")
            except EOFError:
                break
            text = text.strip()
            if not text:
                continue
            if text.lower() in EXIT_COMMANDS:
                break
            try:
                answer = await manager.run(session_id, text)
            except ToolTalkError as e:
                # keep the session open; the failed turn was not persisted
                print(f"[{e.category} error] {e}", file=sys.stderr)
                continue
            print(answer)


async def _sessions(config: AppConfig, limit: int, offset: int) -> None:
    async with ToolTalkApp(config) as app:
        conversations = await app.session_manager.list_conversations(limit=limit, offset=offset)
    if not conversations:
        print("No sessions.")
        return
    for meta in conversations:
        label = f" {meta.name}" if meta.name else ""
        print(
            f"{meta.id}{label}  messages={meta.message_count} tokens={meta.token_count} "
            f"updated={meta.updated_at.isoformat(timespec='seconds')}"
        )


async def _delete(config: AppConfig, session_id: str) -> None:
    async with ToolTalkApp(config) as app:
        await app.session_manager.delete(session_id)
    print(f"Deleted session {session_id}")


if __name__ == "__main__":
    main()
