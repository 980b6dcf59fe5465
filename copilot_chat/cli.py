"""
Command line front-end.

Usage:
    copilot-chat [-f FILES] [-m MODEL] [prompt ...]
    copilot-chat commit [prompt ...]
    copilot-chat clear
    copilot-chat models
    copilot-chat serve [--host HOST] [--port PORT]

Piped standard input becomes an extra user message of the first turn. On a
terminal the chat continues interactively until ``exit`` is entered; the
session is saved after every completed turn.
"""

import argparse
import asyncio
import logging
import sys
from typing import List, Optional, Sequence

from copilot_chat.config import settings
from copilot_chat.core import prompts
from copilot_chat.core.chat import Chat, MessageType
from copilot_chat.core.error_handlers import ChatException
from copilot_chat.core.llm.llm_client import create_llm_client
from copilot_chat.core.pipeline import StdoutSink
from copilot_chat.core.services.logging_config import setup_logging
from copilot_chat.core.session_store import SessionStore
from copilot_chat.core.utils.files import parse_file_args
from copilot_chat.models.chat import Message

logger = logging.getLogger(__name__)

EXIT_COMMAND = "exit"

# First prompt words that select a command instead of starting a chat
COMMANDS = ("commit", "clear", "models", "serve")


def build_arg_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="copilot-chat",
        description="Chat with GitHub Copilot from the terminal",
        epilog="commands: commit [prompt], clear, models, serve [--host] [--port]",
    )
    parser.add_argument(
        "-f",
        "--files",
        action="append",
        default=[],
        help="Comma separated files to put into context, each path[:start[-end]]",
    )
    parser.add_argument("-m", "--model", default=None, help="Model to use")
    parser.add_argument("--host", default=settings.host, help="Address for serve")
    parser.add_argument("--port", type=int, default=settings.port, help="Port for serve")
    parser.add_argument("prompt", nargs="*", help="Prompt, or a command")
    return parser


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    """Parse the command line, splitting a leading command off the prompt."""
    args = build_arg_parser().parse_args(argv)
    args.command = None
    if args.prompt and args.prompt[0] in COMMANDS:
        args.command = args.prompt[0]
        args.prompt = args.prompt[1:]
    return args


async def staged_diff() -> str:
    """Output of ``git diff --staged`` in the current directory."""
    process = await asyncio.create_subprocess_exec(
        "git",
        "diff",
        "--staged",
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    stdout, stderr = await process.communicate()
    if process.returncode != 0:
        raise RuntimeError(stderr.decode("utf-8", errors="replace").strip())
    return stdout.decode("utf-8", errors="replace")


async def run_turn(
    chat: Chat,
    message: Optional[Message],
    message_type: MessageType,
    model: Optional[str],
    store: Optional[SessionStore] = None,
) -> None:
    """Stream one reply to standard output and save the chat afterwards."""
    await chat.send_message_with_stream(message, message_type, StdoutSink(), model=model)
    print()
    if store is not None:
        store.save(chat.to_session())


async def interactive(
    chat: Chat, files: List[str], model: Optional[str], store: SessionStore
) -> None:
    """Read prompts from the terminal until ``exit``."""
    while True:
        try:
            line = await asyncio.to_thread(input, "\n> ")
        except EOFError:
            return

        line = line.strip()
        if line == EXIT_COMMAND:
            return
        if not line:
            continue

        try:
            await run_turn(chat, None, MessageType.code(line, files), model, store)
        except ChatException as e:
            print(f"Error: {e.message}", file=sys.stderr)


async def run_commit(args: argparse.Namespace, piped: Optional[str]) -> int:
    diff = piped
    if not diff:
        try:
            diff = await staged_diff()
        except (OSError, RuntimeError) as e:
            print(f"Error: cannot read staged changes: {e}", file=sys.stderr)
            return 1
    if not diff.strip():
        print("Nothing to commit: no staged changes", file=sys.stderr)
        return 1

    user_prompt = " ".join(args.prompt) or None
    async with create_llm_client() as client:
        chat = Chat(client)
        await run_turn(chat, Message.user(diff), MessageType.commit(user_prompt), args.model)
    return 0


async def run_models() -> int:
    async with create_llm_client() as client:
        for model in await client.list_models():
            print(model)
    return 0


async def run_chat(args: argparse.Namespace, piped: Optional[str]) -> int:
    store = SessionStore()
    files = parse_file_args(args.files)
    user_prompt = " ".join(args.prompt) or None
    message = Message.user(piped) if piped else None
    if message is None and user_prompt is None:
        user_prompt = prompts.DEFAULT_PROMPT

    async with create_llm_client() as client:
        session = store.load()
        chat = Chat.from_session(session, client) if session is not None else Chat(client)

        await run_turn(chat, message, MessageType.code(user_prompt, files), args.model, store)

        if sys.stdin.isatty():
            await interactive(chat, files, args.model, store)
    return 0


async def run(args: argparse.Namespace, piped: Optional[str]) -> int:
    """Dispatch a parsed command line."""
    try:
        if args.command == "clear":
            if SessionStore().remove():
                print("Chat cleared")
            return 0
        if args.command == "models":
            return await run_models()
        if args.command == "commit":
            return await run_commit(args, piped)
        return await run_chat(args, piped)
    except ChatException as e:
        logger.debug("Command failed", exc_info=True)
        print(f"Error: {e.message}", file=sys.stderr)
        return 1


def read_piped_input() -> Optional[str]:
    """Standard input when it is not a terminal."""
    if sys.stdin is None or sys.stdin.isatty():
        return None
    return sys.stdin.read() or None


def main(argv: Optional[Sequence[str]] = None) -> int:
    setup_logging()
    args = parse_args(argv)

    if args.command == "serve":
        import uvicorn

        from copilot_chat.main import create_app

        uvicorn.run(create_app(), host=args.host, port=args.port)
        return 0

    try:
        return asyncio.run(run(args, read_piped_input()))
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
