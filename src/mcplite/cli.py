"""Command line entry point.

``mcplite serve`` runs the user directory provider on stdio. The other
commands start a provider as a child process, connect to it as a host,
run one operation and print the result as JSON.
"""

import argparse
import asyncio
import json
import logging
import shlex
import sys
from typing import Any, Dict, List, Optional

from . import __version__
from .config import Settings, load_settings
from .errors import InternalError, McpError
from .host import Host
from .sampling import generation_handler
from .transport import ProcessTransport

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    """Send log records to stderr; stdout carries protocol traffic or command output."""
    logging.basicConfig(
        stream=sys.stderr,
        level=getattr(logging, level.upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def parse_arguments(pairs: Optional[List[str]]) -> Dict[str, str]:
    """Turn ``key=value`` strings into a dict."""
    arguments = {}
    for pair in pairs or []:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise ValueError(f"Expected key=value, got {pair!r}")
        arguments[key] = value
    return arguments


def default_server_command() -> List[str]:
    return [sys.executable, "-m", "mcplite.users"]


def command_generator(command: str):
    """Build a text generation backend that pipes each prompt through ``command``.

    The prompt is written to the command's stdin and its stripped stdout is
    the generated text.
    """
    argv = shlex.split(command)
    if not argv:
        raise ValueError("Sampling command is empty")

    async def generate(prompt: str) -> str:
        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise InternalError(f"Failed to start {argv[0]}: {e}") from e
        stdout, stderr = await process.communicate(prompt.encode("utf-8"))
        if process.returncode != 0:
            logger.warning("Sampling command failed: %s", stderr.decode("utf-8", "replace").strip())
            raise InternalError(f"Sampling command exited with status {process.returncode}")
        return stdout.decode("utf-8").strip()

    return generate


async def confirm_on_terminal(prompt: str) -> bool:
    """Show a sampling prompt on stderr and read y/N from stdin."""
    print(f"Provider requests a generation for:\n{prompt}\nAllow? [y/N] ", end="", file=sys.stderr, flush=True)
    answer = await asyncio.to_thread(sys.stdin.readline)
    return answer.strip().lower() in ("y", "yes")


def build_sampling_handler(args: argparse.Namespace):
    if args.sample_command is None:
        return None
    approve = None if args.yes else confirm_on_terminal
    return generation_handler(command_generator(args.sample_command), approve=approve)


async def run_host_command(args: argparse.Namespace, settings: Settings) -> Any:
    command = shlex.split(args.server) if args.server else default_server_command()
    transport = ProcessTransport(command[0], command[1:], stderr=args.verbose)
    async with Host(settings=settings, sampling_handler=build_sampling_handler(args)) as host:
        await host.connect(transport)
        if args.command == "tools":
            return await host.list_tools()
        if args.command == "resources":
            return await host.list_resources()
        if args.command == "templates":
            return await host.list_resource_templates()
        if args.command == "prompts":
            return await host.list_prompts()
        if args.command == "call":
            return await host.call_tool(args.name, parse_arguments(args.arg))
        if args.command == "read":
            return await host.read_resource(args.uri)
        if args.command == "prompt":
            return await host.get_prompt(args.name, parse_arguments(args.arg))
    raise ValueError(f"Unknown command: {args.command}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mcplite",
        description="Run or talk to a model-context protocol provider",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  mcplite serve
  mcplite tools
  mcplite read users://1/profile
  mcplite call create-user -a name=Ada -a email=ada@example.com -a address=London -a phone=123
  mcplite prompt generate-fake-user -a name=Ada --server "python -m mcplite.users"
"""
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser("serve", help="Serve the user directory provider on stdio")

    host_options = argparse.ArgumentParser(add_help=False)
    host_options.add_argument(
        "--server",
        help="Provider command line (default: the user directory provider)"
    )
    host_options.add_argument(
        "--sample-command",
        metavar="CMD",
        help="Answer the provider's sampling requests by piping the prompt through CMD"
    )
    host_options.add_argument(
        "-y", "--yes",
        action="store_true",
        help="Run sampling requests without asking for confirmation"
    )

    for name, help_text in (
        ("tools", "List tools"),
        ("resources", "List resources"),
        ("templates", "List resource templates"),
        ("prompts", "List prompts"),
    ):
        subparsers.add_parser(name, parents=[host_options], help=help_text)

    call = subparsers.add_parser("call", parents=[host_options], help="Call a tool")
    call.add_argument("name", help="Tool name")
    call.add_argument("-a", "--arg", action="append", metavar="KEY=VALUE", help="Tool argument")

    read = subparsers.add_parser("read", parents=[host_options], help="Read a resource")
    read.add_argument("uri", help="Resource URI")

    prompt = subparsers.add_parser("prompt", parents=[host_options], help="Get a prompt")
    prompt.add_argument("name", help="Prompt name")
    prompt.add_argument("-a", "--arg", action="append", metavar="KEY=VALUE", help="Prompt argument")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        settings = load_settings()
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    configure_logging("DEBUG" if args.verbose else settings.log_level)

    if args.command == "serve":
        from .users.server import main as serve_users
        serve_users(settings)
        return 0

    try:
        result = asyncio.run(run_host_command(args, settings))
    except (McpError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(json.dumps(result, indent=2, ensure_ascii=False))
    if isinstance(result, dict) and result.get("isError"):
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
