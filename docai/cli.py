"""Command-line interface for the docai LLM client.

Examples:
  docai --mock ask "Extract metadata from this invoice"
  docai batch prompts.jsonl --concurrency 2 --batch-size 3
  docai ping
  docai cache stats
  docai cache clear
"""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from . import __version__
from .cache import ResponseCache
from .client import LLMClient
from .config import Config, get_config
from .errors import LLMError
from .models.llm import LLMResponse
from .ui.console import ConsoleManager

logger = logging.getLogger(__name__)


def create_parser() -> argparse.ArgumentParser:
    """Create and configure the argument parser.

    Returns:
        Configured ArgumentParser instance
    """
    parser = argparse.ArgumentParser(
        prog="docai",
        description="Rate-limited chat-completion client with a persistent response cache",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__.split("Examples:", 1)[1] if __doc__ else None,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")
    parser.add_argument("--json-output", action="store_true", help="Emit JSON lines instead of tables")
    parser.add_argument("--mock", action="store_true", help="Use canned responses instead of the network")
    parser.add_argument("--model", help="Override the default model")
    parser.add_argument("--cache-dir", type=Path, help="Override the cache directory")
    parser.add_argument("--log-file", help="Also append log records to this file")

    subparsers = parser.add_subparsers(dest="command", help="Available commands", required=True)

    ask_parser = subparsers.add_parser("ask", help="Send one prompt and print the reply")
    ask_parser.add_argument("prompt", help="User message text")
    ask_parser.add_argument("--system", help="Optional system message")
    ask_parser.add_argument("--max-tokens", type=int, default=500, help="Completion token limit (default: 500)")
    ask_parser.add_argument(
        "--temperature", type=float, default=0.1, help="Sampling temperature (default: 0.1)"
    )
    ask_parser.add_argument("--no-cache", action="store_true", help="Neither read nor write the cache")
    ask_parser.add_argument(
        "--force-refresh", action="store_true", help="Ignore any cached reply but store the new one"
    )

    batch_parser = subparsers.add_parser(
        "batch",
        help="Run many prompts from a file",
        description="Each line is either a JSON request object or plain prompt text.",
    )
    batch_parser.add_argument("input_file", type=Path, help="JSON-lines or plain-text prompt file")
    batch_parser.add_argument("--concurrency", type=int, help="Concurrent calls per chunk")
    batch_parser.add_argument("--batch-size", type=int, help="Requests per chunk")
    batch_parser.add_argument("--batch-delay", type=float, help="Seconds between chunks")
    batch_parser.add_argument(
        "--intelligent", action="store_true", help="Group requests by model before batching"
    )

    subparsers.add_parser("ping", help="Check that the provider answers")

    cache_parser = subparsers.add_parser("cache", help="Inspect or reset the response cache")
    cache_parser.add_argument("action", choices=["stats", "clear", "cleanup"], help="Cache operation")

    return parser


def build_config(args: argparse.Namespace, base: Optional[Config] = None) -> Config:
    """Apply global CLI flags on top of the environment configuration."""
    overrides: Dict[str, Any] = {}
    if args.mock:
        overrides["mock_mode"] = True
    if args.model:
        overrides["default_model"] = args.model
    if args.cache_dir:
        overrides["cache_dir"] = args.cache_dir
    if args.log_file:
        overrides["log_file"] = args.log_file
    config = base or get_config()
    return config.with_overrides(**overrides) if overrides else config


def load_batch_requests(path: Path) -> List[Dict[str, Any]]:
    """Read one request per non-blank line.

    Lines that parse as a JSON object are used as-is; anything else becomes
    a single user message.
    """
    requests: List[Dict[str, Any]] = []
    for line in path.read_text(encoding="utf-8").splitlines():
        line = line.strip()
        if not line:
            continue
        try:
            parsed = json.loads(line)
        except ValueError:
            parsed = None
        if isinstance(parsed, dict):
            requests.append(parsed)
        else:
            requests.append({"messages": [{"role": "user", "content": line}]})
    return requests


def _cache_key(cache: ResponseCache, model: str, messages: Sequence[Dict[str, str]]) -> str:
    return cache.generate_hash(json.dumps({"model": model, "messages": list(messages)}, sort_keys=True))


async def ask_command(args: argparse.Namespace, config: Config, console: ConsoleManager) -> int:
    """Handle the ask subcommand."""
    messages = []
    if args.system:
        messages.append({"role": "system", "content": args.system})
    messages.append({"role": "user", "content": args.prompt})

    cache = None if args.no_cache else ResponseCache.from_config(config)
    try:
        key = _cache_key(cache, config.default_model, messages) if cache else None
        if cache:
            cached = await cache.get(key, force_refresh=args.force_refresh)
            if cached is not None:
                logger.info("Answered from cache")
                console.print_result(LLMResponse.from_dict(cached).content)
                return 0

        async with LLMClient(config) as client:
            response = await client.call_llm(
                messages=messages, max_tokens=args.max_tokens, temperature=args.temperature
            )

        if cache:
            await cache.set(key, response.to_dict())
        console.print_result(response.content)
        return 0
    finally:
        if cache:
            await cache.close()


async def batch_command(args: argparse.Namespace, config: Config, console: ConsoleManager) -> int:
    """Handle the batch subcommand."""
    try:
        requests = load_batch_requests(args.input_file)
    except OSError as e:
        console.log_error(f"Cannot read {args.input_file}: {e}")
        return 1

    console.print_stage(f"Batch of {len(requests)} request(s)", "starting")
    async with LLMClient(config) as client:
        if args.intelligent:
            results = await client.call_llm_intelligent_batch(requests, max_batch_size=args.batch_size)
            outcomes = [
                {"index": i, "success": r is not None, "content": r.content if r else None}
                for i, r in enumerate(results)
            ]
        else:
            detailed = await client.call_llm_batch_detailed(
                requests,
                concurrency=args.concurrency,
                batch_size=args.batch_size,
                batch_delay=args.batch_delay,
            )
            outcomes = [
                {
                    "index": item.index,
                    "success": item.success,
                    "content": item.result.content if item.result else None,
                    "error": item.error_message,
                }
                for item in detailed
            ]

    console.print_batch_summary(outcomes)
    failed = sum(1 for outcome in outcomes if not outcome["success"])
    console.print_stage(
        f"Batch finished: {len(outcomes) - failed} ok, {failed} failed",
        "complete" if not failed else "warning",
    )
    return 0 if not failed else 2


async def ping_command(args: argparse.Namespace, config: Config, console: ConsoleManager) -> int:
    """Handle the ping subcommand."""
    async with LLMClient(config) as client:
        ok = await client.test_connection()
        console.print_table("Connection", {**client.get_config(), "reachable": ok})
    return 0 if ok else 1


async def cache_command(args: argparse.Namespace, config: Config, console: ConsoleManager) -> int:
    """Handle the cache subcommand."""
    cache = ResponseCache.from_config(config)
    try:
        await cache.initialize()
        if args.action == "clear":
            await cache.clear()
            console.print_stage("Cache cleared", "complete")
        elif args.action == "cleanup":
            removed = await cache.cleanup()
            await cache.flush()
            console.print_stage(f"Removed {removed} expired entries", "complete")
        stats = cache.get_stats()
        stats["file_bytes"] = await cache.get_cache_size()
        stats["memory_bytes"] = cache.get_total_cache_size()
        stats["cache_file"] = str(cache.cache_file)
        console.print_table("Response Cache", stats)
    finally:
        await cache.close()
    return 0


COMMANDS = {
    "ask": ask_command,
    "batch": batch_command,
    "ping": ping_command,
    "cache": cache_command,
}


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main CLI entry point.

    Returns:
        Exit code (0 for success, non-zero for failure)
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    console = ConsoleManager(verbose=args.verbose, json_output=args.json_output)
    try:
        config = build_config(args)
    except (LLMError, ValueError) as e:
        console.log_error(f"Invalid configuration: {e}")
        return 1
    console.setup_logging(log_file=config.log_file)

    handler = COMMANDS.get(args.command)
    if handler is None:
        parser.print_help()
        return 1

    try:
        return asyncio.run(handler(args, config, console))
    except LLMError as e:
        console.log_error(str(e))
        return 1
    except KeyboardInterrupt:
        logger.error("Operation cancelled by user")
        return 130


if __name__ == "__main__":
    sys.exit(main())
