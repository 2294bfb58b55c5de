"""Command-line chat: ``python -m cognitive_ide "where is the router defined?"``.

Streams visible text to stdout against an OpenAI-compatible endpoint with
the local filesystem backends.  Exits 1 when the run ends in an error.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from cognitive_ide.config import get_settings
from cognitive_ide.contracts import ChatMessage, ModelRef
from cognitive_ide.logging_setup import configure_logging
from cognitive_ide.orchestrator import ChatOrchestrator
from cognitive_ide.providers import OpenAICompatibleProvider, ProviderRegistry

logger = logging.getLogger("cognitive_ide.cli")

_PROVIDER_NAME = "openai"


def build_parser() -> argparse.ArgumentParser:
    cfg = get_settings()
    parser = argparse.ArgumentParser(
        prog="cognitive-ide",
        description="Ask a model about a workspace, letting it search and read files.",
    )
    parser.add_argument("message", help="The question or instruction to send")
    parser.add_argument("--workspace", default=".", help="Workspace root (default: current directory)")
    parser.add_argument("--model", default=cfg.LLM_MODEL, help=f"Model id (default: {cfg.LLM_MODEL})")
    parser.add_argument("--mode", choices=("agent", "responder"), default="agent")
    parser.add_argument("--base-url", default=cfg.LLM_BASE_URL, help="OpenAI-compatible API root")
    parser.add_argument("--max-iterations", type=int, default=None, help="Agent loop cap")
    parser.add_argument("--log-level", default=cfg.LOG_LEVEL)
    parser.add_argument("--title", action="store_true", help="Also print a generated title")
    return parser


async def run(args: argparse.Namespace) -> int:
    cfg = get_settings()
    if args.max_iterations is not None:
        cfg = cfg.model_copy(update={"MAX_AGENT_ITERATIONS": max(1, args.max_iterations)})

    provider = OpenAICompatibleProvider(args.base_url, cfg.LLM_API_KEY, cfg.LLM_TIMEOUT_S)
    providers = ProviderRegistry()
    providers.register(_PROVIDER_NAME, lambda: provider)

    orchestrator = ChatOrchestrator(providers, settings=cfg)
    orchestrator.set_workspace(_absolute(args.workspace))
    model = ModelRef(id=args.model, provider=_PROVIDER_NAME)

    def write(chunk: str) -> None:
        sys.stdout.write(chunk)
        sys.stdout.flush()

    try:
        result = await orchestrator.send_message(
            model,
            [ChatMessage(role="user", content=args.message)],
            args.mode,
            write,
        )
        sys.stdout.write("\n")
        if args.title:
            title = await orchestrator.generate_title(model, args.message, result.final_text)
            sys.stdout.write(f"\nTitle: {title}\n")
    finally:
        await provider.aclose()

    logger.info("[cli] stop=%s iterations=%d", result.stop_reason, result.iterations)
    return 1 if result.stop_reason == "error" else 0


def _absolute(path: str) -> str:
    return Path(path).expanduser().resolve().as_posix()


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level, get_settings().LOG_FILE)
    try:
        return asyncio.run(run(args))
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
