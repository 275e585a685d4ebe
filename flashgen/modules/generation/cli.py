from __future__ import annotations

import argparse
import asyncio
import json
from pathlib import Path

from flashgen.core.config import settings
from flashgen.modules.generation.generator import generate_flashcards


def _load_source(args: argparse.Namespace) -> str:
    if args.text and args.source_file:
        raise SystemExit("Provide either --text or --source-file, not both")
    if args.source_file:
        return Path(args.source_file).read_text(encoding="utf-8")
    if args.text:
        return args.text
    raise SystemExit("--text or --source-file is required")


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="flashgen-generate", description="Flashcard generation CLI"
    )
    sub = parser.add_subparsers(dest="cmd", required=True)

    g = sub.add_parser("generate", help="Generate flashcard previews from source text")
    g.add_argument("--text", "-t", help="Source text to generate from")
    g.add_argument("--source-file", help="Path to a file containing the source text")
    g.add_argument(
        "--model",
        "-m",
        default=settings.generation.default_model,
        help="Model name (gemini-* uses Google, anything else OpenRouter)",
    )

    args = parser.parse_args(argv)
    if args.cmd == "generate":
        source = _load_source(args)
        previews = asyncio.run(generate_flashcards(source, args.model))
        print(json.dumps([p.model_dump() for p in previews], indent=2, ensure_ascii=False))
        return 0

    parser.print_help()
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
