#!/usr/bin/env python3
"""
Search a Fireflies archive from the terminal, optionally asking one question
about every transcript found.

API keys are read from FIREFLIES_API_KEY, OPENAI_API_KEY and GEMINI_API_KEY.

Usage:
    # First page only
    python deep_scan.py --query "budget review"

    # First page plus a 10-page deep scan for meetings with Alice
    python deep_scan.py --query alice@example.com --deep 10

    # Ask a question about the results
    python deep_scan.py --query "roadmap" --deep 3 --ask "What was decided?" --model openai

    # Save the accumulated results
    python deep_scan.py --query "roadmap" --output results.json
"""

import os
import sys
import json
import asyncio
import argparse
import logging
from pathlib import Path
from datetime import datetime

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "functions"))

from shared.errors import MissingCredentialError
from shared.fireflies import TranscriptIndexClient
from shared.models import ProviderChoice
from shared.router import ModelRouter
from shared.session import SessionContext
from shared.workflow import SearchSession


def session_from_env() -> SessionContext:
    return SessionContext(
        user_id="cli",
        fireflies_key=os.environ.get("FIREFLIES_API_KEY"),
        openai_key=os.environ.get("OPENAI_API_KEY"),
        gemini_key=os.environ.get("GEMINI_API_KEY"),
    )


async def run(args: argparse.Namespace) -> int:
    search = SearchSession(session_from_env(), TranscriptIndexClient())

    try:
        state = await search.new_search(args.query)
    except MissingCredentialError:
        print("Error: FIREFLIES_API_KEY is not set")
        return 1

    print(f"Page 1: {len(state.accumulated)} transcript(s)")

    if args.deep and not state.exhausted:
        await search.deep_scan(
            batches=args.deep,
            on_progress=lambda p: print(f"{p.describe()} ({p.accumulated} found)"),
        )

    state = search.state
    print()
    print(f"Scanned {state.scanned_count} meetings, found {len(state.accumulated)}")
    if state.oldest_date:
        print(f"Scanned back to {state.oldest_date:%Y-%m-%d}")
    if state.exhausted:
        print("Reached the end of the archive")
    print()

    for t in state.accumulated:
        date = f"{t.date:%Y-%m-%d}" if t.date else "----------"
        print(f"  {date}  {t.id}  {t.title or '(untitled)'}")

    if args.output:
        report = {
            "timestamp": datetime.now().isoformat(),
            "query": args.query,
            "scanned": state.scanned_count,
            "exhausted": state.exhausted,
            "transcripts": [t.to_dict() for t in state.accumulated],
        }
        args.output.write_text(json.dumps(report, indent=2))
        print(f"\nResults saved to: {args.output}")

    if args.ask and state.accumulated:
        search.selection.select_all()
        workbench = await search.open_workbench(
            ModelRouter(), provider=ProviderChoice.parse(args.model)
        )
        if workbench.failed_ids:
            print(f"\nCould not load {len(workbench.failed_ids)} transcript(s): {', '.join(workbench.failed_ids)}")
        reply = await workbench.ask(args.ask)
        print()
        print(reply.content)

    return 0


def main():
    parser = argparse.ArgumentParser(
        description="Search and deep-scan a Fireflies transcript archive"
    )
    parser.add_argument(
        "--query",
        default="",
        help="Keyword, or an email address to filter by participant",
    )
    parser.add_argument(
        "--deep",
        type=int,
        default=0,
        help="Number of additional pages to deep scan (default: 0)",
    )
    parser.add_argument(
        "--ask",
        help="Question to ask about all transcripts found",
    )
    parser.add_argument(
        "--model",
        choices=[p.value for p in ProviderChoice],
        default=ProviderChoice.GEMINI.value,
        help="Model provider for --ask (default: gemini)",
    )
    parser.add_argument(
        "--output",
        type=Path,
        help="Output file for the accumulated results (JSON)",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Log requests",
    )

    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO if args.verbose else logging.WARNING)

    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
