#!/usr/bin/env python3
"""Quick check: send two fake summaries to the configured LLM provider. Run from project root."""
from __future__ import annotations

import asyncio
import sys
from pathlib import Path

# Ensure project root is on path
root = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(root))

from recap.config import load_config
from recap.digest.summarizer import LLMSummarizer
from recap.errors import RecapError


def main() -> None:
    config = load_config(str(root / "config.yaml"))
    provider = config["llm"]["provider"]

    text = (
        "The team shipped the new billing export and closed three incidents. "
        "Search latency regressed after the index rebuild and is being investigated."
    )

    try:
        summary = asyncio.run(LLMSummarizer(config).summarize(text))
    except RecapError as e:
        print(f"FAILED ({provider}): {e}", file=sys.stderr)
        sys.exit(1)

    print("Digest:", summary)
    print(f"OK: {provider} summarizer works.")


if __name__ == "__main__":
    main()
