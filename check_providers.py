#!/usr/bin/env python3
"""Smoke script: report which schema providers are configured and answering."""

import argparse
import logging
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).resolve().parent / "src"))

from schema_recommender.agent.schema_agent import SchemaAgent
from schema_recommender.config.loader import Config, load_config


def main() -> int:
    parser = argparse.ArgumentParser(description="Probe configured schema providers")
    parser.add_argument("-c", "--config", default=None, help="Path to config file")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    config = load_config(args.config) if args.config else Config()
    agent = SchemaAgent(config)

    print("Testing schema providers...")
    statuses = agent.test_providers()
    for status in statuses:
        if status.working:
            print(f"  [OK]      {status.name} (priority {status.priority})")
        elif status.available:
            print(f"  [FAILED]  {status.name} (priority {status.priority}): {status.error}")
        else:
            print(f"  [SKIPPED] {status.name} (priority {status.priority}): {status.error}")

    if not any(s.working for s in statuses):
        print("\n[ERROR] No provider is working. Set OPENROUTER_API_KEY or OPENAI_API_KEY.")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
