"""Main entry point for schema recommender."""

import argparse
import logging
import sys
from pathlib import Path

from .config.loader import Config, load_config
from .agent.schema_agent import SchemaAgent
from .errors import MANUAL_INPUT_HINT, FetchError, SchemaGenerationError
from .models.page_content import WebsiteProfile


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Recommend and generate schema.org JSON-LD for a web page"
    )
    parser.add_argument("url", help="Page URL")
    parser.add_argument(
        "-c",
        "--config",
        default=None,
        help="Path to config file (YAML or JSON). Built-in defaults when omitted",
    )
    parser.add_argument(
        "--text-file",
        default=None,
        help="Use page text from this file instead of fetching the URL",
    )
    parser.add_argument("--company-name", default="", help="Company name for publisher/brand")
    parser.add_argument("--founder-name", default="", help="Founder or main author name")
    parser.add_argument("--logo-url", default="", help="Company logo URL")
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    if args.config:
        config_path = Path(args.config)
        if not config_path.exists():
            print(f"Config not found: {config_path}", file=sys.stderr)
            return 1
        config = load_config(config_path)
    else:
        config = Config()

    page_text = None
    if args.text_file:
        page_text = Path(args.text_file).read_text(encoding="utf-8")

    profile = WebsiteProfile(
        company_name=args.company_name,
        founder_name=args.founder_name,
        company_logo_url=args.logo_url,
    )

    agent = SchemaAgent(config)
    try:
        result = agent.generate_schemas(args.url, website_profile=profile, page_text=page_text)
    except FetchError as e:
        print(e.user_message, file=sys.stderr)
        if MANUAL_INPUT_HINT not in e.user_message:
            print(MANUAL_INPUT_HINT, file=sys.stderr)
        print("Re-run with --text-file PATH to supply the page text.", file=sys.stderr)
        return 2
    except SchemaGenerationError as e:
        print(str(e), file=sys.stderr)
        return 1

    print(result.model_dump_json(indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
