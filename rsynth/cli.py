#!/usr/bin/env python3
"""Command-line interface for the research pipeline."""

import sys
import logging
import argparse
from pathlib import Path

from .config import Config
from .errors import PersistenceError, ResearchError
from .models import ResearchReport
from .pipeline import ResearchPipeline


def setup_logging(level: str = "INFO"):
    """Configure logging."""
    numeric_level = getattr(logging, level.upper(), None)
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO

    logging.basicConfig(
        level=numeric_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[
            logging.StreamHandler(sys.stdout),
            logging.FileHandler("research_pipeline.log"),
        ],
    )


def print_report(report: ResearchReport):
    print(f"\n{'='*80}")
    print("Research Complete")
    print(f"{'='*80}")
    print("Queries:")
    for i, query in enumerate(report.queries, 1):
        print(f"  {i}. {query}")

    print(f"\n{'-'*80}")
    print(report.summary)
    print(f"{'-'*80}")

    if report.top_sources:
        print("\nTop sources:")
        for i, source in enumerate(report.top_sources, 1):
            print(f"  [{i}] ({source.relevance:.1f}/10) {source.title}")
            print(f"      {source.url}")

    if report.document_id:
        print(f"\nSaved as document: {report.document_id}")
    if report.report_path:
        print(f"Report saved to: {report.report_path}")
    print()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Research Synthesis - plan, search, filter and summarize a topic"
    )
    parser.add_argument(
        "topic",
        type=str,
        help="Topic to research",
    )
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to .env configuration file",
    )
    parser.add_argument(
        "--output",
        type=str,
        default=None,
        help="Output directory for Markdown reports (overrides config)",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (overrides LOG_LEVEL)",
    )
    parser.add_argument(
        "--no-markdown",
        action="store_true",
        help="Do not write a Markdown report file",
    )
    return parser


def main(argv=None):
    """Main CLI entry point."""
    args = build_parser().parse_args(argv)

    try:
        config = Config.from_env(args.config)
    except ValueError as e:
        setup_logging(args.log_level or "INFO")
        logging.getLogger(__name__).error(f"Invalid configuration: {e}")
        print(f"\nConfiguration error: {e}")
        return 2

    setup_logging(args.log_level or config.log_level)
    logger = logging.getLogger(__name__)

    if args.output:
        config.output_dir = Path(args.output)
    if args.no_markdown:
        config.save_markdown = False

    pipeline = None
    try:
        logger.info("Initializing research pipeline...")
        pipeline = ResearchPipeline(config)

        print(f"\n{'='*80}")
        print("Research Pipeline")
        print(f"{'='*80}")
        print(f"Topic: {args.topic}\n")

        report = pipeline.run(args.topic)
        print_report(report)
        return 0

    except KeyboardInterrupt:
        logger.info("Pipeline interrupted by user")
        print("\n\nPipeline interrupted by user.")
        return 1

    except PersistenceError as e:
        logger.error(f"Research finished but could not be saved: {e}")
        if e.report is not None:
            print_report(e.report)
        print(f"\nError: {e}")
        return 1

    except (ResearchError, ValueError) as e:
        stage = getattr(e, "stage", None)
        print(f"\n\nError{f' in stage {stage}' if stage else ''}: {e}")
        print("Check research_pipeline.log for details.")
        return 1

    except Exception as e:
        logger.error(f"Pipeline failed: {e}", exc_info=True)
        print(f"\n\nError: {e}")
        print("Check research_pipeline.log for details.")
        return 1

    finally:
        if pipeline is not None:
            pipeline.close()


if __name__ == "__main__":
    sys.exit(main())
