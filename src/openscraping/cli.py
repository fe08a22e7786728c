"""
CLI module for openscraping.

Provides command-line interface and orchestration logic.
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Optional

from lxml import etree

from .batch_runner import BatchRunner
from .config import load_config
from .exceptions import OpenScrapingError
from .extraction import PRUNE_SCOPES, SchemaExtractor
from .persistence import create_persistence_strategy
from .schema import load_schema

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False) -> None:
    """Set up logging configuration."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
        stream=sys.stderr
    )


def read_document(source: str) -> str:
    """Read a document from a file, or from stdin when source is '-'."""
    if source == "-":
        return sys.stdin.read()
    return Path(source).read_text(encoding='utf-8', errors='replace')


def parse_command(
    schema_source: str,
    document_source: str,
    output: Optional[str] = None,
    compact: bool = False,
    prune_scope: str = "context",
    verbose: bool = False
) -> None:
    """
    Extract a single document and print or save the result.

    Args:
        schema_source: Path or URL of the schema
        document_source: Path of the document, '-' for stdin
        output: Optional output file, stdout when omitted
        compact: Write single-line JSON
        prune_scope: Where removeSelector is evaluated
        verbose: Enable verbose logging
    """
    setup_logging(verbose)

    try:
        schema = load_schema(schema_source)
        markup = read_document(document_source)
        result = SchemaExtractor(prune_scope=prune_scope).extract(schema, markup)
    except (OpenScrapingError, OSError, etree.LxmlError) as e:
        logger.error(f"Extraction failed: {e}")
        sys.exit(1)

    content = json.dumps(result, ensure_ascii=False, indent=None if compact else 2)

    if output:
        Path(output).write_text(content + "\n", encoding='utf-8')
        logger.info(f"Saved {len(result)} fields to {output}")
    else:
        print(content)


async def run_batch(
    config_path: str,
    output_dir: str,
    dry_run: bool = False,
    verbose: bool = False
) -> None:
    """
    Batch extraction orchestration function.

    Args:
        config_path: Path to configuration file
        output_dir: Output directory for extraction results
        dry_run: If True, only list documents without extracting
        verbose: Enable verbose logging
    """
    setup_logging(verbose)

    try:
        config = load_config(config_path)

        Path(output_dir).mkdir(parents=True, exist_ok=True)

        if dry_run:
            for item in config.items:
                logger.info(f"Would extract: {item.path} -> {item.output_name}")
            return

        persistence = create_persistence_strategy(
            config.persistence_strategy,
            output_dir,
            indent=config.defaults.indent
        )

        runner = BatchRunner(config.defaults, persistence)
        await runner.run(config.items)
        await runner.finalize()

        stats = runner.get_stats()
        logger.info(f"Batch stats: {stats.success} success, {stats.failed} failed, {stats.skipped} skipped")

    except Exception as e:
        logger.error(f"Batch extraction failed: {e}")
        sys.exit(1)


def main() -> None:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Extract structured data from HTML documents using XPath schemas",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  openscraping parse schema.json page.html
  openscraping parse schema.json page.html --output result.json --compact
  curl -s https://example.com | openscraping parse schema.json -
  openscraping run config.json output/ --dry-run
        """
    )

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    parse_parser = subparsers.add_parser('parse', help='Extract a single document')
    parse_parser.add_argument('schema', help='Path or URL of the JSON schema')
    parse_parser.add_argument('document', help="Path of the HTML document, '-' for stdin")
    parse_parser.add_argument('--output', '-o', help='Write the result to a file instead of stdout')
    parse_parser.add_argument('--compact', action='store_true',
                              help='Write single-line JSON')
    parse_parser.add_argument('--prune-scope', choices=PRUNE_SCOPES, default='context',
                              help='Evaluate removeSelector against the rule context or each match')
    parse_parser.add_argument('--verbose', '-v', action='store_true',
                              help='Enable verbose logging')

    run_parser = subparsers.add_parser('run', help='Run a batch extraction')
    run_parser.add_argument('config_file', help='Path to JSON configuration file')
    run_parser.add_argument('output_dir', help='Directory to store extraction results')
    run_parser.add_argument('--dry-run', action='store_true',
                            help='List documents only, don\'t extract')
    run_parser.add_argument('--verbose', '-v', action='store_true',
                            help='Enable verbose logging')

    args = parser.parse_args()

    if args.command == 'parse':
        parse_command(
            schema_source=args.schema,
            document_source=args.document,
            output=args.output,
            compact=args.compact,
            prune_scope=args.prune_scope,
            verbose=args.verbose
        )
    elif args.command == 'run':
        asyncio.run(run_batch(
            config_path=args.config_file,
            output_dir=args.output_dir,
            dry_run=args.dry_run,
            verbose=args.verbose
        ))
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == '__main__':
    main()
