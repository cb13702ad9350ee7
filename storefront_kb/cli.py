# storefront_kb/cli.py
"""
Command-line entry point for the storefront product knowledge base.

Subcommands:
- run       start the background worker until interrupted
- crawl     crawl one product page (or every target) and print the records
- validate  probe the storefront and report the crawler configuration
- search    similarity search against the product index
- clear     drop every indexed point (requires --yes)
- uuid      print the point id a SKU is stored under
"""

from __future__ import annotations
import argparse
import json
import signal
import sys
import threading
from typing import List, Optional

from loguru import logger

from .config import (
    DEFAULT_SCORE_THRESHOLD,
    DEFAULT_SEARCH_LIMIT,
    LOG_DIR,
    LOG_LEVEL,
    CrawlerSettings,
    IndexSettings,
    SchedulerSettings,
)
from .crawler import ProductCrawler
from .embedding import SentenceTransformerEmbedder
from .errors import StorefrontKBError
from .indexer import ProductIndexer, build_qdrant_client, identifier_for
from .logging_setup import configure_logging
from .worker import CrawlScheduler


def _build_indexer() -> ProductIndexer:
    settings = IndexSettings.from_env()
    embedder = SentenceTransformerEmbedder(settings.embedding_model, settings.vector_size)
    return ProductIndexer(build_qdrant_client(settings), embedder, settings)


def _cmd_run(args: argparse.Namespace) -> int:
    crawler = ProductCrawler(CrawlerSettings.from_env())
    indexer = _build_indexer()
    stop_event = threading.Event()
    scheduler = CrawlScheduler(
        crawler,
        indexer,
        SchedulerSettings.from_env(),
        stop_event=stop_event,
        embedding_probe=indexer.embedder.is_available,
    )

    def _handle_signal(signum, _frame):
        logger.info("Received signal {}; shutting down", signum)
        stop_event.set()

    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)
    try:
        scheduler.run()
    finally:
        crawler.close()
    return 0


def _cmd_crawl(args: argparse.Namespace) -> int:
    crawler = ProductCrawler(CrawlerSettings.from_env())
    try:
        if args.url:
            record = crawler.crawl_one(args.url)
            records = [record] if record is not None else []
        else:
            outcome = crawler.crawl_all_outcome()
            records = outcome.records
            for err in outcome.errors:
                logger.warning("{} -> {}", err.url, err.message)
    finally:
        crawler.close()

    for record in records:
        print(record.model_dump_json(indent=2))

    if args.index and records:
        indexer = _build_indexer()
        indexer.ensure_collection()
        count = indexer.index_products(records)
        logger.info("Indexed {} of {} crawled products", count, len(records))
    return 0 if records else 1


def _cmd_validate(args: argparse.Namespace) -> int:
    crawler = ProductCrawler(CrawlerSettings.from_env())
    try:
        ok = crawler.validate_configuration()
    finally:
        crawler.close()
    print("Configuration OK" if ok else "Configuration check FAILED")
    return 0 if ok else 1


def _cmd_search(args: argparse.Namespace) -> int:
    indexer = _build_indexer()
    hits = indexer.search(args.query, limit=args.limit, score_threshold=args.threshold)
    out = [
        {
            "score": round(h.score, 4),
            "product_id": h.payload.get("product_id"),
            "product_name": h.payload.get("product_name"),
            "source_url": h.payload.get("source_url"),
        }
        for h in hits
    ]
    print(json.dumps(out, indent=2))
    return 0


def _cmd_clear(args: argparse.Namespace) -> int:
    if not args.yes:
        print("Refusing to clear the collection without --yes", file=sys.stderr)
        return 2
    _build_indexer().clear_collection()
    print("Collection cleared")
    return 0


def _cmd_uuid(args: argparse.Namespace) -> int:
    for sku in args.skus:
        print(f"{sku}\t{identifier_for(sku)}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="storefront-kb", description="Storefront product knowledge base")
    ap.add_argument("--log-level", default=LOG_LEVEL, help="Log level for stderr and file sinks")
    ap.add_argument("--no-log-file", action="store_true", help="Log to stderr only")
    sub = ap.add_subparsers(dest="command", required=True)

    p = sub.add_parser("run", help="Run the crawl/index worker until interrupted")
    p.set_defaults(func=_cmd_run)

    p = sub.add_parser("crawl", help="Crawl one product page, or every target when no URL is given")
    p.add_argument("url", nargs="?", default=None)
    p.add_argument("--index", action="store_true", help="Index the crawled products")
    p.set_defaults(func=_cmd_crawl)

    p = sub.add_parser("validate", help="Probe the storefront and check crawler configuration")
    p.set_defaults(func=_cmd_validate)

    p = sub.add_parser("search", help="Similarity search over indexed products")
    p.add_argument("query")
    p.add_argument("--limit", type=int, default=DEFAULT_SEARCH_LIMIT)
    p.add_argument("--threshold", type=float, default=DEFAULT_SCORE_THRESHOLD)
    p.set_defaults(func=_cmd_search)

    p = sub.add_parser("clear", help="Delete and recreate the product collection")
    p.add_argument("--yes", action="store_true", help="Confirm the deletion")
    p.set_defaults(func=_cmd_clear)

    p = sub.add_parser("uuid", help="Show the point id for each SKU")
    p.add_argument("skus", nargs="+")
    p.set_defaults(func=_cmd_uuid)
    return ap


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level, None if args.no_log_file else LOG_DIR)
    try:
        return args.func(args)
    except StorefrontKBError as e:
        logger.error("{}", e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
