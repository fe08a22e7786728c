"""
Batch runner module for openscraping.

Extracts many documents concurrently. Each document is read and parsed inside
its own worker call, so pruning never touches a tree shared with another call.
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from lxml import etree

from .config import Defaults, Item
from .exceptions import OpenScrapingError, PersistenceError
from .extraction import SchemaExtractor
from .persistence import PersistenceStrategy
from .schema import Schema, load_schema
from .transformations import TransformationRegistry, default_registry

logger = logging.getLogger(__name__)


def _schema_key(source: Union[str, Dict[str, Any]]) -> str:
    return source if isinstance(source, str) else json.dumps(source, sort_keys=True)


@dataclass
class BatchStats:
    """Statistics for batch processing."""
    total: int = 0
    success: int = 0
    failed: int = 0
    skipped: int = 0


@dataclass
class ExtractionRecord:
    """Result of extracting a single document."""
    source: str
    name: str
    result: Dict[str, Any]
    path: str = ""


class BatchRunner:
    """Handles concurrent extraction of document lists."""

    def __init__(
        self,
        defaults: Defaults,
        persistence: PersistenceStrategy,
        registry: Optional[TransformationRegistry] = None
    ):
        """
        Initialize BatchRunner.

        Args:
            defaults: Default configuration
            persistence: Persistence strategy for saving results
            registry: Transformations available to schemas, defaults to the built-ins
        """
        self.defaults = defaults
        self.persistence = persistence
        self.registry = registry if registry is not None else default_registry()
        self.results: List[ExtractionRecord] = []
        self.stats = BatchStats()
        self._schemas: Dict[str, Union[Schema, Exception]] = {}
        self._saved_sources = set()

    async def run(self, items: List[Item]) -> List[ExtractionRecord]:
        """
        Run extraction on a list of documents.

        Args:
            items: List of items to process

        Returns:
            List of extraction records, in item order
        """
        if not items:
            logger.info("No items to process")
            return []

        logger.info(f"Starting batch extraction of {len(items)} documents")
        self.stats.total = len(items)

        await self._load_schemas(items)

        semaphore = asyncio.Semaphore(self.defaults.threads)
        outcomes = await asyncio.gather(*(self._run_item(item, semaphore) for item in items))

        self.results = [
            record for record in outcomes
            if record is not None and record.source in self._saved_sources
        ]
        logger.info(
            f"Batch extraction completed: {self.stats.success} success, "
            f"{self.stats.failed} failed, {self.stats.skipped} skipped"
        )
        return self.results.copy()

    async def _run_item(self, item: Item, semaphore: asyncio.Semaphore) -> Optional[ExtractionRecord]:
        schema = self._schema_for(item)
        if isinstance(schema, Exception):
            logger.error(f"Failed to extract {item.path}: {schema}")
            self.stats.failed += 1
            return None

        try:
            async with semaphore:
                result = await asyncio.to_thread(self.extract_document, item, schema)
        except (OpenScrapingError, OSError, etree.LxmlError) as e:
            logger.error(f"Failed to extract {item.path}: {e}")
            self.stats.failed += 1
            return None

        if not result:
            logger.warning(f"Nothing extracted from {item.path}, skipping")
            self.stats.skipped += 1
            return None

        record = ExtractionRecord(source=item.path, name=item.output_name, result=result)
        try:
            record.path = await self.persistence.save(item.path, result, name=item.output_name)
        except PersistenceError as e:
            self._mark_unsaved(e.sources)
            return None
        if not record.path:
            self.stats.failed += 1
            return None

        self._saved_sources.add(item.path)
        self.stats.success += 1
        logger.debug(f"Successfully processed: {item.path}")
        return record

    async def finalize(self) -> None:
        """
        Finalize persistence and count records lost by the final flush as failed.

        Raises:
            PersistenceError: If buffered results could not be written
        """
        try:
            await self.persistence.finalize()
        except PersistenceError as e:
            self._mark_unsaved(e.sources)
            self.results = [record for record in self.results if record.source in self._saved_sources]
            raise

    def _mark_unsaved(self, sources: List[str]) -> None:
        for source in sources:
            logger.error(f"Result for {source} was not saved")
            if source in self._saved_sources:
                self._saved_sources.discard(source)
                self.stats.success -= 1
            self.stats.failed += 1

    async def _load_schemas(self, items: List[Item]) -> None:
        """Load each distinct schema once, off the event loop. Failures are kept too."""
        pending = {}
        for item in items:
            key = _schema_key(item.schema_source)
            if key not in self._schemas and key not in pending:
                pending[key] = item.schema_source

        loaded = await asyncio.gather(
            *(asyncio.to_thread(load_schema, source) for source in pending.values()),
            return_exceptions=True
        )
        for key, schema in zip(pending, loaded):
            if isinstance(schema, (OpenScrapingError, OSError)):
                logger.error(f"Failed to load schema {key[:80]}: {schema}")
            elif isinstance(schema, BaseException):
                raise schema
            self._schemas[key] = schema

    def _schema_for(self, item: Item) -> Union[Schema, Exception]:
        return self._schemas[_schema_key(item.schema_source)]

    def extract_document(self, item: Item, schema: Schema) -> Dict[str, Any]:
        """
        Read, parse and extract a single document.

        Args:
            item: Document to extract
            schema: Compiled schema

        Returns:
            Extraction result
        """
        markup = Path(item.path).read_text(encoding='utf-8', errors='replace')
        extractor = SchemaExtractor(
            registry=self.registry,
            prune_scope=item.prune_scope or self.defaults.prune_scope,
            parser=self.defaults.parser,
        )
        return extractor.extract(schema, markup)

    def get_stats(self) -> BatchStats:
        """Get processing statistics."""
        return self.stats

    def get_results(self) -> List[ExtractionRecord]:
        """Get processed results."""
        return self.results.copy()
