"""
Persistence module for openscraping.

Handles different persistence strategies for saving extraction results.
"""

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

from .exceptions import PersistenceError
from .utils import build_output_path, create_hash

logger = logging.getLogger(__name__)


@dataclass
class SavedFileInfo:
    """Information about a saved result file."""
    source: str
    path: str
    size: int


@dataclass
class SavedBatchFileInfo:
    """Information about a flushed batch of records (for JsonLinesStrategy)."""
    path: str
    records: int
    size: int
    sources: List[str]


class PersistenceStrategy(ABC):
    """Abstract base class for persistence strategies."""

    @abstractmethod
    async def save(self, source: str, result: Dict[str, Any], name: Optional[str] = None) -> str:
        """
        Save the extraction result of a document.

        Args:
            source: Path of the source document
            result: Extraction result
            name: Preferred output name, defaults to the source file name

        Returns:
            Path where the result was (or will be) saved, empty if saving failed

        Raises:
            PersistenceError: If buffered results, possibly from earlier calls, were lost
        """
        pass

    @abstractmethod
    async def finalize(self) -> None:
        """Finalize persistence operations (e.g., flush buffers)."""
        pass


class FilePerDocumentStrategy(PersistenceStrategy):
    """Persistence strategy that writes one JSON file per document."""

    def __init__(self, output_dir: str, indent: Optional[int] = 2):
        """
        Initialize FilePerDocumentStrategy.

        Args:
            output_dir: Base output directory
            indent: JSON indent, None for compact output
        """
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.indent = indent
        self._saved_files: List[SavedFileInfo] = []
        self._used_paths = set()

    def _build_file_path(self, source: str, name: Optional[str]) -> Path:
        file_path = build_output_path(self.output_dir, name or Path(source).stem, source)
        if file_path in self._used_paths:
            # Same name from another document: keep both
            file_path = file_path.with_name(f"{file_path.stem}_{create_hash(source)[:8]}{file_path.suffix}")
        return file_path

    async def save(self, source: str, result: Dict[str, Any], name: Optional[str] = None) -> str:
        file_path = self._build_file_path(source, name)
        content = json.dumps(result, ensure_ascii=False, indent=self.indent)

        try:
            with open(file_path, 'w', encoding='utf-8') as f:
                f.write(content)
        except OSError as e:
            logger.error(f"Failed to save result for {source}: {e}")
            return ""

        self._used_paths.add(file_path)
        self._saved_files.append(SavedFileInfo(
            source=source,
            path=str(file_path),
            size=len(content)
        ))

        logger.debug(f"Saved result to: {file_path}")
        return str(file_path)

    async def finalize(self) -> None:
        """No finalization needed for one file per document."""
        logger.info(f"FilePerDocumentStrategy completed. Saved {len(self._saved_files)} files.")

    def get_saved_files(self) -> List[SavedFileInfo]:
        """Get list of saved files for manifest generation."""
        return self._saved_files.copy()


class JsonLinesStrategy(PersistenceStrategy):
    """Persistence strategy that appends one JSON record per document to a single file."""

    def __init__(self, output_dir: str, buffer_size: int = 100, filename: str = "results.jsonl"):
        """
        Initialize JsonLinesStrategy.

        Args:
            output_dir: Base output directory
            buffer_size: Number of records to buffer before flushing
            filename: Name of the JSON Lines file
        """
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.buffer_size = buffer_size
        self.path = self.output_dir / filename
        self.buffer: List[Dict[str, Any]] = []
        self._started = False
        self._saved_files: List[SavedBatchFileInfo] = []
        self._failed_sources: List[str] = []

    async def _flush(self) -> None:
        if not self.buffer:
            return

        lines = [json.dumps(record, ensure_ascii=False) for record in self.buffer]
        sources = [record["source"] for record in self.buffer]
        # The first flush of a run replaces any previous file
        mode = 'a' if self._started else 'w'

        try:
            with open(self.path, mode, encoding='utf-8') as f:
                for line in lines:
                    f.write(line)
                    f.write("\n")
        except OSError as e:
            logger.error(f"Failed to flush {len(self.buffer)} records to {self.path}: {e}")
            self.buffer = []
            self._failed_sources.extend(sources)
            raise PersistenceError(f"Failed to write {self.path}: {e}", sources) from e

        self._started = True
        self._saved_files.append(SavedBatchFileInfo(
            path=str(self.path),
            records=len(self.buffer),
            size=sum(len(line) + 1 for line in lines),
            sources=sources
        ))

        logger.info(f"Flushed {len(self.buffer)} records to {self.path}")
        self.buffer = []

    async def save(self, source: str, result: Dict[str, Any], name: Optional[str] = None) -> str:
        self.buffer.append({
            "source": source,
            "name": name or Path(source).stem,
            "result": result,
        })
        logger.debug(f"Buffered result for {source}")

        if len(self.buffer) >= self.buffer_size:
            await self._flush()

        return str(self.path)

    async def finalize(self) -> None:
        """
        Flush remaining records.

        Raises:
            PersistenceError: If the records could not be written
        """
        logger.info("Finalizing JsonLinesStrategy - flushing buffer")
        await self._flush()
        logger.info(f"JsonLinesStrategy completed. Wrote {len(self._saved_files)} batches.")

    def get_saved_files(self) -> List[SavedBatchFileInfo]:
        """Get list of flushed batches for manifest generation."""
        return self._saved_files.copy()

    def get_failed_sources(self) -> List[str]:
        """Get sources whose records were lost by a failed flush."""
        return self._failed_sources.copy()


def create_persistence_strategy(
    strategy: str,
    output_dir: str,
    **kwargs
) -> PersistenceStrategy:
    """
    Factory function to create persistence strategy.

    Args:
        strategy: Strategy name ("file_per_document" or "json_lines")
        output_dir: Output directory
        **kwargs: Additional strategy-specific parameters

    Returns:
        Configured persistence strategy

    Raises:
        ValueError: If strategy is not supported
    """
    if strategy == "file_per_document":
        return FilePerDocumentStrategy(output_dir, indent=kwargs.get("indent", 2))
    elif strategy == "json_lines":
        buffer_size = kwargs.get("buffer_size", 100)
        return JsonLinesStrategy(output_dir, buffer_size)
    else:
        raise ValueError(f"Unsupported persistence strategy: {strategy}")
