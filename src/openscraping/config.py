"""
Configuration module for openscraping batch runs.

Uses Pydantic models for validation and parsing of configuration files.
Includes helpers for glob expansion and document de-duplication.
"""

import glob
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from .schema import is_url

logger = logging.getLogger(__name__)

_GLOB_CHARS = ("*", "?", "[")


class Defaults(BaseModel):
    """Default configuration values applied to all items."""
    threads: int = Field(4, ge=1)
    prune_scope: Literal["context", "match"] = Field("context", alias="pruneScope")
    parser: Literal["html", "xml"] = "html"
    indent: Optional[int] = 2  # JSON indent of saved results, None for compact output

    model_config = ConfigDict(populate_by_name=True)


class Item(BaseModel):
    """A document, or glob of documents, to extract with one schema."""
    path: str
    schema_source: Union[str, Dict[str, Any]] = Field(alias="schema")
    name: Optional[str] = None
    prune_scope: Optional[Literal["context", "match"]] = Field(None, alias="pruneScope")

    model_config = ConfigDict(populate_by_name=True)

    @property
    def output_name(self) -> str:
        return self.name or Path(self.path).stem


class Config(BaseModel):
    """Main configuration class."""
    persistence_strategy: str = Field("file_per_document", alias="persistenceStrategy")
    defaults: Defaults = Field(default_factory=Defaults)
    items: List[Item] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True)


def _resolve(path: str, base_dir: Path) -> str:
    candidate = Path(path).expanduser()
    if candidate.is_absolute():
        return str(candidate)
    return str(base_dir / candidate)


def resolve_paths(items: List[Item], base_dir: Path) -> List[Item]:
    """
    Resolve relative document and schema paths against a base directory.

    Args:
        items: Items as read from the configuration file
        base_dir: Directory of the configuration file

    Returns:
        Items with absolute paths
    """
    resolved = []
    for item in items:
        schema_source = item.schema_source
        if isinstance(schema_source, str) and not is_url(schema_source):
            schema_source = _resolve(schema_source, base_dir)
        resolved.append(item.model_copy(update={
            "path": _resolve(item.path, base_dir),
            "schema_source": schema_source,
        }))
    return resolved


def expand_globs(items: List[Item]) -> List[Item]:
    """
    Expand glob items into one item per matching file.

    Args:
        items: List of items to process

    Returns:
        List of items with globs expanded to individual documents
    """
    expanded_items = []

    for item in items:
        if not any(ch in item.path for ch in _GLOB_CHARS):
            expanded_items.append(item)
            continue

        paths = sorted(p for p in glob.glob(item.path, recursive=True) if Path(p).is_file())
        if not paths:
            logger.warning(f"No documents match pattern: {item.path}")

        for path in paths:
            # A name on a glob item becomes a prefix so each document keeps its own output
            name = f"{item.name}_{Path(path).stem}" if item.name else None
            expanded_items.append(item.model_copy(update={"path": path, "name": name}))

    return expanded_items


def deduplicate_documents(items: List[Item]) -> List[Item]:
    """
    Remove items that point at the same document with the same schema.

    Args:
        items: List of items to deduplicate

    Returns:
        List of items with duplicates removed, order preserved
    """
    seen = set()
    unique_items = []

    for item in items:
        schema_key = item.schema_source if isinstance(item.schema_source, str) \
            else json.dumps(item.schema_source, sort_keys=True)
        key = (str(Path(item.path).resolve()), schema_key)
        if key not in seen:
            seen.add(key)
            unique_items.append(item)
        else:
            logger.debug(f"Skipping duplicate document: {item.path}")

    return unique_items


def load_config(config_path: Union[str, Path]) -> Config:
    """
    Load and process configuration from JSON file.

    Args:
        config_path: Path to configuration file

    Returns:
        Processed configuration object
    """
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    logger.info(f"Loading configuration from: {config_path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        data = json.load(f)

    config = Config.model_validate(data)

    logger.info("Resolving paths and expanding globs")
    config.items = resolve_paths(config.items, config_path.parent)
    config.items = expand_globs(config.items)
    config.items = deduplicate_documents(config.items)

    logger.info(f"Loaded {len(config.items)} documents")

    return config
