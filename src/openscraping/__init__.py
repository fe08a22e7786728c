"""
openscraping - Structured data extraction from HTML using XPath schemas

Describe what to pull out of a page as a JSON schema of XPath rules and get
back a mapping of field names to strings, nested objects, or lists of them:
- Output shape follows match cardinality, with forceArray to always get lists
- Nested fields evaluated relative to each matched node
- removeSelector to prune subtrees (scripts, ads, ...) before reading text
- Pluggable, chainable transformations (trim, parseDate, removeExtraWhitespace)
- Concurrent batch extraction with JSON or JSON Lines output
"""

__version__ = "1.0.0"

from .exceptions import OpenScrapingError, PersistenceError, SchemaError, UnknownTransformationError
from .transformations import TransformationRegistry, default_registry
from .schema import Rule, compile_schema, load_schema
from .extraction import SchemaExtractor, parse
from .config import load_config, Config, Item, Defaults
from .batch_runner import BatchRunner
from .persistence import PersistenceStrategy, FilePerDocumentStrategy, JsonLinesStrategy, create_persistence_strategy
from .cli import main

__all__ = [
    "OpenScrapingError",
    "PersistenceError",
    "SchemaError",
    "UnknownTransformationError",
    "TransformationRegistry",
    "default_registry",
    "Rule",
    "compile_schema",
    "load_schema",
    "SchemaExtractor",
    "parse",
    "load_config",
    "Config",
    "Item",
    "Defaults",
    "BatchRunner",
    "PersistenceStrategy",
    "FilePerDocumentStrategy",
    "JsonLinesStrategy",
    "create_persistence_strategy",
    "main",
]
