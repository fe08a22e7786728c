"""
Schema module for openscraping.

Uses Pydantic models to validate extraction schemas and normalize them into a
tree of Rule objects. Bare XPath strings become rules with default options, so
the extractor never has to tell the two forms apart.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterator, List, Mapping, Optional, Union

import requests
from lxml import etree
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from .document import compile_selector
from .exceptions import SchemaError, UnknownTransformationError
from .transformations import TransformationRegistry, check_date_format, parse_date

logger = logging.getLogger(__name__)

# Keys of the legacy openscraping rule form ({"_xpath": ..., "childField": ...})
_LEGACY_SELECTOR_KEY = "_xpath"


class Rule(BaseModel):
    """A single extraction rule."""
    selector: str = Field(validation_alias=AliasChoices("selector", "_xpath", "xpath"))
    force_array: bool = Field(False, validation_alias=AliasChoices("forceArray", "_forceArray", "force_array"))
    remove_selector: Optional[str] = Field(
        None, validation_alias=AliasChoices("removeSelector", "_removeXPath", "remove_selector")
    )
    transform: Optional[Union[str, List[str]]] = Field(
        None, validation_alias=AliasChoices("transform", "transformation", "_transformations")
    )
    options: Dict[str, Any] = Field(
        default_factory=dict, validation_alias=AliasChoices("options", "_options", "transformOptions")
    )
    fields: Optional[Dict[str, "Rule"]] = Field(None, validation_alias=AliasChoices("fields", "_fields"))

    model_config = ConfigDict(populate_by_name=True, extra="forbid", frozen=True)

    @model_validator(mode="before")
    @classmethod
    def _normalize_node(cls, data: Any) -> Any:
        if isinstance(data, str):
            return {"selector": data}
        if isinstance(data, Mapping) and _LEGACY_SELECTOR_KEY in data:
            # Legacy form: every key without a leading underscore is a child field
            children = {k: v for k, v in data.items() if not k.startswith("_")}
            if children:
                data = {k: v for k, v in data.items() if k.startswith("_")}
                data.setdefault("_fields", children)
        return data

    @field_validator("selector", "remove_selector")
    @classmethod
    def _check_xpath(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        if not value.strip():
            raise ValueError("selector must not be empty")
        try:
            compile_selector(value)
        except etree.XPathError as e:
            raise ValueError(f"invalid XPath {value!r}: {e}") from e
        return value

    @field_validator("transform")
    @classmethod
    def _check_transform(cls, value: Optional[Union[str, List[str]]]) -> Optional[Union[str, List[str]]]:
        if isinstance(value, str) and not value:
            raise ValueError("transform name must not be empty")
        return value

    @property
    def transform_chain(self) -> List[str]:
        """Transformation names in pipeline order."""
        if self.transform is None:
            return []
        if isinstance(self.transform, str):
            return [self.transform]
        return list(self.transform)


Schema = Dict[str, Rule]


def compile_schema(raw: Any) -> Schema:
    """
    Validate a JSON-compatible schema and normalize it into rules.

    Args:
        raw: Mapping of field name to XPath string or rule object

    Returns:
        Mapping of field name to Rule, in declaration order

    Raises:
        SchemaError: If the schema is not a mapping or any rule is invalid
    """
    if not isinstance(raw, Mapping):
        raise SchemaError(f"Schema must be a mapping of field names to rules, got {type(raw).__name__}")

    schema: Schema = {}
    for name, node in raw.items():
        if isinstance(node, Rule):
            schema[name] = node
            continue
        try:
            schema[name] = Rule.model_validate(node)
        except ValidationError as e:
            raise SchemaError(f"Invalid rule for field {name!r}: {e}") from e
    return schema


def iter_rules(schema: Schema) -> Iterator[Rule]:
    """Yield every rule in the schema tree, depth-first."""
    for rule in schema.values():
        yield rule
        if rule.fields:
            yield from iter_rules(rule.fields)


def check_transformations(schema: Schema, registry: TransformationRegistry) -> None:
    """
    Verify that every transformation named in the schema is registered.

    Options of the built-in parseDate are validated here too, so a bad format
    fails even when no date on the page parses.

    Raises:
        UnknownTransformationError: For the first unregistered name
        SchemaError: For an invalid parseDate format
    """
    for rule in iter_rules(schema):
        for name in rule.transform_chain:
            if name not in registry:
                raise UnknownTransformationError(name)
            if registry.get(name) is parse_date:
                check_date_format(rule.options.get("format"))


def is_url(source: str) -> bool:
    return source.startswith(("http://", "https://"))


def fetch_schema(url: str) -> Any:
    """
    Fetch a JSON schema over HTTP.

    Args:
        url: URL of the schema document

    Returns:
        Decoded JSON value
    """
    logger.info(f"Fetching schema: {url}")
    try:
        response = requests.get(url, timeout=30)
        response.raise_for_status()
        return response.json()
    except (requests.RequestException, ValueError) as e:
        raise SchemaError(f"Could not fetch schema from {url}: {e}") from e


def load_schema(source: Union[str, Path, Mapping[str, Any]]) -> Schema:
    """
    Load and compile a schema.

    Args:
        source: Inline mapping, path to a JSON file, or http(s) URL

    Returns:
        Compiled schema

    Raises:
        FileNotFoundError: If a schema file does not exist
        SchemaError: If the schema cannot be decoded or is invalid
    """
    if isinstance(source, Mapping):
        return compile_schema(source)

    if isinstance(source, str) and is_url(source):
        return compile_schema(fetch_schema(source))

    schema_path = Path(source)
    if not schema_path.exists():
        raise FileNotFoundError(f"Schema file not found: {schema_path}")

    logger.debug(f"Loading schema from: {schema_path}")
    with open(schema_path, 'r', encoding='utf-8') as f:
        try:
            raw = json.load(f)
        except json.JSONDecodeError as e:
            raise SchemaError(f"Schema file {schema_path} is not valid JSON: {e}") from e

    return compile_schema(raw)
