"""
Extraction module for openscraping.

Interprets a compiled schema against a document tree: evaluates each rule's
selector, recurses into matched nodes for nested fields, prunes unwanted
subtrees and runs leaf text through the transformation pipeline.
"""

import logging
from typing import Any, Dict, List, Literal, Mapping, Optional, Tuple, Union

from lxml import etree

from .document import DocumentParser, as_root, detach, node_text, parse_document, select
from .exceptions import SchemaError
from .schema import Rule, Schema, check_transformations, compile_schema
from .transformations import TransformationRegistry, default_registry

logger = logging.getLogger(__name__)

PruneScope = Literal["context", "match"]
PRUNE_SCOPES = ("context", "match")

ExtractionResult = Dict[str, Any]


class SchemaExtractor:
    """
    Extracts structured data from documents using an XPath schema.

    Output shape follows match cardinality: a rule matching once yields the
    value itself, a rule matching two or more times yields a list. forceArray
    only ever adds the list wrapping.
    """

    def __init__(
        self,
        registry: Optional[TransformationRegistry] = None,
        prune_scope: PruneScope = "context",
        parser: DocumentParser = "html"
    ):
        """
        Initialize SchemaExtractor.

        Args:
            registry: Transformations available to rules, defaults to the built-ins
            prune_scope: "context" prunes relative to the rule's context before the
                selector runs; "match" prunes relative to each matched node
            parser: Parser used when extract() receives raw markup
        """
        if prune_scope not in PRUNE_SCOPES:
            raise ValueError(f"Unsupported prune scope: {prune_scope}")
        self.registry = registry if registry is not None else default_registry()
        self.prune_scope = prune_scope
        self.parser = parser

    def extract(self, schema: Union[Schema, Mapping[str, Any]], document: Any) -> ExtractionResult:
        """
        Extract structured data from a document.

        Markup is parsed into a fresh tree on every call. A parsed tree passed
        in directly is mutated by pruning.

        Args:
            schema: Raw or compiled schema
            document: HTML/XML markup, lxml element or element tree

        Returns:
            Mapping of field name to extracted value

        Raises:
            SchemaError: If the schema is invalid or names an unknown transformation
        """
        rules = compile_schema(schema)
        check_transformations(rules, self.registry)

        if isinstance(document, (str, bytes)):
            root = parse_document(document, parser=self.parser)
        else:
            root = as_root(document)

        result = self.walk(root, rules)
        logger.debug(f"Extracted {len(result)} of {len(rules)} fields")
        return result

    def walk(self, context: etree._Element, rules: Schema) -> ExtractionResult:
        """
        Evaluate every rule against a context node.

        Args:
            context: Node the rules' selectors are evaluated against
            rules: Mapping of field name to rule

        Returns:
            Mapping holding only the fields that produced output
        """
        result: ExtractionResult = {}
        for name, rule in rules.items():
            has_output, value = self.evaluate(context, rule)
            if has_output:
                result[name] = value
            else:
                logger.debug(f"No match for field {name!r}: {rule.selector}")
        return result

    def evaluate(self, context: etree._Element, rule: Rule) -> Tuple[bool, Any]:
        """
        Evaluate one rule against a context node.

        Args:
            context: Node to evaluate the rule against
            rule: Extraction rule

        Returns:
            Tuple of (has_output, value)
        """
        if rule.remove_selector and self.prune_scope == "context":
            self.prune(context, rule.remove_selector)

        matches = self._select(context, rule.selector)

        values: List[Any] = []
        for match in matches:
            if rule.remove_selector and self.prune_scope == "match" and isinstance(match, etree._Element):
                self.prune(match, rule.remove_selector)

            value = self._leaf_value(match, rule)
            if value is not None:
                values.append(value)

        return self._shape(values, rule.force_array)

    def prune(self, context: etree._Element, remove_selector: str) -> int:
        """
        Detach every node matched by remove_selector from the document.

        Args:
            context: Node the selector is evaluated against
            remove_selector: XPath of the nodes to remove

        Returns:
            Number of nodes removed
        """
        removed = 0
        for node in self._select(context, remove_selector):
            if detach(node):
                removed += 1
        if removed:
            logger.debug(f"Pruned {removed} nodes matching {remove_selector}")
        return removed

    def _select(self, context: etree._Element, expression: str) -> List[Any]:
        try:
            return select(context, expression)
        except etree.XPathError as e:
            raise SchemaError(f"Could not evaluate selector {expression!r}: {e}") from e

    def _leaf_value(self, match: Any, rule: Rule) -> Optional[Any]:
        if rule.fields is not None:
            if not isinstance(match, etree._Element):
                logger.debug(f"Skipping non-element match for nested rule {rule.selector}")
                return None
            return self.walk(match, rule.fields)

        text = node_text(match)
        if not rule.transform_chain:
            return text
        return self.registry.apply_chain(rule.transform_chain, text, rule.options)

    @staticmethod
    def _shape(values: List[Any], force_array: bool) -> Tuple[bool, Any]:
        if not values:
            if force_array:
                return True, []
            return False, None
        if len(values) == 1 and not force_array:
            return True, values[0]
        return True, values


def parse(
    schema: Union[Schema, Mapping[str, Any]],
    document: Any,
    registry: Optional[TransformationRegistry] = None,
    prune_scope: PruneScope = "context"
) -> ExtractionResult:
    """
    Extract structured data from a document using a schema.

    Args:
        schema: Raw or compiled schema
        document: HTML markup, lxml element or element tree
        registry: Transformations available to rules, defaults to the built-ins
        prune_scope: Where removeSelector is evaluated, see SchemaExtractor

    Returns:
        Mapping of field name to extracted value, empty if nothing matched
    """
    return SchemaExtractor(registry=registry, prune_scope=prune_scope).extract(schema, document)
