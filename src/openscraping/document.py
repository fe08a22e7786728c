"""
Document module for openscraping.

Thin layer over lxml: parses markup into a tree, compiles and evaluates XPath
selectors, reads text from query results and detaches nodes from the tree.
"""

import logging
import math
from decimal import Decimal
from functools import lru_cache
from typing import Any, List, Literal, Union

import lxml.html
from lxml import etree

logger = logging.getLogger(__name__)

DocumentParser = Literal["html", "xml"]

# EXSLT regular expressions are available in every selector as re:test(), re:match(), ...
XPATH_NAMESPACES = {"re": "http://exslt.org/regular-expressions"}

_XML_DECLARATION = "<?xml"


@lru_cache(maxsize=1024)
def compile_selector(expression: str) -> etree.XPath:
    """
    Compile an XPath selector.

    Args:
        expression: XPath expression

    Returns:
        Compiled XPath object, cached per expression

    Raises:
        lxml.etree.XPathSyntaxError: If the expression is not valid XPath
    """
    return etree.XPath(expression, namespaces=XPATH_NAMESPACES, smart_strings=True)


def parse_document(markup: Union[str, bytes], parser: DocumentParser = "html") -> etree._Element:
    """
    Parse markup into a fresh document tree.

    Args:
        markup: Raw HTML or XML text
        parser: "html" for the forgiving HTML parser, "xml" for a recovering XML parser

    Returns:
        Root element of the parsed document

    Raises:
        lxml.etree.ParserError: If the markup is empty
    """
    # lxml rejects str input that carries its own encoding declaration
    if isinstance(markup, str) and markup.lstrip().startswith(_XML_DECLARATION):
        markup = markup.encode("utf-8")

    if parser == "xml":
        xml_parser = etree.XMLParser(recover=True, remove_blank_text=False, resolve_entities=False)
        root = etree.fromstring(markup, parser=xml_parser)
        if root is None:
            raise etree.ParserError("Document is empty")
        return root

    return lxml.html.document_fromstring(markup)


def as_root(document: Any) -> etree._Element:
    """
    Return the root element of an already parsed document.

    Args:
        document: lxml element or element tree

    Returns:
        Root element
    """
    if isinstance(document, etree._ElementTree):
        return document.getroot()
    if isinstance(document, etree._Element):
        return document
    raise TypeError(f"Unsupported document type: {type(document).__name__}")


def select(context: etree._Element, expression: str) -> List[Any]:
    """
    Evaluate a selector against a context node.

    Node-set results come back as a list in document order. Scalar results
    (strings, numbers, booleans) come back as a one-element list.

    Args:
        context: Node to evaluate the selector against
        expression: XPath expression

    Returns:
        Ordered list of matched nodes or scalars
    """
    result = compile_selector(expression)(context)
    if isinstance(result, list):
        return result
    return [result]


def _number_text(value: float) -> str:
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "Infinity" if value > 0 else "-Infinity"
    if value.is_integer():
        return str(int(value))
    # Plain decimal notation, never an exponent
    return format(Decimal(repr(value)), "f")


def node_text(node: Any) -> str:
    """
    Read the text of a query result.

    Elements yield their XPath string value, which is the concatenated
    descendant text without comments. Attribute and text results are already
    strings. Numbers and booleans follow the XPath string conversion rules.

    Args:
        node: Element, string, number or boolean returned by select()

    Returns:
        Text content
    """
    if isinstance(node, str):
        return str(node)
    if isinstance(node, bool):
        return "true" if node else "false"
    if isinstance(node, float):
        return _number_text(node)
    if isinstance(node, etree._Element):
        return str(node.xpath("string()"))
    return str(node)


def detach(node: Any) -> bool:
    """
    Detach a node and its subtree from the document.

    The tail text of a removed element stays in the document. Attribute results
    remove the attribute from the owning element. Text results clear the text
    or tail they were read from. The root element cannot be detached.

    Args:
        node: Element, attribute or text result returned by select()

    Returns:
        True if something was removed
    """
    if isinstance(node, str):
        if getattr(node, "is_attribute", False):
            owner = node.getparent()
            if owner is not None and node.attrname in owner.attrib:
                del owner.attrib[node.attrname]
                return True
            return False
        # Results of string functions such as string() have no owner
        owner = node.getparent() if hasattr(node, "getparent") else None
        if owner is None:
            logger.debug(f"Cannot detach string result: {node[:40]!r}")
            return False
        if node.is_tail:
            removed = owner.tail is not None
            owner.tail = None
        else:
            removed = owner.text is not None
            owner.text = None
        return removed

    if not isinstance(node, etree._Element):
        logger.debug(f"Cannot detach scalar result: {node!r}")
        return False

    parent = node.getparent()
    if parent is None:
        logger.debug(f"Cannot detach root element <{node.tag}>")
        return False

    if node.tail:
        previous = node.getprevious()
        if previous is not None:
            previous.tail = (previous.tail or "") + node.tail
        else:
            parent.text = (parent.text or "") + node.tail
        node.tail = None

    parent.remove(node)
    return True
