"""
Transformations module for openscraping.

A transformation takes the text of a matched node (or the output of the previous
transformation) and the rule's options mapping, and returns a new value, or
None when it cannot interpret its input. None drops the value from the result.
"""

import logging
import re
from datetime import datetime
from email.utils import parsedate_to_datetime
from typing import Any, Callable, Dict, Iterable, Mapping, Optional

from .exceptions import SchemaError, UnknownTransformationError

logger = logging.getLogger(__name__)

Transformation = Callable[[Any, Mapping[str, Any]], Optional[Any]]


class TransformationRegistry:
    """Named transformations available to extraction rules."""

    def __init__(self, transformations: Optional[Mapping[str, Transformation]] = None):
        """
        Initialize TransformationRegistry.

        Args:
            transformations: Optional initial name -> function mapping
        """
        self._transformations: Dict[str, Transformation] = dict(transformations or {})

    def register(self, name: str, fn: Optional[Transformation] = None):
        """
        Register a transformation under a name.

        Can be called directly, ``registry.register("upper", fn)``, or used as a
        decorator, ``@registry.register("upper")``. Registering an existing name
        replaces the previous function.

        Args:
            name: Name used by rules to refer to the transformation
            fn: Transformation function

        Returns:
            The registered function, or a decorator when fn is omitted
        """
        if fn is None:
            def decorator(func: Transformation) -> Transformation:
                self.register(name, func)
                return func
            return decorator

        if not callable(fn):
            raise TypeError(f"Transformation {name!r} must be callable")
        if name in self._transformations:
            logger.debug(f"Replacing transformation: {name}")
        self._transformations[name] = fn
        return fn

    def get(self, name: str) -> Transformation:
        try:
            return self._transformations[name]
        except KeyError:
            raise UnknownTransformationError(name) from None

    def names(self) -> list:
        return list(self._transformations)

    def __contains__(self, name: object) -> bool:
        return name in self._transformations

    def apply(self, name: str, value: Any, options: Optional[Mapping[str, Any]] = None) -> Optional[Any]:
        """
        Apply a single transformation.

        Args:
            name: Registered transformation name
            value: Input value
            options: Options mapping from the rule

        Returns:
            Transformed value, or None if the transformation rejected the input
        """
        return self.get(name)(value, options or {})

    def apply_chain(
        self,
        names: Iterable[str],
        value: Any,
        options: Optional[Mapping[str, Any]] = None
    ) -> Optional[Any]:
        """
        Run transformations in order, each receiving the previous output.

        Every stage receives the same options mapping. The first stage that
        returns None stops the chain.

        Args:
            names: Transformation names in pipeline order
            value: Input of the first stage
            options: Options mapping from the rule

        Returns:
            Output of the last stage, or None if any stage rejected its input
        """
        options = options or {}
        for name in names:
            value = self.apply(name, value, options)
            if value is None:
                logger.debug(f"Transformation {name} produced no result")
                return None
        return value

    def copy(self) -> "TransformationRegistry":
        return TransformationRegistry(self._transformations)


def trim(value: Any, options: Mapping[str, Any]) -> str:
    """Remove leading and trailing whitespace."""
    return str(value).strip()


_WHITESPACE_RUN = re.compile(r"\s{2,}")


def remove_extra_whitespace(value: Any, options: Mapping[str, Any]) -> str:
    """Collapse runs of two or more whitespace characters into one space."""
    return _WHITESPACE_RUN.sub(" ", str(value))


# Output presets for parseDate's "format" option
DATE_FORMATS: Dict[str, str] = {
    "date": "%Y-%m-%d",
    "year": "%Y",
    "year-only": "%Y",
    "month": "%Y-%m",
}

# Layouts tried after ISO-8601 and RFC-2822, in order
_DATE_LAYOUTS = (
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M",
    "%Y/%m/%d",
    "%d %B %Y",
    "%d %b %Y",
    "%A %d %B %Y",
    "%a %d %b %Y",
    "%B %d %Y",
    "%b %d %Y",
    "%A %B %d %Y",
    "%a %b %d %Y",
    "%d %B %Y %H:%M",
    "%d %b %Y %H:%M",
    "%B %d %Y %H:%M",
    "%b %d %Y %H:%M",
    "%d.%m.%Y",
    "%d/%m/%Y",
    "%m/%d/%Y",
    "%B %Y",
    "%b %Y",
    "%Y",
)

_ORDINAL_SUFFIX = re.compile(r"\b(\d{1,2})(st|nd|rd|th)\b", re.IGNORECASE)
_DATE_NOISE = re.compile(r"[,\s]+")

_MONTHS = (
    r"(?:jan|feb|mar|apr|may|jun|jul|aug|sep|sept|oct|nov|dec)[a-z]*\.?"
)
_EMBEDDED_DATES = (
    re.compile(r"\d{4}-\d{2}-\d{2}(?:[T ]\d{2}:\d{2}(?::\d{2}(?:\.\d+)?)?(?:Z|[+-]\d{2}:?\d{2})?)?"),
    re.compile(rf"\b\d{{1,2}}(?:st|nd|rd|th)?\s+{_MONTHS}\s+\d{{4}}", re.IGNORECASE),
    re.compile(rf"\b{_MONTHS}\s+\d{{1,2}}(?:st|nd|rd|th)?,?\s+\d{{4}}", re.IGNORECASE),
)


def _parse_iso(text: str) -> Optional[datetime]:
    candidate = text
    if candidate.endswith(("Z", "z")):
        candidate = candidate[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(candidate)
    except ValueError:
        return None


def _parse_rfc2822(text: str) -> Optional[datetime]:
    try:
        return parsedate_to_datetime(text)
    except (TypeError, ValueError, IndexError):
        return None


def _parse_layouts(text: str) -> Optional[datetime]:
    cleaned = _ORDINAL_SUFFIX.sub(r"\1", text)
    cleaned = _DATE_NOISE.sub(" ", cleaned).strip()
    for layout in _DATE_LAYOUTS:
        try:
            return datetime.strptime(cleaned, layout)
        except ValueError:
            continue
    return None


def _parse_datetime(text: str) -> Optional[datetime]:
    text = text.strip()
    if not text:
        return None

    parsed = _parse_iso(text) or _parse_rfc2822(text) or _parse_layouts(text)
    if parsed is not None:
        return parsed

    # Fall back to a date embedded in longer text ("Published 24 December 2015 by ...")
    for pattern in _EMBEDDED_DATES:
        match = pattern.search(text)
        if match:
            parsed = _parse_iso(match.group(0)) or _parse_layouts(match.group(0))
            if parsed is not None:
                return parsed
    return None


def check_date_format(fmt: Any) -> None:
    """
    Validate a parseDate "format" option.

    Raises:
        SchemaError: If fmt is neither a preset nor a strftime pattern
    """
    if fmt is None:
        return
    if isinstance(fmt, str) and (fmt == "datetime" or fmt in DATE_FORMATS or "%" in fmt):
        return
    raise SchemaError(
        f"Unknown date format {fmt!r}; expected one of "
        f"{sorted([*DATE_FORMATS, 'datetime'])} or a strftime pattern"
    )


def format_date(value: datetime, fmt: Optional[str]) -> str:
    """
    Format a parsed date for output.

    Args:
        value: Parsed date
        fmt: Preset name, strftime pattern, or None for the default "date" preset

    Returns:
        Formatted date string

    Raises:
        SchemaError: If fmt is neither a preset nor a strftime pattern
    """
    check_date_format(fmt)
    if fmt is None:
        fmt = "date"
    if fmt == "datetime":
        return value.isoformat()
    return value.strftime(DATE_FORMATS.get(fmt, fmt))


def parse_date(value: Any, options: Mapping[str, Any]) -> Optional[str]:
    """
    Parse free-form date text.

    Returns None when the text does not contain a recognizable date.
    """
    parsed = _parse_datetime(str(value))
    if parsed is None:
        logger.debug(f"Could not parse date from {str(value)[:60]!r}")
        return None
    return format_date(parsed, options.get("format"))


BUILTIN_TRANSFORMATIONS: Dict[str, Transformation] = {
    "trim": trim,
    "parseDate": parse_date,
    "removeExtraWhitespace": remove_extra_whitespace,
}


def default_registry() -> TransformationRegistry:
    """Create a new registry holding the built-in transformations."""
    return TransformationRegistry(BUILTIN_TRANSFORMATIONS)
