"""
Utility functions for openscraping.

Provides filename sanitizing, hashing and output path helpers.
"""

import hashlib
import re
from pathlib import Path

MAX_FILE_NAME_LEN = 120


def sanitize_filename(filename: str, max_length: int = MAX_FILE_NAME_LEN) -> str:
    """
    Sanitize filename by removing/replacing invalid characters.

    Args:
        filename: Filename to sanitize
        max_length: Maximum length of filename

    Returns:
        Sanitized filename
    """
    sanitized = re.sub(r'[^a-zA-Z0-9\-_.]', '_', filename)
    sanitized = re.sub(r'_+', '_', sanitized)
    sanitized = sanitized.strip('_')

    if len(sanitized) > max_length:
        sanitized = sanitized[:max_length]

    return sanitized or "unnamed"


def create_hash(content: str) -> str:
    """Create an md5 hex digest of content for unique identification."""
    return hashlib.md5(content.encode('utf-8')).hexdigest()


def build_output_path(output_dir: Path, name: str, source: str, extension: str = ".json") -> Path:
    """
    Build the result file path for a document.

    Names longer than the limit are truncated and suffixed with a hash of the
    source so distinct documents keep distinct files.

    Args:
        output_dir: Output directory
        name: Preferred file name, without extension
        source: Path of the source document
        extension: File extension

    Returns:
        Full path of the result file
    """
    filename = sanitize_filename(name)

    if len(filename) + len(extension) > MAX_FILE_NAME_LEN:
        hash_part = create_hash(source)[:8]
        name_part = filename[:MAX_FILE_NAME_LEN - len(extension) - len(hash_part) - 1]
        filename = f"{name_part}_{hash_part}"

    return output_dir / f"{filename}{extension}"
