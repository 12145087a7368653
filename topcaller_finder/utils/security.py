"""
Security utilities for safe file operations.
"""

import logging
from pathlib import Path
from typing import Sequence, Union

logger = logging.getLogger(__name__)

# Legacy Java code bases are often not UTF-8
FALLBACK_ENCODINGS = ("utf-8", "gb18030", "latin-1")


def assert_safe_path(base_path: Union[str, Path], target_path: Union[str, Path]) -> bool:
    """
    Ensure that the target path is within the base path to prevent directory traversal.

    Args:
        base_path: The allowed base directory
        target_path: The target path to validate

    Returns:
        bool: True if path is safe, raises ValueError otherwise
    """
    base_path = Path(base_path).resolve()
    target_path = Path(target_path).resolve()

    try:
        target_path.relative_to(base_path)
        return True
    except ValueError:
        raise ValueError(f"Path traversal detected: {target_path} is not within {base_path}")


def safe_open_text(
    base_path: Union[str, Path],
    file_path: Union[str, Path],
    encodings: Sequence[str] = FALLBACK_ENCODINGS,
) -> str:
    """
    Read a source file inside ``base_path``, trying each encoding in turn.

    Args:
        base_path: The allowed base directory
        file_path: Path to the file to read
        encodings: Encodings to try, in order

    Returns:
        str: File content as string

    Raises:
        ValueError: if the file lies outside ``base_path``
        UnicodeDecodeError: if no encoding can decode the file
    """
    assert_safe_path(base_path, file_path)

    data = Path(file_path).read_bytes()
    error = None
    for encoding in encodings:
        try:
            return data.decode(encoding)
        except UnicodeDecodeError as e:
            error = e
    logger.debug(f"Could not decode {file_path} with any of {list(encodings)}")
    raise error
