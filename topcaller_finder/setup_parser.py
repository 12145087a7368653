"""
Setup script for initializing the tree-sitter Java parser used by the index.
"""
import logging

from tree_sitter import Language, Parser

logger = logging.getLogger(__name__)


def setup_parsers():
    """
    Setup tree-sitter languages for all supported languages.
    """
    parsers = {}

    # Java parser
    try:
        import tree_sitter_java
        JAVA_LANGUAGE = Language(tree_sitter_java.language())
        parsers['java'] = JAVA_LANGUAGE
    except ImportError:
        logger.warning("tree_sitter_java not available")

    return parsers


# 导出解析器字典
PARSERS = setup_parsers()


def get_parser(language: str):
    """
    Get the tree-sitter language for the specified language.

    Args:
        language: Programming language name

    Returns:
        Language object or None if not available
    """
    return PARSERS.get(language)


def new_parser(language: str):
    """Create a parser for ``language``, or None when the grammar is missing."""
    lang = get_parser(language)
    if lang is None:
        return None
    return Parser(lang)
