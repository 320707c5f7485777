"""
Parser Registry for Tree-sitter

Hands out Rust parsers. tree-sitter Parser objects are not safe to share
between threads, so every thread gets its own instance.
"""

import threading

from tree_sitter import Language, Parser
from tree_sitter_language_pack import get_language

from codegraph_rs.exceptions import ParsingError
from codegraph_rs.observability import get_logger

logger = get_logger(__name__)

RUST = "rust"


class ParserRegistry:
    """Registry of thread-local Rust parsers."""

    def __init__(self, language: str = RUST):
        self.language_name = language
        self._language: Language | None = None
        self._lock = threading.Lock()
        self._local = threading.local()

    @property
    def language(self) -> Language:
        if self._language is None:
            with self._lock:
                if self._language is None:
                    try:
                        self._language = get_language(self.language_name)
                    except (LookupError, ValueError, OSError) as e:
                        raise ParsingError(f"Cannot load tree-sitter grammar '{self.language_name}': {e}") from e
                    logger.debug("grammar_loaded", language=self.language_name)
        return self._language

    def get_parser(self) -> Parser:
        """Parser owned by the calling thread."""
        parser = getattr(self._local, "parser", None)
        if parser is None:
            parser = Parser(self.language)
            self._local.parser = parser
        return parser


# Global registry instance
_registry: ParserRegistry | None = None


def get_registry() -> ParserRegistry:
    """Get global parser registry instance"""
    global _registry
    if _registry is None:
        _registry = ParserRegistry()
    return _registry
