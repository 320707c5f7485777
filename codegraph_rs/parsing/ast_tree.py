"""
AST Tree wrapper for Tree-sitter
"""

from tree_sitter import Node as TSNode
from tree_sitter import Tree as TSTree

from codegraph_rs.exceptions import ParsingError
from codegraph_rs.ir.models import Span
from codegraph_rs.parsing.parser_registry import ParserRegistry, get_registry
from codegraph_rs.parsing.source_file import SourceFile


class AstTree:
    """
    Wrapper for a Tree-sitter tree.

    Text is sliced from the encoded source so byte offsets stay valid for
    non-ASCII files.
    """

    def __init__(self, source: SourceFile, tree: TSTree, data: bytes):
        self.source = source
        self.tree = tree
        self._data = data
        self._root = tree.root_node

    @classmethod
    def parse(cls, source: SourceFile, registry: ParserRegistry | None = None) -> "AstTree":
        """
        Parse source file into AST.

        Raises:
            ParsingError: Parser returned no tree
        """
        parser = (registry or get_registry()).get_parser()
        data = source.content.encode(source.encoding)
        tree = parser.parse(data)
        if tree is None:
            raise ParsingError("Failed to parse file", file_path=source.file_path)
        return cls(source, tree, data)

    @property
    def root(self) -> TSNode:
        return self._root

    def get_text(self, node: TSNode) -> str:
        return self._data[node.start_byte : node.end_byte].decode(self.source.encoding, errors="replace")

    def get_span(self, node: TSNode) -> Span:
        """
        Convert Tree-sitter node to IR Span.

        Returns:
            IR Span (1-indexed lines, 0-indexed columns)
        """
        return Span(
            start_line=node.start_point[0] + 1,
            start_col=node.start_point[1],
            end_line=node.end_point[0] + 1,
            end_col=node.end_point[1],
        )

    def get_errors(self, node: TSNode | None = None) -> list[TSNode]:
        """Get all ERROR and MISSING nodes."""
        if node is None:
            node = self._root
        if not node.has_error and not node.is_missing:
            return []
        errors = []
        if node.type == "ERROR" or node.is_missing:
            errors.append(node)
        for child in node.children:
            errors.extend(self.get_errors(child))
        return errors

    def __repr__(self) -> str:
        return f"AstTree(file={self.source.file_path})"
