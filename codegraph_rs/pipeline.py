"""
Graph Build Pipeline

Stages:
1. Read: tree-sitter front-end -> SourceUnit (per file)
2. Traverse: SourceUnit -> FileFragment (per file, on worker threads)
3. Resolve: merge fragments in file order, resolve placeholders -> GraphStore

Per-unit failures (unreadable file, structural error, unexpected crash) drop
only that unit and are reported in BuildResult.failed_units. Fragments are
cached per file so rebuild() re-traverses only the changed files.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import TypeVar

from codegraph_rs.builder.fragment import FileFragment
from codegraph_rs.builder.traversal import traverse
from codegraph_rs.config import GraphBuildConfig, get_settings
from codegraph_rs.diagnostics import Diagnostic, DiagnosticCode, Severity
from codegraph_rs.exceptions import CodeGraphError, ModuleCycleError, ParsingError, StructuralError, UnitBuildError
from codegraph_rs.graph.store import GraphStore
from codegraph_rs.observability import LogPerformance, bind_context, clear_context, get_logger
from codegraph_rs.parsing.parser_registry import ParserRegistry
from codegraph_rs.parsing.source_file import SourceFile
from codegraph_rs.resolve.resolver import CrossItemResolver
from codegraph_rs.syntax.models import SourceUnit
from codegraph_rs.syntax.rust_frontend import RustSyntaxReader

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass
class BuildResult:
    """Outcome of one build."""

    graph: GraphStore
    diagnostics: list[Diagnostic] = field(default_factory=list)
    failed_units: dict[str, CodeGraphError] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return not self.failed_units


class GraphBuildPipeline:
    """
    Builds a GraphStore from Rust sources.

    Usage:
        pipeline = GraphBuildPipeline()
        result = pipeline.build_files(["lib.rs", "shapes.rs"], source_root="my_crate/src")
        circle = result.graph.lookup("crate::shapes::Circle")

        # later, after editing shapes.rs
        result = pipeline.rebuild([SourceFile.from_file("shapes.rs", "my_crate/src")])
    """

    def __init__(self, config: GraphBuildConfig | None = None, registry: ParserRegistry | None = None):
        self.config = config or get_settings().build
        self.reader = RustSyntaxReader(self.config.crate_name, registry)
        self._fragments: dict[str, FileFragment] = {}
        self._failures: dict[str, CodeGraphError] = {}

    # ============================================================
    # Per-unit stages
    # ============================================================

    def build_unit(self, unit: SourceUnit) -> FileFragment:
        """
        Traverse one unit.

        Raises:
            StructuralError: Unit cannot be built
        """
        return traverse(unit, self.config)

    def _build_source(self, source: SourceFile) -> FileFragment:
        return self.build_unit(self.reader.read(source))

    def _map(self, func: Callable[[T], FileFragment], items: list[T], key: Callable[[T], str]) -> None:
        """Run func on each item, caching fragments and recording per-unit failures."""

        def run_one(item: T) -> tuple[str, FileFragment | None, CodeGraphError | None]:
            bind_context(file_path=key(item))
            try:
                return key(item), func(item), None
            except (StructuralError, ParsingError) as e:
                return key(item), None, e
            except Exception as e:
                logger.error("unit_crashed", file_path=key(item), error_type=type(e).__name__, exc_info=True)
                return key(item), None, UnitBuildError(f"Unexpected error in {key(item)}: {e}", key(item), e)
            finally:
                clear_context("file_path")

        if self.config.parallel and len(items) > 1:
            executor = ThreadPoolExecutor(max_workers=self.config.max_workers)
            try:
                outcomes = list(executor.map(run_one, items))
            finally:
                executor.shutdown(wait=True)
        else:
            outcomes = [run_one(item) for item in items]

        for file_path, fragment, error in outcomes:
            if error is not None:
                self._fragments.pop(file_path, None)
                self._failures[file_path] = error
                logger.warning("unit_failed", file_path=file_path, stage="traverse", error=str(error))
                continue
            self._failures.pop(file_path, None)
            self._fragments[file_path] = fragment

    # ============================================================
    # Builds
    # ============================================================

    def build_units(self, units: Iterable[SourceUnit]) -> BuildResult:
        """Build from already-constructed SourceUnits (any front-end)."""
        self._reset()
        units = list(units)
        self._map(self.build_unit, units, key=lambda unit: unit.file_path)
        return self._resolve()

    def build_sources(self, sources: Iterable[SourceFile]) -> BuildResult:
        self._reset()
        sources = list(sources)
        self._map(self._build_source, sources, key=lambda source: source.file_path)
        return self._resolve()

    def build_files(self, paths: Iterable[str | Path], source_root: str | Path) -> BuildResult:
        """
        Build from files on disk.

        Args:
            paths: File paths, absolute or relative to source_root
            source_root: Crate source directory; module paths derive from
                the location relative to it
        """
        self._reset()
        sources = []
        for path in paths:
            try:
                sources.append(SourceFile.from_file(path, source_root))
            except ParsingError as e:
                self._failures[e.file_path or str(path)] = e
                logger.warning("unit_failed", file_path=e.file_path or str(path), stage="read", error=str(e))
        self._map(self._build_source, sources, key=lambda source: source.file_path)
        return self._resolve()

    def rebuild(self, changed: Iterable[SourceFile | SourceUnit], removed: Iterable[str] = ()) -> BuildResult:
        """
        Re-traverse changed units and re-merge with the cached fragments.

        Args:
            changed: New contents of changed or added files
            removed: File paths deleted since the last build
        """
        for file_path in removed:
            self._fragments.pop(file_path, None)
            self._failures.pop(file_path, None)

        changed = list(changed)
        self._map(self._build_any, changed, key=lambda item: item.file_path)
        return self._resolve()

    def _build_any(self, item: SourceFile | SourceUnit) -> FileFragment:
        if isinstance(item, SourceUnit):
            return self.build_unit(item)
        return self._build_source(item)

    def _reset(self) -> None:
        self._fragments = {}
        self._failures = {}

    # ============================================================
    # Resolution
    # ============================================================

    def _resolve(self) -> BuildResult:
        failures = dict(self._failures)
        excluded: set[str] = set()

        with LogPerformance(logger, "build_graph", units=len(self._fragments)):
            while True:
                resolver = CrossItemResolver(self.config)
                for file_path in sorted(self._fragments):
                    if file_path not in excluded:
                        resolver.add_fragment(self._fragments[file_path])
                try:
                    graph = resolver.resolve()
                except ModuleCycleError as e:
                    dropped = set(e.file_paths) - excluded
                    if not dropped:
                        raise
                    for file_path in sorted(dropped):
                        failures[file_path] = e
                        logger.warning("unit_failed", file_path=file_path, stage="resolve", error=str(e))
                    excluded |= dropped
                    continue
                break

        failures.update(resolver.failed_units)
        merge_failed = set(resolver.failed_units)
        diagnostics = list(graph.diagnostics)
        for file_path in sorted(failures):
            if file_path in merge_failed:
                # already reported by the merge stage
                continue
            diagnostics.append(
                Diagnostic(
                    code=DiagnosticCode.UNIT_FAILED,
                    path=file_path,
                    message=str(failures[file_path]),
                    file_path=file_path,
                    severity=Severity.ERROR,
                )
            )

        logger.info(
            "graph_build_completed",
            files=len(self._fragments) + len(self._failures),
            failed=len(failures),
            **graph.get_stats(),
        )
        return BuildResult(graph=graph, diagnostics=diagnostics, failed_units=failures)
