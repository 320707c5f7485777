"""
Global test configuration and fixtures
"""

from collections.abc import Callable

import pytest

from codegraph_rs.config import GraphBuildConfig
from codegraph_rs.graph.store import GraphStore
from codegraph_rs.parsing.source_file import module_path_for
from codegraph_rs.resolve.resolver import CrossItemResolver
from codegraph_rs.builder.traversal import traverse
from codegraph_rs.syntax.models import Item, SourceUnit


@pytest.fixture
def config() -> GraphBuildConfig:
    """Sequential build config (deterministic, no thread pool)"""
    return GraphBuildConfig(parallel=False)


@pytest.fixture
def make_unit() -> Callable[..., SourceUnit]:
    """Build a SourceUnit by hand: make_unit("a.rs", StructItem(...), ...)"""

    def _make(file_path: str, *items: Item, **kwargs) -> SourceUnit:
        return SourceUnit(file_path=file_path, module_path=module_path_for(file_path), items=tuple(items), **kwargs)

    return _make


@pytest.fixture
def build_graph(config) -> Callable[..., GraphStore]:
    """Traverse + resolve units into a GraphStore."""

    def _build(*units: SourceUnit) -> GraphStore:
        resolver = CrossItemResolver(config)
        for unit in units:
            resolver.add_fragment(traverse(unit, config))
        return resolver.resolve()

    return _build


# Pytest hooks
def pytest_configure(config):
    """pytest 설정"""
    config.addinivalue_line("markers", "unit: Unit tests (fast, isolated)")
    config.addinivalue_line("markers", "integration: Integration tests (front-end parser involved)")


def pytest_collection_modifyitems(config, items):
    """경로 기반 자동 마커 추가"""
    for item in items:
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
