"""
codegraph_rs

Semantic graph construction for Rust crates.

Usage:
    from codegraph_rs import GraphBuildPipeline, get_settings, setup_logging

    observability = get_settings().observability
    setup_logging(observability.log_level, observability.log_format)

    result = GraphBuildPipeline().build_files(["lib.rs"], source_root="src")
    for diagnostic in result.diagnostics:
        print(diagnostic)
"""

from codegraph_rs.config import GraphBuildConfig, get_settings
from codegraph_rs.diagnostics import Diagnostic, DiagnosticCode
from codegraph_rs.exceptions import CodeGraphError
from codegraph_rs.graph import GraphStore, dumps, loads
from codegraph_rs.observability import setup_logging
from codegraph_rs.pipeline import BuildResult, GraphBuildPipeline

__version__ = "0.1.0"

__all__ = [
    "BuildResult",
    "CodeGraphError",
    "Diagnostic",
    "DiagnosticCode",
    "GraphBuildConfig",
    "GraphBuildPipeline",
    "GraphStore",
    "dumps",
    "get_settings",
    "loads",
    "setup_logging",
]
