"""
Graph Layer

Immutable graph store and its snapshot format.
"""

from codegraph_rs.graph.serialization import SNAPSHOT_SCHEMA_VERSION, dumps, from_snapshot, loads, to_snapshot
from codegraph_rs.graph.store import GraphIndex, GraphStore

__all__ = [
    "SNAPSHOT_SCHEMA_VERSION",
    "GraphIndex",
    "GraphStore",
    "dumps",
    "from_snapshot",
    "loads",
    "to_snapshot",
]
