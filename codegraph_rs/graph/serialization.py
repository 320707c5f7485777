"""
Graph snapshots.

A snapshot is a versioned, ordered plain-data record of a GraphStore:

    {
        "schema_version": "1.0",
        "nodes": [...],        # by id, each tagged with its "kind"
        "traits": [...],
        "types": [...],
        "relations": [...],    # admission order
        "diagnostics": [...],
    }

Ids are encoded as [namespace, value] pairs, enums by value, dataclasses
as dicts. Decoding is driven by the dataclass type hints, so adding a field
to an IR dataclass needs no codec change.
"""

from __future__ import annotations

import dataclasses
import json
import types
from enum import Enum
from functools import lru_cache
from typing import Any, Union, get_args, get_origin, get_type_hints

from codegraph_rs.diagnostics import Diagnostic
from codegraph_rs.exceptions import SnapshotVersionError
from codegraph_rs.graph.store import GraphStore
from codegraph_rs.ir.ids import ID_CLASSES, _EntityId, id_from_key
from codegraph_rs.ir.models import NODE_CLASSES, NodeKind, TraitNode, TypeNode
from codegraph_rs.ir.relations import Relation

SNAPSHOT_SCHEMA_VERSION = "1.0"

TRAIT_TAG = "trait"


# ============================================================
# Encoding
# ============================================================


def _encode(value: Any) -> Any:
    if isinstance(value, _EntityId):
        return [value.namespace.value, value.value]
    if isinstance(value, Enum):
        return value.value
    if dataclasses.is_dataclass(value):
        return {f.name: _encode(getattr(value, f.name)) for f in dataclasses.fields(value)}
    if isinstance(value, (tuple, list)):
        return [_encode(v) for v in value]
    return value


def _encode_node(node) -> dict:
    data = _encode(node)
    data["kind"] = TRAIT_TAG if isinstance(node, TraitNode) else node.kind.value
    return data


def to_snapshot(store: GraphStore) -> dict:
    """Plain-data snapshot of a graph (JSON compatible)."""
    return {
        "schema_version": SNAPSHOT_SCHEMA_VERSION,
        "nodes": [_encode_node(node) for node in store.nodes.values()],
        "traits": [_encode_node(trait) for trait in store.traits.values()],
        "types": [_encode(type_node) for type_node in store.types.values()],
        "relations": [_encode(relation) for relation in store.relations()],
        "diagnostics": [_encode(diagnostic) for diagnostic in store.diagnostics],
    }


# ============================================================
# Decoding
# ============================================================


@lru_cache(maxsize=None)
def _hints(cls: type) -> dict[str, Any]:
    return get_type_hints(cls)


def _is_union(hint: Any) -> bool:
    return get_origin(hint) in (Union, types.UnionType)


def _decode(value: Any, hint: Any) -> Any:
    if value is None:
        return None

    if _is_union(hint):
        members = [arg for arg in get_args(hint) if arg is not type(None)]
        if isinstance(value, list) and any(m in ID_CLASSES.values() for m in members):
            return id_from_key(value)
        if isinstance(value, dict):
            for member in members:
                if dataclasses.is_dataclass(member):
                    return _decode_dataclass(value, member)
        return _decode(value, members[0])

    if isinstance(hint, type) and issubclass(hint, _EntityId):
        return id_from_key(value)

    origin = get_origin(hint)
    if origin is tuple:
        args = get_args(hint)
        if len(args) == 2 and args[1] is Ellipsis:
            return tuple(_decode(v, args[0]) for v in value)
        return tuple(_decode(v, a) for v, a in zip(value, args))

    if dataclasses.is_dataclass(hint):
        return _decode_dataclass(value, hint)
    if isinstance(hint, type) and issubclass(hint, Enum):
        return hint(value)
    return value


def _decode_dataclass(data: dict, cls: type) -> Any:
    hints = _hints(cls)
    kwargs = {
        f.name: _decode(data[f.name], hints[f.name])
        for f in dataclasses.fields(cls)
        if f.init and f.name in data
    }
    return cls(**kwargs)


def _check_version(found: str | None) -> None:
    if not isinstance(found, str):
        raise SnapshotVersionError(found, SNAPSHOT_SCHEMA_VERSION)
    if found.split(".")[0] != SNAPSHOT_SCHEMA_VERSION.split(".")[0]:
        raise SnapshotVersionError(found, SNAPSHOT_SCHEMA_VERSION)


def from_snapshot(snapshot: dict) -> GraphStore:
    """
    Rebuild a graph from a snapshot.

    Raises:
        SnapshotVersionError: Missing or incompatible schema_version
    """
    _check_version(snapshot.get("schema_version"))

    nodes = []
    for data in snapshot.get("nodes", []):
        cls = NODE_CLASSES[NodeKind(data["kind"])]
        nodes.append(_decode_dataclass(data, cls))
    traits = [_decode_dataclass(data, TraitNode) for data in snapshot.get("traits", [])]
    type_nodes = [_decode_dataclass(data, TypeNode) for data in snapshot.get("types", [])]
    relations = [_decode_dataclass(data, Relation) for data in snapshot.get("relations", [])]
    diagnostics = [_decode_dataclass(data, Diagnostic) for data in snapshot.get("diagnostics", [])]

    return GraphStore(
        nodes=nodes,
        traits=traits,
        types=type_nodes,
        relations=relations,
        diagnostics=diagnostics,
    )


def dumps(store: GraphStore, indent: int | None = None) -> str:
    return json.dumps(to_snapshot(store), indent=indent, ensure_ascii=False)


def loads(text: str) -> GraphStore:
    return from_snapshot(json.loads(text))
