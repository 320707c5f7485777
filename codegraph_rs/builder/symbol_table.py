"""
Symbol Table

Qualified-path index of declarations plus the `use` bindings of every
module. Path resolution follows the 2018-edition rules the builder needs:
`crate`/`self`/`super` anchors, module-relative paths, `use` aliases
(including re-exports and globs), the standard prelude and extern crates.

A per-file table is filled during traversal; the merge stage builds the
global table from all fragments and the resolver resolves against it.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from enum import Enum

from codegraph_rs.exceptions import PathCollisionError
from codegraph_rs.ir.ids import NodeId, TraitId
from codegraph_rs.ir.models import NodeKind
from codegraph_rs.ir.relations import SymbolSpace
from codegraph_rs.observability import get_logger

logger = get_logger(__name__)

TRAIT_KIND = "trait"

EXTERNAL_ROOTS = frozenset({"std", "core", "alloc", "proc_macro", "test"})

SPACE_OF_KIND: dict[str, SymbolSpace] = {
    NodeKind.MODULE.value: SymbolSpace.TYPE,
    NodeKind.STRUCT.value: SymbolSpace.TYPE,
    NodeKind.UNION.value: SymbolSpace.TYPE,
    NodeKind.ENUM.value: SymbolSpace.TYPE,
    NodeKind.VARIANT.value: SymbolSpace.TYPE,
    NodeKind.TYPE_ALIAS.value: SymbolSpace.TYPE,
    TRAIT_KIND: SymbolSpace.TYPE,
    NodeKind.FUNCTION.value: SymbolSpace.VALUE,
    NodeKind.VALUE.value: SymbolSpace.VALUE,
    NodeKind.MACRO.value: SymbolSpace.MACRO,
}

PRELUDE: dict[SymbolSpace, dict[str, str]] = {
    SymbolSpace.TYPE: {
        "Option": "std::option::Option",
        "Result": "std::result::Result",
        "Vec": "std::vec::Vec",
        "String": "std::string::String",
        "Box": "std::boxed::Box",
        "Clone": "std::clone::Clone",
        "Copy": "std::marker::Copy",
        "Send": "std::marker::Send",
        "Sync": "std::marker::Sync",
        "Sized": "std::marker::Sized",
        "Unpin": "std::marker::Unpin",
        "Drop": "std::ops::Drop",
        "Fn": "std::ops::Fn",
        "FnMut": "std::ops::FnMut",
        "FnOnce": "std::ops::FnOnce",
        "Iterator": "std::iter::Iterator",
        "IntoIterator": "std::iter::IntoIterator",
        "DoubleEndedIterator": "std::iter::DoubleEndedIterator",
        "ExactSizeIterator": "std::iter::ExactSizeIterator",
        "Extend": "std::iter::Extend",
        "FromIterator": "std::iter::FromIterator",
        "Default": "std::default::Default",
        "Eq": "std::cmp::Eq",
        "PartialEq": "std::cmp::PartialEq",
        "Ord": "std::cmp::Ord",
        "PartialOrd": "std::cmp::PartialOrd",
        "AsRef": "std::convert::AsRef",
        "AsMut": "std::convert::AsMut",
        "Into": "std::convert::Into",
        "From": "std::convert::From",
        "TryFrom": "std::convert::TryFrom",
        "TryInto": "std::convert::TryInto",
        "ToOwned": "std::borrow::ToOwned",
        "ToString": "std::string::ToString",
    },
    SymbolSpace.VALUE: {
        "Some": "std::option::Option::Some",
        "None": "std::option::Option::None",
        "Ok": "std::result::Result::Ok",
        "Err": "std::result::Result::Err",
        "drop": "std::mem::drop",
    },
    SymbolSpace.MACRO: {
        name: f"std::{name}"
        for name in (
            "assert",
            "assert_eq",
            "assert_ne",
            "cfg",
            "column",
            "compile_error",
            "concat",
            "dbg",
            "debug_assert",
            "debug_assert_eq",
            "debug_assert_ne",
            "env",
            "eprint",
            "eprintln",
            "file",
            "format",
            "format_args",
            "include",
            "include_bytes",
            "include_str",
            "line",
            "matches",
            "module_path",
            "option_env",
            "panic",
            "print",
            "println",
            "stringify",
            "thread_local",
            "todo",
            "unimplemented",
            "unreachable",
            "vec",
            "write",
            "writeln",
        )
    },
}


@dataclass(frozen=True)
class SymbolEntry:
    """A declaration registered under its qualified path."""

    path: str
    space: SymbolSpace
    target: NodeId | TraitId
    kind: str
    file_path: str | None = None
    cfg_gated: bool = False


@dataclass(frozen=True)
class ImportBinding:
    """
    A name bound by `use` in a module.

    target is the path as written (relative to scope); name is the visible
    name, "*" for glob imports.
    """

    scope: str
    name: str
    target: tuple[str, ...]
    import_id: NodeId
    file_path: str | None = None
    is_glob: bool = False


class ResolutionStatus(str, Enum):
    LOCAL = "local"
    EXTERNAL = "external"
    PENDING = "pending"
    MISSING = "missing"


@dataclass(frozen=True)
class PathResolution:
    """
    Outcome of resolving a path.

    path is the canonical absolute path for LOCAL and EXTERNAL results and
    the path as written otherwise.
    """

    status: ResolutionStatus
    path: str
    entry: SymbolEntry | None = None

    @property
    def is_settled(self) -> bool:
        return self.status in (ResolutionStatus.LOCAL, ResolutionStatus.EXTERNAL)


def parent_path(path: str) -> str | None:
    if "::" not in path:
        return None
    return path.rsplit("::", 1)[0]


class SymbolTable:
    """Qualified path -> declaration index with module-scoped imports."""

    def __init__(self, crate_name: str = "crate", resolve_prelude: bool = True):
        self.crate_name = crate_name
        self.resolve_prelude = resolve_prelude
        self._entries: dict[tuple[SymbolSpace, str], SymbolEntry] = {}
        self._imports: dict[str, dict[str, ImportBinding]] = {}
        self._globs: dict[str, list[ImportBinding]] = {}
        self._block_parents: dict[str, str] = {}
        self._extern_crates: dict[str, str] = {}

    # ============================================================
    # Registration
    # ============================================================

    def declare(self, entry: SymbolEntry) -> SymbolEntry | None:
        """
        Register a declaration.

        Returns:
            The entry, or None when it duplicates a cfg-gated declaration
            that already holds the path (only one configuration is kept)

        Raises:
            PathCollisionError: Another declaration already holds the path
        """
        key = (entry.space, entry.path)
        existing = self._entries.get(key)
        if existing is None:
            self._entries[key] = entry
            return entry
        if existing.target.key == entry.target.key:
            return existing
        if existing.cfg_gated and entry.cfg_gated:
            return None
        raise PathCollisionError(entry.path, existing.file_path, entry.file_path)

    def add_import(self, binding: ImportBinding) -> None:
        if binding.is_glob:
            self._globs.setdefault(binding.scope, []).append(binding)
            return
        scope_imports = self._imports.setdefault(binding.scope, {})
        if binding.name in scope_imports:
            logger.debug("duplicate_import_ignored", scope=binding.scope, name=binding.name)
            return
        scope_imports[binding.name] = binding

    def add_block_scope(self, scope: str, parent: str) -> None:
        """Register a function body scope whose lexical parent is `parent`."""
        self._block_parents[scope] = parent

    def add_extern_crate(self, name: str, crate: str) -> None:
        self._extern_crates[name] = crate

    # ============================================================
    # Queries
    # ============================================================

    def lookup(self, path: str, space: SymbolSpace | None = None) -> SymbolEntry | None:
        if space is not None:
            return self._entries.get((space, path))
        for candidate in SymbolSpace:
            entry = self._entries.get((candidate, path))
            if entry is not None:
                return entry
        return None

    def entries(self) -> Iterator[SymbolEntry]:
        return iter(self._entries.values())

    def imports(self) -> Iterator[ImportBinding]:
        for scope_imports in self._imports.values():
            yield from scope_imports.values()
        for globs in self._globs.values():
            yield from globs

    def is_module(self, path: str) -> bool:
        entry = self._entries.get((SymbolSpace.TYPE, path))
        return entry is not None and entry.kind == NodeKind.MODULE.value

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, path: str) -> bool:
        return self.lookup(path) is not None

    # ============================================================
    # Resolution
    # ============================================================

    def resolve(
        self,
        segments: tuple[str, ...],
        scope: str,
        space: SymbolSpace | None = SymbolSpace.TYPE,
        *,
        final: bool = False,
        leading_colon: bool = False,
    ) -> PathResolution:
        """
        Resolve a path written in `scope`.

        Args:
            segments: Path segments as written (`("super", "a", "B")`)
            scope: Qualified path of the module (or block) the path appears in
            space: Namespace to look the last segment up in; None for any
            final: False during traversal (unknown paths stay PENDING);
                True in the resolve stage (unknown paths become EXTERNAL or
                MISSING)
            leading_colon: Path was written `::a::b` (extern crate)
        """
        return self._resolve(tuple(segments), scope, space, final, leading_colon, frozenset())

    def resolve_macro(self, segments: tuple[str, ...], scope: str, *, final: bool = False) -> PathResolution:
        """
        Resolve a macro path.

        Single-segment `macro_rules!` names are textually scoped, so the
        enclosing modules are searched after the path-based lookup fails.
        """
        resolution = self.resolve(segments, scope, SymbolSpace.MACRO, final=final)
        if resolution.is_settled or len(segments) != 1:
            return resolution
        module: str | None = self._module_of(scope)
        while module is not None:
            entry = self.lookup(f"{module}::{segments[0]}", SymbolSpace.MACRO)
            if entry is not None:
                return PathResolution(ResolutionStatus.LOCAL, entry.path, entry)
            module = parent_path(module)
        return resolution

    def _resolve(
        self,
        segments: tuple[str, ...],
        scope: str,
        space: SymbolSpace | None,
        final: bool,
        leading_colon: bool,
        seen: frozenset,
    ) -> PathResolution:
        written = "::".join(segments)
        if not segments:
            return PathResolution(ResolutionStatus.MISSING, written)
        if leading_colon:
            return PathResolution(ResolutionStatus.EXTERNAL, written)

        first = segments[0]
        if first in ("crate", self.crate_name):
            return self._resolve_absolute((self.crate_name, *segments[1:]), space, final, seen, written)
        if first in ("self", "super"):
            base: str | None = self._module_of(scope)
            rest = list(segments)
            if rest[0] == "self":
                rest.pop(0)
            while rest and rest[0] == "super":
                base = parent_path(base) if base else None
                rest.pop(0)
            if base is None:
                return PathResolution(ResolutionStatus.MISSING, written)
            if not rest:
                return self._resolve_absolute(tuple(base.split("::")), SymbolSpace.TYPE, final, seen, written)
            return self._resolve_absolute((*base.split("::"), *rest), space, final, seen, written)
        if first in EXTERNAL_ROOTS:
            return PathResolution(ResolutionStatus.EXTERNAL, written)
        if first in self._extern_crates and len(segments) > 1:
            return PathResolution(ResolutionStatus.EXTERNAL, "::".join((self._extern_crates[first], *segments[1:])))

        for lexical_scope in self._lexical_scopes(scope):
            found = self._resolve_in_scope(segments, lexical_scope, space, final, seen)
            if found is not None:
                return found

        if len(segments) == 1 and self.resolve_prelude:
            for candidate in (space,) if space is not None else tuple(SymbolSpace):
                prelude_path = PRELUDE[candidate].get(first)
                if prelude_path is not None:
                    return PathResolution(ResolutionStatus.EXTERNAL, prelude_path)

        if not final:
            return PathResolution(ResolutionStatus.PENDING, written)

        for lexical_scope in self._lexical_scopes(scope):
            for glob in self._globs.get(lexical_scope, ()):
                if self._is_external_target(glob.target, glob.scope):
                    return PathResolution(ResolutionStatus.EXTERNAL, "::".join((*glob.target, *segments)))

        if len(segments) > 1 and not self._is_local_root(first, scope):
            return PathResolution(ResolutionStatus.EXTERNAL, written)
        return PathResolution(ResolutionStatus.MISSING, written)

    def _resolve_in_scope(
        self,
        segments: tuple[str, ...],
        scope: str,
        space: SymbolSpace | None,
        final: bool,
        seen: frozenset,
    ) -> PathResolution | None:
        candidate = "::".join((scope, *segments))
        entry = self.lookup(candidate, space)
        if entry is not None:
            return PathResolution(ResolutionStatus.LOCAL, entry.path, entry)
        if len(segments) > 1 and self.is_module(f"{scope}::{segments[0]}"):
            return self._resolve_absolute(tuple(candidate.split("::")), space, final, seen, "::".join(segments))

        binding = self._imports.get(scope, {}).get(segments[0])
        if binding is not None:
            key = (binding.scope, binding.name)
            if key not in seen:
                return self._resolve(
                    (*binding.target, *segments[1:]),
                    binding.scope,
                    space,
                    final,
                    False,
                    seen | {key},
                )

        for glob in self._globs.get(scope, ()):
            key = (glob.scope, "*", glob.target)
            if key in seen:
                continue
            found = self._resolve(
                (*glob.target, *segments),
                glob.scope,
                space,
                True,
                False,
                seen | {key},
            )
            if found.status == ResolutionStatus.LOCAL:
                return found
        return None

    def _resolve_absolute(
        self,
        segments: tuple[str, ...],
        space: SymbolSpace | None,
        final: bool,
        seen: frozenset,
        written: str,
    ) -> PathResolution:
        path = "::".join(segments)
        entry = self.lookup(path, space)
        if entry is not None:
            return PathResolution(ResolutionStatus.LOCAL, entry.path, entry)
        if len(segments) == 1:
            # the crate root itself
            return PathResolution(ResolutionStatus.LOCAL if self.is_module(path) else ResolutionStatus.MISSING, path)

        scope = "::".join(segments[:-1])
        found = self._resolve_in_scope((segments[-1],), scope, space, final, seen)
        if found is not None and found.status != ResolutionStatus.MISSING:
            return found
        if not final:
            return PathResolution(ResolutionStatus.PENDING, written)
        return PathResolution(ResolutionStatus.MISSING, path)

    def _lexical_scopes(self, scope: str) -> Iterator[str]:
        current: str | None = scope
        while current is not None:
            yield current
            current = self._block_parents.get(current)

    def _module_of(self, scope: str) -> str:
        while scope in self._block_parents:
            scope = self._block_parents[scope]
        return scope

    def _is_external_target(self, target: tuple[str, ...], scope: str) -> bool:
        if not target:
            return False
        first = target[0]
        if first in EXTERNAL_ROOTS or first in self._extern_crates:
            return True
        if first in ("crate", "self", "super", self.crate_name):
            return False
        return not self._is_local_root(first, scope)

    def _is_local_root(self, first: str, scope: str) -> bool:
        module = self._module_of(scope)
        if self.lookup(f"{module}::{first}") is not None:
            return True
        if first in self._imports.get(module, {}):
            return True
        return self.lookup(f"{self.crate_name}::{first}") is not None and module == self.crate_name
