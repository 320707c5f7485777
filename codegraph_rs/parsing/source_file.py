"""
Source File representation
"""

from dataclasses import dataclass
from pathlib import Path, PurePosixPath

from codegraph_rs.exceptions import ParsingError

CRATE_ROOT_FILES = {"lib.rs", "main.rs"}


@dataclass
class SourceFile:
    """
    A Rust source file.

    Attributes:
        file_path: Path relative to the crate source root (posix separators)
        content: File content as string
        encoding: File encoding (default: utf-8)
    """

    file_path: str
    content: str
    encoding: str = "utf-8"

    @classmethod
    def from_file(cls, file_path: str | Path, source_root: str | Path, encoding: str = "utf-8") -> "SourceFile":
        """
        Load source file from disk.

        Args:
            file_path: Absolute path, or path relative to source_root
            source_root: Crate source directory (usually `<crate>/src`)
            encoding: File encoding

        Raises:
            ParsingError: File cannot be read or decoded
        """
        file_path = Path(file_path)
        source_root = Path(source_root)

        relative_path = file_path.relative_to(source_root) if file_path.is_absolute() else file_path
        abs_path = source_root / relative_path
        try:
            content = abs_path.read_text(encoding=encoding)
        except (OSError, UnicodeDecodeError) as e:
            raise ParsingError(f"Cannot read source file: {e}", file_path=str(relative_path)) from e

        return cls(file_path=relative_path.as_posix(), content=content, encoding=encoding)

    @classmethod
    def from_content(cls, file_path: str, content: str, encoding: str = "utf-8") -> "SourceFile":
        return cls(file_path=file_path, content=content, encoding=encoding)

    def module_path(self, crate_name: str = "crate") -> tuple[str, ...]:
        """
        Qualified module path implied by the file location.

        lib.rs / main.rs -> (crate,), a/mod.rs -> (crate, a), a/b.rs -> (crate, a, b)
        """
        return module_path_for(self.file_path, crate_name)


def module_path_for(file_path: str, crate_name: str = "crate") -> tuple[str, ...]:
    """Map a crate-relative file path to its module path."""
    parts = list(PurePosixPath(file_path.replace("\\", "/")).parts)
    if not parts:
        return (crate_name,)
    if parts[0] == "src" and len(parts) > 1:
        parts = parts[1:]
    name = parts[-1]
    if name.endswith(".rs"):
        name = name[:-3]
    if len(parts) == 1 and parts[0] in CRATE_ROOT_FILES:
        return (crate_name,)
    if name == "mod":
        return (crate_name, *parts[:-1])
    return (crate_name, *parts[:-1], name)
