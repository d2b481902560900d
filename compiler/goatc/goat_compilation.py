#  SPDX-License-Identifier: MIT OR Apache-2.0
#  Copyright (c) 2025-2026 gwz

from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional

from goat_ast import SourceFile


@dataclass
class Package:
    """
    All source files sharing one package path.

    Files keep the order the parser handed them over; every stage that
    needs a stable order sorts by `file_key` instead.
    """
    path: str
    files: List[SourceFile] = field(default_factory=list)

    @property
    def name(self) -> str:
        return self.path.rsplit("/", 1)[-1]

    def sorted_files(self) -> List[SourceFile]:
        return sorted(self.files, key=file_key)


def file_key(f: SourceFile) -> str:
    """Stable identity of a file inside its package."""
    return f.filename or f"<{f.package}:{id(f)}>"


@dataclass
class CompilationUnit:
    """
    A closed set of packages analyzed together.

    - packages: mapping package path -> Package
    - entry: optional path of the package the caller is building
    """
    packages: Dict[str, Package]
    entry: Optional[str] = None

    @staticmethod
    def from_files(files: List[SourceFile], entry: Optional[str] = None) -> "CompilationUnit":
        """Group parsed files by their declared package path."""
        packages: Dict[str, Package] = {}
        for f in files:
            packages.setdefault(f.package, Package(path=f.package)).files.append(f)
        return CompilationUnit(packages=packages, entry=entry)

    def __contains__(self, package_path: str) -> bool:
        return package_path in self.packages

    def iter_files(self) -> Iterator[SourceFile]:
        for path in sorted(self.packages):
            yield from self.packages[path].sorted_files()

    def all_files(self) -> List[SourceFile]:
        return list(self.iter_files())
