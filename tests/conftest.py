"""
Fixtures shared by the tests: the rename table, a fresh contents cache,
a front end that hands back canned matches, and a helper that writes
source files into the test's temporary directory.
"""

import os
from pathlib import Path

import pytest

from caching_file_contents import CachingFileContents
from cindex_helpers import CompilationView, FrontEndResult
from match_results import FilePathStr, MatchResult
from symbol_table import SymbolTable, cuda_to_hip_table


class StubFrontEnd:
    """Hands back canned match results instead of parsing anything.

    Results are keyed by (real path, view); unknown keys yield no matches."""

    def __init__(self):
        self.results: dict[tuple[FilePathStr, CompilationView], FrontEndResult] = {}
        self.calls: list[tuple[FilePathStr, CompilationView]] = []

    def add(
        self,
        path: FilePathStr | Path,
        view: CompilationView,
        matches: list[MatchResult],
        diagnostics: list[str] | None = None,
    ):
        key = (os.path.realpath(path), view)
        self.results[key] = FrontEndResult(matches=list(matches), diagnostics=diagnostics or [])

    def find_matches(self, path: FilePathStr, view: CompilationView) -> FrontEndResult:
        self.calls.append((path, view))
        return self.results.get((os.path.realpath(path), view), FrontEndResult())


@pytest.fixture
def table() -> SymbolTable:
    """The CUDA -> HIP rename table"""
    return cuda_to_hip_table()


@pytest.fixture
def contents() -> CachingFileContents:
    """A fresh original-contents cache"""
    return CachingFileContents()


@pytest.fixture
def stub_front_end() -> StubFrontEnd:
    return StubFrontEnd()


@pytest.fixture
def write_source(tmp_path):
    """Write `text` to `name` inside the test's temporary directory; returns the real path."""

    def write(name: str, text: str) -> FilePathStr:
        p = tmp_path / name
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_text(text, encoding="utf-8")
        return os.path.realpath(p)

    return write
