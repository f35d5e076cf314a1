import os
import shutil
from dataclasses import dataclass
from pathlib import Path

from caching_file_contents import CachingFileContents
from cindex_helpers import CompilationView, FrontEnd
from constants import CUDA_SOURCE_EXTENSION, SCRATCH_MARKER_EXTENSION
from match_results import Edit, FilePathStr, MatchResult, describe_match
from replacement_set import ApplyResult, ConflictPolicy, ReplacementSet
from symbol_table import SymbolTable
from translation_rules import RULE_ORDER, edits_for_match

# Host code is analyzed first, so its edits win any span conflict with the
# device view of the same text.
PASS_ORDER = (CompilationView.HOST_ONLY, CompilationView.DEVICE_ONLY)


def scratch_path_for(path: Path) -> Path | None:
    """`foo.cu` -> `foo.hip.cu`; None for files that are not CUDA sources."""
    if path.suffix != CUDA_SOURCE_EXTENSION:
        return None
    return path.with_name(path.name.removesuffix(CUDA_SOURCE_EXTENSION) + SCRATCH_MARKER_EXTENSION)


def original_path_for(scratch: Path) -> Path:
    if not scratch.name.endswith(SCRATCH_MARKER_EXTENSION):
        return scratch
    return scratch.with_name(
        scratch.name.removesuffix(SCRATCH_MARKER_EXTENSION) + CUDA_SOURCE_EXTENSION
    )


def ordered_matches(matches: list[MatchResult]) -> list[MatchResult]:
    """Matches in rule order, keeping discovery order within a rule."""
    return sorted(matches, key=lambda m: RULE_ORDER[type(m)])


def run_pass(
    files: list[FilePathStr],
    view: CompilationView,
    front_end: FrontEnd,
    table: SymbolTable,
    contents: CachingFileContents,
) -> list[Edit]:
    """Parse every file under one compilation view and collect the proposed edits.

    A file that fails to parse still contributes the matches clang produced."""
    edits: list[Edit] = []
    for path in files:
        result = front_end.find_matches(path, view)
        if result.failed:
            print(f"{view.name} pass: errors while parsing {path}:")
            for d in result.diagnostics:
                print(f"  {d}")
        for m in ordered_matches(result.matches):
            produced = edits_for_match(m, table, contents)
            print(f"{view.name} pass: found {describe_match(m)}")
            for edit in produced:
                print(
                    f"    {edit.origin.value}: {contents.text_for(edit.span)!r}"
                    f" will be replaced with {edit.new_text!r}"
                )
            edits.extend(produced)
    return edits


def collect_replacements(
    files: list[FilePathStr],
    front_end: FrontEnd,
    table: SymbolTable,
    contents: CachingFileContents,
    policy: ConflictPolicy = ConflictPolicy.SPAN_IDENTITY,
) -> ReplacementSet:
    replacements = ReplacementSet(policy)
    for view in PASS_ORDER:
        for edit in run_pass(files, view, front_end, table, contents):
            replacements.propose(edit)
    return replacements


def prepare_scratch_copies(paths: list[Path]) -> dict[Path, Path]:
    """Copy each CUDA source to its scratch name; returns scratch -> original."""
    scratch: dict[Path, Path] = {}
    for path in paths:
        dst = scratch_path_for(path)
        if dst is None:
            print(f"Skipping {path}: not a {CUDA_SOURCE_EXTENSION} source file")
            continue
        shutil.copyfile(path, dst)
        scratch[dst] = path
    return scratch


def restore_scratch_copies(scratch: dict[Path, Path]):
    for dst, original in scratch.items():
        if dst.exists():
            os.replace(dst, original)


@dataclass
class TranslationOutcome:
    replacements: ReplacementSet
    applied: ApplyResult

    @property
    def ok(self) -> bool:
        return self.applied.ok


def translate_files(
    paths: list[Path],
    front_end: FrontEnd,
    contents: CachingFileContents,
    table: SymbolTable,
    policy: ConflictPolicy = ConflictPolicy.SPAN_IDENTITY,
    export_path: Path | None = None,
) -> TranslationOutcome:
    """Translate CUDA sources in place.

    The scratch copies are parsed and rewritten, then renamed back over the
    original paths, even if translation fails part way."""
    scratch = prepare_scratch_copies(paths)
    try:
        files = [os.path.realpath(p) for p in scratch]
        replacements = collect_replacements(files, front_end, table, contents, policy)

        print("Replacements collected by the tool:")
        for edit in replacements.edits():
            span = edit.span
            print(f"  {span.file}: {span.start}:+{span.length}:{edit.new_text!r}")

        applied = replacements.apply(contents)
        if export_path is not None:
            replacements.export_json(export_path)
    finally:
        restore_scratch_copies(scratch)
    return TranslationOutcome(replacements, applied)
