import os
import re
from pathlib import Path

from caching_file_contents import CachingFileContents
from cindex_helpers import CompilationView, FrontEndResult
from match_results import (
    BuiltinAccess,
    EditOrigin,
    EnumOrTypeRef,
    FunctionCall,
    Include,
    Span,
    StringLiteral,
    TypeRefKind,
)
from replacement_set import ConflictPolicy
import translation

HOST = CompilationView.HOST_ONLY
DEVICE = CompilationView.DEVICE_ONLY


def name_span(path: str, text: str, name: str) -> Span:
    start = text.index(name)
    return Span(path, start, start + len(name))


def test_scratch_names():
    assert translation.scratch_path_for(Path("src/vec.cu")) == Path("src/vec.hip.cu")
    assert translation.scratch_path_for(Path("src/vec.cuh")) is None
    assert translation.scratch_path_for(Path("src/vec.cpp")) is None
    assert translation.original_path_for(Path("src/vec.hip.cu")) == Path("src/vec.cu")
    assert translation.original_path_for(Path("src/vec.cpp")) == Path("src/vec.cpp")


def test_host_pass_edits_win_over_device_pass(table, contents, stub_front_end, write_source):
    text = "cudaMalloc(&p, n);"
    path = write_source("a.hip.cu", text)
    span = name_span(path, text, "cudaMalloc")
    stub_front_end.add(path, HOST, [FunctionCall("cudaMalloc", span)])
    stub_front_end.add(
        path, DEVICE, [EnumOrTypeRef("cudaMemset", span, TypeRefKind.ENUM_CONSTANT_REF)]
    )

    rs = translation.collect_replacements([path], stub_front_end, table, contents)

    assert [e.new_text for e in rs.edits()] == ["hipMalloc"]
    (rejected,) = rs.rejected()
    assert rejected.edit.new_text == "hipMemset"
    assert stub_front_end.calls == [(path, HOST), (path, DEVICE)]


def test_rules_apply_in_enumerated_order_within_a_pass(
    table, contents, stub_front_end, write_source
):
    text = "cudaMalloc(&p, n);"
    path = write_source("a.hip.cu", text)
    span = name_span(path, text, "cudaMalloc")
    # Discovered in the opposite order of the rule enumeration.
    stub_front_end.add(
        path,
        HOST,
        [
            EnumOrTypeRef("cudaMemset", span, TypeRefKind.ENUM_CONSTANT_REF),
            FunctionCall("cudaMalloc", span),
        ],
    )

    rs = translation.collect_replacements([path], stub_front_end, table, contents)

    (edit,) = rs.edits()
    assert edit.origin == EditOrigin.CALL_RENAME


def test_failed_parse_still_contributes_its_matches(table, contents, stub_front_end, write_source):
    text = 'cudaFree(p); puts("cuda");'
    path = write_source("a.hip.cu", text)
    literal = Span(path, text.index('"'), text.rindex('"') + 1)
    stub_front_end.add(
        path,
        HOST,
        [FunctionCall("cudaFree", name_span(path, text, "cudaFree"))],
        diagnostics=["a.hip.cu:1:20: error: use of undeclared identifier 'puts'"],
    )
    stub_front_end.add(path, DEVICE, [StringLiteral('"cuda"', literal)])

    rs = translation.collect_replacements([path], stub_front_end, table, contents)

    assert sorted(e.new_text for e in rs.edits()) == ['"hip"', "hipFree"]


def test_translate_files_rewrites_in_place_and_restores_names(tmp_path, table, stub_front_end):
    src = tmp_path / "vec.cu"
    text = (
        "#include <cuda_runtime.h>\n"
        "__global__ void k(float *x) { x[threadIdx.x] = 0; }\n"
        "int main() { cudaDeviceSynchronize(); }\n"
    )
    src.write_text(text, encoding="utf-8")
    notes = tmp_path / "notes.txt"
    notes.write_text("cudaMalloc", encoding="utf-8")

    scratch = os.path.realpath(tmp_path / "vec.hip.cu")
    inc = Span(scratch, text.index("<"), text.index(">") + 1)
    stub_front_end.add(
        scratch,
        HOST,
        [
            Include("cuda_runtime.h", True, inc, in_main_file=True),
            FunctionCall("cudaDeviceSynchronize", name_span(scratch, text, "cudaDeviceSynchronize")),
        ],
    )
    stub_front_end.add(
        scratch,
        DEVICE,
        [
            BuiltinAccess("threadIdx", "__fetch_builtin_x", name_span(scratch, text, "threadIdx.x")),
            Include("cuda_runtime.h", True, inc, in_main_file=True),
        ],
    )

    outcome = translation.translate_files(
        [src, notes], stub_front_end, CachingFileContents(), table
    )

    assert outcome.ok
    assert src.read_text(encoding="utf-8") == (
        "#include <hip_runtime.h>\n"
        "__global__ void k(float *x) { x[hipThreadIdx_x] = 0; }\n"
        "int main() { hipDeviceSynchronize(); }\n"
    )
    assert not (tmp_path / "vec.hip.cu").exists()
    assert notes.read_text(encoding="utf-8") == "cudaMalloc"
    assert [view for _, view in stub_front_end.calls] == [HOST, DEVICE]


def test_unapplied_edits_make_the_run_fail(tmp_path, table, stub_front_end):
    src = tmp_path / "a.cu"
    text = "cudaMalloc();"
    src.write_text(text, encoding="utf-8")
    scratch = os.path.realpath(tmp_path / "a.hip.cu")
    stub_front_end.add(
        scratch,
        HOST,
        [
            FunctionCall("cudaMalloc", Span(scratch, 0, 12)),
            # Not a real literal; only its span matters here.
            StringLiteral("cudaMalloc()", Span(scratch, 0, 12)),
        ],
    )
    stub_front_end.add(scratch, DEVICE, [StringLiteral("cudaMalloc()", Span(scratch, 0, 12))])

    outcome = translation.translate_files([src], stub_front_end, CachingFileContents(), table)

    assert not outcome.ok
    assert len(outcome.applied.failed) == 1
    assert src.read_text(encoding="utf-8") == "hipMalloc();"
    assert not (tmp_path / "a.hip.cu").exists()


def test_strict_overlap_policy_rejects_before_applying(tmp_path, table, stub_front_end):
    src = tmp_path / "a.cu"
    src.write_text("cudaMalloc();", encoding="utf-8")
    scratch = os.path.realpath(tmp_path / "a.hip.cu")
    stub_front_end.add(
        scratch,
        HOST,
        [
            FunctionCall("cudaMalloc", Span(scratch, 0, 12)),
            StringLiteral("cudaMalloc()", Span(scratch, 0, 12)),
        ],
    )

    outcome = translation.translate_files(
        [src], stub_front_end, CachingFileContents(), table, ConflictPolicy.INTERVAL_OVERLAP
    )

    assert outcome.ok
    assert len(outcome.replacements.rejected()) == 1
    assert src.read_text(encoding="utf-8") == "hipMalloc();"


class TextualFrontEnd:
    """Finds calls, string literals and includes with regular expressions."""

    CALL_RE = re.compile(r"\b([A-Za-z_]\w*)\s*\(")
    STRING_RE = re.compile(r'"(?:[^"\\\n]|\\.)*"')
    INCLUDE_RE = re.compile(r"#include\s*(<([^>\n]*)>)")

    def find_matches(self, path, view) -> FrontEndResult:
        text = Path(path).read_text(encoding="utf-8")
        matches = []
        for m in self.INCLUDE_RE.finditer(text):
            span = Span(path, m.start(1), m.end(1))
            matches.append(Include(m.group(2), True, span, in_main_file=True))
        for m in self.CALL_RE.finditer(text):
            matches.append(FunctionCall(m.group(1), Span(path, m.start(1), m.end())))
        for m in self.STRING_RE.finditer(text):
            matches.append(StringLiteral(m.group(0), Span(path, m.start(), m.end())))
        return FrontEndResult(matches=matches)


def test_translating_translated_output_changes_nothing(tmp_path, table):
    src = tmp_path / "err.cu"
    src.write_text(
        "#include <cuda_runtime.h>\n"
        "int main() {\n"
        "  cudaMalloc(&p, 16);\n"
        '  printf("cuda says %s\\n", cudaGetErrorString(cudaGetLastError()));\n'
        "  cudaFree(p);\n"
        "}\n",
        encoding="utf-8",
    )

    first = translation.translate_files([src], TextualFrontEnd(), CachingFileContents(), table)
    translated = src.read_text(encoding="utf-8")

    assert first.ok
    assert translated == (
        "#include <hip_runtime.h>\n"
        "int main() {\n"
        "  hipMalloc(&p, 16);\n"
        '  printf("hip says %s\\n", hipGetErrorString(hipGetLastError()));\n'
        "  hipFree(p);\n"
        "}\n"
    )

    second = translation.translate_files([src], TextualFrontEnd(), CachingFileContents(), table)

    assert len(second.replacements) == 0
    assert second.replacements.rejected() == []
    assert src.read_text(encoding="utf-8") == translated
