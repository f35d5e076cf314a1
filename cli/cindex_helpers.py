import os
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Generator, Protocol

from clang.cindex import (  # type: ignore
    Config,
    Cursor,
    CursorKind,
    Diagnostic,
    Index,
    Token,
    TokenKind,
    TranslationUnit,
    TranslationUnitLoadError,
)

from caching_file_contents import CachingFileContents
from constants import BUILTIN_RECORD_PREFIX, DEFAULT_LAUNCH_CONFIG_TYPES
from match_results import (
    BuiltinAccess,
    EnumOrTypeRef,
    FilePathStr,
    FunctionCall,
    Include,
    KernelLaunch,
    MacroBodyIdentifier,
    MatchResult,
    Span,
    StringLiteral,
    TypeRefKind,
)
from symbol_table import SOURCE_API_NAME_RE


class CompilationView(Enum):
    """The two views clang can give of one CUDA source file."""

    HOST_ONLY = "--cuda-host-only"
    DEVICE_ONLY = "--cuda-device-only"


@dataclass
class FrontEndResult:
    matches: list[MatchResult] = field(default_factory=list)
    # Error diagnostics reported while parsing; matches are still usable.
    diagnostics: list[str] = field(default_factory=list)

    @property
    def failed(self) -> bool:
        return bool(self.diagnostics)


class FrontEnd(Protocol):
    def find_matches(self, path: FilePathStr, view: CompilationView) -> FrontEndResult: ...


def create_clang_index(libclang_path: str | None = None) -> Index:
    """Create a clang Index, optionally pointing the bindings at a specific libclang."""
    if libclang_path and not Config.loaded:
        Config.set_library_file(libclang_path)
    return Index.create()


CONFIGURE_CALL_NAMES = ("cudaConfigureCall", "__cudaPushCallConfiguration")

# Cursors worth looking at outside the main file; everything else in an
# included header is skipped without descending into it.
PREPROCESSING_KINDS = (CursorKind.INCLUSION_DIRECTIVE, CursorKind.MACRO_DEFINITION)

OPENERS = {"(": ")", "[": "]", "{": "}"}


def yield_matching_cursors(
    root_cursor: Cursor,
    cursor_kinds_of_interest: list[CursorKind],
    descend: Callable[[Cursor], bool] = lambda c: True,
) -> Generator[Cursor, None, None]:
    """Yield all cursors of the given kinds beneath `root_cursor`.

    Subtrees whose root fails `descend` are neither yielded nor visited."""
    worklist: list[Cursor] = [root_cursor]
    while worklist:
        current = worklist.pop()
        if current.kind in cursor_kinds_of_interest:
            yield current

        for child in current.get_children():
            if descend(child):
                worklist.append(child)


def split_top_level(tokens: list[Token]) -> list[list[Token]]:
    """Split a token sequence at commas that are not nested in brackets."""
    groups: list[list[Token]] = [[]]
    closers: list[str] = []
    for tok in tokens:
        s = tok.spelling
        if s == "," and not closers:
            groups.append([])
            continue
        if s in OPENERS:
            closers.append(OPENERS[s])
        elif closers and s == closers[-1]:
            closers.pop()
        groups[-1].append(tok)
    if groups == [[]]:
        return []
    return groups


def find_matching_close(tokens: list[Token], open_index: int) -> int | None:
    closers: list[str] = []
    for i in range(open_index, len(tokens)):
        s = tokens[i].spelling
        if s in OPENERS:
            closers.append(OPENERS[s])
        elif closers and s == closers[-1]:
            closers.pop()
            if not closers:
                return i
    return None


def find_chevrons(tokens: list[Token], opening: bool) -> tuple[int, int] | None:
    """Locate `<<<` or `>>>` as (first token index, index past its last token).

    The lexer may hand the chevrons back as one token or as `<<` plus `<`."""
    triple, double, single = ("<<<", "<<", "<") if opening else (">>>", ">>", ">")
    depth = 0
    for i, tok in enumerate(tokens):
        s = tok.spelling
        if s in OPENERS:
            depth += 1
        elif s in OPENERS.values():
            depth -= 1
        if depth != 0:
            continue
        if s == triple:
            return i, i + 1
        if i + 1 < len(tokens) and (s, tokens[i + 1].spelling) in ((double, single), (single, double)):
            return i, i + 2
    return None


class MatchCollector:
    """Walks one translation unit and turns interesting cursors into match results."""

    def __init__(self, tu: TranslationUnit, main_file: FilePathStr, contents: CachingFileContents):
        self.tu = tu
        self.main_file = os.path.realpath(main_file)
        self.contents = contents
        self._realpaths: dict[str, str] = {}
        self._instantiations: list[tuple[int, int]] | None = None
        # (pattern, offset) pairs already handed out inside macro invocations.
        self._claimed: set[tuple[bytes, int]] = set()
        # Failures while turning a single cursor into matches.
        self.errors: list[str] = []

    def file_of(self, cursor: Cursor) -> FilePathStr | None:
        f = cursor.extent.start.file
        if f is None:
            return None
        if f.name not in self._realpaths:
            self._realpaths[f.name] = os.path.realpath(f.name)
        return self._realpaths[f.name]

    def in_main_file(self, cursor: Cursor) -> bool:
        return self.file_of(cursor) == self.main_file

    def descend(self, cursor: Cursor) -> bool:
        return cursor.kind in PREPROCESSING_KINDS or self.in_main_file(cursor)

    def token_span(self, first: Token, last: Token) -> Span:
        return Span(self.main_file, first.extent.start.offset, last.extent.end.offset)

    def token_text(self, toks: list[Token]) -> str:
        return self.contents.text_for(self.token_span(toks[0], toks[-1]))

    def macro_instantiation_around(self, offset: int) -> tuple[int, int] | None:
        if self._instantiations is None:
            self._instantiations = [
                (c.extent.start.offset, c.extent.end.offset)
                for c in self.tu.cursor.get_children()
                if c.kind == CursorKind.MACRO_INSTANTIATION and self.in_main_file(c)
            ]
        for start, end in self._instantiations:
            if start <= offset < end:
                return start, end
        return None

    def spelled_match(self, cursor: Cursor, pattern: bytes) -> re.Match[bytes] | None:
        """Where `pattern` is literally written for this cursor.

        Inside a macro argument clang reports a zero-width extent at the macro
        invocation; the pattern is then looked up in the invocation's own text,
        taking the first occurrence not already handed out."""
        start = cursor.extent.start.offset
        end = cursor.extent.end.offset
        data = self.contents.get_bytes(self.main_file)
        regex = re.compile(pattern)
        m = regex.match(data, start)
        if m is not None:
            return m
        window = self.macro_instantiation_around(start)
        if window is None:
            return regex.search(data, start, max(end, start))
        found = list(regex.finditer(data, *window))
        for m in found:
            if (pattern, m.start()) not in self._claimed:
                self._claimed.add((pattern, m.start()))
                return m
        return found[0] if found else None

    def name_span(self, cursor: Cursor, name: str) -> Span | None:
        m = self.spelled_match(cursor, rb"\b" + re.escape(name.encode()) + rb"\b")
        if m is None:
            return None
        return Span(self.main_file, m.start(), m.end())

    def type_name_span(self, cursor: Cursor, name: str) -> Span | None:
        """Span of the written type name in a declaration, before the declared name."""
        start = cursor.extent.start.offset
        stop = cursor.location.offset
        if stop <= start:
            stop = cursor.extent.end.offset
        data = self.contents.get_bytes(self.main_file)
        # Prefix match: a tag name like `cudaError` is written as `cudaError_t`.
        m = re.compile(rb"\b" + re.escape(name.encode())).search(data, start, stop)
        if m is None:
            return None
        return Span(self.main_file, m.start(), m.end())

    def collect(self) -> list[MatchResult]:
        kinds = [
            CursorKind.CALL_EXPR,
            CursorKind.MEMBER_REF_EXPR,
            CursorKind.DECL_REF_EXPR,
            CursorKind.VAR_DECL,
            CursorKind.PARM_DECL,
            CursorKind.STRING_LITERAL,
            CursorKind.INCLUSION_DIRECTIVE,
            CursorKind.MACRO_DEFINITION,
        ]
        matches: list[MatchResult] = []
        for cursor in yield_matching_cursors(self.tu.cursor, kinds, self.descend):
            try:
                matches.extend(self.matches_for(cursor))
            except Exception as e:
                loc = cursor.location
                self.errors.append(
                    f"{loc.file}:{loc.line}:{loc.column}: skipped {cursor.kind.name}: "
                    f"{type(e).__name__}: {e}"
                )
        return matches

    def matches_for(self, cursor: Cursor) -> list[MatchResult]:
        kind = cursor.kind
        if kind == CursorKind.INCLUSION_DIRECTIVE:
            return self.include_match(cursor)
        if kind == CursorKind.MACRO_DEFINITION:
            return self.macro_matches(cursor)
        if not self.in_main_file(cursor):
            return []
        if kind == CursorKind.CALL_EXPR:
            launch = self.kernel_launch_match(cursor)
            if launch is not None:
                return [launch]
            return self.call_match(cursor)
        if kind == CursorKind.MEMBER_REF_EXPR:
            return self.builtin_access_match(cursor)
        if kind == CursorKind.DECL_REF_EXPR:
            return self.enum_constant_ref_match(cursor)
        if kind in (CursorKind.VAR_DECL, CursorKind.PARM_DECL):
            return self.typed_decl_match(cursor)
        if kind == CursorKind.STRING_LITERAL:
            return self.string_literal_match(cursor)
        return []

    def call_match(self, cursor: Cursor) -> list[MatchResult]:
        callee = cursor.referenced
        if callee is None or callee.kind != CursorKind.FUNCTION_DECL:
            return []
        name = callee.spelling
        if not SOURCE_API_NAME_RE.search(name):
            return []
        span = self.name_span(cursor, name)
        if span is None:
            return []
        end = max(span.end, cursor.extent.end.offset)
        return [FunctionCall(name, Span(self.main_file, span.start, end))]

    def kernel_launch_match(self, cursor: Cursor) -> KernelLaunch | None:
        tokens = list(cursor.get_tokens())
        opening = find_chevrons(tokens, opening=True)
        if opening is None:
            return None
        closing = find_chevrons(tokens[opening[1] :], opening=False)
        if closing is None:
            return None
        cfg_end = opening[1] + closing[0]
        args_open = opening[1] + closing[1]
        if args_open >= len(tokens) or tokens[args_open].spelling != "(":
            return None
        args_close = find_matching_close(tokens, args_open)
        if args_close is None:
            return None

        kernel = cursor.referenced
        callee_name = kernel.spelling if kernel is not None else tokens[0].spelling

        config_texts = [self.token_text(g) for g in split_top_level(tokens[opening[1] : cfg_end])]
        config_types = self.launch_config_types(cursor)
        config_args: list[tuple[str | None, str]] = []
        for i in range(max(len(config_texts), len(config_types))):
            text = config_texts[i] if i < len(config_texts) else None
            ty = config_types[i] if i < len(config_types) else ""
            config_args.append((text, ty))

        launch_args = [self.token_text(g) for g in split_top_level(tokens[args_open + 1 : args_close])]

        return KernelLaunch(
            callee_name=callee_name,
            param_list_span=self.kernel_param_list_span(kernel),
            config_args=tuple(config_args),
            launch_args=tuple(launch_args),
            full_span=Span(self.main_file, cursor.extent.start.offset, cursor.extent.end.offset),
        )

    def launch_config_types(self, cursor: Cursor) -> list[str]:
        for child in cursor.get_children():
            if child.kind != CursorKind.CALL_EXPR:
                continue
            ref = child.referenced
            if ref is not None and ref.spelling in CONFIGURE_CALL_NAMES:
                return [a.type.spelling for a in ref.get_arguments()]
        return list(DEFAULT_LAUNCH_CONFIG_TYPES)

    def kernel_param_list_span(self, kernel: Cursor | None) -> Span | None:
        if kernel is None:
            return None
        decl = kernel.get_definition() or kernel
        params = list(decl.get_arguments() or [])
        if not params:
            return None
        first, last = params[0].extent, params[-1].extent
        if first.start.file is None:
            return None
        return Span(os.path.realpath(first.start.file.name), first.start.offset, last.end.offset)

    def builtin_access_match(self, cursor: Cursor) -> list[MatchResult]:
        """`threadIdx.x` and friends.

        The coordinates are property members, which libclang usually reports
        with no referenced declaration and an empty spelling, so the builtin
        is recognized from the type of the base variable."""
        base = next(yield_matching_cursors(cursor, [CursorKind.DECL_REF_EXPR]), None)
        if base is None:
            return []
        record = base.type.get_canonical().get_declaration()
        if record is None or not record.spelling.startswith(BUILTIN_RECORD_PREFIX):
            return []
        pattern = rb"\b" + re.escape(base.spelling.encode()) + rb"\s*\.\s*(\w+)\b"
        m = self.spelled_match(cursor, pattern)
        if m is None:
            return []
        return [
            BuiltinAccess(
                base_name=base.spelling,
                # The accessor name when clang resolves the property, else as written.
                member_name=cursor.spelling or m.group(1).decode(),
                span=Span(self.main_file, m.start(), m.end()),
            )
        ]

    def enum_constant_ref_match(self, cursor: Cursor) -> list[MatchResult]:
        ref = cursor.referenced
        if ref is None or ref.kind != CursorKind.ENUM_CONSTANT_DECL:
            return []
        name = ref.spelling
        if not SOURCE_API_NAME_RE.search(name):
            return []
        span = self.name_span(cursor, name)
        if span is None:
            return []
        return [EnumOrTypeRef(name, span, TypeRefKind.ENUM_CONSTANT_REF)]

    def typed_decl_match(self, cursor: Cursor) -> list[MatchResult]:
        if cursor.kind == CursorKind.PARM_DECL:
            decl = cursor.type.get_declaration()
            ref_kind = TypeRefKind.PARAM_DECL
        else:
            decl = cursor.type.get_canonical().get_declaration()
            if decl.kind == CursorKind.ENUM_DECL:
                ref_kind = TypeRefKind.ENUM_VAR_DECL
            elif decl.kind in (CursorKind.STRUCT_DECL, CursorKind.CLASS_DECL):
                ref_kind = TypeRefKind.STRUCT_VAR_DECL
            else:
                return []
        if decl is None or decl.kind == CursorKind.NO_DECL_FOUND:
            return []
        name = decl.spelling
        if not name or not SOURCE_API_NAME_RE.search(name):
            return []
        span = self.type_name_span(cursor, name)
        if span is None:
            return []
        return [EnumOrTypeRef(name, span, ref_kind)]

    def string_literal_match(self, cursor: Cursor) -> list[MatchResult]:
        span = Span(self.main_file, cursor.extent.start.offset, cursor.extent.end.offset)
        raw = self.contents.text_for(span)
        # A literal produced by a macro expansion points at the invocation instead.
        if not raw.endswith('"'):
            return []
        return [StringLiteral(raw, span)]

    def include_match(self, cursor: Cursor) -> list[MatchResult]:
        filepath = self.file_of(cursor)
        if filepath is None:
            return []
        start, end = cursor.extent.start.offset, cursor.extent.end.offset
        data = self.contents.get_bytes(filepath)
        m = re.compile(rb'<[^>\n]*>|"[^"\n]*"').search(data, start, end)
        if m is None:
            return []
        return [
            Include(
                target_name=cursor.spelling,
                angled=m.group(0).startswith(b"<"),
                span=Span(filepath, m.start(), m.end()),
                in_main_file=filepath == self.main_file,
            )
        ]

    def macro_matches(self, cursor: Cursor) -> list[MatchResult]:
        # Macros defined in headers are never rewritten; skip their bodies early.
        if not self.in_main_file(cursor):
            return []
        tokens = list(cursor.get_tokens())
        if not tokens:
            return []
        body = tokens[1:]
        # Function-like exactly when the parameter list touches the name.
        if body and body[0].spelling == "(" and (
            body[0].extent.start.offset == tokens[0].extent.end.offset
        ):
            close = find_matching_close(body, 0)
            body = body[close + 1 :] if close is not None else []
        return [
            MacroBodyIdentifier(
                name=tok.spelling,
                span=self.token_span(tok, tok),
                macro_name=cursor.spelling,
                in_main_file=True,
            )
            for tok in body
            if tok.kind == TokenKind.IDENTIFIER
        ]


class ClangFrontEnd:
    """Parses each file with libclang under the requested CUDA compilation view."""

    def __init__(
        self,
        index: Index,
        contents: CachingFileContents,
        args_for: Callable[[FilePathStr], list[str]] = lambda path: [],
    ):
        self.index = index
        self.contents = contents
        self.args_for = args_for

    def parse(self, path: FilePathStr, view: CompilationView) -> TranslationUnit:
        return self.index.parse(
            path=path,
            args=[view.value, *self.args_for(path)],
            options=TranslationUnit.PARSE_DETAILED_PROCESSING_RECORD,
        )

    def find_matches(self, path: FilePathStr, view: CompilationView) -> FrontEndResult:
        try:
            tu = self.parse(path, view)
        except TranslationUnitLoadError as e:
            return FrontEndResult(diagnostics=[f"{path}: {e}"])

        diagnostics = [
            f"{d.location.file}:{d.location.line}:{d.location.column}: {d.spelling}"
            for d in tu.diagnostics
            if d.severity >= Diagnostic.Error
        ]
        collector = MatchCollector(tu, path, self.contents)
        matches = collector.collect()
        return FrontEndResult(matches=matches, diagnostics=diagnostics + collector.errors)
