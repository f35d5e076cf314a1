from dataclasses import dataclass
from enum import Enum
from typing import TypeAlias

from dataclasses_json import dataclass_json

FilePathStr: TypeAlias = str


@dataclass_json
@dataclass(frozen=True, order=True)
class Span:
    """Half-open byte range into the original contents of `file`."""

    file: str
    start: int
    end: int

    def __post_init__(self):
        if self.start < 0 or self.end < self.start:
            raise ValueError(f"Invalid span [{self.start}, {self.end}) in {self.file}")

    @property
    def length(self) -> int:
        return self.end - self.start

    def prefix(self, length: int) -> "Span":
        """The span of the first `length` bytes starting at the same offset."""
        return Span(self.file, self.start, self.start + length)

    def overlaps(self, other: "Span") -> bool:
        if self.file != other.file:
            return False
        if self.start == self.end or other.start == other.end:
            # Zero-width insertions only collide when they coincide.
            return self.start == other.start and self.end == other.end
        return self.start < other.end and other.start < self.end


class EditOrigin(Enum):
    CALL_RENAME = "call-rename"
    KERNEL_PARAM_LIST = "kernel-param-list"
    KERNEL_LAUNCH = "kernel-launch"
    BUILTIN_ACCESS = "builtin-access"
    ENUM_OR_TYPE_REF = "enum-or-type-ref"
    STRING_LITERAL = "string-literal"
    INCLUDE = "include"
    MACRO_BODY_IDENTIFIER = "macro-body-identifier"


@dataclass_json
@dataclass(frozen=True)
class Edit:
    span: Span
    new_text: str
    origin: EditOrigin


class TypeRefKind(Enum):
    """Which declaration shape an `EnumOrTypeRef` was found in."""

    ENUM_CONSTANT_REF = "enum-constant-ref"
    ENUM_VAR_DECL = "enum-var-decl"
    STRUCT_VAR_DECL = "struct-var-decl"
    PARAM_DECL = "param-decl"


# The match results below only carry spans and captured text; none of them
# keeps a reference into the parse tree.


@dataclass(frozen=True)
class FunctionCall:
    callee_name: str
    # Starts at the spelling location of the callee token.
    call_span: Span


@dataclass(frozen=True)
class KernelLaunch:
    callee_name: str
    # None when the kernel declares no parameters.
    param_list_span: Span | None
    # (text, declared type); text is None for a defaulted, elided argument.
    config_args: tuple[tuple[str | None, str], ...]
    launch_args: tuple[str, ...]
    full_span: Span


@dataclass(frozen=True)
class BuiltinAccess:
    base_name: str
    member_name: str
    span: Span


@dataclass(frozen=True)
class EnumOrTypeRef:
    name: str
    span: Span
    ref_kind: TypeRefKind


@dataclass(frozen=True)
class StringLiteral:
    raw_text: str
    span: Span


@dataclass(frozen=True)
class Include:
    target_name: str
    angled: bool
    # Covers the filename and its delimiters.
    span: Span
    in_main_file: bool


@dataclass(frozen=True)
class MacroBodyIdentifier:
    name: str
    span: Span
    macro_name: str
    in_main_file: bool


MatchResult: TypeAlias = (
    FunctionCall
    | KernelLaunch
    | BuiltinAccess
    | EnumOrTypeRef
    | StringLiteral
    | Include
    | MacroBodyIdentifier
)


def describe_match(m: MatchResult) -> str:
    """One-line rendering of a match for the diagnostic stream."""
    match m:
        case FunctionCall(callee_name=name):
            return f"call {name}"
        case KernelLaunch(callee_name=name, config_args=cfg, launch_args=args):
            cfg_text = ", ".join("<default>" if t is None else t for t, _ in cfg)
            return f"kernel launch {name}<<<{cfg_text}>>>({', '.join(args)})"
        case BuiltinAccess(base_name=base, member_name=member):
            return f"builtin access {base}.{member}"
        case EnumOrTypeRef(name=name, ref_kind=kind):
            return f"{kind.value} {name}"
        case StringLiteral(raw_text=raw):
            return f"string literal {raw}"
        case Include(target_name=name, angled=angled):
            return f"include <{name}>" if angled else f'include "{name}"'
        case MacroBodyIdentifier(name=name, macro_name=macro_name):
            return f"identifier {name} in definition of macro {macro_name}"
    raise TypeError(f"Unexpected match result: {m!r}")
