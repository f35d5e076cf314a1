"""Rules mapping recognized CUDA constructs to textual edits.

Every rule takes one match result, the symbol table, and the original file
contents, and returns the edits it proposes. A name missing from the symbol
table is never an error: the rule simply proposes nothing. Conflicts between
rules are resolved later, by the replacement set."""

from caching_file_contents import CachingFileContents
from constants import (
    BUILTIN_ACCESSOR_PREFIX,
    DIM3_TYPE_NAME,
    HIP_KERNEL_NAME_WRAPPER,
    HIP_LAUNCH_KERNEL,
    HIP_LAUNCH_PARM_DECL,
    SOURCE_STRING_MARKER,
    TARGET_STRING_MARKER,
)
from match_results import (
    BuiltinAccess,
    Edit,
    EditOrigin,
    EnumOrTypeRef,
    FunctionCall,
    Include,
    KernelLaunch,
    MacroBodyIdentifier,
    MatchResult,
    StringLiteral,
)
import preprocessor_rules
from symbol_table import SymbolTable


def rename_call(m: FunctionCall, table: SymbolTable) -> list[Edit]:
    target = table.lookup(m.callee_name)
    if target is None:
        return []
    # Only the callee token is replaced; the argument list is left alone.
    return [Edit(m.call_span.prefix(len(m.callee_name)), target, EditOrigin.CALL_RENAME)]


def render_launch_config_arg(text: str | None, declared_type: str) -> str:
    if text is None:
        # Defaulted by the compiler, so there is nothing in the source to copy.
        return "0"
    if declared_type == DIM3_TYPE_NAME:
        return f"{DIM3_TYPE_NAME}({text})"
    return text


def render_kernel_launch(m: KernelLaunch) -> str:
    """Render `k<<<cfg...>>>(args...)` as a `hipLaunchKernel(...)` call."""
    parts = [f"{HIP_KERNEL_NAME_WRAPPER}({m.callee_name})"]
    parts.extend(render_launch_config_arg(text, ty) for text, ty in m.config_args)
    parts.extend(m.launch_args)
    return f"{HIP_LAUNCH_KERNEL}({', '.join(parts)})"


def rewrite_kernel_launch(m: KernelLaunch, contents: CachingFileContents) -> list[Edit]:
    edits = []
    if m.param_list_span is not None:
        params = contents.text_for(m.param_list_span)
        edits.append(
            Edit(
                m.param_list_span,
                f"{HIP_LAUNCH_PARM_DECL}, {params}",
                EditOrigin.KERNEL_PARAM_LIST,
            )
        )
    edits.append(Edit(m.full_span, render_kernel_launch(m), EditOrigin.KERNEL_LAUNCH))
    return edits


def builtin_lookup_key(base_name: str, member_name: str) -> str:
    return f"{base_name}.{member_name.removeprefix(BUILTIN_ACCESSOR_PREFIX)}"


def rename_builtin_access(m: BuiltinAccess, table: SymbolTable) -> list[Edit]:
    key = builtin_lookup_key(m.base_name, m.member_name)
    target = table.lookup(key)
    if target is None:
        return []
    return [Edit(m.span, target, EditOrigin.BUILTIN_ACCESS)]


def rename_enum_or_type_ref(m: EnumOrTypeRef, table: SymbolTable) -> list[Edit]:
    target = table.lookup(m.name)
    if target is None:
        return []
    return [Edit(m.span, target, EditOrigin.ENUM_OR_TYPE_REF)]


def rewrite_string_markers(raw_text: str) -> tuple[str, int]:
    """Replace each `cuda` in `raw_text` with `hip`, left to right.

    Returns the rewritten text and the number of replacements made."""
    count = 0
    pos = 0
    while (pos := raw_text.find(SOURCE_STRING_MARKER, pos)) != -1:
        raw_text = (
            raw_text[:pos] + TARGET_STRING_MARKER + raw_text[pos + len(SOURCE_STRING_MARKER) :]
        )
        # Skip past the inserted text so it is never scanned again.
        pos += len(TARGET_STRING_MARKER)
        count += 1
    return raw_text, count


def rewrite_string_literal(m: StringLiteral) -> list[Edit]:
    rewritten, count = rewrite_string_markers(m.raw_text)
    if count == 0:
        return []
    return [Edit(m.span, rewritten, EditOrigin.STRING_LITERAL)]


def edits_for_match(
    m: MatchResult, table: SymbolTable, contents: CachingFileContents
) -> list[Edit]:
    match m:
        case FunctionCall():
            return rename_call(m, table)
        case KernelLaunch():
            return rewrite_kernel_launch(m, contents)
        case BuiltinAccess():
            return rename_builtin_access(m, table)
        case EnumOrTypeRef():
            return rename_enum_or_type_ref(m, table)
        case StringLiteral():
            return rewrite_string_literal(m)
        case Include():
            return preprocessor_rules.rewrite_include(m, table)
        case MacroBodyIdentifier():
            return preprocessor_rules.rename_macro_body_identifier(m, table)
    raise TypeError(f"Unexpected match result: {m!r}")


# Position of each kind of match in the rule enumeration. Within a pass,
# edits are proposed in this order so that conflicts resolve deterministically.
RULE_ORDER: dict[type, int] = {
    FunctionCall: 0,
    KernelLaunch: 1,
    BuiltinAccess: 2,
    EnumOrTypeRef: 3,
    StringLiteral: 4,
    Include: 5,
    MacroBodyIdentifier: 6,
}
