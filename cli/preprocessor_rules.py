from match_results import Edit, EditOrigin, Include, MacroBodyIdentifier
from symbol_table import SymbolTable


def rewrite_include(m: Include, table: SymbolTable) -> list[Edit]:
    """Rewrite `#include <cuda_runtime.h>` as `#include <hip_runtime.h>`.

    Only angled includes written in the file under translation are touched;
    the same directive inside some other header is left as it is."""
    if not m.in_main_file or not m.angled:
        return []
    target = table.lookup(m.target_name)
    if target is None:
        return []
    return [Edit(m.span, f"<{target}>", EditOrigin.INCLUDE)]


def rename_macro_body_identifier(m: MacroBodyIdentifier, table: SymbolTable) -> list[Edit]:
    if not m.in_main_file:
        return []
    target = table.lookup(m.name)
    if target is None:
        return []
    return [Edit(m.span, target, EditOrigin.MACRO_BODY_IDENTIFIER)]
