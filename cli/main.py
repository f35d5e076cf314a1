import sys
from pathlib import Path

import click

import translation
from caching_file_contents import CachingFileContents
from cindex_helpers import ClangFrontEnd, create_clang_index
from compilation_database import CompileCommands
from constants import COMPILE_COMMANDS_FILENAME, LIBCLANG_ENV_VAR
from match_results import FilePathStr
from replacement_set import ConflictPolicy
from symbol_table import cuda_to_hip_table


@click.group()
def cli():
    pass


@cli.command()
@click.argument(
    "files",
    nargs=-1,
    required=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
)
@click.option(
    "--build-dir",
    "-p",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    help=f"Directory containing {COMPILE_COMMANDS_FILENAME}, used for per-file compiler flags.",
)
@click.option(
    "--extra-arg",
    multiple=True,
    help="Additional argument to append to the parser command line (repeatable).",
)
@click.option(
    "--libclang",
    envvar=LIBCLANG_ENV_VAR,
    help=f"Path to the libclang shared library (default: ${LIBCLANG_ENV_VAR}, then the bundled one).",
)
@click.option(
    "--strict-overlap",
    is_flag=True,
    help="Also reject edits whose spans merely intersect an accepted edit.",
)
@click.option(
    "--export-replacements",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Write the collected replacements and diagnostics to this JSON file.",
)
def translate(files, build_dir, extra_arg, libclang, strict_overlap, export_replacements):
    """Translate CUDA sources to HIP, in place."""
    compdb = None
    if build_dir is not None:
        try:
            compdb = CompileCommands.from_build_dir(build_dir)
        except FileNotFoundError as e:
            click.echo(f"Error: {e}", err=True)
            sys.exit(1)

    def args_for(path: FilePathStr) -> list[str]:
        original = translation.original_path_for(Path(path)).resolve()
        args = compdb.parser_args_for(original) if compdb is not None else []
        return [*args, *extra_arg]

    contents = CachingFileContents()
    front_end = ClangFrontEnd(create_clang_index(libclang), contents, args_for)
    policy = ConflictPolicy.INTERVAL_OVERLAP if strict_overlap else ConflictPolicy.SPAN_IDENTITY

    outcome = translation.translate_files(
        list(files),
        front_end,
        contents,
        cuda_to_hip_table(),
        policy=policy,
        export_path=export_replacements,
    )
    if not outcome.ok:
        click.echo(f"{len(outcome.applied.failed)} replacement(s) could not be applied.", err=True)
        sys.exit(1)


@cli.command()
def list_symbols():
    """Print the CUDA -> HIP rename table."""
    for source_name, target_name in sorted(cuda_to_hip_table().items()):
        click.echo(f"{source_name} -> {target_name}")


if __name__ == "__main__":
    cli()
