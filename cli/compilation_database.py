from __future__ import annotations

import json
from pathlib import Path
import shlex
from dataclasses import dataclass

from constants import COMPILE_COMMANDS_FILENAME

# See https://clang.llvm.org/docs/JSONCompilationDatabase.html


@dataclass
class CompileCommand:
    """One entry of compile_commands.json: how a single source file is compiled."""

    directory: str
    file: str

    # Exactly one of these is present.
    command: str | None = None
    arguments: list[str] | None = None

    output: str | None = None

    def __post_init__(self):
        if self.command is None and self.arguments is None:
            raise ValueError(f"Entry for {self.file} has neither 'command' nor 'arguments'")
        if self.command is not None and self.arguments is not None:
            raise ValueError(f"Entry for {self.file} has both 'command' and 'arguments'")

    @property
    def directory_path(self) -> Path:
        return Path(self.directory)

    @property
    def absolute_file_path(self) -> Path:
        if Path(self.file).is_absolute():
            return Path(self.file)
        return self.directory_path / self.file

    def get_command_parts(self) -> list[str]:
        if self.arguments:
            return list(self.arguments)
        # Quoted arguments such as -DNAME="a b" must survive splitting.
        return shlex.split(self.command or "")

    def refers_to(self, arg: str, path: Path) -> bool:
        arg_path = Path(arg)
        if not arg_path.is_absolute():
            arg_path = self.directory_path / arg_path
        return arg_path.resolve() == path

    def get_parser_args(self) -> list[str]:
        """Arguments suitable for libclang: no compiler, source file, `-c` or `-o`.

        libclang has no notion of a working directory, so the command's
        directory is passed along explicitly for relative include paths."""
        compiler_args = self.get_command_parts()[1:]

        if "-o" in compiler_args:
            o_index = compiler_args.index("-o")
            del compiler_args[o_index : o_index + 2]

        src = self.absolute_file_path.resolve()
        kept = [arg for arg in compiler_args if arg != "-c" and not self.refers_to(arg, src)]
        return [f"-working-directory={self.directory}", *kept]


@dataclass
class CompileCommands:
    commands: list[CompileCommand]

    @classmethod
    def from_json_file(cls, file_path: str | Path) -> CompileCommands:
        with open(file_path, "r", encoding="utf-8") as f:
            return cls.from_dict(json.load(f))

    @classmethod
    def from_build_dir(cls, build_dir: Path) -> CompileCommands:
        compdb_path = build_dir / COMPILE_COMMANDS_FILENAME
        if not compdb_path.is_file():
            raise FileNotFoundError(f"no {COMPILE_COMMANDS_FILENAME} in {build_dir}")
        return cls.from_json_file(compdb_path)

    @classmethod
    def from_dict(cls, data: list[dict]) -> CompileCommands:
        return cls(commands=[CompileCommand(**entry) for entry in data])

    def get_commands_for_path(self, path: Path) -> list[CompileCommand]:
        """Commands compiling `path`, which must be absolute."""
        assert path.is_absolute(), (
            "To avoid ambiguity from duplicate file names, queried path must be absolute"
        )
        return [cmd for cmd in self.commands if cmd.absolute_file_path.resolve() == path.resolve()]

    def parser_args_for(self, path: Path) -> list[str]:
        """Parser arguments from the first command compiling `path`, if any."""
        cmds = self.get_commands_for_path(path)
        if not cmds:
            return []
        return cmds[0].get_parser_args()
