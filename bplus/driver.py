"""Command-line handling and the build pipeline of the compiler."""

from __future__ import annotations

import os
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence

from .codegen import CodeGenerator, CodegenError

_WINDOWS = os.name == "nt"

_USAGE = (
    "Usage: bcc [options] <file.b>\n"
    "Options:\n"
    "\t--emit-only-ir | -ir\t\tEmit IR and exit (no compilation)\n"
    "\t--run\t\t\t\tRun the compiled binary\n"
    "\t--out | -o <filename>\t\tSet output binary name (default: out)\n"
    "\t--no-cleanup\t\t\tDoesn't remove all of the IR files\n"
    "\t--compile-only | -C\t\tOnly compiles without linking.\n"
)


class UsageError(Exception):
    """Raised when the command line cannot be understood."""


@dataclass
class Options:
    """Settings taken from the command line."""

    input_file: str
    out_file: str
    run: bool = False
    emit_only_ir: bool = False
    no_cleanup: bool = False
    compile_only: bool = False


def usage() -> str:
    """The usage text of the command."""
    return _USAGE


def default_output_name(input_file: str) -> str:
    """The binary name derived from an input file name."""
    if _WINDOWS:
        return os.path.splitext(input_file)[0] + ".exe"
    return os.path.splitext(os.path.basename(input_file))[0]


def parse_args(argv: Optional[Sequence[str]] = None) -> Options:
    """Parse command-line arguments (without the program name)."""
    if argv is None:
        import sys

        argv = sys.argv[1:]

    input_file = ""
    out_file = ""
    flags = {"run": False, "emit_only_ir": False,
             "no_cleanup": False, "compile_only": False}

    args = list(argv)
    remaining = iter(enumerate(args))
    for position, arg in remaining:
        if arg in ("--emit-only-ir", "-ir"):
            flags["emit_only_ir"] = True
        elif arg == "--run":
            flags["run"] = True
        elif arg in ("--out", "-o") and position + 1 < len(args):
            _, out_file = next(remaining)
        elif arg == "--no-cleanup":
            flags["no_cleanup"] = True
        elif arg in ("--compile-only", "-C"):
            flags["compile_only"] = True
        else:
            input_file = arg
            out_file = default_output_name(input_file)
            if not input_file.endswith(".bc"):
                raise UsageError("input file must have an .bc extension!")

    if not input_file:
        raise UsageError(usage())

    return Options(input_file=input_file, out_file=out_file, **flags)


def write_ir(ir_text: str, out_file: str) -> Path:
    """Write IR text next to the output name and return the file's path."""
    path = Path(out_file + ".ll")
    path.write_text(ir_text, encoding="utf-8")
    return path


def _object_name(out_file: str) -> str:
    return out_file + (".obj" if _WINDOWS else ".o")


def _executable_path(out_file: str) -> str:
    if os.path.isabs(out_file):
        return out_file
    return os.path.join(".", out_file)


def build(generator: CodeGenerator, options: Options) -> int:
    """Emit, compile, link and optionally run the generated module.

    Returns the exit status of the program when it is run, otherwise 0.
    """
    if options.emit_only_ir:
        path = write_ir(generator.render(), options.out_file)
        print(f"Successfully emitted IR: {path}")
        return 0

    if not generator.has_function("main"):
        raise CodegenError("main function not found in prototypes!")

    object_file = _object_name(options.out_file)
    ir_path = write_ir(generator.render(), options.out_file)
    try:
        compiled = subprocess.run(
            ["clang", "-c", "-fPIC", "-x", "ir", str(ir_path), "-o", object_file]
        )
        if compiled.returncode != 0:
            raise RuntimeError("Could not emit object file!")
    finally:
        if not options.no_cleanup:
            ir_path.unlink(missing_ok=True)

    if not options.compile_only:
        linked = subprocess.run(["clang", object_file, "-o", options.out_file])
        if linked.returncode != 0:
            raise RuntimeError("Linking failed!")

    if options.run:
        return subprocess.run([_executable_path(options.out_file)]).returncode

    return 0