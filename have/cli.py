"""Command-line entry point: have [OPTIONS] [INPUT] [-o OUTPUT]."""

from __future__ import annotations

import logging
import sys

from .backend.go import CodeChunk
from .compiler import Unit
from .errors import CompileError
from .frontend.parse import parse

PHASES: list[str] = ["parse", "negotiate"]

USAGE: str = """\
have [OPTIONS] [INPUT] [-o OUTPUT]

Compile Have source to Go. Reads INPUT, or stdin when omitted.

Options:
  --stop-at PHASE     Stop after phase: parse, negotiate
  -o, --output FILE   Write output to FILE instead of stdout
  --verbose           Log compiler phases to stderr
  --help              Show this help message
"""


def _print_errors(errors: list[CompileError]) -> None:
    for e in errors:
        print("have: error: " + str(e), file=sys.stderr)


def run_pipeline(source: str, stop_at: str | None) -> tuple[int, str]:
    """Run the compiler phases. Returns (exit_code, output)."""
    try:
        stmts = parse(source)
    except CompileError as e:
        _print_errors([e])
        return (1, "")
    if stop_at == "parse":
        return (0, "")
    unit = Unit(stmts)
    errors = unit.negotiate()
    if len(errors) > 0:
        _print_errors(errors)
        return (1, "")
    if stop_at == "negotiate":
        return (0, "")
    chunk = CodeChunk()
    unit.generate(chunk)
    return (0, chunk.read_all())


def parse_args(args: list[str]) -> tuple[str | None, bool, str | None, str | None]:
    """Parse command-line arguments. Returns (stop_at, verbose, input_file, output_file)."""
    stop_at: str | None = None
    verbose = False
    input_file: str | None = None
    output_file: str | None = None
    i = 0
    while i < len(args):
        arg = args[i]
        if arg == "--help" or arg == "-h":
            print(USAGE, end="")
            sys.exit(0)
        elif arg == "--stop-at":
            if i + 1 >= len(args):
                print("have: error: --stop-at requires an argument", file=sys.stderr)
                sys.exit(2)
            stop_at = args[i + 1]
            i += 2
        elif arg == "-o" or arg == "--output":
            if i + 1 >= len(args):
                print("have: error: " + arg + " requires an argument", file=sys.stderr)
                sys.exit(2)
            output_file = args[i + 1]
            i += 2
        elif arg == "--verbose" or arg == "-v":
            verbose = True
            i += 1
        elif arg.startswith("-") and arg != "-":
            print("have: error: unknown flag '" + arg + "'", file=sys.stderr)
            sys.exit(2)
        else:
            if input_file is not None:
                print("have: error: unexpected argument '" + arg + "'", file=sys.stderr)
                sys.exit(2)
            if arg != "-":
                input_file = arg
            i += 1
    if stop_at is not None and stop_at not in PHASES:
        print("have: error: unknown phase '" + stop_at + "'", file=sys.stderr)
        sys.exit(2)
    return (stop_at, verbose, input_file, output_file)


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    stop_at, verbose, input_file, output_file = parse_args(sys.argv[1:] if argv is None else argv)
    if verbose:
        logging.basicConfig(level=logging.DEBUG, stream=sys.stderr, format="%(name)s: %(message)s")
    try:
        if input_file is not None:
            with open(input_file, "rb") as f:
                source = f.read().decode("utf-8")
        else:
            source = sys.stdin.buffer.read().decode("utf-8")
    except OSError:
        print("have: error: cannot open '" + str(input_file) + "'", file=sys.stderr)
        return 1
    except UnicodeDecodeError:
        print("have: error: invalid utf-8 in input", file=sys.stderr)
        return 1
    if len(source.strip()) == 0:
        print("have: error: no input provided", file=sys.stderr)
        return 2
    exit_code, output = run_pipeline(source, stop_at)
    if exit_code != 0 or stop_at is not None:
        return exit_code
    if output_file is None:
        sys.stdout.write(output)
        return 0
    try:
        with open(output_file, "w") as f:
            f.write(output)
    except OSError:
        print("have: error: cannot write '" + output_file + "'", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
