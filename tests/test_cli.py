"""CLI tests for the have entry point.

Test cases live in 03_cli/*.tests files. Format:

    === test name
    args: --stop-at parse
    source code here
    (stdin for the compiler)
    ---
    exit: 0
    stderr: have: error: some message
    stdout-contains: func
    stdout-empty: true
    stderr-empty: true
    exit-not: 2
    ---

Special directives in the input section:
    args:           CLI arguments (first line, required)
    stdin-bytes:    hex-encoded raw bytes instead of text (e.g. "ff fe")

Assertion directives in the expected section:
    exit:             exact exit code
    exit-not:         exit code must NOT equal this
    stderr:           exact stderr content (trailing newline added)
    stderr-contains:  stderr must contain substring
    stderr-empty:     stderr must be empty
    stdout-contains:  stdout must contain substring
    stdout-empty:     stdout must be empty
"""

import subprocess
import sys

import pytest

from conftest import REPO_ROOT
from have.cli import parse_args, run_pipeline


def parse_cli_case(test_input: str, expected: str) -> dict:
    """Split a case into args, stdin and assertions."""
    input_lines = test_input.rstrip("\n").split("\n")
    case: dict = {
        "args": [],
        "stdin": None,
        "stdin_bytes": None,
        "assertions": [],
    }
    body_start = 0
    if input_lines and input_lines[0].startswith("args:"):
        args_str = input_lines[0][5:].strip()
        case["args"] = args_str.split() if args_str else []
        body_start = 1

    remaining = input_lines[body_start:]
    if remaining and remaining[0].startswith("stdin-bytes:"):
        hex_str = remaining[0][len("stdin-bytes:") :].strip()
        case["stdin_bytes"] = bytes.fromhex(hex_str)
    else:
        case["stdin"] = "\n".join(remaining)

    for line in expected.split("\n"):
        line = line.strip()
        if not line:
            continue
        if line.startswith("exit:"):
            case["assertions"].append(("exit", int(line[5:].strip())))
        elif line.startswith("exit-not:"):
            case["assertions"].append(("exit-not", int(line[9:].strip())))
        elif line.startswith("stderr:"):
            case["assertions"].append(("stderr", line[7:].strip()))
        elif line.startswith("stderr-contains:"):
            case["assertions"].append(("stderr-contains", line[16:].strip()))
        elif line.startswith("stderr-empty:"):
            case["assertions"].append(("stderr-empty", None))
        elif line.startswith("stdout-contains:"):
            case["assertions"].append(("stdout-contains", line[16:].strip()))
        elif line.startswith("stdout-empty:"):
            case["assertions"].append(("stdout-empty", None))
    return case


def run_cli(case: dict) -> subprocess.CompletedProcess[bytes]:
    """Run the have CLI from a test case."""
    cmd = [sys.executable, "-m", "have", *case["args"]]
    if case["stdin_bytes"] is not None:
        stdin_data = case["stdin_bytes"]
    elif case["stdin"] is not None:
        stdin_data = case["stdin"].encode()
    else:
        stdin_data = b""
    return subprocess.run(
        cmd,
        input=stdin_data,
        capture_output=True,
        cwd=REPO_ROOT,
    )


def check_assertions(result: subprocess.CompletedProcess[bytes], assertions: list[tuple]) -> None:
    """Check all assertions against a CLI result."""
    for kind, value in assertions:
        if kind == "exit":
            assert result.returncode == value, (
                f"expected exit {value}, got {result.returncode}"
                f"\nstderr: {result.stderr.decode(errors='replace')}"
            )
        elif kind == "exit-not":
            assert result.returncode != value, f"expected exit != {value}, got {result.returncode}"
        elif kind == "stderr":
            actual = result.stderr.decode(errors="replace").rstrip("\n")
            assert actual == value, f"expected stderr {value!r}, got {actual!r}"
        elif kind == "stderr-contains":
            actual = result.stderr.decode(errors="replace")
            assert value in actual, f"expected stderr to contain {value!r}, got {actual!r}"
        elif kind == "stderr-empty":
            assert result.stderr == b"", f"expected empty stderr, got {result.stderr!r}"
        elif kind == "stdout-contains":
            actual = result.stdout.decode(errors="replace")
            assert value in actual, f"expected stdout to contain {value!r}, got {actual!r}"
        elif kind == "stdout-empty":
            assert result.stdout == b"", f"expected empty stdout, got {result.stdout[:200]!r}"


def test_cli(cli_input: str, cli_expected: str) -> None:
    """Run a single CLI test case from a .tests file."""
    case = parse_cli_case(cli_input, cli_expected)
    result = run_cli(case)
    check_assertions(result, case["assertions"])


def test_output_file(tmp_path):
    src = tmp_path / "main.have"
    src.write_text("func a():\n 1\n")
    out = tmp_path / "main.go"
    result = subprocess.run(
        [sys.executable, "-m", "have", str(src), "-o", str(out)],
        capture_output=True,
        cwd=REPO_ROOT,
    )
    assert result.returncode == 0, result.stderr
    assert result.stdout == b""
    assert out.read_text() == "func a() {\n\t1\n}\n"


def test_output_file_for_generic_only_source(tmp_path):
    src = tmp_path / "lib.have"
    src.write_text("func id[T](x T) T:\n return x\n")
    out = tmp_path / "lib.go"
    result = subprocess.run(
        [sys.executable, "-m", "have", str(src), "-o", str(out)],
        capture_output=True,
        cwd=REPO_ROOT,
    )
    assert result.returncode == 0, result.stderr
    assert out.read_text() == ""


def test_missing_input_file(tmp_path):
    result = subprocess.run(
        [sys.executable, "-m", "have", str(tmp_path / "nope.have")],
        capture_output=True,
        cwd=REPO_ROOT,
    )
    assert result.returncode == 1
    assert b"cannot open" in result.stderr


def test_parse_args_defaults():
    assert parse_args([]) == (None, False, None, None)


def test_parse_args_all_options():
    assert parse_args(["--stop-at", "negotiate", "-v", "in.have", "-o", "out.go"]) == (
        "negotiate",
        True,
        "in.have",
        "out.go",
    )


def test_parse_args_dash_means_stdin():
    assert parse_args(["-"]) == (None, False, None, None)


def test_parse_args_unknown_phase_exits():
    with pytest.raises(SystemExit) as exc:
        parse_args(["--stop-at", "emit"])
    assert exc.value.code == 2


def test_run_pipeline_stop_at_negotiate():
    assert run_pipeline("var x = 1\n", "negotiate") == (0, "")


def test_run_pipeline_reports_failure(capsys):
    code, output = run_pipeline("var x = y\n", None)
    assert code == 1
    assert output == ""
    assert "have: error: undefined: y" in capsys.readouterr().err
