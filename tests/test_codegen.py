"""Golden tests: Have source in, Go text out."""

import pytest

from have import CompileFailed, compile_source


def test_codegen(codegen_input: str, codegen_expected: str):
    """Verify generated Go matches expected output exactly."""
    try:
        output = compile_source(codegen_input)
    except CompileFailed as e:
        pytest.fail(f"compilation failed:\n{e}")
    if output != codegen_expected + "\n":
        pytest.fail(
            f"Output mismatch:\n--- expected ---\n{codegen_expected}\n--- got ---\n{output}"
        )


def test_output_ends_with_single_newline():
    output = compile_source("func a():\n 1\n")
    assert output.endswith("}\n")
    assert not output.endswith("\n\n")


def test_generic_declaration_alone_emits_nothing():
    assert compile_source("func id[T](x T) T:\n return x\n") == ""


def test_instances_follow_user_statements():
    source = "func id[T](x T) T:\n return x\nvar a = id[int](1)\nprint(a)\n"
    output = compile_source(source)
    assert output.index("print(a)") < output.index("func id__int(")
