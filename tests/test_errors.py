"""Golden tests for diagnostics: every expected line is `error: <substring>`."""

import pytest

from have import CompileFailed, compile_source


def test_errors(errors_input: str, errors_expected: str):
    """Verify compilation fails with the expected errors, in order."""
    try:
        output = compile_source(errors_input)
    except CompileFailed as e:
        got = [str(err) for err in e.errors]
    else:
        pytest.fail(f"expected compilation to fail, got:\n{output}")
    expected = [line[len("error: ") :] for line in errors_expected.split("\n")]
    if len(got) != len(expected):
        pytest.fail(f"expected {len(expected)} errors, got {len(got)}:\n" + "\n".join(got))
    for want, have in zip(expected, got):
        if want not in have:
            pytest.fail(f"expected error containing {want!r}, got {have!r}")
