import shlex
import subprocess
import sys

import pytest

from microed.shell import (
    exec_command,
    run_background_shell,
    run_command,
    run_interactive_shell,
)

PY = sys.executable


def _line(code):
    return " ".join(shlex.quote(part) for part in (PY, "-c", code))


def test_exec_command_returns_stdout():
    assert exec_command(PY, "-c", "print('hi')").strip() == "hi"


def test_exec_command_combines_stdout_and_stderr():
    out = exec_command(
        PY, "-c", "import sys; print('out'); sys.stdout.flush(); print('err', file=sys.stderr)"
    )
    assert out.split() == ["out", "err"]


def test_exec_command_failure_keeps_output():
    with pytest.raises(subprocess.CalledProcessError) as info:
        exec_command(PY, "-c", "print('partial'); raise SystemExit(3)")
    assert info.value.returncode == 3
    assert info.value.output.strip() == "partial"


def test_exec_command_missing_program():
    with pytest.raises(OSError):
        exec_command("no-such-program-for-microed-tests")


def test_run_command_splits_quotes():
    out = run_command(_line("import sys; print(sys.argv[1])") + " 'two words'")
    assert out.strip() == "two words"


def test_run_command_rejects_empty_and_bad_quotes():
    with pytest.raises(ValueError, match="No arguments"):
        run_command("   ")
    with pytest.raises(ValueError):
        run_command("echo 'unclosed")


def test_background_shell_success_and_failure():
    ok = run_background_shell(_line("print('done')"))
    assert ok().strip() == "done"

    fail = run_background_shell(_line("print('oops'); raise SystemExit(2)"))
    message = fail()
    assert message.startswith(PY + " exited with error: exit status 2: ")
    assert message.rstrip().endswith("oops")


def test_background_shell_checks_line_early():
    with pytest.raises(ValueError):
        run_background_shell("")


def test_interactive_shell_captures_output():
    assert run_interactive_shell(_line("print('shown')"), True).strip() == "shown"


def test_interactive_shell_without_capture_returns_empty():
    assert run_interactive_shell(_line("pass"), False) == ""
    with pytest.raises(subprocess.CalledProcessError):
        run_interactive_shell(_line("raise SystemExit(1)"), False)