"""Running external commands, in the background or interactively."""

from __future__ import annotations

import codecs
import shlex
import signal
import subprocess
import sys
import threading
from typing import Callable


def _decode(data: bytes) -> str:
    return data.decode("utf-8", errors="replace")


def exec_command(name: str, *args: str) -> str:
    """Run a program and return its combined standard output and error.

    A program that cannot be started raises OSError; one that exits with
    an error raises CalledProcessError carrying the output.
    """
    completed = subprocess.run(
        [name, *args],
        stdin=subprocess.DEVNULL,
        stdout=subprocess.PIPE,
        stderr=subprocess.STDOUT,
        check=False,
    )
    output = _decode(completed.stdout)
    if completed.returncode != 0:
        raise subprocess.CalledProcessError(completed.returncode, [name, *args], output=output)
    return output


def _split(line: str) -> list[str]:
    args = shlex.split(line)
    if not args:
        raise ValueError("No arguments")
    return args


def run_command(line: str) -> str:
    """Split a command line as a shell would and run it; see exec_command."""
    args = _split(line)
    return exec_command(args[0], *args[1:])


def _describe(exc: Exception) -> str:
    if isinstance(exc, subprocess.CalledProcessError):
        return f"exit status {exc.returncode}"
    return str(exc)


def run_background_shell(line: str) -> Callable[[], str]:
    """Check a command line and return a function that runs it.

    The function returns the output, or an error message that includes it.
    """
    command = _split(line)[0]

    def run() -> str:
        try:
            return run_command(line)
        except (OSError, subprocess.CalledProcessError, ValueError) as exc:
            output = getattr(exc, "output", None) or ""
            return f"{command} exited with error: {_describe(exc)}: {output}"

    return run


def run_interactive_shell(line: str, get_output: bool = False) -> str:
    """Run a command attached to the terminal and return what it printed.

    Output is captured only when ``get_output`` is true. An interrupt while
    the command runs kills the command instead of this program.
    """
    args = _split(line)
    process = subprocess.Popen(
        args, stdout=subprocess.PIPE if get_output else None
    )

    installed = False
    previous = None
    if threading.current_thread() is threading.main_thread():
        previous = signal.signal(signal.SIGINT, lambda signum, frame: process.kill())
        installed = True

    collected: list[str] = []
    try:
        if get_output and process.stdout is not None:
            decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
            with process.stdout:
                for chunk in iter(lambda: process.stdout.read1(4096), b""):
                    text = decoder.decode(chunk)
                    collected.append(text)
                    sys.stdout.write(text)
                    sys.stdout.flush()
                tail = decoder.decode(b"", final=True)
                collected.append(tail)
                sys.stdout.write(tail)
        returncode = process.wait()
    finally:
        if installed:
            signal.signal(signal.SIGINT, previous)

    output = "".join(collected)
    if returncode != 0:
        raise subprocess.CalledProcessError(returncode, args, output=output)
    return output