"""Background processes whose output is delivered as queued callbacks."""

from __future__ import annotations

import queue
import subprocess
import threading
from dataclasses import dataclass
from typing import IO, Any, Callable, Optional

Callback = Callable[[str, tuple], None]


@dataclass
class JobCallback:
    """A callback waiting to be run on the main thread with a job's output."""

    function: Callback
    output: str
    args: tuple

    def __call__(self) -> None:
        self.function(self.output, self.args)


class Job:
    """A running background process.

    Standard output and error are collected together; every chunk is also
    queued for the matching callback, and the whole output for ``on_exit``
    once the process has ended.
    """

    def __init__(
        self,
        process: subprocess.Popen,
        jobs: "queue.Queue[JobCallback]",
        on_stdout: Optional[Callback],
        on_stderr: Optional[Callback],
        on_exit: Optional[Callback],
        args: tuple,
    ) -> None:
        self.process = process
        self.stdin: Optional[IO[bytes]] = process.stdin
        self.args = args
        self._jobs = jobs
        self._lock = threading.Lock()
        self._output = bytearray()
        self._readers = [
            threading.Thread(target=self._pump, args=(process.stdout, on_stdout), daemon=True),
            threading.Thread(target=self._pump, args=(process.stderr, on_stderr), daemon=True),
        ]
        for reader in self._readers:
            reader.start()
        self._done = threading.Thread(target=self._finish, args=(on_exit,), daemon=True)
        self._done.start()

    def _pump(self, stream: IO[bytes], callback: Optional[Callback]) -> None:
        with stream:
            for chunk in iter(lambda: stream.read1(4096), b""):  # type: ignore[attr-defined]
                with self._lock:
                    self._output.extend(chunk)
                if callback is not None:
                    text = chunk.decode("utf-8", errors="replace")
                    self._jobs.put(JobCallback(callback, text, self.args))

    def _finish(self, on_exit: Optional[Callback]) -> None:
        for reader in self._readers:
            reader.join()
        self.process.wait()
        if on_exit is not None:
            self._jobs.put(JobCallback(on_exit, self.output, self.args))

    @property
    def output(self) -> str:
        """Everything the process has written so far."""
        with self._lock:
            return self._output.decode("utf-8", errors="replace")

    def stop(self) -> None:
        """Kill the process."""
        if self.process.poll() is None:
            try:
                self.process.kill()
            except ProcessLookupError:
                pass

    def send(self, data: str) -> None:
        """Write ``data`` to the process's standard input."""
        if self.stdin is None:
            return
        try:
            self.stdin.write(data.encode("utf-8"))
            self.stdin.flush()
        except (BrokenPipeError, ValueError):
            pass

    def wait(self, timeout: Optional[float] = None) -> int:
        """Wait for the process to end and its callbacks to be queued.

        Returns the exit code; raises subprocess.TimeoutExpired on timeout.
        """
        self._done.join(timeout)
        if self._done.is_alive():
            raise subprocess.TimeoutExpired(self.process.args, timeout or 0)
        if self.stdin is not None and not self.stdin.closed:
            try:
                self.stdin.close()
            except BrokenPipeError:
                pass
        return self.process.returncode


class JobQueue:
    """Starts jobs and holds their callbacks until the main loop runs them."""

    def __init__(self) -> None:
        self._jobs: "queue.Queue[JobCallback]" = queue.Queue(maxsize=100)

    def start(
        self,
        cmd: str,
        on_stdout: Optional[Callback] = None,
        on_stderr: Optional[Callback] = None,
        on_exit: Optional[Callback] = None,
        *args: Any,
    ) -> Job:
        """Run a command line through ``sh -c`` in the background."""
        return self.spawn("sh", ["-c", cmd], on_stdout, on_stderr, on_exit, *args)

    def spawn(
        self,
        name: str,
        args: list[str],
        on_stdout: Optional[Callback] = None,
        on_stderr: Optional[Callback] = None,
        on_exit: Optional[Callback] = None,
        *userargs: Any,
    ) -> Job:
        """Run a program with arguments in the background.

        ``userargs`` are handed to every callback after the output.
        """
        process = subprocess.Popen(
            [name, *args],
            stdin=subprocess.PIPE,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
        )
        return Job(process, self._jobs, on_stdout, on_stderr, on_exit, tuple(userargs))

    def get(self, timeout: Optional[float] = None) -> JobCallback:
        """Return the next queued callback; raises queue.Empty on timeout."""
        return self._jobs.get(timeout=timeout)

    def run_pending(self) -> int:
        """Run every callback queued so far and return how many ran."""
        count = 0
        while True:
            try:
                callback = self._jobs.get_nowait()
            except queue.Empty:
                return count
            callback()
            count += 1