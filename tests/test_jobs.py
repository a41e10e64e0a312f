import queue
import sys

import pytest

from microed.jobs import JobCallback, JobQueue

PY = sys.executable


def _recorder():
    calls = []

    def record(output, args):
        calls.append((output, args))

    return calls, record


def test_spawn_delivers_exit_output_with_user_args():
    jobs = JobQueue()
    calls, on_exit = _recorder()
    job = jobs.spawn(PY, ["-c", "print('hello')"], None, None, on_exit, "a", 1)
    assert job.wait(timeout=30) == 0
    assert jobs.run_pending() == 1
    assert calls[0][0].strip() == "hello"
    assert calls[0][1] == ("a", 1)


def test_stdout_chunks_add_up_to_output():
    jobs = JobQueue()
    chunks, on_stdout = _recorder()
    exits, on_exit = _recorder()
    job = jobs.spawn(PY, ["-c", "print('x' * 10000)"], on_stdout, None, on_exit)
    assert job.wait(timeout=30) == 0
    assert jobs.run_pending() == len(chunks) + 1
    assert job.output.strip() == "x" * 10000
    assert "".join(c for c, _ in chunks) == job.output
    assert exits[0][0] == job.output


def test_stderr_callback_and_combined_output():
    jobs = JobQueue()
    errors, on_stderr = _recorder()
    job = jobs.spawn(PY, ["-c", "import sys; sys.stderr.write('bad')"], None, on_stderr, None)
    job.wait(timeout=30)
    jobs.run_pending()
    assert "".join(e for e, _ in errors) == "bad"
    assert job.output == "bad"


def test_send_writes_to_stdin():
    jobs = JobQueue()
    job = jobs.spawn(PY, ["-c", "print(input().upper())"])
    job.send("ping\n")
    assert job.wait(timeout=30) == 0
    assert job.output.strip() == "PING"


def test_stop_kills_process():
    jobs = JobQueue()
    exits, on_exit = _recorder()
    job = jobs.spawn(PY, ["-c", "import time; time.sleep(60)"], None, None, on_exit)
    job.stop()
    code = job.wait(timeout=30)
    assert code != 0
    callback = jobs.get(timeout=5)
    assert isinstance(callback, JobCallback) and callback.function is on_exit


def test_start_runs_through_sh():
    jobs = JobQueue()
    exits, on_exit = _recorder()
    job = jobs.start("echo hello", None, None, on_exit, "arg")
    assert job.wait(timeout=30) == 0
    assert job.output == "hello\n"
    assert jobs.run_pending() == 1
    assert exits == [("hello\n", ("arg",))]


def test_get_times_out_on_empty_queue():
    jobs = JobQueue()
    with pytest.raises(queue.Empty):
        jobs.get(timeout=0.01)
    assert jobs.run_pending() == 0