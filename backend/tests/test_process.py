"""Tests for buffered and streaming subprocess invocation."""
import asyncio
import os
import signal
import sys
from pathlib import Path

import pytest

from media_relay.services.errors import ProcessFailureError
from media_relay.services.process import ProcessInvoker

PYTHON = sys.executable

HANG_SCRIPT = (
    "import sys, time\n"
    "sys.stdout.buffer.write(b'first'); sys.stdout.buffer.flush()\n"
    "time.sleep(60)\n"
)


def _pid_alive(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    return True


class TestRunCaptured:
    """Tests for buffered invocation."""

    def test_returns_stdout_only(self) -> None:
        """stdout is returned and stderr is kept out of it."""
        script = "import sys; sys.stdout.write('hello'); sys.stderr.write('noise')"
        result = asyncio.run(ProcessInvoker.run_captured(PYTHON, ["-c", script]))
        assert result == b"hello"

    def test_stdin_is_closed(self) -> None:
        """The child sees an empty stdin instead of blocking on it."""
        script = "import sys; sys.stdout.write(repr(sys.stdin.read()))"
        result = asyncio.run(ProcessInvoker.run_captured(PYTHON, ["-c", script]))
        assert result == b"''"

    def test_nonzero_exit_carries_stderr(self) -> None:
        """A failing run raises with the stderr text as message."""
        script = "import sys; sys.stderr.write('ERROR: boom\\n'); sys.exit(3)"
        with pytest.raises(ProcessFailureError) as exc_info:
            asyncio.run(ProcessInvoker.run_captured(PYTHON, ["-c", script]))

        assert exc_info.value.message == "ERROR: boom"
        assert exc_info.value.returncode == 3
        assert exc_info.value.code == "PROCESS_FAILED"

    def test_nonzero_exit_without_stderr(self) -> None:
        """A silent failure gets a generic exit-code message."""
        with pytest.raises(ProcessFailureError) as exc_info:
            asyncio.run(
                ProcessInvoker.run_captured(PYTHON, ["-c", "import sys; sys.exit(4)"])
            )
        assert exc_info.value.message == f"{PYTHON} exited with code 4"

    def test_missing_executable(self, tmp_path: Path) -> None:
        """A program that cannot be started is a process failure."""
        missing = str(tmp_path / "no-such-tool")
        with pytest.raises(ProcessFailureError, match="Failed to start"):
            asyncio.run(ProcessInvoker.run_captured(missing, ["-J", "x"]))

    def test_caller_deadline_kills_child(self, tmp_path: Path) -> None:
        """Cancelling the call through wait_for leaves no process behind."""
        pid_file = tmp_path / "pid"
        script = (
            "import os, sys, time\n"
            f"open({str(pid_file)!r}, 'w').write(str(os.getpid()))\n"
            "time.sleep(60)\n"
        )

        async def scenario() -> None:
            with pytest.raises(asyncio.TimeoutError):
                await asyncio.wait_for(
                    ProcessInvoker.run_captured(PYTHON, ["-c", script]), timeout=1.0
                )

        asyncio.run(scenario())
        assert not _pid_alive(int(pid_file.read_text()))


class TestRunStreaming:
    """Tests for streaming invocation."""

    def test_chunks_reassemble_exact_output(self) -> None:
        """Concatenated chunks equal the bytes the child wrote, in order."""
        script = (
            "import sys\n"
            "for i in range(64):\n"
            "    sys.stdout.buffer.write(bytes([i]) * 10000)\n"
            "    sys.stdout.buffer.flush()\n"
        )
        expected = b"".join(bytes([i]) * 10000 for i in range(64))

        async def scenario() -> tuple[bytes, int]:
            process = await ProcessInvoker.run_streaming(PYTHON, ["-c", script])
            chunks = [chunk async for chunk in process.iter_chunks(4096)]
            assert all(len(chunk) <= 4096 for chunk in chunks)
            return b"".join(chunks), await process.wait()

        data, returncode = asyncio.run(scenario())
        assert data == expected
        assert returncode == 0

    def test_stderr_goes_to_sink_only(self) -> None:
        """stderr reaches the diagnostic sink and never the stdout chunks."""
        script = (
            "import sys\n"
            "sys.stderr.write('progress 50%\\n'); sys.stderr.flush()\n"
            "sys.stdout.write('payload'); sys.stdout.flush()\n"
            "sys.stderr.write('progress 100%\\n')\n"
        )
        diagnostics: list[bytes] = []

        async def scenario() -> tuple[bytes, str]:
            process = await ProcessInvoker.run_streaming(
                PYTHON, ["-c", script], stderr_sink=diagnostics.append
            )
            data = b"".join([chunk async for chunk in process.iter_chunks()])
            await process.wait()
            return data, process.stderr_tail

        data, tail = asyncio.run(scenario())
        assert data == b"payload"
        assert b"".join(diagnostics) == b"progress 50%\nprogress 100%\n"
        assert "progress 100%" in tail

    def test_nonzero_exit_is_reported_by_wait(self) -> None:
        """wait() returns the exit code, and every waiter sees the same one."""
        script = "import sys; sys.stdout.write('partial'); sys.exit(2)"

        async def scenario() -> list[int]:
            process = await ProcessInvoker.run_streaming(PYTHON, ["-c", script])
            async for _ in process.iter_chunks():
                pass
            return list(await asyncio.gather(process.wait(), process.wait()))

        assert asyncio.run(scenario()) == [2, 2]

    def test_stream_is_not_restartable(self) -> None:
        """A second iteration is refused."""

        async def scenario() -> None:
            process = await ProcessInvoker.run_streaming(PYTHON, ["-c", "print(1)"])
            async for _ in process.iter_chunks():
                pass
            with pytest.raises(RuntimeError):
                async for _ in process.iter_chunks():
                    pass
            await process.wait()

        asyncio.run(scenario())

    def test_terminate_kills_running_child(self) -> None:
        """terminate() kills immediately and can be repeated."""

        async def scenario() -> tuple[int, int]:
            process = await ProcessInvoker.run_streaming(PYTHON, ["-c", HANG_SCRIPT])
            chunks = process.iter_chunks()
            first = await chunks.__anext__()
            assert first == b"first"
            await chunks.aclose()

            process.terminate()
            process.terminate()
            returncode = await asyncio.wait_for(process.wait(), timeout=5)
            return process.pid, returncode

        pid, returncode = asyncio.run(scenario())
        assert returncode == -signal.SIGKILL
        assert not _pid_alive(pid)

    def test_terminate_while_reading(self) -> None:
        """terminate() during a pending read ends the iteration."""

        async def scenario() -> tuple[list[bytes], int]:
            process = await ProcessInvoker.run_streaming(PYTHON, ["-c", HANG_SCRIPT])
            received: list[bytes] = []

            async def consume() -> None:
                async for chunk in process.iter_chunks():
                    received.append(chunk)

            consumer = asyncio.create_task(consume())
            while not received:
                await asyncio.sleep(0.05)
            process.terminate()
            await asyncio.wait_for(consumer, timeout=5)
            return received, await asyncio.wait_for(process.wait(), timeout=5)

        received, returncode = asyncio.run(scenario())
        assert received == [b"first"]
        assert returncode == -signal.SIGKILL

    def test_terminate_after_exit_is_noop(self) -> None:
        """terminate() after a natural exit keeps the real exit code."""

        async def scenario() -> int:
            process = await ProcessInvoker.run_streaming(PYTHON, ["-c", "print('done')"])
            async for _ in process.iter_chunks():
                pass
            returncode = await process.wait()
            process.terminate()
            assert process.returncode == returncode
            return returncode

        assert asyncio.run(scenario()) == 0

    def test_missing_executable(self, tmp_path: Path) -> None:
        """Spawn failure is reported before any stream exists."""
        with pytest.raises(ProcessFailureError, match="Failed to start"):
            asyncio.run(
                ProcessInvoker.run_streaming(str(tmp_path / "no-such-tool"), ["-o", "-"])
            )
