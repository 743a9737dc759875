"""Async subprocess invocation for yt-dlp.

Two modes are offered:

* :meth:`ProcessInvoker.run_captured` runs the tool to completion and
  returns everything it wrote to stdout.
* :meth:`ProcessInvoker.run_streaming` returns a :class:`StreamingProcess`
  whose stdout is consumed chunk by chunk while the tool is still running.

Children are started in their own session so that ``terminate()`` can kill
the whole process group (yt-dlp may spawn ffmpeg).
"""
import asyncio
import os
import signal
from contextlib import suppress
from typing import AsyncIterator, Callable, Sequence

from media_relay.core.logging import TOOL_LOGGER_NAME, get_logger
from media_relay.services.errors import ProcessFailureError

logger = get_logger(__name__)
tool_logger = get_logger(TOOL_LOGGER_NAME)

# Keep the last ~64KB of stderr for error reports
STDERR_TAIL_LIMIT = 64 * 1024
STDERR_READ_SIZE = 4096
DEFAULT_CHUNK_SIZE = 64 * 1024

StderrSink = Callable[[bytes], None]


def log_stderr_chunk(data: bytes) -> None:
    """Default stderr sink: forward tool diagnostics to the tool logger."""
    text = data.decode(errors="replace").strip()
    if text:
        tool_logger.debug(text)


def failure_message(executable: str, returncode: int | None, stderr_text: str) -> str:
    """Message for a failed run: stderr text, or a generic exit-code note."""
    text = stderr_text.strip()
    if text:
        return text
    return f"{executable} exited with code {returncode}"


def _kill_group(process: asyncio.subprocess.Process) -> None:
    """SIGKILL the child and everything in its process group."""
    if process.returncode is not None:
        return
    with suppress(ProcessLookupError):
        if hasattr(os, "killpg"):
            os.killpg(process.pid, signal.SIGKILL)
        else:
            process.kill()


async def _discard(stream: asyncio.StreamReader | None) -> None:
    """Read *stream* to EOF and drop the data.

    A paused pipe transport never sees EOF, and the child is only reaped
    once both pipes are closed.
    """
    if stream is None:
        return
    while await stream.read(DEFAULT_CHUNK_SIZE):
        pass


async def _spawn(executable: str, args: Sequence[str]) -> asyncio.subprocess.Process:
    """Start *executable* with stdin closed and both output streams piped."""
    try:
        return await asyncio.create_subprocess_exec(
            executable,
            *args,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            start_new_session=True,
        )
    except OSError as e:
        logger.error(f"Failed to start {executable}: {e}")
        raise ProcessFailureError(f"Failed to start {executable}: {e}") from e


class StreamingProcess:
    """A running subprocess whose stdout is relayed as it is produced.

    The object owns the child exclusively. stdout is exposed through
    :meth:`iter_chunks`, stderr is drained in the background into a
    diagnostic sink, and :meth:`wait` resolves once the child has exited
    and both pipes are closed.
    """

    def __init__(
        self,
        process: asyncio.subprocess.Process,
        executable: str,
        stderr_sink: StderrSink | None = None,
    ) -> None:
        self._process = process
        self.executable = executable
        self._stderr_sink = stderr_sink or log_stderr_chunk
        self._stderr_tail = bytearray()
        self._consumed = False
        self._reading = False
        self._terminated = False
        self._discard_task: asyncio.Task[None] | None = None
        self._stderr_task = asyncio.create_task(self._drain_stderr())
        self._exit_task = asyncio.create_task(self._wait_for_exit())

    @property
    def pid(self) -> int:
        return self._process.pid

    @property
    def returncode(self) -> int | None:
        """Exit code once the child has been reaped, else ``None``."""
        return self._process.returncode

    @property
    def terminated(self) -> bool:
        return self._terminated

    @property
    def stderr_tail(self) -> str:
        """Last bytes the tool wrote to stderr, decoded."""
        return self._stderr_tail.decode(errors="replace")

    async def iter_chunks(
        self, chunk_size: int = DEFAULT_CHUNK_SIZE
    ) -> AsyncIterator[bytes]:
        """Yield stdout chunks in arrival order until EOF.

        Reads happen only when the consumer asks for the next chunk, so a
        slow consumer throttles the child through the pipe. The sequence
        can be consumed once.

        Raises:
            RuntimeError: If called a second time
        """
        if self._consumed:
            raise RuntimeError("stdout of this process has already been consumed")
        self._consumed = True

        stdout = self._process.stdout
        if stdout is None:
            return
        try:
            while not self._terminated:
                self._reading = True
                try:
                    chunk = await stdout.read(chunk_size)
                finally:
                    self._reading = False
                if not chunk or self._terminated:
                    break
                yield chunk
        finally:
            if self._terminated:
                self._start_discard()

    def terminate(self) -> None:
        """Kill the child immediately.

        Safe to call repeatedly and after the child has exited on its own.
        """
        if self._terminated:
            return
        self._terminated = True
        if self._process.returncode is None:
            logger.info(f"Killing {self.executable} (pid {self.pid})")
            _kill_group(self._process)
        if not self._reading:
            self._start_discard()

    async def wait(self) -> int:
        """Wait for the child to finish and return its exit code.

        Every caller gets the same result; cancelling a waiter does not
        cancel the underlying completion task.
        """
        return await asyncio.shield(self._exit_task)

    def _start_discard(self) -> None:
        # Unread stdout keeps the pipe transport open, which delays reaping.
        if self._discard_task is None:
            self._discard_task = asyncio.create_task(_discard(self._process.stdout))

    async def _drain_stderr(self) -> None:
        stderr = self._process.stderr
        if stderr is None:
            return
        while True:
            data = await stderr.read(STDERR_READ_SIZE)
            if not data:
                break
            self._stderr_tail.extend(data)
            if len(self._stderr_tail) > STDERR_TAIL_LIMIT:
                del self._stderr_tail[: len(self._stderr_tail) - STDERR_TAIL_LIMIT]
            try:
                self._stderr_sink(data)
            except Exception:
                logger.exception("stderr sink raised; continuing to drain")

    async def _wait_for_exit(self) -> int:
        returncode = await self._process.wait()
        await self._stderr_task
        logger.debug(f"{self.executable} (pid {self.pid}) exited with {returncode}")
        return returncode


class ProcessInvoker:
    """Launch the external tool in buffered or streaming mode."""

    @staticmethod
    async def run_captured(executable: str, args: Sequence[str]) -> bytes:
        """Run *executable* to completion and return its stdout.

        No deadline is applied here; wrap the call in ``asyncio.wait_for``
        to impose one. If the caller is cancelled the child is killed and
        reaped before the cancellation propagates.

        Args:
            executable: Program name or path
            args: Arguments passed after the program name

        Returns:
            Raw bytes written to stdout

        Raises:
            ProcessFailureError: If the program cannot be started or exits
                with a non-zero code
        """
        process = await _spawn(executable, args)
        try:
            stdout, stderr = await process.communicate()
        finally:
            if process.returncode is None:
                _kill_group(process)
                await asyncio.gather(
                    _discard(process.stdout),
                    _discard(process.stderr),
                    process.wait(),
                )

        if process.returncode != 0:
            stderr_text = stderr.decode(errors="replace")
            raise ProcessFailureError(
                failure_message(executable, process.returncode, stderr_text),
                returncode=process.returncode,
                stderr=stderr_text,
            )
        return stdout

    @staticmethod
    async def run_streaming(
        executable: str,
        args: Sequence[str],
        stderr_sink: StderrSink | None = None,
    ) -> StreamingProcess:
        """Start *executable* and hand back its live output.

        Args:
            executable: Program name or path
            args: Arguments passed after the program name
            stderr_sink: Receives raw stderr chunks (defaults to logging)

        Returns:
            The running process wrapper

        Raises:
            ProcessFailureError: If the program cannot be started
        """
        process = await _spawn(executable, args)
        return StreamingProcess(process, executable, stderr_sink)
