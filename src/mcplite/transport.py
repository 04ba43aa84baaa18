"""Transports: ordered, reliable, bidirectional frame channels.

A transport moves opaque newline-delimited frames and reports peer
disconnect by returning ``None`` from :meth:`Transport.receive`. It knows
nothing about message contents; the session and codec sit on top.
"""

import asyncio
import logging
import sys
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Sequence, Tuple

from .errors import TransportError

logger = logging.getLogger(__name__)

# asyncio's 64 KiB default is too small for resource payloads
STREAM_LIMIT = 16 * 1024 * 1024


class Transport(ABC):
    """Base class for transports."""

    @abstractmethod
    async def open(self) -> None:
        """Establish the channel. Called once before any send or receive."""

    @abstractmethod
    async def send(self, frame: bytes) -> None:
        """Send one frame.

        Raises:
            TransportError: If the channel is closed or broken
        """

    @abstractmethod
    async def receive(self) -> Optional[bytes]:
        """Wait for the next frame, or ``None`` once the peer has disconnected."""

    @abstractmethod
    async def close(self) -> None:
        """Release the channel. Idempotent."""


class StreamTransport(Transport):
    """Transport over an asyncio reader/writer pair (pipes, sockets)."""

    def __init__(
        self,
        reader: Optional[asyncio.StreamReader] = None,
        writer: Optional[asyncio.StreamWriter] = None
    ):
        self._reader = reader
        self._writer = writer
        self._closed = False

    async def open(self) -> None:
        if self._reader is None or self._writer is None:
            raise TransportError("Stream transport has no reader/writer")

    async def send(self, frame: bytes) -> None:
        if self._closed or self._writer is None:
            raise TransportError("Transport is closed")
        try:
            self._writer.write(frame)
            await self._writer.drain()
        except (ConnectionError, OSError) as e:
            raise TransportError(f"Failed to write to transport: {e}") from e

    async def receive(self) -> Optional[bytes]:
        if self._reader is None:
            raise TransportError("Transport is not open")
        while True:
            try:
                line = await self._reader.readline()
            except (asyncio.LimitOverrunError, ValueError) as e:
                raise TransportError(f"Frame exceeds {STREAM_LIMIT} bytes") from e
            except (ConnectionError, OSError) as e:
                raise TransportError(f"Failed to read from transport: {e}") from e
            if not line:
                return None
            line = line.strip()
            if line:
                return line

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._writer is not None:
            self._writer.close()
            try:
                await self._writer.wait_closed()
            except (ConnectionError, OSError):
                pass


class StdioTransport(StreamTransport):
    """Transport over this process's stdin and stdout (the provider side of a pipe)."""

    async def open(self) -> None:
        loop = asyncio.get_running_loop()
        reader = asyncio.StreamReader(limit=STREAM_LIMIT)
        await loop.connect_read_pipe(lambda: asyncio.StreamReaderProtocol(reader), sys.stdin)
        w_transport, w_protocol = await loop.connect_write_pipe(
            asyncio.streams.FlowControlMixin, sys.stdout
        )
        self._reader = reader
        self._writer = asyncio.StreamWriter(w_transport, w_protocol, reader, loop)


class ProcessTransport(StreamTransport):
    """Spawn a provider as a child process and talk to it over its pipes.

    Args:
        command: Executable to run
        args: Arguments for the executable
        env: Environment for the child (inherits the parent's when None)
        cwd: Working directory for the child
        stderr: Whether the child's stderr is inherited (True) or discarded
        shutdown_timeout: Seconds to wait for the child to exit after stdin closes
    """

    def __init__(
        self,
        command: str,
        args: Sequence[str] = (),
        env: Optional[Dict[str, str]] = None,
        cwd: Optional[str] = None,
        stderr: bool = False,
        shutdown_timeout: float = 2.0
    ):
        super().__init__()
        self.command = command
        self.args: List[str] = list(args)
        self.env = env
        self.cwd = cwd
        self.stderr = stderr
        self.shutdown_timeout = shutdown_timeout
        self.process: Optional[asyncio.subprocess.Process] = None

    async def open(self) -> None:
        try:
            self.process = await asyncio.create_subprocess_exec(
                self.command,
                *self.args,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=None if self.stderr else asyncio.subprocess.DEVNULL,
                env=self.env,
                cwd=self.cwd,
                limit=STREAM_LIMIT,
            )
        except OSError as e:
            raise TransportError(f"Failed to start {self.command}: {e}") from e
        self._reader = self.process.stdout
        self._writer = self.process.stdin
        logger.debug("Started provider process %s (pid %s)", self.command, self.process.pid)

    async def close(self) -> None:
        if self._closed:
            return
        await super().close()
        process = self.process
        if process is None or process.returncode is not None:
            return
        try:
            await asyncio.wait_for(process.wait(), self.shutdown_timeout)
        except asyncio.TimeoutError:
            logger.warning("Provider process %s did not exit, terminating", process.pid)
            process.terminate()
            try:
                await asyncio.wait_for(process.wait(), self.shutdown_timeout)
            except asyncio.TimeoutError:
                process.kill()
                await process.wait()


class MemoryTransport(Transport):
    """One end of an in-memory linked pair. See :func:`memory_pair`."""

    def __init__(self):
        self._inbox: "asyncio.Queue[Optional[bytes]]" = asyncio.Queue()
        self._peer: Optional["MemoryTransport"] = None
        self._closed = False
        self.sent: List[bytes] = []

    async def open(self) -> None:
        if self._peer is None:
            raise TransportError("Memory transport is not linked")

    async def send(self, frame: bytes) -> None:
        if self._closed or self._peer is None or self._peer._closed:
            raise TransportError("Transport is closed")
        self.sent.append(frame)
        self._peer._inbox.put_nowait(frame.rstrip(b"\n"))

    async def receive(self) -> Optional[bytes]:
        return await self._inbox.get()

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._inbox.put_nowait(None)
        if self._peer is not None:
            self._peer._inbox.put_nowait(None)


def memory_pair() -> Tuple[MemoryTransport, MemoryTransport]:
    """Create two linked in-memory transports; what one sends the other receives."""
    left, right = MemoryTransport(), MemoryTransport()
    left._peer, right._peer = right, left
    return left, right
