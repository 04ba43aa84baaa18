"""Shared fixtures: peers wired together over in-memory transports."""

import asyncio

import pytest
import pytest_asyncio

from mcplite.codec import decode_message, encode_message
from mcplite.host import Host
from mcplite.session import Session
from mcplite.transport import memory_pair


async def wait_until(condition, timeout=1.0):
    """Yield to the event loop until ``condition()`` holds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not condition():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.001)


class RawPeer:
    """The far end of a transport, driven by hand from a test."""

    def __init__(self, transport):
        self.transport = transport

    async def receive(self):
        frame = await asyncio.wait_for(self.transport.receive(), 1.0)
        return None if frame is None else decode_message(frame)

    async def send(self, message):
        await self.transport.send(encode_message(message))

    async def send_raw(self, frame: bytes):
        await self.transport.send(frame)


@pytest.fixture
def raw_pair():
    """A Session-side transport and a RawPeer on the other end."""
    left, right = memory_pair()
    return left, RawPeer(right)


@pytest_asyncio.fixture
async def session_pair():
    """Factory for an initialized (host session, provider session) pair."""
    sessions = []

    async def make(host_capabilities=None, provider_capabilities=None,
                   provider_handler=None, host_handler=None, **options):
        left, right = memory_pair()
        host = Session(left, "test-host", "1.0", capabilities=host_capabilities, **options)
        provider = Session(right, "test-provider", "1.0",
                           capabilities=provider_capabilities or {}, **options)
        if provider_handler is not None:
            provider.on_request(provider_handler)
        if host_handler is not None:
            host.on_request(host_handler)
        sessions.extend([host, provider])

        accepting = asyncio.create_task(provider.accept())
        await host.connect()
        await accepting
        return host, provider

    yield make

    for session in sessions:
        await session.close()


@pytest_asyncio.fixture
async def connect_host():
    """Factory that serves a Provider over a memory pair and connects a Host to it."""
    hosts = []
    serving = []

    async def connect(provider, host=None):
        host = host or Host()
        left, right = memory_pair()
        serving.append(asyncio.create_task(provider.serve(right)))
        await host.connect(left)
        hosts.append(host)
        return host

    yield connect

    for host in hosts:
        await host.close()
    for task in serving:
        await asyncio.wait_for(task, 1.0)
