"""Tests for protocol session module."""

import asyncio
import json
import logging

import pytest

from conftest import wait_until
from mcplite.codec import Notification, Request, Response
from mcplite.errors import (
    HandshakeError,
    InvalidRequestError,
    RemoteError,
    RequestTimeoutError,
    SessionClosedError,
    TransportError,
    UnsupportedContentError,
)
from mcplite.response import ErrorCodes
from mcplite.session import LATEST_PROTOCOL_VERSION, Session


def initialize_result(version=LATEST_PROTOCOL_VERSION, capabilities=None):
    return {
        "protocolVersion": version,
        "capabilities": capabilities or {},
        "serverInfo": {"name": "raw", "version": "0"}
    }


async def answer_handshake(peer, version=LATEST_PROTOCOL_VERSION):
    """Play the provider side of the handshake by hand."""
    request = await peer.receive()
    assert isinstance(request, Request) and request.method == "initialize"
    await peer.send(Response(id=request.id, result=initialize_result(version)))
    return request, await peer.receive()


async def connect_raw(transport, peer):
    """Connect a host Session to a hand-driven provider."""
    session = Session(transport, "h", "1")
    connecting = asyncio.create_task(session.connect())
    await answer_handshake(peer)
    await connecting
    return session


class TestHandshake:
    """Test connect and accept."""

    @pytest.mark.asyncio
    async def test_connect_and_accept(self, session_pair):
        """Test both sides learn about each other."""
        host, provider = await session_pair(
            host_capabilities={"sampling": {}},
            provider_capabilities={"tools": {"listChanged": False}}
        )
        assert host.protocol_version == provider.protocol_version == LATEST_PROTOCOL_VERSION
        assert host.peer_info == {"name": "test-provider", "version": "1.0"}
        assert provider.peer_info == {"name": "test-host", "version": "1.0"}
        assert host.peer_supports("tools")
        assert provider.peer_supports("sampling")
        assert not provider.peer_supports("roots")

    @pytest.mark.asyncio
    async def test_host_sends_initialize_then_initialized(self, raw_pair):
        """Test the host's handshake frames and their order."""
        transport, peer = raw_pair
        session = Session(transport, "h", "1", capabilities={"sampling": {}})
        connecting = asyncio.create_task(session.connect())

        request, notification = await answer_handshake(peer)
        await connecting
        assert request.params["protocolVersion"] == LATEST_PROTOCOL_VERSION
        assert request.params["capabilities"] == {"sampling": {}}
        assert request.params["clientInfo"] == {"name": "h", "version": "1"}
        assert isinstance(notification, Notification)
        assert notification.method == "notifications/initialized"
        await session.close()

    @pytest.mark.asyncio
    async def test_older_supported_version(self, raw_pair):
        """Test the host accepts an older version the provider chose."""
        transport, peer = raw_pair
        session = Session(transport, "h", "1")
        connecting = asyncio.create_task(session.connect())
        await answer_handshake(peer, version="2024-11-05")
        await connecting
        assert session.protocol_version == "2024-11-05"
        await session.close()

    @pytest.mark.asyncio
    async def test_unsupported_version(self, raw_pair):
        """Test an unknown provider version fails the handshake and closes."""
        transport, peer = raw_pair
        session = Session(transport, "h", "1")
        connecting = asyncio.create_task(session.connect())

        request = await peer.receive()
        await peer.send(Response(id=request.id, result=initialize_result("1999-01-01")))
        with pytest.raises(HandshakeError, match="1999-01-01"):
            await connecting
        assert session.closed

    @pytest.mark.asyncio
    async def test_provider_rejects_initialize(self, raw_pair):
        """Test an error answer to initialize is a handshake error."""
        transport, peer = raw_pair
        session = Session(transport, "h", "1")
        connecting = asyncio.create_task(session.connect())

        request = await peer.receive()
        await peer.send(Response(id=request.id, error={"code": -32600, "message": "go away"}))
        with pytest.raises(HandshakeError, match="go away"):
            await connecting

    @pytest.mark.asyncio
    async def test_connect_timeout(self, raw_pair):
        """Test a silent provider fails the handshake after the timeout."""
        transport, _ = raw_pair
        session = Session(transport, "h", "1", handshake_timeout=0.05)
        with pytest.raises(HandshakeError):
            await session.connect()
        assert session.closed

    @pytest.mark.asyncio
    async def test_accept_timeout(self, raw_pair):
        """Test a silent host fails the provider's handshake."""
        transport, _ = raw_pair
        session = Session(transport, "p", "1", handshake_timeout=0.05)
        with pytest.raises(HandshakeError, match="in time"):
            await session.accept()

    @pytest.mark.asyncio
    async def test_provider_negotiates_unknown_version(self, raw_pair):
        """Test the provider answers an unknown version with its latest one."""
        transport, peer = raw_pair
        session = Session(transport, "p", "1")
        accepting = asyncio.create_task(session.accept())

        await peer.send(Request(id=1, method="initialize", params={
            "protocolVersion": "2099-01-01", "capabilities": {}, "clientInfo": {"name": "x"}
        }))
        response = await peer.receive()
        assert response.result["protocolVersion"] == LATEST_PROTOCOL_VERSION
        assert response.result["serverInfo"] == {"name": "p", "version": "1"}

        await peer.send(Notification(method="notifications/initialized"))
        await accepting
        await session.close()

    @pytest.mark.asyncio
    async def test_requests_before_initialize_are_rejected(self, raw_pair):
        """Test the provider refuses work until initialize arrives."""
        transport, peer = raw_pair
        session = Session(transport, "p", "1")
        handled = []
        session.on_request(lambda method, params: handled.append(method) or {})
        accepting = asyncio.create_task(session.accept())

        await peer.send(Request(id=1, method="tools/list"))
        response = await peer.receive()
        assert response.error.code == ErrorCodes.INVALID_REQUEST
        assert handled == []

        await session.close()
        with pytest.raises(HandshakeError):
            await accepting

    @pytest.mark.asyncio
    async def test_second_initialize_is_rejected(self, session_pair):
        """Test initialize cannot be repeated on a live session."""
        host, _ = await session_pair()
        with pytest.raises(RemoteError) as exc_info:
            await host.send_request("initialize", {"protocolVersion": LATEST_PROTOCOL_VERSION})
        assert exc_info.value.code == ErrorCodes.INVALID_REQUEST


class TestRequests:
    """Test request/response correlation."""

    @pytest.mark.asyncio
    async def test_request_result(self, session_pair):
        """Test a request gets its handler's result."""
        host, _ = await session_pair(provider_handler=lambda method, params: {"echo": params})
        assert await host.send_request("echo", {"x": 1}) == {"echo": {"x": 1}}

    @pytest.mark.asyncio
    async def test_ping(self, session_pair):
        """Test ping is answered by the session itself, in both directions."""
        host, provider = await session_pair()
        assert await host.send_request("ping") == {}
        assert await provider.send_request("ping") == {}

    @pytest.mark.asyncio
    async def test_no_handler(self, session_pair):
        """Test requests without a handler are METHOD_NOT_FOUND."""
        host, _ = await session_pair()
        with pytest.raises(RemoteError) as exc_info:
            await host.send_request("tools/list")
        assert exc_info.value.code == ErrorCodes.METHOD_NOT_FOUND

    @pytest.mark.asyncio
    async def test_handler_exception(self, session_pair):
        """Test unexpected handler exceptions become INTERNAL_ERROR."""
        def broken(method, params):
            raise KeyError("boom")

        host, _ = await session_pair(provider_handler=broken)
        with pytest.raises(RemoteError) as exc_info:
            await host.send_request("anything")
        assert exc_info.value.code == ErrorCodes.INTERNAL_ERROR

    @pytest.mark.asyncio
    async def test_concurrent_requests_do_not_cross(self, session_pair):
        """Test each caller gets its own response when answers arrive out of order."""
        release = asyncio.Event()

        async def handler(method, params):
            if params["n"] == 0:
                await release.wait()
            return {"n": params["n"]}

        host, _ = await session_pair(provider_handler=handler)
        slow = asyncio.create_task(host.send_request("work", {"n": 0}))
        fast = [asyncio.create_task(host.send_request("work", {"n": n})) for n in range(1, 6)]

        results = await asyncio.gather(*fast)
        assert [r["n"] for r in results] == [1, 2, 3, 4, 5]
        assert not slow.done()

        release.set()
        assert await slow == {"n": 0}

    @pytest.mark.asyncio
    async def test_ids_are_unique(self, raw_pair):
        """Test outgoing request ids are never reused within a session."""
        transport, peer = raw_pair
        session = Session(transport, "h", "1")
        connecting = asyncio.create_task(session.connect())
        request, _ = await answer_handshake(peer)
        await connecting

        tasks = [asyncio.create_task(session.send_request("work")) for _ in range(3)]
        ids = {request.id}
        for _ in tasks:
            message = await peer.receive()
            ids.add(message.id)
            await peer.send(Response(id=message.id, result={}))
        await asyncio.gather(*tasks)
        assert len(ids) == 4
        await session.close()

    @pytest.mark.asyncio
    async def test_unmatched_response_is_discarded(self, raw_pair, caplog):
        """Test a response with an unknown id is logged and ignored."""
        transport, peer = raw_pair
        session = Session(transport, "h", "1")
        connecting = asyncio.create_task(session.connect())
        await answer_handshake(peer)
        await connecting

        pending = asyncio.create_task(session.send_request("work"))
        request = await peer.receive()
        with caplog.at_level(logging.WARNING, logger="mcplite.session"):
            await peer.send(Response(id=999, result={"stray": True}))
            await peer.send(Response(id=request.id, result={"ok": True}))
            assert await pending == {"ok": True}
        assert "unknown id 999" in caplog.text
        await session.close()

    @pytest.mark.asyncio
    async def test_timeout(self, session_pair):
        """Test a request without an answer times out and is forgotten."""
        async def never(method, params):
            await asyncio.Event().wait()

        host, _ = await session_pair(provider_handler=never)
        with pytest.raises(RequestTimeoutError):
            await host.send_request("work", timeout=0.05)
        assert host._pending == {}

    @pytest.mark.asyncio
    async def test_timeout_is_a_transport_error(self, session_pair):
        """Test callers catching TransportError also see timeouts."""
        async def never(method, params):
            await asyncio.Event().wait()

        host, _ = await session_pair(provider_handler=never, request_timeout=0.05)
        with pytest.raises(TransportError):
            await host.send_request("work")


class TestInvalidInput:
    """Test handling of malformed inbound frames."""

    @pytest.mark.asyncio
    async def test_parse_error_response(self, raw_pair):
        """Test unparsable input is answered with PARSE_ERROR and a null id."""
        transport, peer = raw_pair
        session = Session(transport, "p", "1")
        accepting = asyncio.create_task(session.accept())

        await peer.send_raw(b"{this is not json")
        response = await peer.receive()
        assert response.id is None
        assert response.error.code == ErrorCodes.PARSE_ERROR

        await session.close()
        with pytest.raises(HandshakeError):
            await accepting

    @pytest.mark.asyncio
    async def test_invalid_request_keeps_id(self, raw_pair):
        """Test an invalid message is answered with its own id."""
        transport, peer = raw_pair
        session = Session(transport, "p", "1")
        accepting = asyncio.create_task(session.accept())

        await peer.send_raw(b'{"jsonrpc":"1.0","id":4,"method":"ping"}')
        response = await peer.receive()
        assert response.id == 4
        assert response.error.code == ErrorCodes.INVALID_REQUEST

        await session.close()
        with pytest.raises(HandshakeError):
            await accepting


class TestNotifications:
    """Test notifications."""

    @pytest.mark.asyncio
    async def test_notifications_arrive_in_order(self, session_pair):
        """Test notifications are delivered in send order with no response."""
        host, provider = await session_pair()
        received = []
        provider.on_notification("notes/added", lambda params: received.append(params["n"]))

        sent_before = len(provider.transport.sent)
        for n in range(5):
            await host.send_notification("notes/added", {"n": n})
        await wait_until(lambda: len(received) == 5)
        assert received == [0, 1, 2, 3, 4]
        assert len(provider.transport.sent) == sent_before

    @pytest.mark.asyncio
    async def test_failing_notification_handler(self, session_pair):
        """Test a failing notification handler does not break the session."""
        host, provider = await session_pair(provider_handler=lambda method, params: {"ok": True})

        def broken(params):
            raise ValueError("bad")

        provider.on_notification("notes/added", broken)
        await host.send_notification("notes/added", {})
        assert await host.send_request("work") == {"ok": True}


class TestClose:
    """Test closing and disconnects."""

    @pytest.mark.asyncio
    async def test_close_fails_every_pending_request(self, session_pair):
        """Test close resolves all pending requests with SessionClosedError."""
        async def never(method, params):
            await asyncio.Event().wait()

        host, _ = await session_pair(provider_handler=never)
        tasks = [asyncio.create_task(host.send_request("work")) for _ in range(3)]
        await wait_until(lambda: len(host._pending) == 3)

        await host.close()
        results = await asyncio.gather(*tasks, return_exceptions=True)
        assert all(isinstance(r, SessionClosedError) for r in results)
        assert host._pending == {}

    @pytest.mark.asyncio
    async def test_peer_disconnect_fails_pending(self, session_pair):
        """Test the peer going away fails pending requests with TransportError."""
        async def never(method, params):
            await asyncio.Event().wait()

        host, provider = await session_pair(provider_handler=never)
        task = asyncio.create_task(host.send_request("work"))
        await wait_until(lambda: len(host._pending) == 1)

        await provider.close()
        with pytest.raises(TransportError):
            await task
        await asyncio.wait_for(host.wait_closed(), 1.0)
        assert host.closed

    @pytest.mark.asyncio
    async def test_send_after_close(self, session_pair):
        """Test sending on a closed session fails immediately."""
        host, _ = await session_pair()
        await host.close()
        with pytest.raises(SessionClosedError):
            await host.send_request("ping")
        with pytest.raises(SessionClosedError):
            await host.send_notification("notes/added")

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self, session_pair):
        """Test closing twice is harmless."""
        host, _ = await session_pair()
        await host.close()
        await host.close()
        assert host.closed

    @pytest.mark.asyncio
    async def test_send_before_start(self, raw_pair):
        """Test a session that never started refuses to send."""
        transport, _ = raw_pair
        with pytest.raises(SessionClosedError):
            await Session(transport, "h", "1").send_request("ping")


class TestInvalidResponses:
    """Test malformed responses to our own requests."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", [
        '"result":"ok"',
        '"result":{},"error":{"code":-32603,"message":"x"}',
        '"error":{"message":"no code"}',
    ])
    async def test_caller_fails_and_nothing_is_sent(self, raw_pair, body):
        """Test the waiting caller gets an error and the peer gets no reply."""
        transport, peer = raw_pair
        session = await connect_raw(transport, peer)

        pending = asyncio.create_task(session.send_request("work"))
        request = await peer.receive()
        sent_before = len(transport.sent)

        await peer.send_raw(f'{{"jsonrpc":"2.0","id":{json.dumps(request.id)},{body}}}'.encode())
        with pytest.raises(UnsupportedContentError):
            await asyncio.wait_for(pending, 1.0)
        assert len(transport.sent) == sent_before
        assert session._pending == {}
        await session.close()

    @pytest.mark.asyncio
    async def test_session_keeps_working(self, raw_pair):
        """Test later requests are unaffected by a malformed response."""
        transport, peer = raw_pair
        session = await connect_raw(transport, peer)

        first = asyncio.create_task(session.send_request("work"))
        request = await peer.receive()
        await peer.send_raw(f'{{"jsonrpc":"2.0","id":{request.id},"result":[1]}}'.encode())
        with pytest.raises(UnsupportedContentError):
            await asyncio.wait_for(first, 1.0)

        second = asyncio.create_task(session.send_request("work"))
        request = await peer.receive()
        await peer.send(Response(id=request.id, result={"ok": True}))
        assert await asyncio.wait_for(second, 1.0) == {"ok": True}
        await session.close()

    @pytest.mark.asyncio
    async def test_unknown_id_is_dropped_silently(self, raw_pair, caplog):
        """Test a malformed response for no pending request is logged, not answered."""
        transport, peer = raw_pair
        session = await connect_raw(transport, peer)

        with caplog.at_level(logging.WARNING, logger="mcplite.session"):
            await peer.send_raw(b'{"jsonrpc":"2.0","id":999,"result":"ok"}')
            await peer.send(Request(id="p1", method="ping"))
            reply = await peer.receive()
        assert isinstance(reply, Response) and reply.id == "p1"
        assert "Discarding invalid response" in caplog.text
        await session.close()

    @pytest.mark.asyncio
    async def test_malformed_initialize_result(self, raw_pair):
        """Test a malformed answer to initialize fails the handshake."""
        transport, peer = raw_pair
        session = Session(transport, "h", "1")
        connecting = asyncio.create_task(session.connect())

        request = await peer.receive()
        await peer.send_raw(f'{{"jsonrpc":"2.0","id":{request.id},"result":"hello"}}'.encode())
        with pytest.raises(HandshakeError):
            await asyncio.wait_for(connecting, 1.0)
        assert session.closed
