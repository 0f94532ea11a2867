"""EndpointProbe against fakes and against a local aiohttp server"""

import asyncio
import socket

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from fortress_harness.endpoint_probe import EndpointProbe
from fortress_harness.transport import HttpClient

from conftest import FakeHttp, FakeOpener


def _free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(('127.0.0.1', 0))
        return sock.getsockname()[1]


def _ws_url(server: TestServer, path: str) -> str:
    return str(server.make_url(path)).replace('http://', 'ws://', 1)


async def _start_server() -> TestServer:
    async def missing(request):
        return web.Response(status=404, text='not here')

    async def plain(request):
        return web.Response(text='hello')

    async def game(request):
        ws = web.WebSocketResponse()
        await ws.prepare(request)
        async for _ in ws:
            pass
        return ws

    app = web.Application()
    app.router.add_get('/missing', missing)
    app.router.add_get('/plain', plain)
    app.router.add_get('/game', game)
    server = TestServer(app)
    await server.start_server()
    return server


@pytest.mark.asyncio
async def test_unsupported_scheme(logger):
    probe = EndpointProbe(FakeHttp(), logger, FakeOpener())
    result = await probe.probe('ftp://localhost/file', 0.1)
    assert not result
    assert 'Unsupported scheme' in result.error


@pytest.mark.asyncio
async def test_probe_first_returns_first_reachable(logger):
    http = FakeHttp(statuses={'http://b/': 500, 'http://c/': 200})
    probe = EndpointProbe(http, logger, FakeOpener())

    result = await probe.probe_first(['http://a/', 'http://b/', 'http://c/'], 0.1)

    assert result.url == 'http://b/'
    assert result.status_code == 500
    assert http.requests == ['http://a/', 'http://b/']


@pytest.mark.asyncio
async def test_probe_first_none_when_all_fail(logger):
    probe = EndpointProbe(FakeHttp(), logger, FakeOpener())
    assert await probe.probe_first(['http://a/', 'ws://b/'], 0.1) is None


@pytest.mark.asyncio
async def test_websocket_probe_closes_connection(logger):
    opener = FakeOpener(reachable={'ws://localhost:5500/game'})
    probe = EndpointProbe(FakeHttp(), logger, opener)

    result = await probe.probe_websocket('ws://localhost:5500/game', 0.1)

    assert result.reachable
    assert opener.sockets[0].closed


@pytest.mark.asyncio
async def test_probes_against_local_server(logger):
    server = await _start_server()
    http = HttpClient()
    probe = EndpointProbe(http, logger)
    try:
        missing = await probe.probe_rest(str(server.make_url('/missing')), 2.0)
        assert missing.reachable
        assert missing.status_code == 404

        refused = await probe.probe_rest(f'http://127.0.0.1:{_free_port()}/api', 2.0)
        assert not refused.reachable
        assert refused.error

        game = await probe.probe_websocket(_ws_url(server, '/game'), 2.0)
        assert game.reachable

        plain = await probe.probe_websocket(_ws_url(server, '/plain'), 2.0)
        assert not plain.reachable
    finally:
        await http.close()
        await server.close()


@pytest.mark.asyncio
async def test_silent_listener_times_out(logger):
    writers = []

    async def silent(reader, writer):
        writers.append(writer)
        await reader.read()

    listener = await asyncio.start_server(silent, '127.0.0.1', 0)
    port = listener.sockets[0].getsockname()[1]
    http = HttpClient()
    probe = EndpointProbe(http, logger)
    try:
        ws = await probe.probe(f'ws://127.0.0.1:{port}/game', 0.3)
        rest = await probe.probe(f'http://127.0.0.1:{port}/api', 0.3)
    finally:
        await http.close()
        for writer in writers:
            writer.close()
        listener.close()
        await listener.wait_closed()

    assert not ws.reachable
    assert not rest.reachable
    assert ws.latency_ms < 2000
    assert rest.latency_ms < 2000
    assert 'Timeout' in ws.error
    assert 'Timeout' in rest.error
