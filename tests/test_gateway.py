import logging

import pytest

import domestique
from domestique import utils
from domestique.gateway import DomestiqueWebSocket
from domestique.state import GatewayStatus

from conftest import message_payload


class Recorder:
    def __init__(self):
        self.events = []

    def __call__(self, event, *args):
        self.events.append((event, *args))

    def names(self):
        return [e[0] for e in self.events]


def make_socket(http, recorder):
    state = domestique.ConnectionState(dispatch=recorder, handlers={}, http=http)
    ws = DomestiqueWebSocket(socket=None)
    ws._connection = state
    ws._dispatch = recorder
    return ws, state


def test_snake_case_event_names():
    assert utils._snake_case('authStatus') == 'auth_status'
    assert utils._snake_case('messageCreate') == 'message_create'
    assert utils._snake_case('serverFinished') == 'server_finished'
    assert utils._snake_case('ready') == 'ready'


def test_parsers_are_registered_by_packet_type():
    state = domestique.ConnectionState(dispatch=None, handlers={}, http=domestique.HTTPClient())
    for packet_type in ('authStatus', 'guildAvailable', 'channelAvailable', 'serverFinished', 'messageCreate'):
        assert state.get_parser(packet_type) is not None
    assert state.get_parser('typingStart') is None
    assert state.status is GatewayStatus.closed


@pytest.mark.asyncio
async def test_available_packets_accumulate_in_order():
    recorder = Recorder()
    ws, state = make_socket(domestique.HTTPClient(), recorder)

    await ws.received_message('{"type":"guildAvailable","payload":{"uuid":"g1"}}')
    await ws.received_message(b'{"type":"channelAvailable","payload":{"uuid":"c1"}}')
    await ws.received_message('{"type":"guildAvailable","payload":{"uuid":"g1"}}')

    assert state.available_guilds == ['g1', 'g1']
    assert state.available_channels == ['c1']
    assert recorder.events[0] == ('socket_event_type', 'guildAvailable')
    assert recorder.events[1] == ('guild_available', {'type': 'guildAvailable', 'payload': {'uuid': 'g1'}})
    assert recorder.names()[2:4] == ['socket_event_type', 'channel_available']


@pytest.mark.asyncio
async def test_auth_status_moves_to_syncing():
    recorder = Recorder()
    ws, state = make_socket(domestique.HTTPClient(), recorder)

    await ws.received_message('{"type":"authStatus","payload":{"userId":"u1","success":true}}')

    assert state.user_id == 'u1'
    assert state.status is GatewayStatus.syncing
    assert recorder.names() == ['socket_event_type', 'auth_status']


@pytest.mark.asyncio
async def test_malformed_packets_are_ignored(caplog):
    recorder = Recorder()
    ws, state = make_socket(domestique.HTTPClient(), recorder)

    with caplog.at_level(logging.WARNING, logger='domestique.gateway'):
        await ws.received_message('not json')
        await ws.received_message('[1, 2]')
        await ws.received_message('{"payload": {}}')

    assert recorder.events == []
    assert len(caplog.records) == 3


@pytest.mark.asyncio
async def test_unknown_packet_is_only_re_emitted():
    recorder = Recorder()
    ws, state = make_socket(domestique.HTTPClient(), recorder)

    await ws.received_message('{"type":"typingStart","payload":{"userId":"u2"}}')

    assert recorder.events == [
        ('socket_event_type', 'typingStart'),
        ('typing_start', {'type': 'typingStart', 'payload': {'userId': 'u2'}}),
    ]


@pytest.mark.asyncio
async def test_parser_errors_are_logged(chat_server, caplog):
    async with chat_server as server:
        http = server.http()
        recorder = Recorder()
        ws, state = make_socket(http, recorder)
        state.user_id = 'ghost'
        try:
            with caplog.at_level(logging.ERROR, logger='domestique.state'):
                await ws.received_message('{"type":"serverFinished","payload":{}}')
        finally:
            await http.close()

    assert state.user is None
    assert 'ready' not in recorder.names()
    # the raw packet is still re-emitted
    assert recorder.names() == ['socket_event_type', 'server_finished']
    assert any(r.exc_info for r in caplog.records)


@pytest.mark.asyncio
async def test_server_finished_builds_client_user(chat_server):
    async with chat_server as server:
        http = server.http()
        ready = []
        recorder = Recorder()
        state = domestique.ConnectionState(dispatch=recorder, handlers={'ready': lambda: ready.append(1)}, http=http)
        try:
            await state.parse({'type': 'authStatus', 'payload': {'userId': 'u1', 'success': True}})
            await state.parse({'type': 'guildAvailable', 'payload': {'uuid': 'g1'}})
            await state.parse({'type': 'serverFinished', 'payload': {}})
        finally:
            await http.close()

    assert ready == [1]
    assert ('ready',) in recorder.events
    assert state.status is GatewayStatus.streaming
    assert isinstance(state.user, domestique.ClientUser)
    assert state.user.id == 'u1'
    assert state.user.name == 'alice'
    assert state.user.display_name == 'Alice'
    assert state.user.guilds == ['g1']
    assert state.user.channels == []


@pytest.mark.asyncio
async def test_message_create_prepends_into_resolved_channel(chat_server):
    async with chat_server as server:
        http = server.http()
        recorder = Recorder()
        state = domestique.ConnectionState(dispatch=recorder, handlers={}, http=http)
        try:
            guild = await state.guilds.get('g1')
            channel = await guild.channels.get('c1')
            await state.parse({'type': 'messageCreate', 'payload': message_payload('m7')})
            await state.parse({'type': 'messageCreate', 'payload': message_payload('m8')})
        finally:
            await http.close()

    assert [m.id for m in channel.messages] == ['m8', 'm7']
    event = recorder.events[0][1]
    assert isinstance(event, domestique.MessageEvent)
    assert event.message is channel.messages[1]
    assert event.message.author.name == 'bob'
    assert (event.guild, event.channel) == ('g1', 'c1')
