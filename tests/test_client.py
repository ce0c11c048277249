import asyncio

import pytest

import domestique
from domestique.state import GatewayStatus

from conftest import TOKEN, message_payload, wait_until


class TestListeners:
    @pytest.mark.asyncio
    async def test_event_decorator(self):
        client = domestique.Client()
        calls = []

        @client.event
        async def on_custom(value):
            calls.append(value)

        client.dispatch('custom', 1)
        await wait_until(lambda: calls)
        assert calls == [1]

    def test_event_requires_coroutine(self):
        client = domestique.Client()

        def on_ready():
            pass

        with pytest.raises(TypeError):
            client.event(on_ready)
        with pytest.raises(TypeError):
            client.add_listener(on_ready)

    @pytest.mark.asyncio
    async def test_listener_handle_removes_itself(self):
        client = domestique.Client()
        calls = []

        async def on_thing(value):
            calls.append(value)

        with client.add_listener(on_thing) as listener:
            assert listener.event == 'thing'
            assert listener.active
            client.dispatch('thing', 1)
            await wait_until(lambda: calls == [1])

        assert not listener.active
        client.dispatch('thing', 2)
        await asyncio.sleep(0.05)
        assert calls == [1]
        # removing twice is harmless
        listener.remove()

    @pytest.mark.asyncio
    async def test_once_listener(self):
        client = domestique.Client()
        calls = []

        async def handler(value):
            calls.append(value)

        listener = client.add_listener(handler, 'ping', once=True)
        client.dispatch('ping', 1)
        client.dispatch('ping', 2)
        await wait_until(lambda: calls)
        await asyncio.sleep(0.05)

        assert calls == [1]
        assert not listener.active

    @pytest.mark.asyncio
    async def test_listen_decorator_with_prefix(self):
        client = domestique.Client()
        calls = []

        @client.listen('on_ping')
        async def first(value):
            calls.append(('first', value))

        @client.listen()
        async def on_ping(value):
            calls.append(('second', value))

        client.dispatch('ping', 3)
        await wait_until(lambda: len(calls) == 2)
        assert sorted(calls) == [('first', 3), ('second', 3)]

    @pytest.mark.asyncio
    async def test_wait_for_with_check(self):
        client = domestique.Client()
        waiter = asyncio.ensure_future(client.wait_for('number', check=lambda n: n > 2, timeout=1))
        await asyncio.sleep(0)
        for n in range(5):
            client.dispatch('number', n)

        assert await waiter == 3
        assert 'number' not in client._listeners

    @pytest.mark.asyncio
    async def test_wait_for_timeout(self):
        client = domestique.Client()
        with pytest.raises(asyncio.TimeoutError):
            await client.wait_for('never', timeout=0.05)

    @pytest.mark.asyncio
    async def test_handler_errors_go_to_on_error(self):
        client = domestique.Client()
        errors = []

        @client.event
        async def on_boom():
            raise RuntimeError('boom')

        @client.event
        async def on_error(event_method, *args, **kwargs):
            errors.append(event_method)

        client.dispatch('boom')
        await wait_until(lambda: errors)
        assert errors == ['on_boom']


def test_default_configuration():
    client = domestique.Client()
    assert client.ws_url == 'wss://api.chat.eqilia.eu/api/v0/live/ws'
    assert client.http.api_url == 'https://api.chat.eqilia.eu'
    assert client.handshake_timeout == 5.0
    assert client.reconnect is True
    assert client.status is GatewayStatus.closed
    assert client.user is None
    assert not client.is_ready()


class TestLogin:
    @pytest.mark.asyncio
    async def test_login_stores_token(self, chat_server):
        async with chat_server as server:
            async with server.client() as client:
                await client.login('alice', 'hunter2')
                assert client.token == TOKEN
                assert client.user_id == 'u1'

    @pytest.mark.asyncio
    async def test_login_with_bad_credentials(self, chat_server):
        async with chat_server as server:
            async with server.client() as client:
                with pytest.raises(domestique.LoginFailure) as info:
                    await client.login('alice', 'wrong')
                assert client.token is None

        assert 'invalid credentials' in str(info.value)

    @pytest.mark.asyncio
    async def test_connect_requires_token(self):
        client = domestique.Client()
        with pytest.raises(domestique.ClientException):
            await client.connect()

    @pytest.mark.asyncio
    async def test_login_token_rejected(self, chat_server):
        async with chat_server as server:
            async with server.client() as client:
                with pytest.raises(domestique.LoginFailure) as info:
                    await client.login_token('not-a-token')

        assert str(info.value) == 'invalid token'
        assert server.ws_tokens == ['not-a-token']

    @pytest.mark.asyncio
    async def test_login_token_times_out(self, chat_server):
        async with chat_server as server:
            server.send_auth_status = False
            async with server.client(handshake_timeout=0.3) as client:
                loop = asyncio.get_running_loop()
                start = loop.time()
                with pytest.raises(domestique.HandshakeTimeout) as info:
                    await client.login_token(TOKEN)
                assert loop.time() - start >= 0.3
                assert 'auth_status' not in client._listeners

                # a late packet is processed without resolving anything twice
                await server.send('authStatus', {'userId': 'u1', 'success': True})
                await wait_until(lambda: client.user_id == 'u1')
                assert 'auth_status' not in client._listeners

        assert isinstance(info.value, asyncio.TimeoutError)
        assert info.value.timeout == 0.3

    @pytest.mark.asyncio
    async def test_socket_closed_before_auth_status(self, chat_server):
        async with chat_server as server:
            server.send_auth_status = False
            async with server.client() as client:
                task = asyncio.ensure_future(client.login_token(TOKEN, reconnect=False))
                await wait_until(lambda: server.sockets)
                await server.drop()
                with pytest.raises(domestique.ConnectionClosed):
                    await task
                assert client.is_closed()


async def ready_client(server, **options):
    client = server.client(**options)
    await client.login('alice', 'hunter2')
    await client.login_token(client.token)
    await server.sync()
    await asyncio.wait_for(client.wait_until_ready(), timeout=2)
    return client


class TestSession:
    @pytest.mark.asyncio
    async def test_login_sync_ready_then_unresolved_message(self, chat_server):
        async with chat_server as server:
            client = server.client()
            ready = []
            raw = []

            @client.event
            async def on_ready():
                ready.append(client.user)

            @client.event
            async def on_socket_event_type(packet_type):
                raw.append(packet_type)

            try:
                await client.login('alice', 'hunter2')
                assert client.token == TOKEN
                await client.login_token(client.token)
                assert client.status is GatewayStatus.syncing

                await server.send('guildAvailable', {'uuid': 'g1'})
                await server.send('channelAvailable', {'uuid': 'c1'})
                await server.send('serverFinished')
                await asyncio.wait_for(client.wait_until_ready(), timeout=2)
                await wait_until(lambda: ready)

                assert client.is_ready()
                assert client.user.name == 'alice'
                assert client.user.id == 'u1'
                assert client.user.guilds == ['g1']
                assert client.user.channels == ['c1']
                assert ready == [client.user]

                waiter = asyncio.ensure_future(client.wait_for('message', timeout=2))
                await asyncio.sleep(0)
                await server.send('messageCreate', message_payload('m5', content='/meow'))
                event = await waiter

                message = event.message
                assert isinstance(message, domestique.UnresolvedMessage)
                assert (event.guild, event.channel) == ('g1', 'c1')
                assert message.author.name == 'bob'
                assert server.hits['guild'] == 0
                assert server.hits['channel'] == 0

                channel = await message.fetch_channel()
                assert server.hits['guild'] == 1
                assert server.hits['channel'] == 1
                guild = await client.fetch_guild('g1')
                assert channel is await guild.channels.get('c1')

                await channel.send('meow')
                assert server.posted[-1] == {'guildId': 'g1', 'channelId': 'c1', 'content': 'meow'}
            finally:
                await client.close()

        assert server.ws_tokens == [TOKEN]
        assert raw[:4] == ['authStatus', 'guildAvailable', 'channelAvailable', 'serverFinished']
        assert client.status is GatewayStatus.closed

    @pytest.mark.asyncio
    async def test_message_for_cached_channel_is_resolved(self, chat_server):
        async with chat_server as server:
            client = await ready_client(server)
            try:
                guild = await client.fetch_guild('g1')
                channel = await guild.channels.get('c1')

                waiter = asyncio.ensure_future(client.wait_for('message', timeout=2))
                await asyncio.sleep(0)
                await server.send('messageCreate', message_payload('m6'))
                event = await waiter
            finally:
                await client.close()

        assert isinstance(event.message, domestique.Message)
        assert event.message.channel is channel
        assert channel.messages[0] is event.message

    @pytest.mark.asyncio
    async def test_reconnects_with_same_token(self, chat_server):
        async with chat_server as server:
            client = await ready_client(server)
            disconnects = []

            @client.event
            async def on_disconnect():
                disconnects.append(1)

            try:
                await server.drop()
                await wait_until(lambda: len(server.sockets) == 2)
                await wait_until(lambda: client.status is GatewayStatus.syncing)
                assert not client.is_ready()
                assert client.user.guilds == []

                await server.sync(guilds=('g1',), channels=('c1', 'c2'))
                await asyncio.wait_for(client.wait_until_ready(), timeout=2)
                assert client.user.channels == ['c1', 'c2']
                assert not client.is_closed()
            finally:
                await client.close()

        assert server.ws_tokens == [TOKEN, TOKEN]
        assert disconnects == [1]

    @pytest.mark.asyncio
    async def test_second_close_before_ready_ends_session(self, chat_server):
        async with chat_server as server:
            client = await ready_client(server)
            try:
                await server.drop()
                await wait_until(lambda: len(server.sockets) == 2)
                await server.drop()
                await wait_until(client.is_closed)
            finally:
                await client.close()

        assert len(server.sockets) == 2
        assert client.status is GatewayStatus.closed

    @pytest.mark.asyncio
    async def test_no_reconnect_when_disabled(self, chat_server):
        async with chat_server as server:
            client = await ready_client(server, reconnect=False)
            try:
                await server.drop()
                await wait_until(client.is_closed)
            finally:
                await client.close()

        assert len(server.sockets) == 1

    @pytest.mark.asyncio
    async def test_fetch_user(self, chat_server):
        async with chat_server as server:
            async with server.client() as client:
                await client.login('alice', 'hunter2')
                first = await client.fetch_user('u2')
                second = await client.fetch_user('u2')

        assert first == second
        assert first is not second
        assert first.admin is True
        assert server.hits['user'] == 1
